"""커스텀 예외 정의 (Structured Exception Hierarchy)"""
from typing import Any, Optional


class FeedException(Exception):
    """기본 예외 클래스 - 모든 커스텀 예외의 부모"""
    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# 업스트림 일시 장애 (재시도 대상, 호출자에게 직접 노출하지 않음)
class UpstreamException(FeedException):
    """업스트림 일시 오류의 기본 클래스"""
    def __init__(self, message: str, error_code: str = "UPSTREAM_ERROR", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code or "UPSTREAM_ERROR", details)


class NavigationTimeoutException(UpstreamException):
    """페이지 이동 타임아웃"""
    def __init__(self, address: str, timeout_ms: Optional[int] = None, details: Optional[dict[str, Any]] = None):
        if timeout_ms is None:
            message = f"Navigation to '{address}' timed out"
        else:
            message = f"Navigation to '{address}' timed out after {timeout_ms}ms"
        super().__init__(message, "NAVIGATION_TIMEOUT",
                         details or {"address": address, "timeout_ms": timeout_ms})


class ElementNotFoundException(UpstreamException):
    """기대한 요소가 렌더링되지 않음 (차단/점검/느린 응답)"""
    def __init__(self, selector: str, details: Optional[dict[str, Any]] = None):
        message = f"Element not found: {selector}"
        super().__init__(message, "ELEMENT_NOT_FOUND", details or {"selector": selector})


# 브라우저(렌더링 리소스) 관련
class ResourceDeadException(FeedException):
    """공유 브라우저 연결 끊김 - 다음 시도 전에 재생성 필요"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Rendering resource is not usable: {reason}"
        super().__init__(message, "BROWSER_DISCONNECTED", details or {"reason": reason})


class BrowserLaunchException(FeedException):
    """브라우저 실행 실패 (재시도 소진)"""
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, "BROWSER_LAUNCH_FAILED", details)


# 입장 제어 관련
class RateLimitedException(FeedException):
    """레이트 리밋 거절 + stale 데이터 없음 → 잠시 후 재시도"""
    def __init__(self, retry_after_s: float, details: Optional[dict[str, Any]] = None):
        message = f"Too many upstream requests, retry after {retry_after_s:.1f}s"
        self.retry_after_s = retry_after_s
        super().__init__(message, "RATE_LIMITED", details or {"retry_after_s": retry_after_s})


class QueueFullException(FeedException):
    """요청 대기열이 가득 참"""
    def __init__(self, max_size: int, details: Optional[dict[str, Any]] = None):
        message = f"Request queue is full (max_size={max_size})"
        super().__init__(message, "QUEUE_FULL", details or {"max_size": max_size})


class UpstreamUnavailableException(FeedException):
    """재시도 소진 + stale 데이터 없음 (최종 실패)"""
    def __init__(
        self,
        attempts: int,
        last_error: Optional[BaseException] = None,
        retry_after_s: float = 5.0,
        details: Optional[dict[str, Any]] = None,
    ):
        reason = f"{type(last_error).__name__}: {last_error}" if last_error else "unknown"
        message = f"Upstream unavailable after {attempts} attempts ({reason})"
        self.attempts = attempts
        self.last_error = last_error
        self.retry_after_s = retry_after_s
        super().__init__(message, "UPSTREAM_UNAVAILABLE",
                         details or {"attempts": attempts, "reason": reason})


# 유효성 검증 관련
class ValidationException(FeedException):
    """유효성 검증 예외"""
    def __init__(self, field: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Validation failed for '{field}': {reason}"
        super().__init__(message, "VALIDATION_ERROR",
                         details or {"field": field, "reason": reason})


class InvalidQueryException(ValidationException):
    """유효하지 않은 피드 조회 조건"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__("query", reason, details)
