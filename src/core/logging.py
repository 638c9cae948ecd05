"""로깅 설정"""
import logging
import sys
import os
from src.core.config import settings


# Production 환경에서는 DEBUG 로그 비활성화
IS_PRODUCTION = os.getenv("ENVIRONMENT", "development") == "production"


def setup_logging() -> logging.Logger:
    """로거 초기화 및 설정"""

    logger = logging.getLogger("death_feed")

    log_level = settings.log_level.upper()
    if IS_PRODUCTION and log_level == "DEBUG":
        log_level = "INFO"

    logger.setLevel(getattr(logging, log_level))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level))

    if IS_PRODUCTION:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    console_handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(console_handler)

    return logger


logger = setup_logging()


def sanitize_for_log(value: str, max_length: int = 100) -> str:
    """민감 정보 제거 후 로깅용 문자열 반환

    Args:
        value: 로깅할 문자열 (클라이언트가 보낸 값 등)
        max_length: 최대 길이

    Returns:
        마스킹/절단된 문자열
    """
    if not value:
        return "[empty]"

    patterns_to_mask = ("password", "token", "api_key", "secret", "webhook")

    result = value
    lowered = result.lower()
    if any(pattern in lowered for pattern in patterns_to_mask):
        result = "***"

    # 제어 문자 제거 (로그 인젝션 방지)
    result = "".join(ch for ch in result if ch.isprintable())

    if len(result) > max_length:
        result = result[:max_length] + "..."

    return result


def mask_identity(identity: str) -> str:
    """클라이언트 identity(IP) 마스킹

    IPv4는 마지막 옥텟, IPv6는 앞 3그룹 이후를 가립니다.
    레이트 리미팅/대기열 로그에서 호출자 구분은 유지하되 원본 주소는 남기지 않습니다.

    Examples:
        >>> mask_identity("203.0.113.7")
        '203.0.113.x'
        >>> mask_identity("2001:db8:85a3::8a2e:370:7334")
        '2001:db8:85a3:x'
    """
    if not identity:
        return "[empty]"
    if identity.count(".") == 3:
        return identity.rsplit(".", 1)[0] + ".x"
    if ":" in identity:
        return ":".join(identity.split(":")[:3]) + ":x"
    return sanitize_for_log(identity, max_length=40)
