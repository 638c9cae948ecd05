"""Playwright page 설정/보조 함수.

Page 생성 후 라우팅(리소스 차단), 헤더/뷰포트 설정 등 공통 설정을 분리합니다.
차단 규칙은 콜백 안에 흩어두지 않고 ResourcePolicy로 선언합니다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from playwright.async_api import Page

from src.core.config import settings


@dataclass(frozen=True)
class ResourcePolicy:
    """리소스 허용/차단 정책 (선언형)"""

    blocked_resource_types: frozenset[str] = frozenset({"image", "stylesheet", "font", "media", "websocket"})
    blocked_extensions: tuple[str, ...] = (
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".webp",
        ".svg",
        ".woff",
        ".woff2",
        ".ttf",
        ".css",
    )

    def allows(self, resource_type: Optional[str], url: Optional[str]) -> bool:
        if resource_type and resource_type in self.blocked_resource_types:
            return False
        path = (url or "").lower().split("?", 1)[0]
        return not any(path.endswith(ext) for ext in self.blocked_extensions)


DEFAULT_POLICY = ResourcePolicy()


@dataclass(frozen=True)
class SessionOptions:
    """페이지 1개(세션)를 여는 옵션

    Attributes:
        navigation_timeout_s: page.goto 타임아웃
        selector_timeout_s: wait_selector 대기 타임아웃
        wait_selector: 데이터 렌더링 완료 판단 선택자
        fallback_selector: wait_selector가 늦어도 이 컨테이너가 있으면 진행
    """

    navigation_timeout_s: float = 20.0
    selector_timeout_s: float = 8.0
    wait_selector: Optional[str] = None
    fallback_selector: Optional[str] = None
    viewport_width: int = field(default_factory=lambda: settings.crawler_viewport_width)
    viewport_height: int = field(default_factory=lambda: settings.crawler_viewport_height)
    user_agent: str = field(default_factory=lambda: settings.crawler_user_agent)
    policy: ResourcePolicy = DEFAULT_POLICY

    @classmethod
    def for_budget(
        cls,
        timeout_s: float,
        *,
        wait_selector: Optional[str] = None,
        fallback_selector: Optional[str] = None,
        policy: ResourcePolicy = DEFAULT_POLICY,
    ) -> "SessionOptions":
        """전체 예산을 이동 2/3, 선택자 대기 1/3로 배분"""
        return cls(
            navigation_timeout_s=timeout_s * 2 / 3,
            selector_timeout_s=timeout_s / 3,
            wait_selector=wait_selector,
            fallback_selector=fallback_selector,
            policy=policy,
        )


async def configure_page(page: Page, options: SessionOptions) -> Page:
    page.set_default_timeout(int(options.navigation_timeout_s * 1000))
    policy = options.policy

    async def _route_handler(route, request):
        try:
            allowed = policy.allows(request.resource_type, request.url)
        except Exception:
            allowed = True

        try:
            if allowed:
                await route.continue_()
            else:
                await route.abort()
        except Exception:
            # 페이지가 이미 닫힌 경우 등
            return

    try:
        await page.route("**/*", _route_handler)
    except Exception:
        pass

    await page.set_viewport_size({"width": options.viewport_width, "height": options.viewport_height})
    await page.set_extra_http_headers(
        {
            "User-Agent": options.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
        }
    )

    return page
