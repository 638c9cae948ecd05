"""Playwright 공용 브라우저/컨텍스트 관리 (렌더링 리소스).

프로세스당 0개 또는 1개의 브라우저만 유지합니다.
- 생성은 asyncio.Lock으로 보호: 동시에 처음 호출해도 실행은 한 번만
- 연결 끊김 감지 시 재생성, 종료 시 정리
- fetch마다 page(세션)를 하나씩 열고, 성공/실패와 무관하게 정확히 한 번 닫음
"""

from __future__ import annotations

import asyncio
import platform
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from src.core.config import settings
from src.core.exceptions import (
    BrowserLaunchException,
    ElementNotFoundException,
    NavigationTimeoutException,
    ResourceDeadException,
    UpstreamException,
)
from src.core.logging import logger

from .pages import SessionOptions, configure_page


Launcher = Callable[[], Awaitable[tuple[Optional[Playwright], Browser, BrowserContext]]]

_DISCONNECT_MARKERS = ("has been closed", "disconnected", "crashed", "target closed", "connection closed")


def build_launch_args() -> list[str]:
    args: list[str] = [
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-software-rasterizer",
        "--disable-background-networking",
        "--disable-background-timer-throttling",
        "--disable-renderer-backgrounding",
        "--disable-default-apps",
        "--disable-extensions",
        "--no-first-run",
        "--no-default-browser-check",
    ]

    if platform.system().lower() == "linux":
        args.extend(["--no-sandbox", "--disable-setuid-sandbox"])

    deduped: list[str] = []
    seen: set[str] = set()
    for a in args:
        if a not in seen:
            seen.add(a)
            deduped.append(a)
    return deduped


async def launch_chromium() -> tuple[Optional[Playwright], Browser, BrowserContext]:
    """Chromium 실행 (headless) 후 공용 컨텍스트 생성"""
    pw = await asyncio.wait_for(
        async_playwright().start(),
        timeout=20.0,  # Playwright 시작에 최대 20초
    )
    try:
        browser = await asyncio.wait_for(
            pw.chromium.launch(
                headless=True,
                args=build_launch_args(),
                timeout=settings.browser_launch_timeout_s * 1000,
            ),
            timeout=settings.browser_launch_timeout_s,
        )
        context = await browser.new_context(
            user_agent=settings.crawler_user_agent,
            viewport={"width": settings.crawler_viewport_width, "height": settings.crawler_viewport_height},
        )
    except BaseException:
        try:
            await pw.stop()
        except Exception:
            pass
        raise
    return pw, browser, context


def is_disconnect_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _DISCONNECT_MARKERS)


class PageSession:
    """fetch 1회에 대응하는 page 핸들"""

    def __init__(self, resource: "BrowserResource", page: Page, address: str) -> None:
        self._resource = resource
        self.page = page
        self.address = address
        self.closed = False

    async def extract_raw(self) -> str:
        """렌더링된 HTML 반환"""
        try:
            return await self.page.content()
        except PlaywrightError as e:
            raise self._resource.map_error(e, self.address) from e


class BrowserResource:
    """공유 브라우저 핸들 (지연 생성, 재생성, 종료)"""

    def __init__(
        self,
        launcher: Optional[Launcher] = None,
        *,
        launch_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._launcher: Launcher = launcher or launch_chromium
        self.launch_attempts = max(1, launch_attempts or settings.browser_launch_attempts)
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self.launch_count = 0
        self.open_sessions = 0

    def is_alive(self) -> bool:
        if self._browser is None or self._context is None:
            return False
        try:
            return bool(self._browser.is_connected())
        except Exception:
            return False

    async def ensure(self) -> BrowserContext:
        """살아있는 컨텍스트 반환 (없으면 생성, 생성은 동시에 하나만)"""
        if self.is_alive():
            return self._context  # type: ignore[return-value]

        async with self._lock:
            # 대기하는 동안 다른 호출이 이미 생성했을 수 있음
            if self.is_alive():
                return self._context  # type: ignore[return-value]

            await self._close_handles()

            last_err: Optional[Exception] = None
            for attempt in range(1, self.launch_attempts + 1):
                try:
                    logger.info(f"[Playwright] Launching browser (attempt {attempt}/{self.launch_attempts})...")
                    pw, browser, context = await self._launcher()
                    self._playwright = pw
                    self._browser = browser
                    self._context = context
                    self.launch_count += 1
                    logger.info("[Playwright] Browser launched successfully (shared)")
                    return context
                except asyncio.TimeoutError as e:
                    last_err = e
                    logger.error(f"[Playwright] Launch timeout (attempt {attempt}/{self.launch_attempts})")
                except Exception as e:
                    last_err = e
                    logger.error(
                        f"[Playwright] Failed to launch browser (attempt {attempt}/{self.launch_attempts}): "
                        f"{type(e).__name__}: {e}"
                    )

                await self._close_handles()
                if attempt < self.launch_attempts:
                    wait_time = min(2.0 * attempt, 10.0)
                    logger.info(f"[Playwright] Waiting {wait_time:.1f}s before retry...")
                    await self._sleep(wait_time)

            raise BrowserLaunchException(f"[Playwright] Browser launch failed after retries: {last_err}")

    async def warmup(self) -> None:
        await self.ensure()

    async def recreate(self) -> None:
        """연결 끊긴 브라우저 폐기 후 재생성

        연결이 살아있으면 다른 호출이 이미 재생성한 것이므로 그대로 둡니다
        (다른 fetch가 사용 중인 page를 닫지 않음).
        """
        async with self._lock:
            if self.is_alive():
                logger.info("[Playwright] Browser already relaunched, skipping recreate")
                return
            logger.warning("[Playwright] Recreating browser")
            await self._close_handles()
        await self.ensure()

    async def shutdown(self) -> None:
        async with self._lock:
            await self._close_handles()
        logger.info("[Playwright] Browser closed")

    async def open(self, address: str, options: SessionOptions) -> PageSession:
        """새 page를 열고 address로 이동 (실패 시 page는 닫고 예외 전파)"""
        context = await self.ensure()
        try:
            page = await context.new_page()
        except PlaywrightError as e:
            raise self.map_error(e, address) from e

        session = PageSession(self, page, address)
        self.open_sessions += 1
        try:
            await configure_page(page, options)
            await self._navigate(page, address, options)
        except BaseException:
            await self.close(session)
            raise
        return session

    async def close(self, session: PageSession) -> None:
        """세션 page 닫기 (여러 번 호출해도 한 번만 닫힘)"""
        if session.closed:
            return
        session.closed = True
        self.open_sessions -= 1
        try:
            await session.page.close()
        except Exception as e:
            logger.debug(f"[Playwright] Failed to close page: {type(e).__name__}: {e}")

    @asynccontextmanager
    async def session(self, address: str, options: SessionOptions) -> AsyncIterator[PageSession]:
        page_session = await self.open(address, options)
        try:
            yield page_session
        finally:
            await self.close(page_session)

    def map_error(self, error: PlaywrightError, address: str = "") -> Exception:
        """Playwright 오류 → 도메인 예외"""
        if isinstance(error, PlaywrightTimeoutError):
            return NavigationTimeoutException(address or "unknown")
        if not self.is_alive() or is_disconnect_error(error):
            return ResourceDeadException(f"{type(error).__name__}: {error}")
        return UpstreamException(f"Playwright error: {error}")

    async def _navigate(self, page: Page, address: str, options: SessionOptions) -> None:
        goto_timeout_ms = int(options.navigation_timeout_s * 1000)
        try:
            await page.goto(address, wait_until="domcontentloaded", timeout=goto_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutException(address, goto_timeout_ms) from e
        except PlaywrightError as e:
            raise self.map_error(e, address) from e

        if not options.wait_selector:
            return

        selector_timeout_ms = int(options.selector_timeout_s * 1000)
        try:
            await page.wait_for_selector(options.wait_selector, timeout=selector_timeout_ms)
        except PlaywrightTimeoutError as e:
            # 컨테이너가 있으면 테이블이 늦는 것 → 파싱 시도
            if options.fallback_selector and await page.query_selector(options.fallback_selector) is not None:
                logger.info(f"[Playwright] '{options.wait_selector}' slow but container exists, continuing")
                return
            raise ElementNotFoundException(options.wait_selector) from e
        except PlaywrightError as e:
            raise self.map_error(e, address) from e

    async def _close_handles(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except Exception:
                pass
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception:
                pass
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception:
                pass
            self._playwright = None

    def __repr__(self) -> str:
        return (
            f"BrowserResource(alive={self.is_alive()}, launches={self.launch_count}, "
            f"open_sessions={self.open_sessions})"
        )
