"""Rendering/Extraction Protocol - 오케스트레이터가 의존하는 인터페이스

오케스트레이터는 Playwright나 특정 사이트 마크업을 직접 알지 못합니다.
테스트에서는 아래 프로토콜을 만족하는 Fake로 교체합니다.
"""

from typing import AsyncContextManager, Protocol

from src.schemas.feed_schema import DetailRecord, FeedQuery, PrimaryRecord

from .playwright.pages import SessionOptions


class RenderSession(Protocol):
    """렌더링된 페이지 1개"""

    async def extract_raw(self) -> str:
        """렌더링 결과(raw HTML) 반환"""
        ...


class RenderingResource(Protocol):
    """공유 렌더링 리소스 프로토콜

    구현 예시:
        class BrowserResource(RenderingResource):
            async def open(self, address, options) -> PageSession:
                # page 생성 + 이동
                ...
    """

    def is_alive(self) -> bool:
        ...

    async def warmup(self) -> None:
        ...

    async def recreate(self) -> None:
        ...

    async def shutdown(self) -> None:
        ...

    async def open(self, address: str, options: SessionOptions) -> RenderSession:
        """address로 이동한 세션 반환

        Raises:
            NavigationTimeoutException: 이동 타임아웃
            ElementNotFoundException: 데이터 영역 없음
            ResourceDeadException: 리소스 연결 끊김
        """
        ...

    async def close(self, session: RenderSession) -> None:
        ...

    def session(self, address: str, options: SessionOptions) -> AsyncContextManager[RenderSession]:
        """open + close를 보장하는 컨텍스트 매니저"""
        ...


class Extractor(Protocol):
    """raw HTML → 레코드 변환 프로토콜"""

    def build_feed_url(self, base_url: str, query: FeedQuery) -> str:
        ...

    def parse_primary_list(self, raw: str) -> list[PrimaryRecord]:
        ...

    def parse_detail(self, raw: str) -> DetailRecord:
        ...
