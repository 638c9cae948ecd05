"""Crawler modules (Playwright rendering + HTML extraction).

공개 API는 이 파일에서만 export합니다.
"""

from .executor import Extractor, RenderingResource, RenderSession
from .deaths import DeathsExtractor
from .playwright import BrowserResource, PageSession, SessionOptions

__all__ = [
        "Extractor",
        "RenderingResource",
        "RenderSession",
        "DeathsExtractor",
        "BrowserResource",
        "PageSession",
        "SessionOptions",
]
