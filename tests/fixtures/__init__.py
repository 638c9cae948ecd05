"""테스트 자산(데이터) 레이어

규칙:
- 엔진/네트워크 의존 없음
- HTML은 필요한 구조만 가진 최소 마크업
"""

from .death_pages import BASE_URL, DeathRow, character_url, detail_page, feed_url, list_page

__all__ = [
    "BASE_URL",
    "DeathRow",
    "character_url",
    "detail_page",
    "feed_url",
    "list_page",
]
