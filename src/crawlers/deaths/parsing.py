"""최근 사망 목록 / 캐릭터 상세 - HTML 파싱 유틸.

이 모듈은 네트워크(렌더링)와 분리된 순수 파싱 로직을 담습니다.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlencode, urljoin

from selectolax.parser import HTMLParser, Node

from src.core.config import settings
from src.core.logging import logger
from src.schemas.feed_schema import DetailRecord, FeedQuery, PrimaryRecord


_WS_RE = re.compile(r"\s+")
_LEVEL_RE = re.compile(r"level\s*(\d+)", re.IGNORECASE)
_CAUSE_PREFIX_RE = re.compile(r"^.*?died at level \d+ by\s+", re.IGNORECASE)
_GUILD_MEMBER_RE = re.compile(r"^Member of the\s*", re.IGNORECASE)
_GUILD_RANK_RE = re.compile(r"^.*?\sof\s+the\s+", re.IGNORECASE)


def _clean_text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    return _WS_RE.sub(" ", node.text(deep=True, separator="")).strip()


def build_feed_url(base_url: str, query: FeedQuery) -> str:
    """목록 페이지 주소 (레벨 필터는 2 이상일 때만 업스트림에 전달)"""
    params: dict[str, object] = {"subtopic": "latestdeaths", "world": query.source}
    if query.effective_min_level is not None:
        params["min_level"] = query.effective_min_level
    return f"{base_url.rstrip('/')}/?{urlencode(params)}"


def parse_cause(row_text: str) -> str:
    """'... died at level 120 by a dragon.' → 'a dragon'"""
    cause = _CAUSE_PREFIX_RE.sub("", row_text, count=1)
    if cause.endswith("."):
        cause = cause[:-1]
    return cause.strip()


def parse_guild(value: str) -> str:
    """'Member of the Red Rose' / 'Leader of the Red Rose' → 'Red Rose'"""
    value = _GUILD_MEMBER_RE.sub("", value, count=1)
    value = _GUILD_RANK_RE.sub("", value, count=1)
    return value.strip()


class DeathsExtractor:
    """selectolax 기반 추출기 (목록/상세)"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        primary_selector: Optional[str] = None,
        detail_selector: Optional[str] = None,
    ) -> None:
        self.base_url = base_url or settings.upstream_base_url
        self.primary_selector = primary_selector or settings.primary_selector
        self.detail_selector = detail_selector or settings.detail_selector

    def build_feed_url(self, base_url: str, query: FeedQuery) -> str:
        return build_feed_url(base_url, query)

    def parse_primary_list(self, raw: str) -> list[PrimaryRecord]:
        """목록 테이블 → PrimaryRecord 목록 (페이지 순서 유지, 중복 제거)

        행 규칙:
        - td가 3개 미만이면 건너뜀 (헤더/빈 행)
        - 시각은 두 번째 칸, 캐릭터 링크와 설명은 세 번째 칸
        - 설명에 'level N'이 없거나 캐릭터 링크가 없으면 건너뜀
        """
        if not raw:
            return []

        tree = HTMLParser(raw)
        rows = tree.css(f"{self.primary_selector} tr")
        records: list[PrimaryRecord] = []
        seen: set[tuple[str, str]] = set()
        skipped = 0

        for row in rows:
            cells = row.css("td")
            if len(cells) < 3:
                continue

            time_text = _clean_text(cells[1])
            anchor = cells[2].css_first("a")
            player = _clean_text(anchor)
            text = _clean_text(cells[2])
            level_match = _LEVEL_RE.search(text)
            if not player or not level_match:
                skipped += 1
                continue

            href = anchor.attributes.get("href") if anchor is not None else None
            record = PrimaryRecord(
                player=player,
                time=time_text,
                level=int(level_match.group(1)),
                cause=parse_cause(text),
                player_link=urljoin(self.base_url, href) if href else None,
            )
            if record.identity in seen:
                continue
            seen.add(record.identity)
            records.append(record)

        if skipped:
            logger.debug(f"[Extractor] Skipped {skipped} malformed rows")
        return records

    def parse_detail(self, raw: str) -> DetailRecord:
        """캐릭터 상세 (label/value 2칸 행) → DetailRecord

        찾지 못한 필드는 기본값(Unknown / No Guild)으로 채워집니다.
        """
        if not raw:
            return DetailRecord()

        tree = HTMLParser(raw)
        fields: dict[str, str] = {}

        for row in tree.css(f"{self.detail_selector} table.TableContent tr"):
            cells = row.css("td")
            if len(cells) < 2:
                continue
            label = _clean_text(cells[0]).lower()
            value = _clean_text(cells[1])
            if not label or not value:
                continue

            if "vocation" in label:
                fields.setdefault("vocation", value)
            elif "residence" in label:
                fields.setdefault("residence", value)
            elif "account" in label:
                fields.setdefault("account_status", value)
            elif "guild" in label:
                fields.setdefault("guild", parse_guild(value))

        return DetailRecord(**fields)
