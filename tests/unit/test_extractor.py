"""DeathsExtractor (selectolax) 단위 테스트."""

from __future__ import annotations

from src.crawlers.deaths import DeathsExtractor, build_feed_url, parse_cause, parse_guild
from src.schemas.feed_schema import NO_GUILD, UNKNOWN, FeedQuery
from tests.fixtures.death_pages import BASE_URL, DeathRow, character_url, detail_page, list_page


extractor = DeathsExtractor(BASE_URL)


def test_parse_primary_list_preserves_page_order():
    html = list_page(
        [
            DeathRow("Alpha", 120, cause="a dragon lord"),
            DeathRow("Beta Two", 45, cause="Gamma and Delta", time="17.10.2026, 21:10:00"),
            DeathRow("Charlie", 300),
        ]
    )

    records = extractor.parse_primary_list(html)

    assert [r.player for r in records] == ["Alpha", "Beta Two", "Charlie"]
    first = records[0]
    assert first.level == 120
    assert first.cause == "a dragon lord"
    assert first.time == "17.10.2026, 21:14:03"
    # 상대 링크는 절대 주소로
    assert first.player_link == character_url("Alpha")
    assert records[1].cause == "Gamma and Delta"


def test_rows_without_level_or_link_are_skipped():
    html = (
        '<div class="TableContentContainer"><table class="TableContent">'
        "<tr><td>header only</td></tr>"
        "<tr><td>1.</td><td>now</td><td>Nobody died somehow.</td></tr>"
        '<tr><td>2.</td><td>now</td><td><a href="?name=Ok">Ok</a> died at level 8 by a rat.</td></tr>'
        "</table></div>"
    )

    records = extractor.parse_primary_list(html)

    assert len(records) == 1
    assert records[0].player == "Ok"
    assert records[0].cause == "a rat"


def test_duplicate_identity_is_dropped():
    row = DeathRow("Alpha", 100)
    records = extractor.parse_primary_list(list_page([row, row]))
    assert len(records) == 1


def test_missing_table_yields_empty_list():
    assert extractor.parse_primary_list(list_page([], with_table=False)) == []
    assert extractor.parse_primary_list("") == []


def test_parse_detail_fields():
    html = detail_page(vocation="Royal Paladin", residence="Venore", account_status="VIP Account", guild="Red Rose")

    detail = extractor.parse_detail(html)

    assert detail.vocation == "Royal Paladin"
    assert detail.residence == "Venore"
    assert detail.account_status == "VIP Account"
    assert detail.guild == "Red Rose"
    assert detail.is_vip is True
    assert detail.has_data is True


def test_parse_detail_missing_fields_use_sentinels():
    detail = extractor.parse_detail(detail_page(vocation=None, residence=None, account_status=None))

    assert detail.vocation == UNKNOWN
    assert detail.residence == UNKNOWN
    assert detail.account_status == UNKNOWN
    assert detail.guild == NO_GUILD
    assert detail.has_data is False


def test_parse_helpers():
    assert parse_cause("Alpha died at level 120 by a dragon.") == "a dragon"
    assert parse_guild("Member of the Red Rose") == "Red Rose"
    assert parse_guild("Leader of the Red Rose") == "Red Rose"


def test_build_feed_url_applies_level_only_above_one():
    assert build_feed_url(BASE_URL, FeedQuery(source="20")) == (
        "https://rubinot.com.br/?subtopic=latestdeaths&world=20"
    )
    assert build_feed_url(BASE_URL, FeedQuery(source="20", min_level=1)).endswith("world=20")
    assert build_feed_url(BASE_URL, FeedQuery(source="7", min_level=250)) == (
        "https://rubinot.com.br/?subtopic=latestdeaths&world=7&min_level=250"
    )
