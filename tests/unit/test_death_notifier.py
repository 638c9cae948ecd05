"""DeathNotifier 단위 테스트 (httpx.MockTransport)."""

from __future__ import annotations

import json

import httpx
import pytest

from src.schemas.feed_schema import EnrichedRecord
from src.services.death_notifier import DeathNotifier


def _record(player: str, time: str = "t1") -> EnrichedRecord:
    return EnrichedRecord(player=player, time=time, level=100, cause="a dragon")


def _notifier(status_code: int = 204):
    posted: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        posted.append(json.loads(request.content))
        return httpx.Response(status_code)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DeathNotifier("https://hooks.example.com/abc", client=client), posted


@pytest.mark.asyncio
async def test_first_batch_only_primes():
    """시작 후 첫 배치는 알리지 않음."""
    notifier, posted = _notifier()

    sent = await notifier.notify([_record("Alpha"), _record("Beta")])

    assert sent == 0
    assert posted == []
    await notifier.close()


@pytest.mark.asyncio
async def test_new_deaths_are_posted_once():
    notifier, posted = _notifier()
    await notifier.notify([_record("Alpha")])

    sent = await notifier.notify([_record("Gamma"), _record("Alpha")])
    again = await notifier.notify([_record("Gamma")])

    assert sent == 1
    assert again == 0
    assert len(posted) == 1
    assert "Gamma" in posted[0]["content"]
    assert notifier.sent_count == 1
    await notifier.close()


@pytest.mark.asyncio
async def test_webhook_failure_is_swallowed():
    notifier, posted = _notifier(status_code=500)
    await notifier.notify([])

    sent = await notifier.notify([_record("Delta")])

    assert sent == 0
    assert len(posted) == 1
    await notifier.close()


@pytest.mark.asyncio
async def test_disabled_without_url():
    notifier = DeathNotifier("")

    assert notifier.enabled is False
    assert await notifier.notify([_record("Alpha")]) == 0


@pytest.mark.asyncio
async def test_seen_set_is_bounded():
    notifier, _ = _notifier()
    notifier.max_seen = 3
    await notifier.notify([_record(f"P{i}") for i in range(5)])

    assert len(notifier._seen) == 3
    await notifier.close()
