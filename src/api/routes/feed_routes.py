"""Feed Routes (Engine Layer)

HTTP Layer는 요청을 FeedQuery로 변환해 FeedOrchestrator에 위임하는 Translator 역할만 수행합니다.
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.core.config import settings
from src.core.exceptions import InvalidQueryException
from src.core.logging import logger, sanitize_for_log
from src.engine import FeedOrchestrator, FeedResult
from src.schemas.feed_schema import EnrichedRecord, ErrorResponse, FeedQuery

router = APIRouter(tags=["feed"])


def get_orchestrator(request: Request) -> FeedOrchestrator:
    """lifespan에서 생성한 FeedOrchestrator (앱당 1개)"""
    return request.app.state.orchestrator


def client_identity(request: Request) -> str:
    """레이트 리밋 단위 (프록시 뒤라면 X-Forwarded-For 첫 항목)"""
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def build_query(
    source: Optional[str] = Query(None, description="월드(서버) ID"),
    world: Optional[str] = Query(None, description="source의 이전 이름"),
    min_level: Optional[int] = Query(None, description="최소 레벨 (2 이상일 때만 적용)"),
    min_level_camel: Optional[int] = Query(None, alias="minLevel", include_in_schema=False),
    vip: bool = Query(False, description="VIP 계정만"),
) -> FeedQuery:
    level = min_level if min_level is not None else min_level_camel
    try:
        return FeedQuery(
            source=source or world or settings.default_source,
            min_level=level,
            vip_only=vip,
        )
    except ValidationError as e:
        reason = "; ".join(err.get("msg", "invalid") for err in e.errors())
        logger.warning(f"[API] Invalid feed query: {sanitize_for_log(reason)}")
        raise InvalidQueryException(reason)


def _feed_headers(result: FeedResult) -> dict[str, str]:
    return {
        "X-Feed-Status": result.status.value,
        "X-Feed-Stale": "true" if result.is_stale else "false",
        "Cache-Control": "no-store",
    }


def _feed_response(result: FeedResult, records: list[EnrichedRecord]) -> JSONResponse:
    return JSONResponse(
        content=[record.model_dump(mode="json", by_alias=True) for record in records],
        headers=_feed_headers(result),
    )


def _timeout_response() -> JSONResponse:
    body = ErrorResponse(
        message="피드 응답 시간이 초과되었습니다. 잠시 후 다시 시도해주세요.",
        error_code="FEED_TIMEOUT",
        retry_after=5.0,
    )
    return JSONResponse(status_code=504, content=body.model_dump(), headers={"Retry-After": "5"})


async def _resolve(
    orchestrator: FeedOrchestrator, query: FeedQuery, identity: str, *, enrich: bool
) -> Optional[FeedResult]:
    try:
        return await asyncio.wait_for(
            orchestrator.get_feed(query, identity, enrich=enrich),
            timeout=settings.api_feed_timeout_s,
        )
    except asyncio.TimeoutError:
        logger.error(f"[API] Feed timeout: key={query.cache_key()}")
        return None


@router.get("/feed")
async def get_feed(
    request: Request,
    query: FeedQuery = Depends(build_query),
    orchestrator: FeedOrchestrator = Depends(get_orchestrator),
):
    """최근 사망 목록 (상세 보강 포함, 최신순)

    - 캐시 히트: 즉시 응답 (레이트 리밋 미적용)
    - 업스트림 장애: 만료된 캐시로 응답 (X-Feed-Stale: true)
    - 429/503: Retry-After 헤더 포함
    """
    result = await _resolve(orchestrator, query, client_identity(request), enrich=True)
    if result is None:
        return _timeout_response()
    return _feed_response(result, result.records)


@router.get("/feed/fast")
async def get_feed_fast(
    request: Request,
    query: FeedQuery = Depends(build_query),
    orchestrator: FeedOrchestrator = Depends(get_orchestrator),
):
    """목록만 (상세 정보는 기본값)"""
    result = await _resolve(orchestrator, query, client_identity(request), enrich=False)
    if result is None:
        return _timeout_response()
    return _feed_response(result, result.records)


@router.get("/feed/latest")
async def get_latest(
    request: Request,
    query: FeedQuery = Depends(build_query),
    orchestrator: FeedOrchestrator = Depends(get_orchestrator),
):
    """가장 최근 기록 1건 (없으면 null)"""
    result = await _resolve(orchestrator, query, client_identity(request), enrich=True)
    if result is None:
        return _timeout_response()
    latest = result.records[0].model_dump(mode="json", by_alias=True) if result.records else None
    return JSONResponse(content=latest, headers=_feed_headers(result))
