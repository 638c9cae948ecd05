"""FastAPI 앱 팩토리"""
import math
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.exceptions import (
    BrowserLaunchException,
    FeedException,
    QueueFullException,
    RateLimitedException,
    UpstreamUnavailableException,
    ValidationException,
)
from src.core.logging import logger
from src.api import feed_router, health_router
from src.engine import FeedOrchestrator, build_orchestrator
from src.schemas.feed_schema import ErrorResponse


def _error_response(status_code: int, exc: FeedException, retry_after: Optional[float] = None) -> JSONResponse:
    body = ErrorResponse(message=exc.message, error_code=exc.error_code, retry_after=retry_after)
    headers = {"Retry-After": str(max(1, math.ceil(retry_after)))} if retry_after is not None else None
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


async def rate_limited_handler(request: Request, exc: RateLimitedException) -> JSONResponse:
    logger.info(f"[API] 429 rate limited: path={request.url.path}, retry_after={exc.retry_after_s:.1f}s")
    return _error_response(429, exc, exc.retry_after_s)


async def queue_full_handler(request: Request, exc: QueueFullException) -> JSONResponse:
    logger.warning(f"[API] 429 queue full: path={request.url.path}")
    return _error_response(429, exc, settings.rate_limit_min_interval_s)


async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailableException) -> JSONResponse:
    logger.error(f"[API] 503 upstream unavailable: path={request.url.path}, {exc}")
    return _error_response(503, exc, exc.retry_after_s)


async def browser_launch_handler(request: Request, exc: BrowserLaunchException) -> JSONResponse:
    logger.error(f"[API] 503 browser unavailable: path={request.url.path}, {exc}")
    return _error_response(503, exc, 5.0)


async def validation_handler(request: Request, exc: ValidationException) -> JSONResponse:
    return _error_response(400, exc)


async def feed_exception_handler(request: Request, exc: FeedException) -> JSONResponse:
    logger.error(f"[API] Unhandled feed error: path={request.url.path}, {exc}", exc_info=True)
    return _error_response(500, exc)


def create_lifespan(factory: Callable[[], FeedOrchestrator]):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """애플리케이션 생명주기"""
        logger.info("Starting application...")
        orchestrator = factory()
        app.state.orchestrator = orchestrator
        await orchestrator.init()
        logger.info("Application started")
        yield
        logger.info("Shutting down application...")
        try:
            await orchestrator.shutdown()
        except Exception as e:
            # 종료 훅에서의 예외는 앱 종료를 막지 않도록 로그만
            logger.error(f"Shutdown error: {type(e).__name__}: {e}")

    return lifespan


def create_app(orchestrator_factory: Optional[Callable[[], FeedOrchestrator]] = None) -> FastAPI:
    """
    FastAPI 앱 생성 (Factory Pattern)

    Args:
        orchestrator_factory: FeedOrchestrator 생성 함수 (테스트에서 Fake 주입)

    Returns:
        FastAPI 앱 인스턴스
    """
    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        lifespan=create_lifespan(orchestrator_factory or build_orchestrator),
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Feed-Status", "X-Feed-Stale", "Retry-After"],
    )

    # 예외 → 구조화된 오류 응답 (구체적인 예외부터 매칭)
    app.add_exception_handler(RateLimitedException, rate_limited_handler)
    app.add_exception_handler(QueueFullException, queue_full_handler)
    app.add_exception_handler(UpstreamUnavailableException, upstream_unavailable_handler)
    app.add_exception_handler(BrowserLaunchException, browser_launch_handler)
    app.add_exception_handler(ValidationException, validation_handler)
    app.add_exception_handler(FeedException, feed_exception_handler)

    # 라우터 등록
    app.include_router(health_router)
    app.include_router(feed_router)

    return app

# 앱 인스턴스 생성 (uvicorn이 로드할 수 있도록)
app = create_app()
