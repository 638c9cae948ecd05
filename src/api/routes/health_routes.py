"""헬스 체크 엔드포인트"""
from fastapi import APIRouter, Depends

from src.schemas.feed_schema import HealthResponse
from src.engine import FeedOrchestrator
from src.api.routes.feed_routes import get_orchestrator
from src import __version__

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(orchestrator: FeedOrchestrator = Depends(get_orchestrator)):
    """
    헬스 체크 엔드포인트

    - 브라우저 상태 (alive | closed)
    - 캐시 점유 현황, 대기열 길이, 추적 중인 identity 수
    - 프로세스 메모리(RSS)
    """
    return orchestrator.health()


@router.get("/")
async def root():
    """루트 엔드포인트"""
    return {
        "service": "최근 사망 피드",
        "version": __version__,
        "docs": "/docs"
    }
