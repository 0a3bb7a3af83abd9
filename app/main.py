import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import setup_logging
from app.database import SessionLocal
from app.jobs.scheduler import ReconcilerScheduler
from app.routers.chat import router as chat_router
from app.routers.meetups import router as meetups_router
from app.routers.participants import router as participants_router
from app.routers.reports import router as reports_router

# 로깅 설정이 가장 먼저
setup_logging()
logger = logging.getLogger(__name__)


def _run_alembic_upgrade() -> None:
    """앱 기동 시 DB 마이그레이션 자동 적용."""
    from alembic import command
    from alembic.config import Config

    root = Path(__file__).resolve().parent.parent
    cfg = Config(str(root / "alembic.ini"))
    command.upgrade(cfg, "head")


# 애플리케이션 팩토리 패턴을 사용할 수도 있지만
# 초기 세팅 단계에서는 단순한 전역 인스턴스로 구성
app = FastAPI(
    title="MeetNow API",
    description="만남 시각 전후로만 열리는 번개 모임 채팅방 백엔드 API",
    version="0.1.0",
)

_scheduler: Optional[ReconcilerScheduler] = None


@app.on_event("startup")
async def _startup() -> None:
    """기동 시 마이그레이션 + 리컨실러(주기 작업) 시작."""
    global _scheduler
    if settings.AUTO_MIGRATE:
        try:
            _run_alembic_upgrade()
        except Exception:
            # DB 미기동 등 실패 시에도 앱은 기동 (예: 로컬에서 DB 없이 실행 시)
            logger.exception("Alembic upgrade failed; continuing without migrations")

    if settings.RECONCILER_ENABLED:
        _scheduler = ReconcilerScheduler(SessionLocal)
        _scheduler.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    if _scheduler is not None:
        await _scheduler.stop()


# ✅ 라우터 등록은 app 생성 후에!
app.include_router(meetups_router)
app.include_router(chat_router)
app.include_router(reports_router)
app.include_router(participants_router)

# CORS 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    return {"status": "ok", "reconciler": bool(_scheduler and _scheduler.running)}


@app.get("/", tags=["Root"])
async def root() -> dict:
    return {
        "message": "MeetNow API",
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
