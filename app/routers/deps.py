# 라우터 공통 의존성: 호출자 식별, 현재 시각, 도메인 예외 → HTTP 변환

from datetime import datetime
from typing import Optional

from fastapi import Header, HTTPException

from app.core.errors import MeetupError
from app.models.base import utcnow


def get_caller_id(x_participant_id: Optional[str] = Header(default=None)) -> str:
    """불투명한 참여자 id. 없으면 PermissionDenied(403)."""
    if not x_participant_id or not x_participant_id.strip():
        raise HTTPException(status_code=403, detail="Caller identity is required")
    return x_participant_id.strip()


def get_now() -> datetime:
    """서버 기준 현재 시각 (UTC). 테스트에서 고정 시각으로 교체."""
    return utcnow()


def http_error(e: MeetupError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)
