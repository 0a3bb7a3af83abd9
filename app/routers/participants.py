# 참여자 푸시 토큰 등록/해제 API
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.crud.token_crud import remove_token, upsert_token
from app.database import get_db
from app.routers.deps import get_caller_id, get_now
from app.schemas.participant import TokenBody, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/participants", tags=["Participants"])


@router.put("/me/token", response_model=TokenResponse)
def put_token(
    body: TokenBody,
    caller_id: str = Depends(get_caller_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> TokenResponse:
    """푸시 토큰 등록/갱신 (기존 토큰 덮어씀)."""
    try:
        upsert_token(db, caller_id, body.token, now)
        db.commit()
        return TokenResponse(participant_id=caller_id, registered=True)
    except Exception:
        db.rollback()
        logger.exception("Failed to register token for %s", caller_id)
        raise HTTPException(status_code=500, detail="Failed to register token")


@router.delete("/me/token", response_model=TokenResponse)
def delete_token(
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> TokenResponse:
    """푸시 토큰 해제 (없어도 성공)."""
    try:
        remove_token(db, caller_id)
        db.commit()
        return TokenResponse(participant_id=caller_id, registered=False)
    except Exception:
        db.rollback()
        logger.exception("Failed to remove token for %s", caller_id)
        raise HTTPException(status_code=500, detail="Failed to remove token")
