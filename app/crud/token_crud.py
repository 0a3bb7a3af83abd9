# 푸시 토큰 레지스트리 CRUD (참여자당 토큰 1개)

import logging
from datetime import datetime
from typing import Dict, Iterable

from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.models.participant_token import ParticipantToken

logger = logging.getLogger(__name__)


def upsert_token(db: Session, participant_id: str, token: str, now: datetime) -> ParticipantToken:
    """토큰 등록/갱신 (기존 토큰은 덮어씀). ⚠️ commit은 호출자가."""
    row = db.get(ParticipantToken, participant_id)
    if row is None:
        row = ParticipantToken(participant_id=participant_id, token=token, updated_at=now)
        db.add(row)
    else:
        row.token = token
        row.updated_at = now
    db.flush()
    return row


def remove_token(db: Session, participant_id: str) -> bool:
    result = db.execute(delete(ParticipantToken).where(ParticipantToken.participant_id == participant_id))
    return result.rowcount > 0


def remove_token_if_matches(db: Session, participant_id: str, token: str) -> bool:
    """
    발송 실패한 토큰이 아직 등록된 토큰일 때만 삭제.
    발송 중에 참여자가 토큰을 갱신했다면 새 토큰은 남겨둠.
    """
    result = db.execute(
        delete(ParticipantToken).where(
            ParticipantToken.participant_id == participant_id,
            ParticipantToken.token == token,
        )
    )
    return result.rowcount > 0


def get_tokens(db: Session, participant_ids: Iterable[str]) -> Dict[str, str]:
    """참여자 id 목록 → {participant_id: token}. 한 번의 쿼리로 조회 (참여자 수만큼 호출하지 않음)."""
    ids = list(set(participant_ids))
    if not ids:
        return {}
    rows = (
        db.query(ParticipantToken.participant_id, ParticipantToken.token)
        .filter(ParticipantToken.participant_id.in_(ids))
        .all()
    )
    return {pid: token for pid, token in rows if token}
