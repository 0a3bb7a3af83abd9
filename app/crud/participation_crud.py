# 참여/취소 토글 CRUD (비관적 락 + 충돌 재시도)
import logging
from typing import Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.database import run_transaction
from app.models.meetup import Meetup
from app.models.participation import Participation

logger = logging.getLogger(__name__)


def count_participants(db: Session, meetup_id: int) -> int:
    return (
        db.query(func.count(Participation.id))
        .filter(Participation.meetup_id == meetup_id)
        .scalar()
    )


def is_participant(db: Session, meetup_id: int, participant_id: str) -> bool:
    return (
        db.query(Participation.id)
        .filter(
            Participation.meetup_id == meetup_id,
            Participation.participant_id == participant_id,
        )
        .first()
        is not None
    )


def _toggle(db: Session, meetup_id: int, participant_id: str) -> Tuple[bool, int]:
    """
    트랜잭션 본문. 재시도 시 처음부터 다시 읽음.

    - FOR UPDATE로 meetup 행 잠금 → 같은 모임에 대한 동시 토글 직렬화
    - 참여 중이면 삭제, 아니면 추가 (두 번 토글하면 원래 집합으로 복귀)
    """
    meetup = (
        db.query(Meetup)
        .filter(Meetup.id == meetup_id)
        .with_for_update()
        .first()
    )
    if meetup is None:
        raise NotFound("Meetup not found")

    existing = (
        db.query(Participation)
        .filter(
            Participation.meetup_id == meetup_id,
            Participation.participant_id == participant_id,
        )
        .first()
    )
    if existing is not None:
        db.delete(existing)
        joined = False
    else:
        # 동시에 같은 참여자가 추가하면 UniqueConstraint 위반 → run_transaction이 재시도
        db.add(Participation(meetup_id=meetup_id, participant_id=participant_id))
        joined = True

    db.flush()
    return joined, count_participants(db, meetup_id)


def toggle_participation(db: Session, meetup_id: int, participant_id: str) -> Tuple[bool, int]:
    """
    모임 참여 토글.

    반환: (토글 후 참여 여부, 참여 인원)

    ⚠️ 참여 창(can_toggle_participation)·작성자 본인 탈퇴 여부는 여기서 막지 않음.
    알림 예약 등은 호출자가 이 함수 호출 전에 처리.
    """
    joined, count = run_transaction(db, lambda session: _toggle(session, meetup_id, participant_id))
    logger.info(
        "Participant %s %s meetup %s (now %d)",
        participant_id,
        "joined" if joined else "left",
        meetup_id,
        count,
    )
    return joined, count
