# 채팅 메시지 CRUD (모임의 채팅 창이 열린 동안만 작성 가능)

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import Conflict, NotFound, PermissionDenied
from app.crud.participation_crud import is_participant
from app.models.chat import ChatMessage, ChatRoom
from app.models.meetup import Meetup, MeetupStatus
from app.services.meetup_status import sync_status
from app.services.meetup_window import compute_window

logger = logging.getLogger(__name__)


def get_chat_room(db: Session, meetup_id: int) -> Optional[ChatRoom]:
    return db.get(ChatRoom, meetup_id)


def post_message(db: Session, meetup_id: int, author_id: str, text: str, now: datetime) -> ChatMessage:
    """
    채팅 메시지 작성.

    - 모임 없음: NotFound / 참여자가 아님: PermissionDenied / 채팅 창 밖: Conflict
    - 서버 시각 기준 창이 열렸는데 상태가 아직 ACTIVE면 같은 전이 경로로 CHAT_OPEN 반영
    - timestamp는 서버 시각 (방 안의 순서 기준)

    ⚠️ 이 함수는 commit하지 않음. 호출자(라우터)가 트랜잭션을 제어.
    """
    meetup = db.query(Meetup).filter(Meetup.id == meetup_id).first()
    if meetup is None:
        raise NotFound("Meetup not found")
    if not is_participant(db, meetup_id, author_id):
        raise PermissionDenied("Only participants can chat")

    window = compute_window(meetup.meeting_time, meetup.category, now)
    if not window.should_be_open or meetup.status == MeetupStatus.EXPIRED.value:
        raise Conflict("Chat room is not open")

    if meetup.status == MeetupStatus.ACTIVE.value:
        sync_status(db, meetup, now)

    message = ChatMessage(
        meetup_id=meetup_id,
        author_id=author_id,
        text=text,
        timestamp=now,
        reported_by=[],
        report_count=0,
    )
    db.add(message)
    db.flush()
    logger.debug("Message %s posted to meetup %s", message.id, meetup_id)
    return message


def list_messages(db: Session, meetup_id: int, after_id: Optional[int] = None, limit: int = 500) -> List[ChatMessage]:
    """채팅방 메시지 (timestamp, id) 오름차순. after_id 이후만 가져오면 이어받기 가능."""
    q = db.query(ChatMessage).filter(ChatMessage.meetup_id == meetup_id)
    if after_id is not None:
        q = q.filter(ChatMessage.id > after_id)
    return q.order_by(ChatMessage.timestamp.asc(), ChatMessage.id.asc()).limit(limit).all()
