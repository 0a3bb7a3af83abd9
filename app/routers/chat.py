# 채팅 API: 메시지 조회/작성, 실시간 스트림
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.errors import MeetupError
from app.crud.chat_crud import list_messages, post_message
from app.crud.meetup_crud import get_meetup
from app.database import get_db
from app.realtime.sse_pubsub import publish_message_created, publish_meetup_status_changed, stream_chat_events
from app.routers.deps import get_caller_id, get_now, http_error
from app.schemas.chat import MessageCreate, MessageResponse
from app.services.meetup_window import chat_closes_at

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meetups", tags=["Chat"])


@router.get("/{meetup_id}/messages", response_model=List[MessageResponse])
def get_messages(
    meetup_id: int,
    after_id: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
) -> List[MessageResponse]:
    """채팅 메시지 (시간순). after_id 이후만 받아 이어받기 가능."""
    try:
        get_meetup(db, meetup_id)
    except MeetupError as e:
        raise http_error(e)
    return [MessageResponse.model_validate(m) for m in list_messages(db, meetup_id, after_id=after_id)]


@router.post("/{meetup_id}/messages", response_model=MessageResponse)
async def post_chat_message(
    meetup_id: int,
    body: MessageCreate,
    caller_id: str = Depends(get_caller_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """메시지 작성. 채팅 창이 열린 동안 참여자만 가능."""
    try:
        meetup = get_meetup(db, meetup_id)
        status_before = meetup.status
        message = post_message(db, meetup_id, caller_id, body.text, now)
        db.commit()  # ✅ 트랜잭션 소유권: 라우터
        db.refresh(message)
        db.refresh(meetup)
        response = MessageResponse.model_validate(message)

    except MeetupError as e:
        db.rollback()
        raise http_error(e)

    except Exception:
        db.rollback()
        logger.exception("Failed to post message to meetup %s", meetup_id)
        raise HTTPException(status_code=500, detail="Failed to send message")

    # commit 후 발행 → SSE 구독자에게 실시간 푸시
    if meetup.status != status_before:
        await publish_meetup_status_changed(meetup_id, meetup.status)
    await publish_message_created(meetup_id, response.model_dump(mode="json"))
    return response


@router.get("/{meetup_id}/chat/stream")
async def get_chat_stream(meetup_id: int, db: Session = Depends(get_db)):
    """SSE: 채팅 이벤트 + 1초 카운트다운. 채팅 종료 시각에 chat_closed 후 종료."""
    try:
        meetup = get_meetup(db, meetup_id)
    except MeetupError as e:
        raise http_error(e)
    closes_at = chat_closes_at(meetup.meeting_time, meetup.category)
    return StreamingResponse(
        stream_chat_events(meetup_id, closes_at),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
