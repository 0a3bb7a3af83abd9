# 모임 생성/조회/삭제, 참여 토글, 상태 동기화, 채팅방 열림 알림 API
import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.errors import MeetupError
from app.crud.meetup_crud import create_meetup, delete_meetup, get_meetup, list_meetups
from app.crud.participation_crud import toggle_participation
from app.database import get_db
from app.integrations.push_gateway import PushGateway, get_push_gateway
from app.models.meetup import Meetup, MeetupCategory, MeetupStatus
from app.realtime.sse_pubsub import publish_meetup_status_changed
from app.routers.deps import get_caller_id, get_now, http_error
from app.schemas.meetup import (
    MeetupCreate,
    MeetupResponse,
    NotifyResponse,
    ParticipationResponse,
    StatusTransitionBody,
    StatusTransitionResponse,
)
from app.services.meetup_status import request_status_transition
from app.services.meetup_window import chat_closes_at, chat_opens_at, compute_window
from app.services.notification_fanout import notify_chat_open

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meetups", tags=["Meetups"])


def _meetup_to_response(meetup: Meetup, now: datetime, distance_km: float | None = None) -> MeetupResponse:
    """Meetup → MeetupResponse. 시간 창 값은 now 기준으로 계산. distance_km는 목록 전용."""
    window = compute_window(meetup.meeting_time, meetup.category, now)
    participant_ids = meetup.participant_ids
    return MeetupResponse(
        id=meetup.id,
        creator_id=meetup.creator_id,
        category=meetup.category,
        status=meetup.status,
        meeting_time=meetup.meeting_time,
        created_at=meetup.created_at,
        location_text=meetup.location_text,
        message=meetup.message,
        lat=meetup.creator_lat,
        lng=meetup.creator_lng,
        participant_ids=participant_ids,
        participant_count=len(participant_ids),
        report_count=meetup.report_count,
        chat_opens_at=chat_opens_at(meetup.meeting_time, meetup.category),
        chat_closes_at=chat_closes_at(meetup.meeting_time, meetup.category),
        should_be_open=window.should_be_open,
        can_toggle_participation=window.can_toggle_participation,
        distance_km=distance_km,
    )


@router.post("", response_model=MeetupResponse)
def post_meetup(
    body: MeetupCreate,
    caller_id: str = Depends(get_caller_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> MeetupResponse:
    """모임 생성. 작성자당 진행 중 모임 1개. 작성자는 자동 참여."""
    try:
        meetup = create_meetup(
            db,
            creator_id=caller_id,
            category=MeetupCategory(body.category),
            meeting_time=body.meeting_time,
            location_text=body.location_text,
            message=body.message,
            lat=body.lat,
            lng=body.lng,
            now=now,
        )
        return _meetup_to_response(meetup, now)
    except MeetupError as e:
        raise http_error(e)


@router.get("", response_model=List[MeetupResponse])
def get_meetups(
    sort: Literal["time", "distance"] = Query("time"),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    limit: int = Query(100, ge=1, le=500),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> List[MeetupResponse]:
    """진행 중 모임 목록. sort=distance는 lat/lng가 있어야 거리순, 없으면 시간순."""
    rows = list_meetups(db, now, sort=sort, lat=lat, lng=lng, limit=limit)
    return [_meetup_to_response(m, now, distance_km=d) for m, d in rows]


@router.get("/{meetup_id}", response_model=MeetupResponse)
def get_meetup_detail(
    meetup_id: int,
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> MeetupResponse:
    """id로 모임 조회. 없으면 404 (이미 삭제된 경우 포함)."""
    try:
        return _meetup_to_response(get_meetup(db, meetup_id), now)
    except MeetupError as e:
        raise http_error(e)


@router.delete("/{meetup_id}")
def delete_meetup_by_creator(
    meetup_id: int,
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    """작성자 삭제. 채팅방 정리는 가비지 컬렉터가 담당."""
    try:
        delete_meetup(db, meetup_id, caller_id)
        db.commit()  # ✅ 트랜잭션 소유권: 라우터
        return {"message": "deleted", "meetup_id": meetup_id}

    except MeetupError as e:
        db.rollback()
        raise http_error(e)

    except Exception:
        db.rollback()
        logger.exception("Failed to delete meetup %s", meetup_id)
        raise HTTPException(status_code=500, detail="Failed to delete meetup")


@router.post("/{meetup_id}/participation", response_model=ParticipationResponse)
def post_participation(
    meetup_id: int,
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
) -> ParticipationResponse:
    """참여 토글 (참여 중이면 취소, 아니면 참여)."""
    try:
        participating, count = toggle_participation(db, meetup_id, caller_id)
        return ParticipationResponse(meetup_id=meetup_id, participating=participating, participant_count=count)

    except MeetupError as e:
        raise http_error(e)

    except Exception:
        logger.exception("Failed to toggle participation on meetup %s", meetup_id)
        raise HTTPException(status_code=500, detail="Failed to toggle participation")


@router.post("/{meetup_id}/status", response_model=StatusTransitionResponse)
async def post_status(
    meetup_id: int,
    body: StatusTransitionBody,
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> StatusTransitionResponse:
    """
    클라이언트 낙관적 상태 전이. 리컨실러와 같은 조건부 쓰기 경로 사용.
    다른 작성자가 먼저 전이했다면 applied=false와 현재 상태 반환.
    """
    try:
        applied, status = request_status_transition(
            db,
            meetup_id,
            MeetupStatus(body.expected_status),
            MeetupStatus(body.target_status),
            now,
        )
        db.commit()

    except MeetupError as e:
        db.rollback()
        raise http_error(e)

    except Exception:
        db.rollback()
        logger.exception("Failed to update status of meetup %s", meetup_id)
        raise HTTPException(status_code=500, detail="Failed to update meetup status")

    if applied:
        await publish_meetup_status_changed(meetup_id, status.value)
    return StatusTransitionResponse(meetup_id=meetup_id, applied=applied, status=status.value)


@router.post("/{meetup_id}/notify-open", response_model=NotifyResponse)
async def post_notify_open(
    meetup_id: int,
    caller_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    gateway: PushGateway = Depends(get_push_gateway),
) -> NotifyResponse:
    """채팅방 열림 푸시 (참여자만 호출 가능)."""
    try:
        result = await notify_chat_open(db, meetup_id, caller_id, gateway)
        return NotifyResponse(success_count=result.success_count, failure_count=result.failure_count)
    except MeetupError as e:
        raise http_error(e)
