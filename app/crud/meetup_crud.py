# 모임 생성/조회/삭제 CRUD

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.errors import Conflict, InvalidArgument, NotFound, PermissionDenied
from app.database import run_transaction
from app.models.meetup import Meetup, MeetupCategory, MeetupStatus
from app.models.participation import Participation
from app.services.meetup_window import POST_VALIDITY_PERIOD, category_offsets, compute_window

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Let's go together!"
LIST_STATUSES = (MeetupStatus.ACTIVE.value, MeetupStatus.CHAT_OPEN.value)


def _haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """두 위경도 사이 거리(미터) 근사."""
    R = 6371000  # 지구 반경 m
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def get_meetup(db: Session, meetup_id: int) -> Meetup:
    meetup = db.query(Meetup).filter(Meetup.id == meetup_id).first()
    if meetup is None:
        raise NotFound("Meetup not found")
    return meetup


def has_live_meetup(db: Session, creator_id: str, now: datetime) -> bool:
    """작성자가 아직 끝나지 않은 모임을 점유하고 있는지 (만료 시각이 지난 점유는 무시)."""
    holder = db.query(Meetup).filter(Meetup.active_creator_id == creator_id).first()
    if holder is None:
        return False
    return not compute_window(holder.meeting_time, holder.category, now).is_expired


def create_meetup(
    db: Session,
    creator_id: str,
    category: MeetupCategory,
    meeting_time: datetime,
    location_text: str,
    message: str,
    lat: float,
    lng: float,
    now: datetime,
) -> Meetup:
    """
    모임 생성.

    - meeting_time은 카테고리 열림 오프셋보다 뒤 (경계 시각 제외), 최대 24시간 이내
    - 작성자당 진행 중 모임 1개: active_creator_id UNIQUE 점유로 트랜잭션 안에서 확인
      (두 기기에서 동시에 생성해도 한쪽은 IntegrityError → 재시도 → Conflict)
    - 작성자는 생성과 동시에 참여자
    """
    if meeting_time.tzinfo is None:
        # 타임존 없는 입력은 UTC로 간주
        meeting_time = meeting_time.replace(tzinfo=timezone.utc)
    open_offset, _ = category_offsets(category)
    lead = meeting_time - now
    if lead <= open_offset:
        # 열림 경계 시각에 만들면 생성 즉시 채팅 창이 열린 상태 → ACTIVE로 시작할 수 없음
        raise InvalidArgument(f"meeting_time must be more than {int(open_offset.total_seconds() // 60)} minutes ahead")
    if lead > POST_VALIDITY_PERIOD:
        raise InvalidArgument("meeting_time must be within 24 hours")

    location_text = location_text.strip()
    if not location_text:
        raise InvalidArgument("location_text is required")
    message = message.strip() or DEFAULT_MESSAGE

    def _create(session: Session) -> Meetup:
        holder = (
            session.query(Meetup)
            .filter(Meetup.active_creator_id == creator_id)
            .with_for_update()
            .first()
        )
        if holder is not None:
            if not compute_window(holder.meeting_time, holder.category, now).is_expired:
                raise Conflict("Creator already has a live meetup")
            # 정리 작업이 아직 못 따라온 만료 모임: 점유만 해제
            holder.active_creator_id = None
            session.flush()

        meetup = Meetup(
            creator_id=creator_id,
            active_creator_id=creator_id,
            category=MeetupCategory(category).value,
            status=MeetupStatus.ACTIVE.value,
            meeting_time=meeting_time,
            created_at=now,
            location_text=location_text,
            message=message,
            creator_lat=lat,
            creator_lng=lng,
            reported_by=[],
            report_count=0,
        )
        meetup.participations.append(Participation(participant_id=creator_id, created_at=now))
        session.add(meetup)
        session.flush()
        return meetup

    meetup = run_transaction(db, _create)
    logger.info("Created meetup %s by %s (category %s, meets at %s)", meetup.id, creator_id, meetup.category, meeting_time.isoformat())
    return meetup


def list_meetups(
    db: Session,
    now: datetime,
    sort: str = "time",
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    limit: int = 100,
) -> List[Tuple[Meetup, Optional[float]]]:
    """
    목록에 보일 모임: ACTIVE/CHAT_OPEN, 생성 24시간 이내, 아직 만료 창이 지나지 않은 것.

    sort="time": 만남 시각 오름차순 / sort="distance": (lat, lng) 기준 가까운 순.
    반환: [(meetup, distance_km 또는 None)]
    """
    rows = (
        db.query(Meetup)
        .filter(
            Meetup.status.in_(LIST_STATUSES),
            Meetup.created_at > now - POST_VALIDITY_PERIOD,
        )
        .order_by(Meetup.meeting_time.asc(), Meetup.id.asc())
        .all()
    )
    # 상태 반영이 늦은 모임도 화면에서는 바로 빠지도록 시간 창으로 한 번 더 거름
    rows = [m for m in rows if not compute_window(m.meeting_time, m.category, now).is_expired]

    if lat is None or lng is None:
        return [(m, None) for m in rows[:limit]]

    with_distance = [
        (m, round(_haversine_m(lat, lng, m.creator_lat, m.creator_lng) / 1000.0, 6)) for m in rows
    ]
    if sort == "distance":
        with_distance.sort(key=lambda pair: pair[1])
    return with_distance[:limit]


def delete_meetup(db: Session, meetup_id: int, caller_id: str) -> None:
    """
    작성자 삭제. 채팅방/메시지는 가비지 컬렉터가 고아 채팅방으로 정리.

    ⚠️ 이 함수는 commit하지 않음. 호출자(라우터)가 트랜잭션을 제어.
    """
    meetup = get_meetup(db, meetup_id)
    if meetup.creator_id != caller_id:
        raise PermissionDenied("Only the creator may delete this meetup")
    db.delete(meetup)
    logger.info("Meetup %s deleted by creator", meetup_id)
