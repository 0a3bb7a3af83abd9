# Meetup 모델: 시간 한정 번개 모임 엔티티

from enum import Enum as PyEnum

from sqlalchemy import Column, Float, Integer, JSON, String
from sqlalchemy.orm import relationship

from app.models.base import Base, UTCDateTime, utcnow


class MeetupStatus(str, PyEnum):
    """모임 상태. ACTIVE → CHAT_OPEN → EXPIRED. 삭제(행 없음)는 어느 상태에서나 가능."""

    ACTIVE = "ACTIVE"
    CHAT_OPEN = "CHAT_OPEN"
    EXPIRED = "EXPIRED"


class MeetupCategory(str, PyEnum):
    """모임 종류. 종류마다 채팅방 열림/닫힘 오프셋이 다름 (services/meetup_window.py)."""

    A = "A"
    B = "B"


# DB에는 String(20)으로 저장 (마이그레이션 단순화). 앱에서는 MeetupStatus로 비교.
STATUS_DEFAULT = MeetupStatus.ACTIVE.value


class Meetup(Base):
    """모임 테이블. 작성자 위치는 위도/경도 float. 신고자 목록은 JSON 배열(중복 신고 방지)."""

    __tablename__ = "meetups"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(String(64), nullable=False, index=True)
    # 작성자의 진행 중 모임 점유 표시. 진행 중일 때만 creator_id, 만료되면 NULL (UNIQUE → 작성자당 1개)
    active_creator_id = Column(String(64), nullable=True, unique=True)
    category = Column(String(1), nullable=False, default=MeetupCategory.A.value)
    status = Column(String(20), nullable=False, default=STATUS_DEFAULT, server_default=STATUS_DEFAULT, index=True)
    meeting_time = Column(UTCDateTime(), nullable=False, index=True)  # 생성 후 변경 불가
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    chat_opened_at = Column(UTCDateTime(), nullable=True)
    location_text = Column(String(100), nullable=False)
    message = Column(String(200), nullable=False, default="")
    creator_lat = Column(Float, nullable=False)
    creator_lng = Column(Float, nullable=False)
    reported_by = Column(JSON, nullable=False, default=list)
    report_count = Column(Integer, nullable=False, default=0)  # 항상 len(reported_by)

    participations = relationship(
        "Participation",
        back_populates="meetup",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def participant_ids(self) -> list[str]:
        return sorted(p.participant_id for p in self.participations)
