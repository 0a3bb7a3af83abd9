# Participation 모델: 모임 참여 (참여자 집합)

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.models.base import Base, UTCDateTime, utcnow


class Participation(Base):
    """참여 테이블. (meetup, participant) 쌍은 유일 → 참여자 집합. 작성자는 생성 시 자동 참여."""

    __tablename__ = "participations"

    id = Column(Integer, primary_key=True, index=True)
    meetup_id = Column(Integer, ForeignKey("meetups.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(String(64), nullable=False, index=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    meetup = relationship("Meetup", back_populates="participations")

    __table_args__ = (UniqueConstraint("meetup_id", "participant_id", name="uq_participation_meetup_participant"),)
