# ParticipantToken 모델: 참여자별 푸시 토큰 (최대 1개)

from sqlalchemy import Column, String

from app.models.base import Base, UTCDateTime, utcnow


class ParticipantToken(Base):
    """참여자 → 현재 푸시 토큰. 갱신 시 덮어쓰기, 영구 실패 확인 시 삭제."""

    __tablename__ = "participant_tokens"

    participant_id = Column(String(64), primary_key=True)
    token = Column(String(512), nullable=False)
    updated_at = Column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)
