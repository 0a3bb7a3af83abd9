# ChatRoom / ChatMessage 모델: 모임에서 파생되는 시간 한정 채팅방

from sqlalchemy import Column, Index, Integer, JSON, String

from app.models.base import Base, UTCDateTime, utcnow


class ChatRoom(Base):
    """
    채팅방 레코드. meetup_id가 곧 키.

    meetups에 FK를 걸지 않음: 신고/작성자 삭제로 모임이 먼저 사라져도
    메시지 → 채팅방 순서의 정리는 가비지 컬렉터가 나중에 처리.
    """

    __tablename__ = "chat_rooms"

    meetup_id = Column(Integer, primary_key=True, autoincrement=False)
    opened_at = Column(UTCDateTime(), nullable=False, default=utcnow)


class ChatMessage(Base):
    """채팅 메시지. (timestamp, id) 오름차순이 방 안의 전체 순서."""

    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    meetup_id = Column(Integer, nullable=False)
    author_id = Column(String(64), nullable=False)
    text = Column(String(500), nullable=False)
    timestamp = Column(UTCDateTime(), nullable=False, default=utcnow)
    reported_by = Column(JSON, nullable=False, default=list)
    report_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (Index("ix_chat_messages_meetup_ts", "meetup_id", "timestamp"),)
