from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    """
    모든 SQLAlchemy 모델이 상속할 기본 Base 클래스

    예시:

    class ChatRoom(Base):
        __tablename__ = "chat_rooms"
        meetup_id = Column(Integer, primary_key=True)
        ...
    """

    pass


class UTCDateTime(TypeDecorator):
    """
    항상 timezone-aware(UTC) datetime을 돌려주는 컬럼 타입.

    SQLite는 타임존을 저장하지 않으므로 저장 시 UTC naive로 바꾸고 읽을 때 UTC를 붙임.
    시간 창 계산(meeting_time - now)이 naive/aware 혼용으로 깨지지 않게 하기 위함.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
