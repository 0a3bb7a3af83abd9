"""Pytest fixtures: fresh SQLite database per test, fixed clock and a fake push gateway."""
import os

# app 모듈 import 전에 설정 (config는 import 시점에 환경 변수를 읽음)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RECONCILER_ENABLED"] = "false"
os.environ["AUTO_MIGRATE"] = "false"
os.environ["REALTIME_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.database import get_db  # noqa: E402
from app.integrations.push_gateway import MulticastResponse, SendResult, get_push_gateway  # noqa: E402
from app.main import app  # noqa: E402
from app.models.base import Base  # noqa: E402
from app.models.chat import ChatMessage, ChatRoom  # noqa: E402,F401
from app.models.meetup import Meetup, MeetupStatus  # noqa: E402
from app.models.participant_token import ParticipantToken  # noqa: E402,F401
from app.models.participation import Participation  # noqa: E402
from app.routers.deps import get_now  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """테스트용 고정 시각. advance()로 앞으로 이동."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakePushGateway:
    """발송 요청을 기록하고, 토큰별로 지정한 에러 코드로 실패시키는 게이트웨이."""

    def __init__(self):
        self.calls: List[dict] = []
        self.failures: Dict[str, str] = {}
        self.raise_error: Optional[Exception] = None

    async def send_multicast(self, tokens, notification, data) -> MulticastResponse:
        if self.raise_error is not None:
            raise self.raise_error
        self.calls.append({"tokens": list(tokens), "notification": notification, "data": data})
        return MulticastResponse(
            results=[
                SendResult(token=t, success=t not in self.failures, error_code=self.failures.get(t))
                for t in tokens
            ]
        )


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def clock():
    return FrozenClock()


@pytest.fixture(scope="function")
def fake_gateway():
    return FakePushGateway()


@pytest.fixture(scope="function")
def client(session_factory, clock, fake_gateway):
    """FastAPI TestClient: DB, 현재 시각, 푸시 게이트웨이 의존성을 테스트용으로 교체."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_now] = lambda: clock.now
    app.dependency_overrides[get_push_gateway] = lambda: fake_gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def meetup_factory(session_factory):
    """
    검증을 거치지 않고 모임 행을 바로 넣는 헬퍼 (과거 시각 등 임의 상태 구성용).
    반환: 생성된 meetup id
    """

    def _make(
        meeting_time: datetime,
        category: str = "A",
        creator_id: str = "creator",
        status: MeetupStatus = MeetupStatus.ACTIVE,
        participants: Optional[List[str]] = None,
        created_at: Optional[datetime] = None,
        lat: float = 37.5665,
        lng: float = 126.9780,
        claim: bool = False,
    ) -> int:
        with session_factory() as session:
            meetup = Meetup(
                creator_id=creator_id,
                active_creator_id=creator_id if claim else None,
                category=category,
                status=MeetupStatus(status).value,
                meeting_time=meeting_time,
                created_at=created_at or NOW,
                location_text="Children's Grand Park",
                message="Let's run",
                creator_lat=lat,
                creator_lng=lng,
                reported_by=[],
                report_count=0,
            )
            for pid in {creator_id, *(participants or [])}:
                meetup.participations.append(Participation(participant_id=pid, created_at=NOW))
            session.add(meetup)
            session.commit()
            return meetup.id

    return _make


def caller(participant_id: str) -> dict:
    """X-Participant-Id 헤더."""
    return {"X-Participant-Id": participant_id}
