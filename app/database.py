import logging
import sqlite3
from typing import Callable, Generator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import Conflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 동시 신고/참여 충돌 시 트랜잭션 전체를 다시 실행하는 최대 횟수
TRANSACTION_MAX_ATTEMPTS = 5


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


# SQLAlchemy 엔진 생성
# - future=True: 최신 SQLAlchemy 스타일 사용
engine: Engine = create_engine(settings.DATABASE_URL, echo=False, future=True, **_engine_kwargs(settings.DATABASE_URL))


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """
    SQLite 연결 시 외래키 제약을 켜는 리스너.

    - participations.meetup_id ON DELETE CASCADE가 로컬/테스트 DB에서도 동작하도록
    - PostgreSQL 연결에는 아무 것도 하지 않음
    """
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# 세션 팩토리 생성
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI 의존성 주입(Dependency Injection)에서 사용할 DB 세션 제공 함수

    Usage 예시:

    @router.get("/items")
    def list_items(db: Session = Depends(get_db)):
        ...
    """
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_transaction(
    db: Session,
    work: Callable[[Session], T],
    max_attempts: int = TRANSACTION_MAX_ATTEMPTS,
) -> T:
    """
    read-modify-write 트랜잭션 실행 + 충돌 시 자동 재시도.

    - work(db)는 처음부터 다시 읽어야 함 (재시도마다 새로 조회, 이전 결과 재사용 금지)
    - OperationalError(직렬화 실패/데드락), IntegrityError(동시 중복 insert),
      StaleDataError(조건부 쓰기가 0행 매칭: 읽은 뒤 다른 트랜잭션이 먼저 씀)는 rollback 후 재실행
    - 도메인 예외(NotFound 등)는 rollback 후 그대로 전파
    - 재시도 횟수를 모두 소진하면 Conflict
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work(db)
            db.commit()
            return result
        except (OperationalError, IntegrityError, StaleDataError) as exc:
            db.rollback()
            if attempt >= max_attempts:
                logger.error("Transaction gave up after %d attempts", attempt, exc_info=exc)
                raise Conflict("Concurrent update, please retry") from exc
            logger.warning("Write conflict, retrying transaction (%d/%d): %s", attempt, max_attempts, exc)
        except Exception:
            db.rollback()
            raise
