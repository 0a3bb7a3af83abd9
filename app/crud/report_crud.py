# 신고 CRUD: 신고자 중복 제거 + 임계치 도달 시 삭제 (모임/메시지 공통)
import logging
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Optional, Union

from sqlalchemy import delete, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import InvalidArgument, NotFound
from app.database import run_transaction
from app.models.chat import ChatMessage
from app.models.meetup import Meetup

logger = logging.getLogger(__name__)

# 서로 다른 신고자 3명이면 삭제
REPORT_DELETE_THRESHOLD = 3


class ContentType(str, PyEnum):
    MEETUP = "meetup"
    MESSAGE = "message"


@dataclass
class ReportResult:
    already_reported: bool = False
    deleted: bool = False
    report_count: int = 0


def _validate(content_type: Optional[str], content_id: Optional[int], parent_id: Optional[int]) -> ContentType:
    if not content_type or content_id is None:
        raise InvalidArgument("content_type and content_id are required")
    try:
        kind = ContentType(content_type)
    except ValueError:
        raise InvalidArgument("content_type must be 'meetup' or 'message'")
    if kind == ContentType.MESSAGE and parent_id is None:
        raise InvalidArgument("parent_id is required when reporting a message")
    return kind


def _lock_target(
    db: Session, kind: ContentType, content_id: int, parent_id: Optional[int]
) -> Union[Meetup, ChatMessage, None]:
    # FOR UPDATE: 동시 신고자가 같은 count를 보고 둘 다 "삭제한 사람"이 되는 경쟁 방지
    if kind == ContentType.MEETUP:
        return db.query(Meetup).filter(Meetup.id == content_id).with_for_update().first()
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.id == content_id, ChatMessage.meetup_id == parent_id)
        .with_for_update()
        .first()
    )


def _conditional_write(db: Session, target: Union[Meetup, ChatMessage], seen_count: int, values: Optional[dict]) -> None:
    """
    읽은 시점의 report_count가 그대로일 때만 쓰기 (values=None이면 삭제).

    SQLite는 FOR UPDATE를 무시하므로 락만으로는 동시 신고자의 갱신 유실을 막지 못함.
    매칭 행이 없으면 StaleDataError → run_transaction이 처음부터 다시 읽고 재실행.
    """
    model = type(target)
    condition = (model.id == target.id, model.report_count == seen_count)
    stmt = delete(model).where(*condition) if values is None else update(model).where(*condition).values(**values)
    result = db.execute(stmt.execution_options(synchronize_session="fetch"))
    if result.rowcount != 1:
        raise StaleDataError(f"{model.__tablename__} {target.id} was reported concurrently")


def _report(
    db: Session, kind: ContentType, content_id: int, reporter_id: str, parent_id: Optional[int]
) -> ReportResult:
    target = _lock_target(db, kind, content_id, parent_id)
    if target is None:
        raise NotFound("Content not found")

    seen_count = target.report_count
    reported_by = list(target.reported_by or [])
    if reporter_id in reported_by:
        return ReportResult(already_reported=True, report_count=len(reported_by))

    reported_by.append(reporter_id)
    count = len(reported_by)

    if count >= REPORT_DELETE_THRESHOLD:
        # 채팅방/메시지 연쇄 삭제는 하지 않음 (트랜잭션 크기 제한) → 가비지 컬렉터가 정리
        _conditional_write(db, target, seen_count, None)
        return ReportResult(deleted=True, report_count=count)

    _conditional_write(db, target, seen_count, {"reported_by": reported_by, "report_count": count})
    return ReportResult(deleted=False, report_count=count)


def report_content(
    db: Session,
    content_type: Optional[str],
    content_id: Optional[int],
    reporter_id: str,
    parent_id: Optional[int] = None,
) -> ReportResult:
    """
    콘텐츠 신고 (모임 또는 채팅 메시지).

    - 같은 신고자의 재신고: 아무것도 바꾸지 않고 already_reported=True
    - 신고 누적이 REPORT_DELETE_THRESHOLD 이상: 같은 트랜잭션에서 삭제
    - 대상 없음: NotFound
    - 쓰기 충돌은 run_transaction이 자동 재시도 (호출자에게 보이지 않음)
    """
    kind = _validate(content_type, content_id, parent_id)
    result = run_transaction(db, lambda session: _report(session, kind, content_id, reporter_id, parent_id))

    if result.deleted:
        logger.info("%s %s deleted after %d reports", kind.value, content_id, result.report_count)
    elif not result.already_reported:
        logger.info("%s %s reported (%d)", kind.value, content_id, result.report_count)
    return result
