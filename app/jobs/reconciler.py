"""Reconciler: the authoritative periodic jobs.

- open_chat_windows   (every minute)  ACTIVE -> CHAT_OPEN
- expire_chat_windows (every minute)  ACTIVE/CHAT_OPEN -> EXPIRED
- collect_garbage     (every hour)    delete messages, chat room, then meetup

Each job is a function of ``now`` only: it scans by a time predicate, re-checks
every candidate with the window calculator and applies idempotent writes in
chunks. Nothing is carried between runs, so the next tick retries whatever a
failed run missed. Jobs never raise; failures are logged.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from app.jobs.batching import BatchOp, commit_in_chunks
from app.models.base import utcnow
from app.models.chat import ChatMessage, ChatRoom
from app.models.meetup import Meetup, MeetupStatus
from app.services.meetup_status import apply_status_transition
from app.services.meetup_window import (
    GC_BUFFER,
    MAX_OPEN_OFFSET,
    MIN_CLOSE_OFFSET,
    compute_window,
    is_collectable,
    is_past_close,
)

logger = logging.getLogger(__name__)

WINDOW_OPENER = "window-opener"
WINDOW_CLOSER = "window-closer"
GARBAGE_COLLECTOR = "garbage-collector"


@dataclass
class JobResult:
    name: str
    scanned: int = 0
    changed_ids: List[int] = field(default_factory=list)
    new_status: Optional[MeetupStatus] = None
    failed: bool = False

    @property
    def changed(self) -> int:
        return len(self.changed_ids)


def _transition(session: Session, meetup_id: int, expected: MeetupStatus, target: MeetupStatus, now: datetime) -> bool:
    return apply_status_transition(session, meetup_id, expected, target, now)


def _delete_message(session: Session, message_id: int) -> bool:
    return session.execute(delete(ChatMessage).where(ChatMessage.id == message_id)).rowcount > 0


def _delete_chat_room(session: Session, meetup_id: int) -> bool:
    return session.execute(delete(ChatRoom).where(ChatRoom.meetup_id == meetup_id)).rowcount > 0


def _delete_meetup(session: Session, meetup_id: int) -> bool:
    # participations go with the meetup (ON DELETE CASCADE)
    return session.execute(delete(Meetup).where(Meetup.id == meetup_id)).rowcount > 0


def open_chat_windows(session_factory: sessionmaker, now: Optional[datetime] = None) -> JobResult:
    now = now or utcnow()
    result = JobResult(WINDOW_OPENER, new_status=MeetupStatus.CHAT_OPEN)
    try:
        # bounded scan: nothing further out than the largest open offset can be due
        with session_factory() as session:
            candidates = session.execute(
                select(Meetup.id, Meetup.meeting_time, Meetup.category).where(
                    Meetup.status == MeetupStatus.ACTIVE.value,
                    Meetup.meeting_time <= now + MAX_OPEN_OFFSET,
                )
            ).all()
        result.scanned = len(candidates)

        operations = []
        for meetup_id, meeting_time, category in candidates:
            try:
                if not compute_window(meeting_time, category, now).should_be_open:
                    continue
            except Exception:
                logger.error("Skipping meetup %s: cannot evaluate window", meetup_id, exc_info=True)
                continue
            operations.append(
                BatchOp(
                    key=meetup_id,
                    label="open",
                    apply=partial(
                        _transition,
                        meetup_id=meetup_id,
                        expected=MeetupStatus.ACTIVE,
                        target=MeetupStatus.CHAT_OPEN,
                        now=now,
                    ),
                )
            )

        result.changed_ids = [op.key for op in commit_in_chunks(session_factory, operations)]
        logger.info("Chat room opening completed: %d scanned, %d opened", result.scanned, result.changed)
    except Exception:
        result.failed = True
        logger.exception("Error in %s", WINDOW_OPENER)
    return result


def expire_chat_windows(session_factory: sessionmaker, now: Optional[datetime] = None) -> JobResult:
    """
    Expire meetups whose close edge has passed.

    ACTIVE meetups are included so a meetup whose open window was missed entirely
    (reconciler down, no client online) still reaches EXPIRED.
    """
    now = now or utcnow()
    result = JobResult(WINDOW_CLOSER, new_status=MeetupStatus.EXPIRED)
    try:
        with session_factory() as session:
            candidates = session.execute(
                select(Meetup.id, Meetup.status, Meetup.meeting_time, Meetup.category).where(
                    Meetup.status.in_([MeetupStatus.ACTIVE.value, MeetupStatus.CHAT_OPEN.value]),
                    Meetup.meeting_time <= now - MIN_CLOSE_OFFSET,
                )
            ).all()
        result.scanned = len(candidates)

        operations = []
        for meetup_id, status, meeting_time, category in candidates:
            try:
                if not is_past_close(meeting_time, category, now):
                    continue
                expected = MeetupStatus(status)
            except Exception:
                logger.error("Skipping meetup %s: cannot evaluate window", meetup_id, exc_info=True)
                continue
            operations.append(
                BatchOp(
                    key=meetup_id,
                    label="expire",
                    apply=partial(
                        _transition,
                        meetup_id=meetup_id,
                        expected=expected,
                        target=MeetupStatus.EXPIRED,
                        now=now,
                    ),
                )
            )

        result.changed_ids = [op.key for op in commit_in_chunks(session_factory, operations)]
        logger.info("Expire chats completed: %d scanned, %d expired", result.scanned, result.changed)
    except Exception:
        result.failed = True
        logger.exception("Error in %s", WINDOW_CLOSER)
    return result


def collect_garbage(session_factory: sessionmaker, now: Optional[datetime] = None) -> JobResult:
    """
    Delete meetups well past their close edge together with their chat rooms.

    Also sweeps orphaned chat rooms and messages whose meetup was already removed
    by moderation or by its creator. Per meetup the order is messages, chat room,
    meetup, so a message is never visible without its parent.
    """
    now = now or utcnow()
    result = JobResult(GARBAGE_COLLECTOR)
    try:
        with session_factory() as session:
            candidates = session.execute(
                select(Meetup.id, Meetup.meeting_time, Meetup.category).where(
                    Meetup.meeting_time <= now - MIN_CLOSE_OFFSET - GC_BUFFER,
                )
            ).all()
            expired_ids = []
            for meetup_id, meeting_time, category in candidates:
                try:
                    if is_collectable(meeting_time, category, now):
                        expired_ids.append(meetup_id)
                except Exception:
                    logger.error("Skipping meetup %s: cannot evaluate window", meetup_id, exc_info=True)

            live_meetups = select(Meetup.id)
            orphan_ids = set(
                session.scalars(select(ChatRoom.meetup_id).where(ChatRoom.meetup_id.not_in(live_meetups))).all()
            )
            orphan_ids.update(
                session.scalars(
                    select(ChatMessage.meetup_id).where(ChatMessage.meetup_id.not_in(live_meetups)).distinct()
                ).all()
            )
            orphan_ids.difference_update(expired_ids)

            targets = [(mid, True) for mid in expired_ids] + [(mid, False) for mid in sorted(orphan_ids)]
            result.scanned = len(targets)

            operations: List[BatchOp] = []
            for meetup_id, has_meetup in targets:
                message_ids = session.scalars(
                    select(ChatMessage.id).where(ChatMessage.meetup_id == meetup_id).order_by(ChatMessage.id)
                ).all()
                for message_id in message_ids:
                    operations.append(BatchOp(meetup_id, "message", partial(_delete_message, message_id=message_id)))
                operations.append(BatchOp(meetup_id, "chat_room", partial(_delete_chat_room, meetup_id=meetup_id)))
                if has_meetup:
                    operations.append(BatchOp(meetup_id, "meetup", partial(_delete_meetup, meetup_id=meetup_id)))
                logger.info("Scheduling cleanup for meetup %s (%d messages)", meetup_id, len(message_ids))

        committed = commit_in_chunks(session_factory, operations)
        result.changed_ids = sorted({op.key for op in committed if op.label == "meetup"})
        logger.info(
            "Cleanup completed: %d meetups, %d orphaned chat rooms, %d operations",
            len(expired_ids),
            len(orphan_ids),
            len(committed),
        )
    except Exception:
        result.failed = True
        logger.exception("Error in %s", GARBAGE_COLLECTOR)
    return result
