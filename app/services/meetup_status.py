# Meetup status state machine: allowed transitions only.
# ACTIVE -> CHAT_OPEN, EXPIRED
# CHAT_OPEN -> EXPIRED
# EXPIRED -> (none)
# Deletion (row absence) is reachable from every status and is not a transition here.
#
# apply_status_transition is the single write path for status changes. Clients
# (optimistic sync) and the reconciler jobs both go through it.

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.errors import Conflict, NotFound
from app.models.chat import ChatRoom
from app.models.meetup import Meetup, MeetupStatus
from app.services.meetup_window import MeetupWindow, compute_window, target_status

logger = logging.getLogger(__name__)

# Allowed target statuses from each current status.
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "ACTIVE": {"CHAT_OPEN", "EXPIRED"},
    "CHAT_OPEN": {"EXPIRED"},
    "EXPIRED": set(),
}


def check_status_transition(current: str, target: str) -> Optional[str]:
    """
    Validate status transition. Returns None if allowed, else a clear error message for HTTP 409.
    """
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(sorted(allowed)) if allowed else "none"
        return (
            f"Transition from {current} to {target} is not allowed. "
            f"From {current} only allowed: {allowed_str}."
        )
    return None


def transition_guard_holds(target: MeetupStatus, window: MeetupWindow) -> bool:
    if target == MeetupStatus.CHAT_OPEN:
        return window.should_be_open
    if target == MeetupStatus.EXPIRED:
        return window.is_expired
    return False


def _ensure_chat_room(db: Session, meetup_id: int, now: datetime) -> None:
    if db.get(ChatRoom, meetup_id) is None:
        db.add(ChatRoom(meetup_id=meetup_id, opened_at=now))
        db.flush()


def apply_status_transition(
    db: Session,
    meetup_id: int,
    expected: MeetupStatus,
    target: MeetupStatus,
    now: datetime,
) -> bool:
    """
    Conditionally move a meetup from ``expected`` to ``target``.

    The UPDATE only matches while the stored status still equals ``expected``, so
    racing writers commit the transition at most once and a late writer can never
    push a meetup back to an earlier status. Returns True if this call changed the row.

    Does not commit; the caller owns the transaction.
    """
    expected = MeetupStatus(expected)
    target = MeetupStatus(target)
    if expected == target:
        return False

    error = check_status_transition(expected.value, target.value)
    if error:
        raise Conflict(error)

    values: dict = {"status": target.value}
    if target == MeetupStatus.CHAT_OPEN:
        values["chat_opened_at"] = now
    if target == MeetupStatus.EXPIRED:
        # release the one-live-meetup claim so the creator can post again
        values["active_creator_id"] = None

    result = db.execute(
        update(Meetup)
        .where(Meetup.id == meetup_id, Meetup.status == expected.value)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        logger.debug("Transition %s -> %s skipped for meetup %s (stale)", expected.value, target.value, meetup_id)
        return False

    if target == MeetupStatus.CHAT_OPEN:
        _ensure_chat_room(db, meetup_id, now)

    logger.info("Meetup %s: %s -> %s", meetup_id, expected.value, target.value)
    return True


def sync_status(db: Session, meetup: Meetup, now: datetime) -> Tuple[bool, MeetupStatus]:
    """
    Bring one meetup's persisted status in line with the window at ``now``.

    Never downgrades: if the computed status is not reachable from the stored
    one (clock skew, stale read) nothing is written.
    """
    current = MeetupStatus(meetup.status)
    target = target_status(meetup.meeting_time, meetup.category, now)
    if target == current or check_status_transition(current.value, target.value):
        return False, current
    applied = apply_status_transition(db, meetup.id, current, target, now)
    return applied, target if applied else current


def request_status_transition(
    db: Session,
    meetup_id: int,
    expected: MeetupStatus,
    target: MeetupStatus,
    now: datetime,
) -> Tuple[bool, MeetupStatus]:
    """
    Client-issued optimistic transition.

    The client observed ``expected`` and believes the window calls for ``target``.
    The server re-checks legality and the window guard at its own clock before
    taking the same conditional write path the reconciler uses.

    Returns (applied, status after the call).
    """
    meetup = db.query(Meetup).filter(Meetup.id == meetup_id).first()
    if meetup is None:
        raise NotFound("Meetup not found")

    expected = MeetupStatus(expected)
    target = MeetupStatus(target)
    error = check_status_transition(expected.value, target.value)
    if error:
        raise Conflict(error)

    window = compute_window(meetup.meeting_time, meetup.category, now)
    if not transition_guard_holds(target, window):
        raise Conflict(f"Meetup is not due for {target.value} yet")

    applied = apply_status_transition(db, meetup_id, expected, target, now)
    if applied:
        return True, target
    db.refresh(meetup)
    return False, MeetupStatus(meetup.status)
