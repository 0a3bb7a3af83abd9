# Meetup time-window arithmetic. Pure functions of (meeting_time, category, now).
#
# Every caller (client sync endpoint, chat posting, reconciler jobs) must go
# through these functions so that all of them agree on the window edges.
#
#   should_be_open = -close_offset <= time_until_meet <= open_offset
#   is_expired     = time_until_meet < -close_offset
#   can_toggle     = time_until_meet > open_offset

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union

from app.models.meetup import MeetupCategory, MeetupStatus

# (open_offset, close_offset) per category
CATEGORY_OFFSETS: dict[MeetupCategory, tuple[timedelta, timedelta]] = {
    MeetupCategory.A: (timedelta(minutes=5), timedelta(minutes=5)),
    MeetupCategory.B: (timedelta(minutes=10), timedelta(minutes=10)),
}

# Scan bounds used by the reconciler before the per-record re-check.
MAX_OPEN_OFFSET = max(open_ for open_, _ in CATEGORY_OFFSETS.values())
MIN_CLOSE_OFFSET = min(close for _, close in CATEGORY_OFFSETS.values())

# How long past the close edge a meetup stays readable before garbage collection.
GC_BUFFER = timedelta(hours=1)

# Meetups are listed for a day after creation and cannot be scheduled further out.
POST_VALIDITY_PERIOD = timedelta(hours=24)

CategoryLike = Union[MeetupCategory, str]


@dataclass(frozen=True)
class MeetupWindow:
    time_until_meet: timedelta
    should_be_open: bool
    is_expired: bool
    can_toggle_participation: bool


def category_offsets(category: CategoryLike) -> tuple[timedelta, timedelta]:
    return CATEGORY_OFFSETS[MeetupCategory(category)]


def compute_window(meeting_time: datetime, category: CategoryLike, now: datetime) -> MeetupWindow:
    time_until_meet = meeting_time - now
    open_offset, close_offset = category_offsets(category)
    return MeetupWindow(
        time_until_meet=time_until_meet,
        should_be_open=time_until_meet <= open_offset and time_until_meet >= -close_offset,
        is_expired=time_until_meet < -close_offset,
        can_toggle_participation=time_until_meet > open_offset,
    )


def target_status(meeting_time: datetime, category: CategoryLike, now: datetime) -> MeetupStatus:
    """Status a meetup should display at ``now``, ignoring what is persisted."""
    window = compute_window(meeting_time, category, now)
    if window.is_expired:
        return MeetupStatus.EXPIRED
    if window.should_be_open:
        return MeetupStatus.CHAT_OPEN
    return MeetupStatus.ACTIVE


def chat_opens_at(meeting_time: datetime, category: CategoryLike) -> datetime:
    open_offset, _ = category_offsets(category)
    return meeting_time - open_offset


def chat_closes_at(meeting_time: datetime, category: CategoryLike) -> datetime:
    _, close_offset = category_offsets(category)
    return meeting_time + close_offset


def chat_time_remaining(meeting_time: datetime, category: CategoryLike, now: datetime) -> timedelta:
    """Countdown until the chat room closes; zero once closed."""
    remaining = chat_closes_at(meeting_time, category) - now
    return max(remaining, timedelta(0))


def is_past_close(meeting_time: datetime, category: CategoryLike, now: datetime) -> bool:
    """Closer-job predicate: meeting_time <= now - close_offset."""
    _, close_offset = category_offsets(category)
    return meeting_time <= now - close_offset


def is_collectable(meeting_time: datetime, category: CategoryLike, now: datetime) -> bool:
    """Garbage-collector predicate: the close edge is at least GC_BUFFER in the past."""
    _, close_offset = category_offsets(category)
    return meeting_time <= now - close_offset - GC_BUFFER
