"""Chunked batch writes for the periodic jobs.

Operations are committed in groups of at most BATCH_SIZE, each group in its own
transaction and in list order. A crash between groups leaves a partial state
that the next run completes, since every job re-derives its work from stored
rows rather than from in-memory progress.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Iterator, List, Sequence, Set, TypeVar

from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

# atomic batch write limit of the store
BATCH_SIZE = 500

T = TypeVar("T")


@dataclass(frozen=True)
class BatchOp:
    """One write. ``apply`` returns True if it changed a row."""

    key: int
    label: str
    apply: Callable[[Session], bool]


def chunked(items: Sequence[T], size: int = BATCH_SIZE) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _commit_one_by_one(session_factory: sessionmaker, chunk: Sequence[BatchOp], failed_keys: Set[int]) -> List[BatchOp]:
    changed: List[BatchOp] = []
    for op in chunk:
        if op.key in failed_keys:
            # 같은 key의 앞선 쓰기가 실패: 순서(메시지 → 채팅방 → 모임)를 지키기 위해 건너뜀
            logger.warning("Skipping %s (%s): an earlier operation for it failed", op.label, op.key)
            continue
        with session_factory() as session:
            try:
                if op.apply(session):
                    changed.append(op)
                session.commit()
            except Exception:
                session.rollback()
                changed = [c for c in changed if c is not op]
                failed_keys.add(op.key)
                logger.error("Batch operation %s (%s) failed, skipping", op.label, op.key, exc_info=True)
    return changed


def commit_in_chunks(
    session_factory: sessionmaker,
    operations: Sequence[BatchOp],
    size: int = BATCH_SIZE,
) -> List[BatchOp]:
    """
    Apply ``operations`` in independently committed chunks.

    If a chunk fails it is rolled back and replayed one operation per
    transaction, so a single bad record only loses its own write. Once an
    operation fails, later operations with the same key are skipped for the
    rest of the run; the next run re-derives them.
    Returns the operations that changed something.
    """
    changed: List[BatchOp] = []
    failed_keys: Set[int] = set()
    for chunk in chunked(operations, size):
        if failed_keys:
            chunk = [op for op in chunk if op.key not in failed_keys]
        with session_factory() as session:
            try:
                chunk_changed = [op for op in chunk if op.apply(session)]
                session.commit()
                changed.extend(chunk_changed)
                continue
            except Exception:
                session.rollback()
                logger.warning("Batch of %d operations failed, retrying one by one", len(chunk), exc_info=True)
        changed.extend(_commit_one_by_one(session_factory, chunk, failed_keys))
    return changed
