# 주기 작업 스케줄러: 작업마다 독립된 고정 간격 asyncio 루프

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.jobs.reconciler import JobResult, collect_garbage, expire_chat_windows, open_chat_windows
from app.realtime.sse_pubsub import publish_meetup_status_changed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    interval_sec: float
    run: Callable[[sessionmaker], JobResult]


def default_jobs() -> List[ScheduledJob]:
    return [
        ScheduledJob("window-opener", settings.OPENER_INTERVAL_SEC, open_chat_windows),
        ScheduledJob("window-closer", settings.CLOSER_INTERVAL_SEC, expire_chat_windows),
        ScheduledJob("garbage-collector", settings.GC_INTERVAL_SEC, collect_garbage),
    ]


class ReconcilerScheduler:
    """
    앱 startup에서 start(), shutdown에서 stop().

    - 작업 간 동기화 없음 (전이/삭제가 모두 멱등이라 틱이 겹쳐도 안전)
    - DB 작업은 동기 SQLAlchemy → 스레드에서 실행해 이벤트 루프를 막지 않음
    - 상태가 바뀐 모임은 실시간 채널로 meetup_status_changed 발행
    """

    def __init__(self, session_factory: sessionmaker, jobs: Optional[List[ScheduledJob]] = None):
        self._session_factory = session_factory
        self._jobs = jobs if jobs is not None else default_jobs()
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [asyncio.create_task(self._run_every(job), name=job.name) for job in self._jobs]
        logger.info("Reconciler started: %s", ", ".join(f"{j.name}/{j.interval_sec:g}s" for j in self._jobs))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Reconciler stopped")

    async def run_once(self, job: ScheduledJob) -> JobResult:
        result = await asyncio.to_thread(job.run, self._session_factory)
        if result.new_status is not None:
            for meetup_id in result.changed_ids:
                await publish_meetup_status_changed(meetup_id, result.new_status.value)
        return result

    async def _run_every(self, job: ScheduledJob) -> None:
        while True:
            try:
                await self.run_once(job)
            except Exception:
                # 다음 틱이 곧 재시도
                logger.exception("Scheduled job %s crashed", job.name)
            await asyncio.sleep(job.interval_sec)
