# 공유 1초 클럭: 구독자(카운트다운 스트림 등)에게 같은 틱을 브로드캐스트
# 화면 요소마다 타이머를 따로 두지 않고 하나의 태스크만 돌림.
# 첫 구독자가 붙을 때 시작, 마지막 구독자가 떠나면 정지.

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Optional, Set

from app.models.base import utcnow

logger = logging.getLogger(__name__)

TICK_INTERVAL_SEC = 1.0


class ClockTicker:
    def __init__(self, interval: float = TICK_INTERVAL_SEC, clock: Callable[[], datetime] = utcnow):
        self._interval = interval
        self._clock = clock
        self._subscribers: Set[asyncio.Queue] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        # maxsize=1: 느린 구독자는 밀린 틱 대신 최신 틱만 받음
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._subscribers.add(queue)
        if not self.running:
            self._task = asyncio.create_task(self._run())
            logger.debug("Clock ticker started")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)
        if not self._subscribers and self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug("Clock ticker stopped")

    @asynccontextmanager
    async def ticks(self) -> AsyncIterator[asyncio.Queue]:
        queue = self.subscribe()
        try:
            yield queue
        finally:
            self.unsubscribe(queue)

    def _broadcast(self, now: datetime) -> None:
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(now)

    async def _run(self) -> None:
        while True:
            self._broadcast(self._clock())
            await asyncio.sleep(self._interval)


# 프로세스 공용 인스턴스
ticker = ClockTicker()
