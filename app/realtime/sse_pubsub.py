# SSE + Redis Pub/Sub: 채팅 메시지 / 모임 상태 실시간 전달
# SSE: 폴링 없이 서버→클라이언트 푸시 (long-lived connection → 예외 처리 필수)
# Redis Pub/Sub: 멀티 워커 환경에서도 같은 채팅방 이벤트를 모든 구독자가 받음

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional

import redis.asyncio as redis

from app.core.config import settings
from app.realtime.clock import ClockTicker, ticker as shared_ticker

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "meetup:"
CHANNEL_SUFFIX_CHAT = ":chat"

# 모듈 단일 클라이언트 재사용 (매 루프마다 새 연결 생성 방지). 실제 연결은 첫 명령 시.
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)


def _channel(meetup_id: int) -> str:
    return f"{CHANNEL_PREFIX}{meetup_id}{CHANNEL_SUFFIX_CHAT}"


def _ts() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


async def _publish(meetup_id: int, payload: Dict[str, Any]) -> None:
    if not settings.REALTIME_ENABLED:
        return
    try:
        await redis_client.publish(_channel(meetup_id), json.dumps(payload, ensure_ascii=False))
    except Exception:
        # Redis 미기동 시 실시간 전달만 실패, 쓰기 자체는 유지
        logger.warning("Failed to publish %s for meetup %s", payload.get("type"), meetup_id, exc_info=True)


async def publish_message_created(meetup_id: int, message: Dict[str, Any]) -> None:
    """메시지 commit 후 라우터에서 호출."""
    await _publish(meetup_id, {"type": "message_created", "meetup_id": meetup_id, "message": message, "ts": _ts()})


async def publish_message_deleted(meetup_id: int, message_id: int) -> None:
    """신고 누적으로 메시지가 삭제된 뒤 호출 → 구독자 화면에서 제거."""
    await _publish(meetup_id, {"type": "message_deleted", "meetup_id": meetup_id, "message_id": message_id, "ts": _ts()})


async def publish_meetup_status_changed(meetup_id: int, status: str) -> None:
    """모임 상태 변경 시 발행 → SSE에서 event: meetup_status_changed 로 전달."""
    await _publish(meetup_id, {"type": "meetup_status_changed", "meetup_id": meetup_id, "status": status, "ts": _ts()})


def _event_name(data: str) -> str:
    try:
        parsed = json.loads(data)
    except ValueError:
        return "message"
    return parsed.get("type") or "message"


async def stream_chat_events(
    meetup_id: int,
    closes_at: datetime,
    clock: Optional[ClockTicker] = None,
) -> AsyncGenerator[str, None]:
    """
    GET /meetups/{id}/chat/stream 용.

    - 공유 클럭 틱마다 countdown 이벤트 (채팅방 종료까지 남은 초)
    - Redis 채널의 message_created / message_deleted / meetup_status_changed 전달
    - 종료 시각이 지나면 chat_closed 보내고 스트림 종료
    SSE는 long-lived connection이므로 예외·연결 해제 처리 필수.
    """
    clock = clock or shared_ticker
    pubsub = redis_client.pubsub() if settings.REALTIME_ENABLED else None
    channel = _channel(meetup_id)
    try:
        if pubsub is not None:
            try:
                await pubsub.subscribe(channel)
            except Exception:
                logger.warning("Chat stream for meetup %s running without Redis", meetup_id, exc_info=True)
                pubsub = None

        async with clock.ticks() as ticks:
            while True:
                now = await ticks.get()
                remaining = max(int((closes_at - now).total_seconds()), 0)
                yield format_sse("countdown", json.dumps({"meetup_id": meetup_id, "remaining_sec": remaining}))
                if remaining <= 0:
                    yield format_sse("chat_closed", json.dumps({"meetup_id": meetup_id, "ts": _ts()}))
                    break

                # 틱 사이에 쌓인 이벤트 모두 전달
                while pubsub is not None:
                    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.0)
                    if not message:
                        break
                    if message.get("type") == "message":
                        data = message.get("data") or ""
                        yield format_sse(_event_name(data), data)
    except asyncio.CancelledError:
        pass
    finally:
        if pubsub is not None:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.close()
            except Exception:
                logger.debug("Error closing pubsub for meetup %s", meetup_id, exc_info=True)
