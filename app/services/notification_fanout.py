"""Chat-open notification fan-out.

One trigger -> one batched token lookup -> one multicast send -> pruning of
tokens the gateway reports as permanently invalid.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List

import httpx
from sqlalchemy.orm import Session

from app.core.errors import Internal, NotFound, PermissionDenied
from app.crud.token_crud import get_tokens, remove_token_if_matches
from app.integrations.push_gateway import MulticastResponse, PushGateway
from app.models.meetup import Meetup

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE_CHAT_OPEN = "chat_open"


@dataclass
class FanoutResult:
    success_count: int = 0
    failure_count: int = 0


def build_chat_open_payload(meetup: Meetup) -> dict:
    return {
        "notification": {
            "title": "The chat room is open!",
            "body": f"The chat room for {meetup.location_text} is open",
            "sound": "default",
        },
        "data": {
            "meetup_id": str(meetup.id),
            "type": NOTIFICATION_TYPE_CHAT_OPEN,
        },
    }


def prune_invalid_tokens(db: Session, response: MulticastResponse, owners: Dict[str, str]) -> int:
    """Remove tokens the gateway rejected as permanently invalid. Best-effort, never raises."""
    removed = 0
    for result in response.results:
        if not result.token_invalid:
            continue
        participant_id = owners.get(result.token)
        if participant_id is None:
            continue
        try:
            if remove_token_if_matches(db, participant_id, result.token):
                db.commit()
                removed += 1
        except Exception:
            db.rollback()
            logger.error("Failed to remove token for %s", participant_id, exc_info=True)
    if removed:
        logger.info("Cleaned up %d invalid push tokens", removed)
    return removed


async def notify_chat_open(db: Session, meetup_id: int, caller_id: str, gateway: PushGateway) -> FanoutResult:
    meetup = db.query(Meetup).filter(Meetup.id == meetup_id).first()
    if meetup is None:
        raise NotFound("Meetup not found")

    participant_ids: List[str] = meetup.participant_ids
    if caller_id not in participant_ids:
        raise PermissionDenied("Only participants can send notifications")

    tokens_by_participant = get_tokens(db, participant_ids)
    if not tokens_by_participant:
        logger.info("Meetup %s: no push tokens to notify", meetup_id)
        return FanoutResult()

    owners = {token: pid for pid, token in tokens_by_participant.items()}
    tokens = list(owners.keys())
    payload = build_chat_open_payload(meetup)

    try:
        response = await gateway.send_multicast(tokens, payload["notification"], payload["data"])
    except (httpx.HTTPError, RuntimeError) as exc:
        logger.error("Error sending notifications for meetup %s", meetup_id, exc_info=exc)
        raise Internal("Failed to send notifications") from exc

    prune_invalid_tokens(db, response, owners)

    logger.info(
        "Notifications sent for meetup %s: %d success, %d failed",
        meetup_id,
        response.success_count,
        response.failure_count,
    )
    return FanoutResult(success_count=response.success_count, failure_count=response.failure_count)
