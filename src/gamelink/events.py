"""Best-effort Redis pub/sub fan-out for domain events."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

CHANNEL_SESSION_COMPLETED = "pubsub:session_completed"
CHANNEL_LEADERBOARD_UPDATED = "pubsub:leaderboard_updated"
CHANNEL_REWARD_CLAIMED = "pubsub:reward_claimed"


async def publish(redis: object, channel: str, payload: dict[str, Any]) -> None:
    """Publish a JSON event. Called after commit; failures are logged only."""
    if redis is None:
        return
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("Failed to publish %s event", channel, exc_info=True)
