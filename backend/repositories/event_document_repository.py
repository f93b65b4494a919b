"""
Event Document Repository - Redis working copy

Each enriched event is stored as one JSON document under
`city_event:<id>` with a time-to-live chosen by category: short-lived
conditions (traffic, weather) expire quickly, slow civic issues linger.
A later write for the same id replaces the document and resets its TTL.
"""
import json
import logging
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis

from pulse.types import EnrichedEvent, EventCategory

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)

CATEGORY_TTL = {
    EventCategory.TRAFFIC: timedelta(hours=2),
    EventCategory.WEATHER: timedelta(hours=6),
    EventCategory.EMERGENCY: timedelta(hours=24),
    EventCategory.CULTURAL_EVENT: timedelta(hours=24),
    EventCategory.INFRASTRUCTURE: timedelta(days=15),
    EventCategory.CIVIC_ISSUE: timedelta(days=30),
}


def ttl_for(category: Optional[EventCategory]) -> timedelta:
    return CATEGORY_TTL.get(category, DEFAULT_TTL)


class EventDocumentRepository:
    """
    Low-latency document store for enriched events (EventStore).

    Usage:
        repo = EventDocumentRepository(redis_client)
        doc_id = await repo.put(enriched)
        doc = await repo.get(doc_id)
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "city_event:"):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def key(self, event_id: str) -> str:
        return f"{self.key_prefix}{event_id}"

    async def put(self, event: EnrichedEvent) -> str:
        ttl = ttl_for(event.event.category)
        document = event.to_dict()
        document['ttl_seconds'] = int(ttl.total_seconds())

        await self.redis.set(self.key(event.id), json.dumps(document, default=str), ex=ttl)

        logger.debug(f"📄 Stored document {event.id} (ttl={ttl})")
        return event.id

    async def get(self, event_id: str) -> Optional[dict]:
        raw = await self.redis.get(self.key(event_id))
        if raw is None:
            return None
        return json.loads(raw)

    async def ttl(self, event_id: str) -> int:
        """Remaining seconds (-2 missing, -1 no expiry), as Redis reports it"""
        return await self.redis.ttl(self.key(event_id))
