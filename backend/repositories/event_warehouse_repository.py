"""
Event Warehouse Repository - PostgreSQL append-only history

Every write INSERTs a new row into analytics.city_events and returns its
row id. Rows are never updated or deleted here; re-processing the same
event simply appends another row.
"""
import json
import logging
from typing import List

import asyncpg

from pulse.types import EnrichedEvent

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE SCHEMA IF NOT EXISTS analytics;

CREATE TABLE IF NOT EXISTS analytics.city_events (
    row_id            BIGSERIAL PRIMARY KEY,
    event_id          TEXT NOT NULL,
    title             TEXT,
    description       TEXT,
    content           TEXT,
    category          TEXT,
    severity          TEXT,
    source            TEXT,
    event_timestamp   TIMESTAMP,
    latitude          DOUBLE PRECISION,
    longitude         DOUBLE PRECISION,
    address           TEXT,
    area              TEXT,
    pincode           TEXT,
    sentiment_type    TEXT,
    sentiment_score   DOUBLE PRECISION,
    confidence_score  DOUBLE PRECISION,
    keywords          TEXT[],
    ai_summary        TEXT,
    aggregation_method TEXT,
    source_event_ids  TEXT[],
    raw_data          JSONB,
    created_at        TIMESTAMP NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_city_events_event_id ON analytics.city_events (event_id);
CREATE INDEX IF NOT EXISTS idx_city_events_category_ts ON analytics.city_events (category, event_timestamp);
"""

INSERT_SQL = """
    INSERT INTO analytics.city_events (
        event_id, title, description, content, category, severity, source,
        event_timestamp, latitude, longitude, address, area, pincode,
        sentiment_type, sentiment_score, confidence_score, keywords,
        ai_summary, aggregation_method, source_event_ids, raw_data
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
            $14, $15, $16, $17, $18, $19, $20, $21)
    RETURNING row_id
"""


class EventWarehouseRepository:
    """
    Append-only analytical store for enriched events (EventStore).
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def ensure_schema(self):
        """Create analytics schema and table if missing"""
        async with self.db_pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("📦 analytics.city_events ready")

    def to_row(self, event: EnrichedEvent) -> List:
        ev = event.event
        loc = ev.location
        return [
            ev.id,
            ev.title,
            ev.description,
            ev.content,
            ev.category.value if ev.category else None,
            ev.severity.value if ev.severity else None,
            ev.source.value if ev.source else None,
            ev.timestamp,
            loc.latitude if loc else None,
            loc.longitude if loc else None,
            loc.address if loc else None,
            loc.area if loc else None,
            loc.pincode if loc else None,
            ev.sentiment.type.value if ev.sentiment else None,
            ev.sentiment.score if ev.sentiment else None,
            ev.confidence,
            list(ev.keywords),
            ev.ai_summary,
            ev.aggregation_method.value,
            list(ev.source_event_ids),
            json.dumps(event.to_dict(), default=str),
        ]

    async def put(self, event: EnrichedEvent) -> str:
        async with self.db_pool.acquire() as conn:
            row_id = await conn.fetchval(INSERT_SQL, *self.to_row(event))

        logger.debug(f"📦 Appended {event.id} to warehouse (row {row_id})")
        return str(row_id)

    async def count_rows(self, event_id: str) -> int:
        """How many times an event has been appended"""
        async with self.db_pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT count(*) FROM analytics.city_events WHERE event_id = $1",
                event_id
            )
