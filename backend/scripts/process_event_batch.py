#!/usr/bin/env python3
"""
Process Event Batch
===================

Runs one batch of raw city events through the pipeline and prints the
batch summary (and per-event outcomes) as JSON.

Input is either a JSON array of events, a JSON object with an "events"
key (the queue job format) or JSON Lines with one event per line.

Usage:
    python scripts/process_event_batch.py events.json
    python scripts/process_event_batch.py events.jsonl --dry-run
    python scripts/process_event_batch.py events.json --dry-run --offline
"""

import asyncio
import argparse
import json
import logging
from pathlib import Path
from typing import List

from openai import AsyncOpenAI

from config.database import create_postgres_pool, create_redis_client
from config.settings import get_settings
from pulse import (
    EventPipeline,
    InMemoryDocumentStore,
    InMemoryWarehouseStore,
    RawEvent,
    UnavailableGateway,
)
from repositories import EventDocumentRepository, EventWarehouseRepository
from services.classification_gateway import OpenAIClassificationGateway
from workers.pipeline_worker import parse_raw_events

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def load_events(path: Path) -> List[RawEvent]:
    """Read a JSON / JSONL batch file."""
    text = path.read_text(encoding='utf-8').strip()
    if not text:
        return []

    if text[0] in '[{':
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            data = data.get('events', [data])
        if isinstance(data, list):
            return parse_raw_events(data)

    items = []
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            items.append(json.loads(line))
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping line {lineno}: {e}")
    return parse_raw_events(items)


async def main(input_path: Path, dry_run: bool = False, offline: bool = False, verbose: bool = False):
    """Run one batch and print the result."""
    settings = get_settings()
    events = load_events(input_path)
    logger.info(f"Loaded {len(events)} raw events from {input_path}")

    if offline:
        gateway = UnavailableGateway("offline run")
    else:
        gateway = OpenAIClassificationGateway(
            AsyncOpenAI(api_key=settings.openai_api_key),
            model=settings.classification_model,
            vision_model=settings.vision_model,
            summary_model=settings.summary_model,
        )

    db_pool = None
    redis_client = None
    if dry_run:
        document_store = InMemoryDocumentStore()
        warehouse_store = InMemoryWarehouseStore()
    else:
        db_pool = await create_postgres_pool(settings.database_url)
        redis_client = create_redis_client(settings.redis_url)
        warehouse_store = EventWarehouseRepository(db_pool)
        await warehouse_store.ensure_schema()
        document_store = EventDocumentRepository(redis_client, settings.document_key_prefix)

    try:
        pipeline = EventPipeline(gateway, document_store, warehouse_store, settings.to_parameters())
        result = await pipeline.process(events)
    finally:
        if redis_client is not None:
            await redis_client.close()
        if db_pool is not None:
            await db_pool.close()

    output = result.to_dict()
    if verbose:
        output['events'] = [e.to_dict() for e in result.enriched_events]
    else:
        output.pop('outcomes')
    print(json.dumps(output, indent=2, default=str))
    return result


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dedup, enrich and persist one batch of raw city events")
    parser.add_argument('input', type=Path, help='JSON or JSONL file of raw events')
    parser.add_argument('--dry-run', action='store_true', help='Keep results in memory instead of Redis/PostgreSQL')
    parser.add_argument('--offline', action='store_true', help='Skip the classification service, use fallbacks only')
    parser.add_argument('--verbose', action='store_true', help='Include outcomes and enriched events in the output')
    args = parser.parse_args()

    if not args.input.exists():
        parser.error(f"{args.input} does not exist")

    asyncio.run(main(args.input, dry_run=args.dry_run, offline=args.offline, verbose=args.verbose))
