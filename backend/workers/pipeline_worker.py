"""
Pipeline Worker - raw batches in, persisted canonical events out

Flow: ingestion → queue:events:raw → PipelineWorker → EventPipeline
                                                    → Redis documents
                                                    → analytics.city_events
                                   → queue:events:processed (summary)

Job format:
    {"batch_id": "bt_xxxxxxxx", "events": [{...raw event...}, ...]}

Result format (pushed to the processed queue):
    {"batch_id": ..., "summary": {...}, "outcomes": [...], "processed_at": ...}
"""
import asyncio
import logging
from typing import List, Optional

from openai import AsyncOpenAI

from config.database import create_postgres_pool, create_redis_client, create_job_queue
from config.settings import Settings, get_settings
from pulse import EventPipeline, RawEvent
from repositories import EventDocumentRepository, EventWarehouseRepository
from services.classification_gateway import OpenAIClassificationGateway
from services.job_queue import JobQueue
from services.worker_base import BaseWorker
from utils.datetime_utils import utcnow
from utils.id_generator import generate_batch_id

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_raw_events(items: list) -> List[RawEvent]:
    """Build RawEvents from a job payload, skipping entries that are not objects"""
    events = []
    for i, item in enumerate(items or []):
        if not isinstance(item, dict):
            logger.warning(f"Skipping raw event #{i}: expected object, got {type(item).__name__}")
            continue
        events.append(RawEvent.from_dict(item))
    return events


class PipelineWorker(BaseWorker):
    """
    Consumes raw event batches and runs them through the EventPipeline.

    Scale workers via docker-compose --scale; batches are independent.
    """

    def __init__(
        self,
        pipeline: EventPipeline,
        job_queue: JobQueue,
        queue_name: str = JobQueue.RAW_EVENTS,
        result_queue: Optional[str] = JobQueue.PROCESSED_EVENTS,
        worker_id: int = 1
    ):
        super().__init__(
            job_queue=job_queue,
            worker_name=f"pipeline-worker-{worker_id}",
            queue_name=queue_name
        )
        self.pipeline = pipeline
        self.result_queue = result_queue

    async def process(self, job: dict):
        batch_id = job.get('batch_id') or generate_batch_id()
        events = parse_raw_events(job.get('events', []))

        logger.info(f"📥 Batch {batch_id}: {len(events)} raw events")
        result = await self.pipeline.process(events)

        summary = result.summary
        logger.info(
            f"✅ Batch {batch_id}: {summary.output_count} canonical events, "
            f"dedup {summary.dedup_ratio:.1%}, "
            f"store failures doc={summary.document_failures} wh={summary.warehouse_failures}"
        )

        if self.result_queue:
            await self.job_queue.enqueue(self.result_queue, {
                'batch_id': batch_id,
                'processed_at': utcnow().isoformat(),
                **result.to_dict(),
            })

        return result


def build_pipeline(settings: Settings, redis_client, db_pool) -> EventPipeline:
    gateway = OpenAIClassificationGateway(
        AsyncOpenAI(api_key=settings.openai_api_key),
        model=settings.classification_model,
        vision_model=settings.vision_model,
        summary_model=settings.summary_model,
    )
    return EventPipeline(
        gateway=gateway,
        document_store=EventDocumentRepository(redis_client, settings.document_key_prefix),
        warehouse_store=EventWarehouseRepository(db_pool),
        params=settings.to_parameters(),
    )


async def main():
    """Main entry point"""
    settings = get_settings()

    db_pool = await create_postgres_pool(settings.database_url)
    redis_client = create_redis_client(settings.redis_url)
    job_queue = await create_job_queue(settings.redis_url)

    await EventWarehouseRepository(db_pool).ensure_schema()

    worker = PipelineWorker(
        pipeline=build_pipeline(settings, redis_client, db_pool),
        job_queue=job_queue,
        queue_name=settings.raw_event_queue,
        result_queue=settings.processed_event_queue,
    )

    try:
        await worker.start()
    finally:
        logger.info(f"Pipeline stats: {worker.pipeline.get_stats()}")
        await job_queue.close()
        await redis_client.close()
        await db_pool.close()


if __name__ == "__main__":
    asyncio.run(main())
