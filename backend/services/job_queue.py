"""
Redis-based job queue for the event pipeline workers

Uses LPUSH/BRPOP for efficient queue consumption

Queues:
- queue:events:raw       - raw event batches waiting for dedup/enrichment
- queue:events:processed - batch summaries and per-event outcomes
"""
import json
import redis.asyncio as redis
from typing import Optional


class JobQueue:
    """
    Redis-based job queue

    Producers LPUSH JSON jobs, workers BRPOP them.
    Each job is consumed by exactly ONE worker.
    """

    RAW_EVENTS = 'queue:events:raw'
    PROCESSED_EVENTS = 'queue:events:processed'

    def __init__(self, redis_url: str):
        self.redis = None
        self.redis_url = redis_url

    async def connect(self):
        """Initialize Redis connection"""
        self.redis = await redis.from_url(self.redis_url, decode_responses=True)

    async def close(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.close()

    async def enqueue(self, queue_name: str, job: dict):
        """
        Add job to queue

        Example:
            await queue.enqueue('queue:events:raw', {
                'batch_id': 'bt_k3j9x2ab',
                'events': [...]
            })
        """
        await self.redis.lpush(queue_name, json.dumps(job, default=str))

    async def dequeue(self, queue_name: str, timeout: int = 5) -> Optional[dict]:
        """
        Blocking pop from queue (BRPOP)

        Returns None on timeout
        """
        result = await self.redis.brpop(queue_name, timeout=timeout)
        if result:
            # result is a tuple: (queue_name, job_json)
            return json.loads(result[1])
        return None

    async def queue_length(self, queue_name: str) -> int:
        """Get current queue length"""
        return await self.redis.llen(queue_name)
