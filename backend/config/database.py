"""
Database Configuration
======================

Connection configuration for the pipeline worker and scripts.
Handles the PostgreSQL warehouse and Redis (document store + queues)
with proper env var handling.
"""
import os
from dataclasses import dataclass
from typing import Optional

import asyncpg
import redis.asyncio as redis


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""
    host: str
    port: int
    user: str
    password: str
    database: str
    min_size: int = 2
    max_size: int = 10

    @classmethod
    def from_env(cls, min_size: int = 2, max_size: int = 10) -> 'PostgresConfig':
        """Create config from environment variables."""
        host = os.getenv('POSTGRES_HOST')
        if not host:
            raise ValueError("POSTGRES_HOST environment variable is required")

        return cls(
            host=host,
            port=int(os.getenv('POSTGRES_PORT', '5432')),
            user=os.getenv('POSTGRES_USER', 'pulse_user'),
            password=os.getenv('POSTGRES_PASSWORD', 'pulse_pass'),
            database=os.getenv('POSTGRES_DB', 'pulse'),
            min_size=min_size,
            max_size=max_size,
        )

    def to_asyncpg_kwargs(self) -> dict:
        """Convert to asyncpg.create_pool kwargs."""
        return {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database,
            'min_size': self.min_size,
            'max_size': self.max_size,
        }


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    url: str

    @classmethod
    def from_env(cls) -> 'RedisConfig':
        """Create config from environment variables."""
        url = os.getenv('REDIS_URL')
        if not url:
            raise ValueError("REDIS_URL environment variable is required")

        return cls(url=url)


def get_postgres_config(min_size: int = 2, max_size: int = 10) -> PostgresConfig:
    """Get PostgreSQL configuration from environment."""
    return PostgresConfig.from_env(min_size=min_size, max_size=max_size)


def get_redis_config() -> RedisConfig:
    """Get Redis configuration from environment."""
    return RedisConfig.from_env()


async def create_postgres_pool(
    dsn: Optional[str] = None,
    min_size: int = 2,
    max_size: int = 10
) -> asyncpg.Pool:
    """
    Create PostgreSQL connection pool.

    Uses `dsn` (Settings.database_url) when given, otherwise POSTGRES_* env vars.
    """
    if dsn:
        return await asyncpg.create_pool(dsn=dsn, min_size=min_size, max_size=max_size)
    config = get_postgres_config(min_size=min_size, max_size=max_size)
    return await asyncpg.create_pool(**config.to_asyncpg_kwargs())


def create_redis_client(url: Optional[str] = None) -> redis.Redis:
    """Redis client for the document store (decoded responses)."""
    url = url or get_redis_config().url
    return redis.from_url(url, decode_responses=True)


async def create_job_queue(url: Optional[str] = None):
    """Create and connect Redis job queue (REDIS_URL when no url is given)."""
    from services.job_queue import JobQueue
    queue = JobQueue(url or get_redis_config().url)
    await queue.connect()
    return queue
