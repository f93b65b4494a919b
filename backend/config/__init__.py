"""
Configuration module for settings, database and queue connections.
"""
from .database import (
    PostgresConfig,
    RedisConfig,
    get_postgres_config,
    get_redis_config,
    create_postgres_pool,
    create_redis_client,
    create_job_queue,
)
from .settings import Settings, get_settings

__all__ = [
    'PostgresConfig',
    'RedisConfig',
    'get_postgres_config',
    'get_redis_config',
    'create_postgres_pool',
    'create_redis_client',
    'create_job_queue',
    'Settings',
    'get_settings',
]
