"""
Repository Pattern - Storage abstraction layer

Repositories hide storage details (Redis, PostgreSQL) from the pipeline.
Both implement the pulse EventStore contract: `async put(event) -> str`.

Storage Split:
- EventDocumentRepository: Redis, one TTL-bound JSON document per event
- EventWarehouseRepository: PostgreSQL, append-only analytics.city_events
"""
from .event_document_repository import EventDocumentRepository, ttl_for
from .event_warehouse_repository import EventWarehouseRepository

__all__ = [
    'EventDocumentRepository',
    'EventWarehouseRepository',
    'ttl_for',
]
