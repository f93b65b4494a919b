"""
Persistence Stage
=================

Writes each enriched event to the document store (TTL-bound working copy)
and the warehouse (append-only history).

The two writes are issued concurrently and each is bounded by its own
deadline. A failure in one store is recorded in that store's
StoreWriteResult and does not cancel, retry or fail the other.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Protocol

from .types import EnrichedEvent, Parameters, PersistenceOutcome, StoreWriteResult

logger = logging.getLogger(__name__)

DOCUMENT_STORE = "document"
WAREHOUSE_STORE = "warehouse"


class EventStore(Protocol):
    """Anything that can durably accept an enriched event and return a record id."""

    async def put(self, event: EnrichedEvent) -> str:
        ...


class PersistenceStage:

    def __init__(
        self,
        document_store: EventStore,
        warehouse_store: EventStore,
        params: Parameters = Parameters()
    ):
        self.document_store = document_store
        self.warehouse_store = warehouse_store
        self.params = params

    async def persist(self, event: EnrichedEvent) -> PersistenceOutcome:
        document, warehouse = await asyncio.gather(
            self._write(DOCUMENT_STORE, self.document_store, event),
            self._write(WAREHOUSE_STORE, self.warehouse_store, event),
        )

        if not document.success or not warehouse.success:
            logger.warning(
                f"💾 Partial persistence for {event.id}: "
                f"document={document.success} warehouse={warehouse.success}"
            )

        return PersistenceOutcome(
            event_id=event.id,
            document=document,
            warehouse=warehouse,
            enriched=True,
            enhanced_field_count=event.enhanced_field_count,
        )

    async def _write(self, name: str, store: EventStore, event: EnrichedEvent) -> StoreWriteResult:
        timeout = self.params.store_timeout
        try:
            record_id = await asyncio.wait_for(store.put(event), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"⏱️ {name} write for {event.id} timed out after {timeout:.1f}s")
            return StoreWriteResult(store=name, success=False, error=f"timeout after {timeout:.1f}s")
        except Exception as e:
            logger.error(f"❌ {name} write for {event.id} failed: {e}", exc_info=True)
            return StoreWriteResult(store=name, success=False, error=str(e) or type(e).__name__)

        return StoreWriteResult(store=name, success=True, record_id=str(record_id))


# =============================================================================
# IN-MEMORY STORES (dry runs and tests)
# =============================================================================

class InMemoryDocumentStore:
    """Keyed by event id; a later write for the same id replaces the copy."""

    def __init__(self):
        self.documents: Dict[str, dict] = {}

    async def put(self, event: EnrichedEvent) -> str:
        self.documents[event.id] = event.to_dict()
        return event.id

    async def get(self, event_id: str) -> Optional[dict]:
        return self.documents.get(event_id)


class InMemoryWarehouseStore:
    """Append-only list of rows, each with its own row id."""

    def __init__(self):
        self.rows: List[dict] = []

    async def put(self, event: EnrichedEvent) -> str:
        row_id = f"row_{len(self.rows) + 1}"
        self.rows.append({'row_id': row_id, **event.to_dict()})
        return row_id
