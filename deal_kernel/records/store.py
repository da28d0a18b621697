"""
Record repository — the external store the assistant reads and writes.

The kernel only depends on the ``RecordRepository`` protocol. The in-memory
implementation backs tests and the HTTP surface; production deployments
plug in their own database-backed repository.
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

import structlog

from deal_kernel.models.actions import HandlerContext
from deal_kernel.models.deal import Deal, Property
from deal_kernel.models.patchset import (
    PatchEntity,
    PatchOperation,
    PatchOpKind,
    PendingTimelineEvent,
)

logger = structlog.get_logger()

# Assumption sets are keyed by deal and spring into existence on first write.
_UPSERT_ENTITIES = {PatchEntity.DEAL_ASSUMPTION}


class RecordNotFoundError(Exception):
    """Raised when a referenced record does not exist."""
    pass


class RecordRepository(Protocol):
    """Interface for the business record store."""

    def get_deal(self, deal_id: str) -> Optional[Deal]:
        ...

    def get_property(self, property_id: str) -> Optional[Property]:
        ...

    def apply_operation(self, operation: PatchOperation) -> str:
        """Apply one operation atomically and return the affected entity id."""
        ...

    def create_timeline_event(
        self, deal_id: Optional[str], event: PendingTimelineEvent
    ) -> str:
        """Persist a timeline entry and return its id."""
        ...


class InMemoryRecordRepository:
    """
    Dict-backed repository keyed by (entity, id).

    Deals and properties are stored as plain dicts so partial updates can be
    merged, then re-validated into models on read.
    """

    def __init__(self):
        self._records: Dict[Tuple[PatchEntity, str], dict] = {}
        self._timeline: List[dict] = []

    # --- Seeding / reads ---

    def put_deal(self, deal: Deal) -> None:
        self._records[(PatchEntity.DEAL, deal.id)] = deal.model_dump(mode="json")

    def put_property(self, prop: Property) -> None:
        self._records[(PatchEntity.PROPERTY, prop.id)] = prop.model_dump(mode="json")

    def get_deal(self, deal_id: str) -> Optional[Deal]:
        record = self._records.get((PatchEntity.DEAL, deal_id))
        return Deal.model_validate(record) if record is not None else None

    def get_property(self, property_id: str) -> Optional[Property]:
        record = self._records.get((PatchEntity.PROPERTY, property_id))
        return Property.model_validate(record) if record is not None else None

    def get_record(self, entity: PatchEntity, record_id: str) -> Optional[dict]:
        record = self._records.get((PatchEntity(entity), record_id))
        return dict(record) if record is not None else None

    def get_records(self, entity: PatchEntity) -> List[dict]:
        entity = PatchEntity(entity)
        return [dict(r) for (e, _), r in self._records.items() if e == entity]

    def get_timeline(self, deal_id: Optional[str] = None) -> List[dict]:
        if deal_id is None:
            return list(self._timeline)
        return [e for e in self._timeline if e["deal_id"] == deal_id]

    # --- Writes ---

    def apply_operation(self, operation: PatchOperation) -> str:
        if operation.op == PatchOpKind.CREATE:
            record_id = operation.id or f"{operation.entity.value.lower()}_{uuid4().hex[:12]}"
            key = (operation.entity, record_id)
            if key in self._records:
                raise ValueError(f"{operation.entity.value} {record_id} already exists")
            self._records[key] = {"id": record_id, **(operation.after or {})}
            return record_id

        key = (operation.entity, operation.id)
        upsert = operation.op == PatchOpKind.UPDATE and operation.entity in _UPSERT_ENTITIES
        if upsert and key not in self._records:
            self._records[key] = {"id": operation.id}
        if key not in self._records:
            raise RecordNotFoundError(f"{operation.entity.value} {operation.id} not found")

        if operation.op == PatchOpKind.DELETE:
            del self._records[key]
            return operation.id

        updated = dict(self._records[key])
        if operation.field_path:
            _set_path(updated, operation.field_path, (operation.after or {}).get("value"))
        else:
            updated.update(operation.after or {})
        self._check_valid(operation.entity, updated)
        self._records[key] = updated
        return operation.id

    def create_timeline_event(
        self, deal_id: Optional[str], event: PendingTimelineEvent
    ) -> str:
        event_id = f"evt_{uuid4().hex[:12]}"
        self._timeline.append({
            "id": event_id,
            "deal_id": deal_id,
            "type": event.type,
            "title": event.title,
            "description": event.description,
            "created_at": datetime.utcnow().isoformat(),
        })
        return event_id

    @staticmethod
    def _check_valid(entity: PatchEntity, record: dict) -> None:
        # Only deals and properties have a schema here; everything else is free-form.
        if entity == PatchEntity.DEAL:
            Deal.model_validate(record)
        elif entity == PatchEntity.PROPERTY:
            Property.model_validate(record)


def _set_path(record: dict, path: str, value) -> None:
    """Set a dotted path inside nested dicts, creating levels as needed."""
    parts = path.split(".")
    node = record
    for part in parts[:-1]:
        child = node.get(part)
        child = dict(child) if isinstance(child, dict) else {}
        node[part] = child
        node = child
    node[parts[-1]] = value


def load_handler_context(
    repository: RecordRepository,
    deal_id: str,
    user_id: Optional[str] = None,
    generator=None,
) -> HandlerContext:
    """Read a fresh snapshot of a deal and its property for one invocation."""
    deal = repository.get_deal(deal_id)
    if deal is None:
        raise RecordNotFoundError(f"Deal {deal_id} not found")

    prop = None
    if deal.property_id:
        prop = repository.get_property(deal.property_id)
        if prop is None:
            logger.warning("property_missing", deal_id=deal_id, property_id=deal.property_id)

    return HandlerContext(deal=deal, property=prop, user_id=user_id, generator=generator)
