"""
store.py — The engine's view of persistent storage.

The quality engine only needs three calls from whatever holds the records:
fetch everything, look one record up, and merge fields into one record.
InMemoryStore is a complete implementation of that contract, used by
the tests, the demo and the benchmark.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from knowledge_quality.errors import MalformedRecordError, NotFoundError
from knowledge_quality.records import FIELD_NAMES, KnowledgeRecord

logger = logging.getLogger(__name__)


class KnowledgeStore(Protocol):
    async def fetch_all(self) -> List[KnowledgeRecord]:
        """Every record with its current embedding and metadata."""
        ...

    async def get(self, record_id: str) -> Optional[KnowledgeRecord]:
        """One record by id, or None if it no longer exists."""
        ...

    async def update_metadata(self, record_id: str, fields: Dict[str, Any]) -> None:
        """Merge fields into a stored record. NotFoundError if it is gone."""
        ...


class InMemoryStore:
    """
    Dict-backed store. Reads hand out deep copies so a snapshot taken by
    the engine is never changed underneath it by a later write.
    """

    IMMUTABLE_FIELDS = frozenset({'id'})

    def __init__(self, records: Optional[Iterable[KnowledgeRecord]] = None):
        self._records: Dict[str, KnowledgeRecord] = {}
        for r in records or []:
            self.add(r)

    def add(self, record: KnowledgeRecord) -> str:
        self._records[record.id] = copy.deepcopy(record)
        return record.id

    def delete(self, record_id: str):
        if self._records.pop(record_id, None) is None:
            raise NotFoundError(record_id)

    async def fetch_all(self) -> List[KnowledgeRecord]:
        return [copy.deepcopy(r) for r in self._records.values()]

    async def get(self, record_id: str) -> Optional[KnowledgeRecord]:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def update_metadata(self, record_id: str, fields: Dict[str, Any]) -> None:
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(record_id)
        unknown = set(fields) - FIELD_NAMES
        if unknown:
            raise MalformedRecordError(
                f'Unknown fields for record {record_id}: {sorted(unknown)}'
            )
        frozen = set(fields) & self.IMMUTABLE_FIELDS
        if frozen:
            raise MalformedRecordError(
                f'Cannot change immutable fields of {record_id}: {sorted(frozen)}'
            )
        for name, value in fields.items():
            setattr(record, name, copy.deepcopy(value))
        logger.debug('Updated %s: %s', record_id, sorted(fields))

    def __len__(self):
        return len(self._records)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._records
