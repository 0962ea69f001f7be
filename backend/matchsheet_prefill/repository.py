"""Record-store seam: one repository per entity type, injected into the service."""

from __future__ import annotations

import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    @abstractmethod
    def create(self, record: T) -> T: ...

    @abstractmethod
    def list(self) -> List[T]: ...

    @abstractmethod
    def get(self, record_id: str) -> Optional[T]: ...

    @abstractmethod
    def update(self, record_id: str, record: T) -> T: ...

    @abstractmethod
    def delete(self, record_id: str) -> bool: ...


class InMemoryRepository(Repository[T]):
    """Dict-backed repository for dataclass records with an `id` attribute."""

    def __init__(self, records: Optional[List[T]] = None):
        self._records: Dict[str, T] = {}
        for record in records or []:
            self.create(record)

    def create(self, record: T) -> T:
        if not getattr(record, "id", None):
            record = replace(record, id=str(uuid.uuid4()))
        self._records[record.id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def list(self) -> List[T]:
        return [copy.deepcopy(r) for r in self._records.values()]

    def get(self, record_id: str) -> Optional[T]:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def update(self, record_id: str, record: T) -> T:
        if record_id not in self._records:
            raise KeyError(record_id)
        record = replace(record, id=record_id)
        self._records[record_id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def delete(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None
