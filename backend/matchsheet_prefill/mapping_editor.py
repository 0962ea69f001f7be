"""In-memory editing of a template's mapping entries before they are committed."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from .models import FieldMapping


class MappingEditor:
    def __init__(self, entries: Optional[Iterable[FieldMapping]] = None):
        self._entries: List[FieldMapping] = list(entries or [])

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FieldMapping]:
        return iter(list(self._entries))

    @property
    def entries(self) -> List[FieldMapping]:
        return list(self._entries)

    def append(self, entry: FieldMapping) -> None:
        self._check_entry(entry)
        self._entries.append(entry)

    def replace_at(self, index: int, entry: FieldMapping) -> None:
        self._check_index(index)
        self._check_entry(entry)
        self._entries[index] = entry

    def remove_at(self, index: int) -> FieldMapping:
        self._check_index(index)
        return self._entries.pop(index)

    def commit(self) -> List[FieldMapping]:
        """The list to hand to `MappingStore.put`."""
        for entry in self._entries:
            self._check_entry(entry)
        return list(self._entries)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._entries):
            raise IndexError(f"Mapping index {index} out of range (0..{len(self._entries) - 1})")

    @staticmethod
    def _check_entry(entry: FieldMapping) -> None:
        if not entry.is_complete():
            raise ValueError("A mapping entry needs both a PDF field name and a target path")
