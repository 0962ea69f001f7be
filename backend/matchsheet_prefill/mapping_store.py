"""
Durable storage for committed field mappings.

One JSON document per template, keyed by the template's filename:

    field_mappings/<filename>.json  ->  {"timestamp": "...", "mappings": [...]}

`put` always replaces the whole list. Files are written to a temporary name
and renamed into place, so a reader never observes a half-written mapping.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import FieldMapping

logger = logging.getLogger(__name__)


def template_key(locator: str) -> str:
    """Key for a template locator: its last path segment (the filename)."""
    key = (locator or "").strip().rstrip("/").split("/")[-1]
    if not key:
        raise ValueError(f"Invalid template locator: {locator!r}")
    return key


class MappingStore:
    """File-backed mapping store (last writer wins)."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self.mappings_dir = self.base_dir / "field_mappings"
        self.mappings_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.mappings_dir / f"{template_key(key)}.json"

    def has(self, key: str) -> bool:
        return self._path(key).exists()

    def get(self, key: str) -> Optional[List[FieldMapping]]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("Error loading mapping for %s: %s", key, exc)
            return None
        logger.debug("Loaded mapping for %s saved at %s", key, payload.get("timestamp"))
        return [FieldMapping.from_dict(item) for item in payload.get("mappings", [])]

    def put(self, key: str, entries: List[FieldMapping]) -> None:
        path = self._path(key)
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "mappings": [entry.to_dict() for entry in entries],
        }
        fd, tmp_name = tempfile.mkstemp(dir=self.mappings_dir, prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.info("Saved %d field mappings for %s", len(entries), key)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def keys(self) -> List[str]:
        return sorted(p.stem for p in self.mappings_dir.glob("*.json") if not p.name.startswith(".tmp_"))
