"""
Domain records shared by the inspector, mapping store, editor and fill engine.

Records are plain dataclasses. `FieldMapping` also knows how to read the wire
shape returned by the classification service
(`{champ_pdf, type, mapping, valeur_possible, obligatoire, format}`) so that
proposals, stored mappings and API payloads all end up as the same type.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union


class MappingKind(str, Enum):
    GLOBAL = "global"
    PLAYER = "player"
    COACH = "coach"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> Optional["MappingKind"]:
        """Return the kind for an English or French label, or None if unknown."""
        if isinstance(value, MappingKind):
            return value
        if not isinstance(value, str):
            return None
        return _KIND_ALIASES.get(value.strip().lower())

    @property
    def wire_name(self) -> str:
        return _WIRE_NAMES[self]


_KIND_ALIASES: Dict[str, MappingKind] = {
    "global": MappingKind.GLOBAL,
    "player": MappingKind.PLAYER,
    "joueur": MappingKind.PLAYER,
    "coach": MappingKind.COACH,
    "educateur": MappingKind.COACH,
    "éducateur": MappingKind.COACH,
    "other": MappingKind.OTHER,
    "autre": MappingKind.OTHER,
}

_WIRE_NAMES: Dict[MappingKind, str] = {
    MappingKind.GLOBAL: "global",
    MappingKind.PLAYER: "joueur",
    MappingKind.COACH: "educateur",
    MappingKind.OTHER: "autre",
}


class ControlType(str, Enum):
    TEXT = "text"
    CHECKBOX = "checkbox"
    DROPDOWN = "dropdown"
    RADIO_GROUP = "radio-group"
    OTHER = "other"


@dataclass
class FieldMapping:
    """Correspondence between a PDF form field and a domain value."""

    pdf_field_name: str
    kind: MappingKind
    target_path: str
    sample_values: List[str] = field(default_factory=list)
    required: Optional[bool] = None
    format: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.pdf_field_name.strip()) and bool(self.target_path.strip())

    def to_dict(self) -> Dict:
        return {
            "pdf_field_name": self.pdf_field_name,
            "kind": self.kind.value,
            "target_path": self.target_path,
            "sample_values": list(self.sample_values),
            "required": self.required,
            "format": self.format,
        }

    def to_wire(self) -> Dict:
        payload: Dict = {
            "champ_pdf": self.pdf_field_name,
            "type": self.kind.wire_name,
            "mapping": self.target_path,
        }
        if self.sample_values:
            payload["valeur_possible"] = list(self.sample_values)
        if self.required is not None:
            payload["obligatoire"] = self.required
        if self.format:
            payload["format"] = self.format
        return payload

    @classmethod
    def from_dict(cls, data: Dict) -> "FieldMapping":
        """Build an entry from either the stored shape or the wire shape.

        Raises ValueError when the kind is not one of the known labels.
        """
        name = data.get("pdf_field_name", data.get("champ_pdf", ""))
        raw_kind = data.get("kind", data.get("type"))
        kind = MappingKind.parse(raw_kind)
        if kind is None:
            raise ValueError(f"Unknown mapping kind: {raw_kind!r}")
        target = data.get("target_path", data.get("mapping", ""))
        samples = data.get("sample_values", data.get("valeur_possible")) or []
        required = data.get("required", data.get("obligatoire"))
        return cls(
            pdf_field_name=str(name or ""),
            kind=kind,
            target_path=str(target or ""),
            sample_values=[str(v) for v in samples] if isinstance(samples, list) else [],
            required=bool(required) if required is not None else None,
            format=data.get("format") or None,
        )


@dataclass
class FormField:
    name: str
    control_type: ControlType
    options: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {"name": self.name, "control_type": self.control_type.value, "options": list(self.options)}


@dataclass
class Template:
    id: str
    name: str
    file_location: str
    description: Optional[str] = None
    age_category_ids: List[str] = field(default_factory=list)
    field_mappings: List[FieldMapping] = field(default_factory=list)


@dataclass
class Tournament:
    location: str
    date: Union[dt.date, str]
    category: str = ""
    name: Optional[str] = None
    id: Optional[str] = None
    age_category_ids: List[str] = field(default_factory=list)

    @property
    def iso_date(self) -> str:
        return as_date(self.date).isoformat()


@dataclass
class Player:
    last_name: str
    first_name: str
    license_number: str = ""
    can_play_forward: bool = False
    can_referee: bool = False
    date_of_birth: Optional[Union[dt.date, str]] = None
    id: Optional[str] = None
    age_category_id: Optional[str] = None


@dataclass
class Coach:
    id: str
    last_name: str
    first_name: str
    license_number: str = ""
    diploma: str = ""
    age_category_ids: List[str] = field(default_factory=list)


@dataclass
class FillRequest:
    template: Template
    tournament: Tournament
    players: List[Player] = field(default_factory=list)
    coaches: List[Coach] = field(default_factory=list)
    referent_coach_id: Optional[str] = None


@dataclass
class SkippedField:
    """A mapping entry (or one of its candidates) that produced no write."""

    pdf_field_name: str
    reason: str
    entity_index: Optional[int] = None

    def to_dict(self) -> Dict:
        return {"pdf_field_name": self.pdf_field_name, "reason": self.reason, "entity_index": self.entity_index}


@dataclass
class FilledDocument:
    content: bytes
    filename: str
    written_fields: List[str] = field(default_factory=list)
    skipped: List[SkippedField] = field(default_factory=list)
    flattened: bool = False

    @property
    def touched_count(self) -> int:
        return len(self.written_fields)


@dataclass
class MatchSheet:
    id: str
    tournament_id: str
    template_id: str
    age_category_id: str
    referent_coach_id: str
    player_ids: List[str] = field(default_factory=list)
    coach_ids: List[str] = field(default_factory=list)
    pdf_url: Optional[str] = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = dt.datetime.now(dt.timezone.utc).isoformat()


def as_date(value: Union[dt.date, str]) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value).strip()
    # Accept full timestamps as sent by the record store.
    return dt.date.fromisoformat(text[:10])
