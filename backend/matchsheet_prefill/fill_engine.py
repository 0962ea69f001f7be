"""
Fill engine for match-sheet templates.

Given the template bytes, its mapping entries and the roster for a tournament,
writes every resolvable value into the matching AcroForm fields and flattens
the form. Field names are matched through `name_variants`, repeated player and
coach rows through index substitution. Individual write failures never abort a
fill; they are logged and returned as `SkippedField` diagnostics.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import fitz  # PyMuPDF

from .errors import MalformedDocument
from .fill_context import DataContext, build_context
from .form_inspector import FormInspector
from .models import (
    ControlType,
    FieldMapping,
    FilledDocument,
    FillRequest,
    FormField,
    MappingKind,
    SkippedField,
)
from .name_variants import resolve_field_names, resolve_indexed_field_names

logger = logging.getLogger(__name__)

DEFAULT_CLUB_NAME = "US Nantua Rugby"
AFFIRMATIVE = "Oui"
NEGATIVE = "Non"
AFFIRMATIVE_WORDS = frozenset({"oui", "yes", "true"})
MAX_TEXT_FONT_SIZE = 11

# Field name -> global path used when a template has no mapping at all.
CONVENTION_GLOBALS: Dict[str, str] = {
    "nom_manifestation": "nom_manifestation",
    "lieu_manifestation": "lieu_manifestation",
    "date_manifestation": "date_manifestation",
    "categorie": "categorie",
    "club": "club",
    "tournoi": "nom_manifestation",
    "manifestation": "nom_manifestation",
    "evenement": "nom_manifestation",
    "lieu": "lieu_manifestation",
    "location": "lieu_manifestation",
    "date": "date_manifestation",
    "category": "categorie",
    "joueurs": "joueurs",
    "players": "joueurs",
    "educateurs": "educateurs",
    "coaches": "educateurs",
    "referent": "referent.nom_complet",
}
CONVENTION_PLAYER_PREFIXES = ("player", "joueur")
CONVENTION_PLAYER_ATTRIBUTES = ("nom", "prenom", "licence", "avant", "arbitre")
CONVENTION_COACH_PREFIXES = ("educateur", "coach")
CONVENTION_COACH_ATTRIBUTES = ("nom", "prenom", "licence", "diplome", "referent")


def coerce_text(value: Any, affirmative: str = AFFIRMATIVE, negative: str = NEGATIVE) -> str:
    if isinstance(value, bool):
        return affirmative if value else negative
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value if v is not None)
    return str(value).strip()


def coerce_checked(value: Any, affirmative: str = AFFIRMATIVE) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in AFFIRMATIVE_WORDS | {affirmative.lower()}
    return bool(value)


class _FormWriter:
    """Writes values into the widgets of one open document."""

    def __init__(self, doc: "fitz.Document", fields: Sequence[FormField], affirmative: str, negative: str):
        self.doc = doc
        self.fields: Dict[str, FormField] = {f.name: f for f in fields}
        self.affirmative = affirmative
        self.negative = negative
        self.written: List[str] = []
        self.skipped: List[SkippedField] = []
        self._pages: Dict[str, Set[int]] = {}
        for page in doc:
            for widget in page.widgets():
                if widget.field_name:
                    self._pages.setdefault(widget.field_name, set()).add(page.number)

    @property
    def field_names(self) -> List[str]:
        return list(self.fields)

    def skip(self, name: str, reason: str, entity_index: Optional[int] = None) -> None:
        logger.debug("Skipping %s (%s)", name, reason)
        self.skipped.append(SkippedField(pdf_field_name=name, reason=reason, entity_index=entity_index))

    def write_all(
        self,
        names: Iterable[str],
        value: Any,
        source: str,
        entity_index: Optional[int] = None,
    ) -> int:
        count = 0
        for name in names:
            try:
                reason = self._write(name, value)
            except Exception as exc:
                logger.warning("Failed to write field '%s': %s", name, exc)
                reason = f"write failed: {exc}"
            if reason:
                self.skip(name, reason, entity_index)
                continue
            count += 1
            if name not in self.written:
                self.written.append(name)
            logger.debug("Filled '%s' <- %s", name, source)
        return count

    def _write(self, name: str, value: Any) -> Optional[str]:
        form_field = self.fields[name]
        control = form_field.control_type
        text = coerce_text(value, self.affirmative, self.negative)
        checked = coerce_checked(value, self.affirmative)

        if control is ControlType.DROPDOWN and form_field.options and text not in form_field.options:
            return f"value '{text}' is not one of the dropdown options"
        if control not in (ControlType.TEXT, ControlType.CHECKBOX, ControlType.DROPDOWN):
            return f"unsupported control type '{control.value}'"

        touched = False
        for page_number in sorted(self._pages.get(name, ())):
            page = self.doc[page_number]
            for widget in page.widgets():
                if widget.field_name != name:
                    continue
                if control is ControlType.CHECKBOX:
                    widget.field_value = widget.on_state() if checked else "Off"
                else:
                    widget.field_value = text
                    if widget.text_fontsize and widget.text_fontsize > MAX_TEXT_FONT_SIZE:
                        widget.text_fontsize = MAX_TEXT_FONT_SIZE
                widget.update()
                touched = True
        return None if touched else "field has no widget"


class FillEngine:
    """Produces filled, flattened copies of match-sheet templates."""

    def __init__(
        self,
        inspector: Optional[FormInspector] = None,
        club_name: str = DEFAULT_CLUB_NAME,
        affirmative: str = AFFIRMATIVE,
        negative: str = NEGATIVE,
    ):
        self.inspector = inspector or FormInspector()
        self.club_name = club_name
        self.affirmative = affirmative
        self.negative = negative

    def fill(
        self,
        template_bytes: bytes,
        request: FillRequest,
        mappings: Optional[List[FieldMapping]] = None,
        flatten: bool = True,
        filename: str = "",
    ) -> FilledDocument:
        fields = self.inspector.inspect(template_bytes)
        if not fields:
            logger.info("Template %s has no form fields; returning it unchanged", request.template.name)
            return FilledDocument(content=bytes(template_bytes), filename=filename, flattened=True)

        try:
            doc = fitz.open(stream=template_bytes, filetype="pdf")
        except Exception as exc:
            raise MalformedDocument(f"Unable to open PDF: {exc}") from exc

        try:
            entries = request.template.field_mappings if mappings is None else mappings
            context = build_context(request, self.club_name)
            writer = _FormWriter(doc, fields, self.affirmative, self.negative)

            if entries:
                logger.info("Applying %d field mappings to %d form fields", len(entries), len(fields))
                self._apply_mappings(writer, entries, context)
            else:
                logger.info("No field mappings configured, using naming conventions")
                self._apply_conventions(writer, context)

            flattened = False
            if flatten:
                try:
                    doc.bake(annots=False, widgets=True)
                    flattened = True
                except Exception as exc:
                    logger.warning("Failed to flatten form, returning it editable: %s", exc)

            content = doc.tobytes(deflate=True)
        finally:
            doc.close()

        if not writer.written:
            logger.warning("No form field of template %s was filled", request.template.name)
        logger.info(
            "Filled template %s (%d fields written, %d skipped)",
            request.template.name,
            len(writer.written),
            len(writer.skipped),
        )
        return FilledDocument(
            content=content,
            filename=filename,
            written_fields=list(writer.written),
            skipped=list(writer.skipped),
            flattened=flattened,
        )

    # ------------------------------------------------------------------
    # Mapping-driven fill
    # ------------------------------------------------------------------
    def _apply_mappings(self, writer: _FormWriter, entries: Iterable[FieldMapping], context: DataContext) -> None:
        for entry in entries:
            try:
                if entry.kind is MappingKind.GLOBAL:
                    self._apply_global(writer, entry, context)
                elif entry.kind is MappingKind.PLAYER:
                    self._apply_repeated(writer, entry, context.players)
                elif entry.kind is MappingKind.COACH:
                    self._apply_repeated(writer, entry, context.educators)
                else:
                    writer.skip(entry.pdf_field_name, "kind 'other' is never applied")
            except Exception as exc:
                logger.warning("Error while filling mapping '%s': %s", entry.pdf_field_name, exc)
                writer.skip(entry.pdf_field_name, f"error: {exc}")

    def _apply_global(self, writer: _FormWriter, entry: FieldMapping, context: DataContext) -> None:
        value = context.global_context.resolve(entry.target_path)
        if value is None:
            writer.skip(entry.pdf_field_name, f"no value for '{entry.target_path}'")
            return
        if value == "":
            writer.skip(entry.pdf_field_name, f"empty value for '{entry.target_path}'")
            return
        names = resolve_field_names(entry.pdf_field_name, writer.field_names)
        if not names:
            writer.skip(entry.pdf_field_name, "no matching form field")
            return
        writer.write_all(names, value, entry.target_path)

    def _apply_repeated(self, writer: _FormWriter, entry: FieldMapping, entities: Sequence) -> None:
        for entity in entities:
            value = entity.resolve(entry.target_path)
            if value is None:
                writer.skip(entry.pdf_field_name, f"no value for '{entry.target_path}'", entity.index)
                continue
            if value == "":
                writer.skip(entry.pdf_field_name, f"empty value for '{entry.target_path}'", entity.index)
                continue
            names = resolve_indexed_field_names(entry.pdf_field_name, entity.index, writer.field_names)
            if not names:
                writer.skip(entry.pdf_field_name, "no matching form field", entity.index)
                continue
            writer.write_all(names, value, entry.target_path, entity.index)

    # ------------------------------------------------------------------
    # Convention fallback
    # ------------------------------------------------------------------
    def _apply_conventions(self, writer: _FormWriter, context: DataContext) -> None:
        for field_name, path in CONVENTION_GLOBALS.items():
            value = context.global_context.resolve(path)
            if value is None or value == "":
                continue
            writer.write_all(resolve_field_names(field_name, writer.field_names), value, path)

        for player in context.players:
            self._apply_entity_conventions(
                writer, player, CONVENTION_PLAYER_PREFIXES, CONVENTION_PLAYER_ATTRIBUTES
            )
        for coach in context.educators:
            self._apply_entity_conventions(
                writer, coach, CONVENTION_COACH_PREFIXES, CONVENTION_COACH_ATTRIBUTES
            )

    @staticmethod
    def _apply_entity_conventions(
        writer: _FormWriter,
        entity,
        prefixes: Sequence[str],
        attributes: Sequence[str],
    ) -> None:
        for attribute in attributes:
            value = entity.resolve(attribute)
            if value is None or value == "":
                continue
            for prefix in prefixes:
                names = resolve_field_names(f"{prefix}{entity.index}_{attribute}", writer.field_names)
                writer.write_all(names, value, attribute, entity.index)
