"""
High-level service that exposes match-sheet pre-fill capabilities to the FastAPI layer.

Responsibilities
----------------
* store uploaded templates and list their form fields
* analyse a template once and keep the proposed mapping keyed by filename
* let operators edit and re-commit a mapping
* fill templates with tournament rosters and persist the result
* keep a small in-memory TTL cache for generated PDFs
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from cachetools import TTLCache

from .errors import MatchSheetValidationError, TemplateNotFound
from .export import GENERATED_BUCKET, BinaryStore, LocalBinaryStore, S3BinaryStore, generated_filename, logical_path
from .fill_engine import DEFAULT_CLUB_NAME, FillEngine
from .form_inspector import FormInspector
from .mapping_editor import MappingEditor
from .mapping_store import MappingStore, template_key
from .models import (
    Coach,
    FieldMapping,
    FilledDocument,
    FillRequest,
    FormField,
    MatchSheet,
    Player,
    Template,
    Tournament,
)
from .proposal_adapter import MappingProposalAdapter
from .repository import InMemoryRepository, Repository

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    key: str
    mappings: List[FieldMapping]
    from_store: bool
    fields: List[FormField] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "from_store": self.from_store,
            "mappings": [m.to_wire() for m in self.mappings],
            "fields": [f.to_dict() for f in self.fields],
        }


def validate_match_sheet(
    tournament: Optional[Tournament],
    template: Optional[Template],
    age_category_id: Optional[str],
    players: List[Player],
    coaches: List[Coach],
    referent_coach_id: Optional[str],
) -> List[str]:
    """Return the list of problems preventing a match sheet from being created."""
    errors: List[str] = []
    if tournament is None:
        errors.append("Aucun tournoi sélectionné")
    if template is None:
        errors.append("Aucun modèle de feuille sélectionné")
    if not age_category_id:
        errors.append("Aucune catégorie d'âge sélectionnée")
    if not players:
        errors.append("Aucun joueur sélectionné")
    if not coaches:
        errors.append("Aucun entraîneur sélectionné")
    if not referent_coach_id:
        errors.append("Aucun entraîneur référent sélectionné")
    elif not any(c.id == referent_coach_id for c in coaches):
        errors.append("L'entraîneur référent doit faire partie des entraîneurs sélectionnés")
    return errors


class MatchSheetService:
    def __init__(
        self,
        base_dir: Optional[Path] = None,
        binary_store: Optional[BinaryStore] = None,
        proposal_adapter: Optional[MappingProposalAdapter] = None,
        club_name: Optional[str] = None,
        s3_client=None,
        tournaments: Optional[Repository] = None,
        templates: Optional[Repository] = None,
        players: Optional[Repository] = None,
        coaches: Optional[Repository] = None,
        match_sheets: Optional[Repository] = None,
    ):
        self.base_dir = Path(
            base_dir
            or os.getenv("MATCHSHEET_BASE_DIR")
            or Path(__file__).resolve().parent.parent / "data"
        )
        self.base_dir.mkdir(parents=True, exist_ok=True)

        self.club_name = club_name or os.getenv("CLUB_NAME", DEFAULT_CLUB_NAME)
        self.inspector = FormInspector()
        self.fill_engine = FillEngine(inspector=self.inspector, club_name=self.club_name)
        self.mapping_store = MappingStore(self.base_dir)
        self.proposal_adapter = proposal_adapter or MappingProposalAdapter()

        s3_bucket = os.getenv("MATCHSHEET_S3_BUCKET")
        if binary_store is not None:
            self.binary_store = binary_store
        elif s3_bucket:
            self.binary_store = S3BinaryStore(s3_bucket, s3_client=s3_client)
        else:
            self.binary_store = LocalBinaryStore(self.base_dir)

        self.tournaments = tournaments or InMemoryRepository()
        self.templates = templates or InMemoryRepository()
        self.players = players or InMemoryRepository()
        self.coaches = coaches or InMemoryRepository()
        self.match_sheets = match_sheets or InMemoryRepository()

        ttl = int(os.getenv("GENERATED_CACHE_TTL", "3600"))
        self._pdf_cache: TTLCache = TTLCache(maxsize=64, ttl=ttl)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def upload_template(self, filename: str, content: bytes) -> dict:
        fields = self.inspector.inspect(content)
        path = self.binary_store.store(template_key(filename), content)
        logger.info("Uploaded template %s with %d form fields", filename, len(fields))
        return {"filename": template_key(filename), "path": path, "field_count": len(fields)}

    def list_templates(self) -> List[str]:
        return self.binary_store.list()

    def inspect_template(self, locator: str) -> List[FormField]:
        return self.inspector.inspect(self._load_template(locator))

    # ------------------------------------------------------------------
    # Mapping analysis + editing
    # ------------------------------------------------------------------
    def analyze_template(self, locator: str, force: bool = False) -> AnalysisResult:
        key = template_key(locator)
        if not force:
            existing = self.mapping_store.get(key)
            if existing is not None:
                logger.info("Reusing stored mapping for %s (%d entries)", key, len(existing))
                return AnalysisResult(key=key, mappings=existing, from_store=True)

        content = self._load_template(locator)
        fields = self.inspector.inspect(content)
        text = self.inspector.extract_text(content)
        proposals = self.proposal_adapter.propose(text, [f.name for f in fields])

        self.mapping_store.put(key, proposals)
        logger.info("Analysed template %s: %d proposals for %d form fields", key, len(proposals), len(fields))
        return AnalysisResult(key=key, mappings=proposals, from_store=False, fields=fields)

    def get_mappings(self, locator: str) -> Optional[List[FieldMapping]]:
        return self.mapping_store.get(template_key(locator))

    def save_mappings(self, locator: str, entries: List[FieldMapping]) -> List[FieldMapping]:
        return self.commit_mappings(locator, MappingEditor(entries))

    def mapping_editor(self, locator: str) -> MappingEditor:
        return MappingEditor(self.get_mappings(locator) or [])

    def commit_mappings(self, locator: str, editor: MappingEditor) -> List[FieldMapping]:
        entries = editor.commit()
        self.mapping_store.put(template_key(locator), entries)
        return entries

    # ------------------------------------------------------------------
    # PDF generation / storage
    # ------------------------------------------------------------------
    def generate(self, request: FillRequest, persist: bool = True) -> FilledDocument:
        locator = request.template.file_location or request.template.name
        content = self._load_template(locator)

        mappings = list(request.template.field_mappings)
        if not mappings:
            mappings = self.mapping_store.get(template_key(locator)) or []

        filename = generated_filename(request.tournament)
        document = self.fill_engine.fill(content, request, mappings=mappings, filename=filename)

        if persist:
            self.binary_store.store(filename, document.content)
        self._pdf_cache[filename] = document.content
        return document

    def get_generated(self, filename: str) -> Optional[bytes]:
        cached = self._pdf_cache.get(filename)
        if cached is not None:
            return cached
        content = self.binary_store.retrieve(filename, bucket=GENERATED_BUCKET)
        if content is not None:
            self._pdf_cache[filename] = content
        return content

    def create_match_sheet(
        self,
        tournament_id: str,
        template_id: str,
        age_category_id: str,
        referent_coach_id: str,
        player_ids: List[str],
        coach_ids: List[str],
    ) -> MatchSheet:
        tournament = self.tournaments.get(tournament_id) if tournament_id else None
        template = self.templates.get(template_id) if template_id else None
        players = [p for p in (self.players.get(pid) for pid in player_ids) if p is not None]
        coaches = [c for c in (self.coaches.get(cid) for cid in coach_ids) if c is not None]

        errors = validate_match_sheet(tournament, template, age_category_id, players, coaches, referent_coach_id)
        if errors:
            raise MatchSheetValidationError(errors)

        document = self.generate(
            FillRequest(
                template=template,
                tournament=tournament,
                players=players,
                coaches=coaches,
                referent_coach_id=referent_coach_id,
            )
        )
        sheet = MatchSheet(
            id=str(uuid.uuid4()),
            tournament_id=tournament_id,
            template_id=template_id,
            age_category_id=age_category_id,
            referent_coach_id=referent_coach_id,
            player_ids=[p.id for p in players],
            coach_ids=[c.id for c in coaches],
            pdf_url=logical_path(document.filename),
        )
        return self.match_sheets.create(sheet)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load_template(self, locator: str) -> bytes:
        content = self.binary_store.retrieve(locator)
        if content is None:
            raise TemplateNotFound(f"Template '{locator}' not found")
        return content
