from __future__ import annotations

import pytest

from conftest import page_text
from matchsheet_prefill import MatchSheetService, MatchSheetValidationError, TemplateNotFound
from matchsheet_prefill.models import FieldMapping, MappingKind, Template
from matchsheet_prefill.repository import InMemoryRepository
from matchsheet_prefill.service import validate_match_sheet


class FakeAdapter:
    def __init__(self, proposals=None):
        self.proposals = proposals or []
        self.calls: list[tuple[str, list]] = []

    def propose(self, extracted_text, field_names=None):
        self.calls.append((extracted_text, list(field_names or [])))
        return list(self.proposals)


PROPOSALS = [
    FieldMapping("nom_manifestation", MappingKind.GLOBAL, "tournoi.nom"),
    FieldMapping("joueur_nom[n]", MappingKind.PLAYER, "joueur.nom"),
]


@pytest.fixture
def service(tmp_path, monkeypatch: pytest.MonkeyPatch) -> MatchSheetService:
    monkeypatch.delenv("MATCHSHEET_S3_BUCKET", raising=False)
    return MatchSheetService(base_dir=tmp_path, proposal_adapter=FakeAdapter(PROPOSALS), club_name="US Nantua Rugby")


@pytest.fixture
def template_pdf(make_pdf) -> bytes:
    return make_pdf(
        [("nom_manifestation", "text"), ("joueur1_nom", "text"), ("joueur2_nom", "text")],
        heading="FEUILLE DE MATCH",
    )


def test_upload_and_inspect(service, template_pdf) -> None:
    result = service.upload_template("modele.pdf", template_pdf)

    assert result == {"filename": "modele.pdf", "path": "/templates/modele.pdf", "field_count": 3}
    assert service.list_templates() == ["modele.pdf"]
    assert [f.name for f in service.inspect_template("modele.pdf")] == [
        "nom_manifestation",
        "joueur1_nom",
        "joueur2_nom",
    ]


def test_unknown_template_raises(service) -> None:
    with pytest.raises(TemplateNotFound):
        service.inspect_template("absent.pdf")


def test_analysis_is_stored_once_and_reused(service, template_pdf) -> None:
    service.upload_template("modele.pdf", template_pdf)
    adapter = service.proposal_adapter

    first = service.analyze_template("modele.pdf")
    second = service.analyze_template("/templates/modele.pdf")

    assert first.from_store is False
    assert "FEUILLE DE MATCH" in adapter.calls[0][0]
    assert adapter.calls[0][1] == ["nom_manifestation", "joueur1_nom", "joueur2_nom"]
    assert second.from_store is True
    assert second.mappings == PROPOSALS
    assert len(adapter.calls) == 1

    service.analyze_template("modele.pdf", force=True)
    assert len(adapter.calls) == 2


def test_editor_commit_persists(service) -> None:
    service.save_mappings("modele.pdf", PROPOSALS)
    editor = service.mapping_editor("modele.pdf")
    editor.remove_at(0)

    service.commit_mappings("modele.pdf", editor)

    assert service.get_mappings("modele.pdf") == PROPOSALS[1:]


def test_generate_uses_stored_mapping_and_persists(service, template_pdf, fill_request) -> None:
    service.upload_template("modele.pdf", template_pdf)
    service.save_mappings("modele.pdf", PROPOSALS)

    document = service.generate(fill_request)

    assert document.filename.startswith("feuille_match_Stade_A_2025-05-17_")
    assert set(document.written_fields) == {"nom_manifestation", "joueur1_nom", "joueur2_nom"}
    assert document.flattened is True
    assert service.get_generated(document.filename) == document.content
    assert document.filename in service.binary_store.list("generated_pdfs")
    text = page_text(document.content)
    assert "Martin" in text and "Durand" in text


def test_template_mappings_take_precedence(service, template_pdf, fill_request) -> None:
    service.upload_template("modele.pdf", template_pdf)
    service.save_mappings("modele.pdf", PROPOSALS)
    fill_request.template.field_mappings = [FieldMapping("nom_manifestation", MappingKind.GLOBAL, "club")]

    document = service.generate(fill_request, persist=False)

    assert document.written_fields == ["nom_manifestation"]
    assert service.binary_store.list("generated_pdfs") == []


def test_generated_download_never_serves_templates(service, template_pdf) -> None:
    service.upload_template("modele.pdf", template_pdf)

    assert service.get_generated("modele.pdf") is None
    assert service.get_generated("templates/modele.pdf") is None


def test_validate_match_sheet_messages(tournament, players, coaches) -> None:
    template = Template(id="tpl1", name="modele.pdf", file_location="modele.pdf")

    assert validate_match_sheet(tournament, template, "u10", players, coaches, "c1") == []
    errors = validate_match_sheet(None, None, "", [], [], None)
    assert "Aucun tournoi sélectionné" in errors
    assert "Aucun joueur sélectionné" in errors
    assert "Aucun entraîneur référent sélectionné" in errors
    assert validate_match_sheet(tournament, template, "u10", players, coaches, "c9") == [
        "L'entraîneur référent doit faire partie des entraîneurs sélectionnés"
    ]


def test_create_match_sheet(tmp_path, monkeypatch, template_pdf, tournament, players, coaches) -> None:
    monkeypatch.delenv("MATCHSHEET_S3_BUCKET", raising=False)
    service = MatchSheetService(
        base_dir=tmp_path,
        proposal_adapter=FakeAdapter(),
        tournaments=InMemoryRepository([tournament]),
        templates=InMemoryRepository([Template(id="tpl1", name="modele.pdf", file_location="modele.pdf")]),
        players=InMemoryRepository(players),
        coaches=InMemoryRepository(coaches),
    )
    service.upload_template("modele.pdf", template_pdf)

    sheet = service.create_match_sheet("t1", "tpl1", "u10", "c1", ["p1", "p2"], ["c1", "c2"])

    assert sheet.pdf_url.startswith("/generated_pdfs/feuille_match_Stade_A_")
    assert sheet.player_ids == ["p1", "p2"]
    assert service.match_sheets.get(sheet.id) == sheet
    assert service.get_generated(sheet.pdf_url.split("/")[-1]) is not None

    with pytest.raises(MatchSheetValidationError) as excinfo:
        service.create_match_sheet("t1", "tpl1", "u10", "c1", [], ["c2"])
    assert "Aucun joueur sélectionné" in excinfo.value.errors
