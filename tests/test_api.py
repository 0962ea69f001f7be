from __future__ import annotations

import base64

import httpx
import pytest

import main
from matchsheet_prefill import MatchSheetService, ProposalServiceUnavailable
from matchsheet_prefill.models import FieldMapping, MappingKind


class FakeAdapter:
    def __init__(self, error: Exception | None = None):
        self.error = error

    def propose(self, extracted_text, field_names=None):
        if self.error is not None:
            raise self.error
        return [FieldMapping("nom_manifestation", MappingKind.GLOBAL, "tournoi.lieu")]


@pytest.fixture
def service(tmp_path, monkeypatch: pytest.MonkeyPatch) -> MatchSheetService:
    monkeypatch.delenv("MATCHSHEET_S3_BUCKET", raising=False)
    svc = MatchSheetService(base_dir=tmp_path, proposal_adapter=FakeAdapter())
    monkeypatch.setattr(main, "matchsheet_service", svc)
    return svc


def _client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=main.app)
    return httpx.AsyncClient(transport=transport, base_url="http://testserver")


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


GENERATE_PAYLOAD = {
    "template": {"name": "modele.pdf"},
    "tournament": {"location": "Stade A", "date": "2025-05-17", "category": "U10"},
    "players": [{"last_name": "Martin", "first_name": "Thomas", "can_play_forward": True}],
    "coaches": [{"id": "c1", "last_name": "Bernard", "first_name": "Paul"}],
    "referent_coach_id": "c1",
    "persist": True,
}


@pytest.mark.anyio
async def test_health(service) -> None:
    async with _client() as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_upload_list_and_fields(service, make_pdf) -> None:
    pdf = make_pdf([("nom_manifestation", "text"), ("arbitre1", "checkbox")])

    async with _client() as client:
        upload = await client.post("/templates/modele.pdf", json={"pdf_base64": _b64(pdf)})
        listing = await client.get("/templates")
        fields = await client.get("/templates/modele.pdf/fields")

    assert upload.status_code == 200
    assert upload.json()["field_count"] == 2
    assert listing.json() == {"templates": ["modele.pdf"]}
    assert fields.json()["fields"] == [
        {"name": "nom_manifestation", "control_type": "text", "options": []},
        {"name": "arbitre1", "control_type": "checkbox", "options": []},
    ]


@pytest.mark.anyio
async def test_upload_rejects_bad_payloads(service) -> None:
    async with _client() as client:
        not_pdf = await client.post("/templates/x.pdf", json={"pdf_base64": _b64(b"hello world")})
        not_base64 = await client.post("/templates/x.pdf", json={"pdf_base64": "***"})
        missing = await client.get("/templates/absent.pdf/fields")

    assert not_pdf.status_code == 422
    assert not_base64.status_code == 400
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_analyze_then_reuse(service, make_pdf) -> None:
    service.upload_template("modele.pdf", make_pdf([("nom_manifestation", "text")], heading="FEUILLE"))

    async with _client() as client:
        first = await client.post("/templates/modele.pdf/analyze")
        second = await client.post("/templates/modele.pdf/analyze")
        stored = await client.get("/mappings/modele.pdf")

    assert first.json()["from_store"] is False
    assert second.json()["from_store"] is True
    assert stored.json()["mappings"] == [
        {"champ_pdf": "nom_manifestation", "type": "global", "mapping": "tournoi.lieu"}
    ]


@pytest.mark.anyio
async def test_analyze_maps_unavailable_service_to_503(service, make_pdf, monkeypatch) -> None:
    service.upload_template("modele.pdf", make_pdf([("club", "text")], heading="FEUILLE"))
    monkeypatch.setattr(service, "proposal_adapter", FakeAdapter(ProposalServiceUnavailable("down")))

    async with _client() as client:
        response = await client.post("/templates/modele.pdf/analyze", params={"force": True})

    assert response.status_code == 503
    assert service.get_mappings("modele.pdf") is None


@pytest.mark.anyio
async def test_mapping_entry_editing(service) -> None:
    entry = {"champ_pdf": "joueur_nom[n]", "type": "joueur", "mapping": "joueur.nom"}

    async with _client() as client:
        absent = await client.get("/mappings/modele.pdf")
        saved = await client.put("/mappings/modele.pdf", json={"mappings": [entry]})
        appended = await client.post(
            "/mappings/modele.pdf/entries",
            json={"champ_pdf": "club", "type": "global", "mapping": "club"},
        )
        replaced = await client.put(
            "/mappings/modele.pdf/entries/0",
            json={"champ_pdf": "joueur_prenom[n]", "type": "joueur", "mapping": "joueur.prenom"},
        )
        out_of_range = await client.delete("/mappings/modele.pdf/entries/5")
        removed = await client.delete("/mappings/modele.pdf/entries/1")
        incomplete = await client.post(
            "/mappings/modele.pdf/entries", json={"champ_pdf": "x", "type": "global", "mapping": ""}
        )
        bad_type = await client.post(
            "/mappings/modele.pdf/entries", json={"champ_pdf": "x", "type": "arbitre", "mapping": "y"}
        )

    assert absent.status_code == 404
    assert saved.status_code == 200
    assert [m["champ_pdf"] for m in appended.json()["mappings"]] == ["joueur_nom[n]", "club"]
    assert replaced.json()["mappings"][0]["champ_pdf"] == "joueur_prenom[n]"
    assert out_of_range.status_code == 404
    assert removed.json()["removed"]["champ_pdf"] == "club"
    assert incomplete.status_code == 400
    assert bad_type.status_code == 400
    assert [m.pdf_field_name for m in service.get_mappings("modele.pdf")] == ["joueur_prenom[n]"]


@pytest.mark.anyio
async def test_generate_and_download(service, make_pdf) -> None:
    service.upload_template("modele.pdf", make_pdf([("player1_nom", "text"), ("lieu_manifestation", "text")]))

    async with _client() as client:
        generated = await client.post("/match-sheets/generate", json=GENERATE_PAYLOAD)
        body = generated.json()
        download = await client.get(body["metadata"]["pdf_url"])

    assert generated.status_code == 200
    assert body["metadata"]["filename"].startswith("feuille_match_Stade_A_2025-05-17_")
    assert set(body["metadata"]["written_fields"]) == {"player1_nom", "lieu_manifestation"}
    assert base64.b64decode(body["pdf_base64"]).startswith(b"%PDF")
    assert download.status_code == 200
    assert download.headers["content-type"] == "application/pdf"
    assert download.content == base64.b64decode(body["pdf_base64"])


@pytest.mark.anyio
async def test_generate_unknown_template_is_404(service) -> None:
    async with _client() as client:
        response = await client.post("/match-sheets/generate", json=GENERATE_PAYLOAD)
        download = await client.get("/generated_pdfs/absent.pdf")

    assert response.status_code == 404
    assert download.status_code == 404


@pytest.mark.anyio
async def test_generated_route_does_not_expose_templates(service, make_pdf) -> None:
    service.upload_template("modele.pdf", make_pdf([("nom_manifestation", "text")]))

    async with _client() as client:
        download = await client.get("/generated_pdfs/modele.pdf")

    assert download.status_code == 404
