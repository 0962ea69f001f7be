from __future__ import annotations

import json
from types import SimpleNamespace

import openai
import pytest

from matchsheet_prefill.errors import ProposalServiceUnavailable
from matchsheet_prefill.models import MappingKind
from matchsheet_prefill.proposal_adapter import MappingProposalAdapter, parse_proposals


class FakeCompletions:
    def __init__(self, content: str = "", error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_parse_proposals_drops_malformed_items() -> None:
    payload = [
        {"champ_pdf": "nom_manifestation", "type": "global", "mapping": "tournoi.nom"},
        {"champ_pdf": "joueur_nom[n]", "type": "joueur", "mapping": "joueur.nom", "valeur_possible": ["DUPONT"]},
        {"champ_pdf": "sans_mapping", "type": "global"},
        {"champ_pdf": "vide", "type": "global", "mapping": "  "},
        {"champ_pdf": "mauvais_type", "type": "arbitre", "mapping": "x"},
        {"type": "global", "mapping": "tournoi.lieu"},
        "pas un objet",
    ]

    proposals = parse_proposals(payload)

    assert [p.pdf_field_name for p in proposals] == ["nom_manifestation", "joueur_nom[n]"]
    assert proposals[1].kind is MappingKind.PLAYER
    assert proposals[1].sample_values == ["DUPONT"]
    assert all(p.target_path.strip() for p in proposals)


def test_parse_proposals_accepts_wrapped_object() -> None:
    payload = {"champs": [{"champ_pdf": "educateur_nom[n]", "type": "educateur", "mapping": "educateur.nom"}]}

    proposals = parse_proposals(payload)

    assert len(proposals) == 1
    assert proposals[0].kind is MappingKind.COACH
    assert parse_proposals({"champs": []}) == []
    assert parse_proposals("nonsense") == []


def test_propose_calls_service_in_json_mode() -> None:
    completions = FakeCompletions(
        "```json\n"
        + json.dumps({"champs": [{"champ_pdf": "club", "type": "global", "mapping": "tournoi.club_organisateur"}]})
        + "\n```"
    )
    adapter = MappingProposalAdapter(client=_client(completions), model="test-model")

    proposals = adapter.propose("FEUILLE DE MATCH\nClub :", field_names=["club"])

    assert [p.pdf_field_name for p in proposals] == ["club"]
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] == {"type": "json_object"}
    assert "FEUILLE DE MATCH" in call["messages"][-1]["content"]
    assert "- club" in call["messages"][-1]["content"]


def test_blank_text_returns_nothing_without_calling_service() -> None:
    completions = FakeCompletions("[]")
    adapter = MappingProposalAdapter(client=_client(completions))

    assert adapter.propose("   ") == []
    assert completions.calls == []


def test_invalid_json_yields_empty_list() -> None:
    adapter = MappingProposalAdapter(client=_client(FakeCompletions("désolé, je ne peux pas")))
    assert adapter.propose("texte") == []


def test_transport_failure_raises_unavailable() -> None:
    completions = FakeCompletions(error=openai.OpenAIError("quota exceeded"))
    adapter = MappingProposalAdapter(client=_client(completions))

    with pytest.raises(ProposalServiceUnavailable):
        adapter.propose("texte")


def test_unconfigured_client_raises_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("PROPOSAL_API_KEY", raising=False)
    adapter = MappingProposalAdapter()

    assert adapter.client is None
    with pytest.raises(ProposalServiceUnavailable):
        adapter.propose("texte")
