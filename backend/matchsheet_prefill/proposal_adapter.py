"""
Mapping Proposal Adapter

Sends the extracted text of a match-sheet template to an OpenAI-compatible
chat completion endpoint and turns the answer into `FieldMapping` proposals.

The service answers with items shaped like

    {"champ_pdf": "...", "type": "joueur|educateur|global|autre",
     "mapping": "joueur.nom", "valeur_possible": ["..."]}

Items that fail validation are dropped and logged; they never surface as
errors. Only transport failures raise `ProposalServiceUnavailable`.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, List, Optional, Sequence

from openai import OpenAI, OpenAIError

from .errors import ProposalServiceUnavailable
from .models import FieldMapping, MappingKind

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
MAX_TEXT_CHARS = 8000
WRAPPER_KEYS = ("champs", "fields", "mappings", "items")

SYSTEM_PROMPT = (
    "Tu es un assistant spécialisé dans l'analyse de feuilles de match de rugby "
    "au format PDF et la détection de leurs champs de formulaire."
)

PROMPT_TEMPLATE = """Voici le texte extrait d'un modèle de feuille de match de rugby :

{text}
{fields_block}
TÂCHE :
Identifie chaque champ à remplir et associe-le à notre structure de données.

Types possibles :
- "joueur" : une information répétée pour chaque joueur
- "educateur" : une information répétée pour chaque éducateur
- "global" : une information du tournoi (nom, date, lieu, catégorie, club)
- "autre" : tout le reste

Structure de nos données :
- joueur : nom, prenom, licence, avant, arbitre
- educateur : nom, prenom, licence, diplome, referent
- tournoi : nom, date, lieu, categorie, club_organisateur

RÈGLES :
1. "champ_pdf" reprend le nom du champ tel qu'il apparaît dans le PDF.
2. Pour un champ répété, remplace le numéro de ligne par [n] (ex. "joueur_nom[n]").
3. "mapping" est un chemin pointé, par ex. "joueur.nom" ou "tournoi.date".
4. "valeur_possible" est optionnel : exemples de valeurs lues dans le document.

Réponds UNIQUEMENT avec un objet JSON :
{{"champs": [{{"champ_pdf": "...", "type": "...", "mapping": "...", "valeur_possible": ["..."]}}]}}
"""


def _strip_fences(content: str) -> str:
    content = content.strip()
    if content.startswith("```json"):
        content = content.replace("```json", "", 1)
    if content.startswith("```"):
        content = content.replace("```", "", 1)
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def _unwrap(payload: Any) -> Optional[list]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in WRAPPER_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
        # A single proposal object.
        if "champ_pdf" in payload:
            return [payload]
    return None


def parse_proposals(payload: Any) -> List[FieldMapping]:
    """Validate raw proposal items, dropping the malformed ones."""
    items = _unwrap(payload)
    if items is None:
        logger.warning("Proposal response is not a list of fields: %r", type(payload).__name__)
        return []

    proposals: List[FieldMapping] = []
    dropped = 0
    for item in items:
        if not isinstance(item, dict):
            dropped += 1
            continue
        name = item.get("champ_pdf")
        target = item.get("mapping")
        kind = MappingKind.parse(item.get("type"))
        if not isinstance(name, str) or not name.strip():
            dropped += 1
            continue
        if not isinstance(target, str) or not target.strip() or kind is None:
            logger.debug("Dropping proposal for '%s': type=%r mapping=%r", name, item.get("type"), target)
            dropped += 1
            continue

        samples = item.get("valeur_possible")
        required = item.get("obligatoire")
        fmt = item.get("format")
        proposals.append(
            FieldMapping(
                pdf_field_name=name.strip(),
                kind=kind,
                target_path=target.strip(),
                sample_values=[str(v) for v in samples if v is not None] if isinstance(samples, list) else [],
                required=required if isinstance(required, bool) else None,
                format=fmt.strip() if isinstance(fmt, str) and fmt.strip() else None,
            )
        )

    if dropped:
        logger.info("Dropped %d malformed field proposals", dropped)
    return proposals


class MappingProposalAdapter:
    """Wraps the external classification call."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client=None,
    ):
        self.model = model or os.getenv("PROPOSAL_MODEL", DEFAULT_MODEL)
        api_key = api_key or os.getenv("PROPOSAL_API_KEY") or os.getenv("OPENAI_API_KEY")
        base_url = base_url or os.getenv("PROPOSAL_BASE_URL") or None
        self.client = client
        if self.client is None and api_key:
            self.client = OpenAI(api_key=api_key, base_url=base_url)

    def propose(self, extracted_text: str, field_names: Optional[Sequence[str]] = None) -> List[FieldMapping]:
        if not extracted_text or not extracted_text.strip():
            return []
        if self.client is None:
            raise ProposalServiceUnavailable("No classification service is configured (set OPENAI_API_KEY)")

        fields_block = ""
        if field_names:
            fields_block = "\nNOMS DES CHAMPS DE FORMULAIRE :\n" + "\n".join(f"- {n}" for n in field_names[:200]) + "\n"
        prompt = PROMPT_TEMPLATE.format(text=extracted_text[:MAX_TEXT_CHARS], fields_block=fields_block)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.2,
                max_tokens=4000,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            logger.error("Field classification call failed: %s", exc)
            raise ProposalServiceUnavailable(f"Classification service unavailable: {exc}") from exc

        content = response.choices[0].message.content or ""
        try:
            payload = json.loads(_strip_fences(content))
        except ValueError as exc:
            logger.warning("Classification service returned invalid JSON: %s", exc)
            return []

        proposals = parse_proposals(payload)
        logger.info("Classification service proposed %d field mappings", len(proposals))
        return proposals
