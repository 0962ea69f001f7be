"""
Data context for the fill engine.

A fill request is flattened into three kinds of context: one `GlobalContext`
(tournament, club, roster counts), one `PlayerContext` per roster entry and
one `CoachContext` per coach. Every context resolves a mapping's target path
to a value or to None; resolution never raises.
"""

from __future__ import annotations

import datetime as dt
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .models import Coach, FillRequest, Player, as_date

MISSING = None

PLAYER_ATTRIBUTES: Dict[str, str] = {
    "lastname": "last_name",
    "nom": "last_name",
    "name": "last_name",
    "surname": "last_name",
    "nomdefamille": "last_name",
    "firstname": "first_name",
    "prenom": "first_name",
    "givenname": "first_name",
    "licensenumber": "license_number",
    "license": "license_number",
    "licence": "license_number",
    "numerolicence": "license_number",
    "licencenumber": "license_number",
    "canplayforward": "can_play_forward",
    "avant": "can_play_forward",
    "estavant": "can_play_forward",
    "peutjoueravant": "can_play_forward",
    "forward": "can_play_forward",
    "canreferee": "can_referee",
    "arbitre": "can_referee",
    "estarbitre": "can_referee",
    "peutarbitrer": "can_referee",
    "referee": "can_referee",
    "dateofbirth": "date_of_birth",
    "datenaissance": "date_of_birth",
    "birthdate": "date_of_birth",
}

COACH_ATTRIBUTES: Dict[str, str] = {
    "lastname": "last_name",
    "nom": "last_name",
    "name": "last_name",
    "surname": "last_name",
    "firstname": "first_name",
    "prenom": "first_name",
    "givenname": "first_name",
    "licensenumber": "license_number",
    "license": "license_number",
    "licence": "license_number",
    "numerolicence": "license_number",
    "diploma": "diploma",
    "diplome": "diploma",
    "isreferent": "is_referent",
    "referent": "is_referent",
    "estreferent": "is_referent",
}


def normalize_token(text: str) -> str:
    """Lowercase, strip accents and separators: 'Prénom_Joueur' -> 'prenomjoueur'."""
    decomposed = unicodedata.normalize("NFKD", text)
    ascii_text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "".join(ch for ch in ascii_text.lower() if ch.isalnum())


def format_date(value: Union[dt.date, str, None]) -> Optional[str]:
    """Render a date the way French match sheets expect it (DD/MM/YYYY)."""
    if value is None or value == "":
        return None
    try:
        return as_date(value).strftime("%d/%m/%Y")
    except (TypeError, ValueError):
        return str(value)


def iso_date(value: Union[dt.date, str, None]) -> Optional[str]:
    """ISO form of a date, or None when the value does not parse."""
    if value is None or value == "":
        return None
    try:
        return as_date(value).isoformat()
    except (TypeError, ValueError):
        return None


def resolve_path(record: Any, path: str) -> Any:
    """Walk a dotted path through nested mappings.

    Keys are matched exactly first, then on their normalized form. Missing
    segments, non-mapping intermediates and empty paths all yield None.
    """
    if not path or not path.strip():
        return MISSING
    current = record
    for segment in path.strip().split("."):
        if not isinstance(current, Mapping):
            return MISSING
        if segment in current:
            current = current[segment]
            continue
        wanted = normalize_token(segment)
        for key, value in current.items():
            if normalize_token(str(key)) == wanted:
                current = value
                break
        else:
            return MISSING
    return current


def _last_segment(path: str) -> str:
    return path.strip().split(".")[-1] if path else ""


@dataclass
class GlobalContext:
    values: Dict[str, Any] = field(default_factory=dict)

    def resolve(self, target_path: str) -> Any:
        path = target_path.strip()
        if normalize_token(path.split(".")[0]) == "global":
            path = path.split(".", 1)[1] if "." in path else ""
        value = resolve_path(self.values, path)
        # Intermediate records are not writable values.
        return MISSING if isinstance(value, Mapping) else value


@dataclass
class PlayerContext:
    index: int
    player: Player

    def record(self) -> Dict[str, Any]:
        p = self.player
        return {
            "last_name": p.last_name,
            "first_name": p.first_name,
            "license_number": p.license_number,
            "can_play_forward": p.can_play_forward,
            "can_referee": p.can_referee,
            "date_of_birth": format_date(p.date_of_birth),
        }

    def resolve(self, target_path: str) -> Any:
        attribute = PLAYER_ATTRIBUTES.get(normalize_token(_last_segment(target_path)))
        if attribute is None:
            return MISSING
        return self.record().get(attribute)


@dataclass
class CoachContext:
    index: int
    coach: Coach
    is_referent: bool = False

    def record(self) -> Dict[str, Any]:
        c = self.coach
        return {
            "last_name": c.last_name,
            "first_name": c.first_name,
            "license_number": c.license_number or "",
            "diploma": c.diploma,
            "is_referent": self.is_referent,
        }

    def resolve(self, target_path: str) -> Any:
        if "referent" in normalize_token(target_path):
            return self.is_referent
        attribute = COACH_ATTRIBUTES.get(normalize_token(_last_segment(target_path)))
        if attribute is None:
            return MISSING
        return self.record().get(attribute)


@dataclass
class DataContext:
    global_context: GlobalContext
    players: List[PlayerContext]
    educators: List[CoachContext]


def build_context(request: FillRequest, club_name: str) -> DataContext:
    tournament = request.tournament
    display_date = format_date(tournament.date)
    event_name = tournament.name or tournament.location
    referent = next((c for c in request.coaches if c.id == request.referent_coach_id), None)

    referent_block: Dict[str, Any] = {}
    if referent is not None:
        referent_block = {
            "nom": referent.last_name,
            "prenom": referent.first_name,
            "licence": referent.license_number or "",
            "diplome": referent.diploma,
            "nom_complet": f"{referent.last_name} {referent.first_name}".strip(),
        }

    values: Dict[str, Any] = {
        "tournament": {
            "name": event_name,
            "location": tournament.location,
            "date": display_date,
            "iso_date": iso_date(tournament.date),
            "category": tournament.category,
            "club": club_name,
        },
        "tournoi": {
            "nom": event_name,
            "lieu": tournament.location,
            "date": display_date,
            "categorie": tournament.category,
            "club_organisateur": club_name,
            "club": club_name,
        },
        "club": club_name,
        "nom_manifestation": event_name,
        "lieu_manifestation": tournament.location,
        "date_manifestation": display_date,
        "categorie": tournament.category,
        "category": tournament.category,
        "referent": referent_block,
        "joueurs": "\n".join(f"{p.last_name} {p.first_name}" for p in request.players),
        "educateurs": "\n".join(f"{c.last_name} {c.first_name}" for c in request.coaches),
        "nombre_joueurs": len(request.players),
        "nombre_educateurs": len(request.coaches),
        "nombre_avants": sum(1 for p in request.players if p.can_play_forward),
        "nombre_arbitres": sum(1 for p in request.players if p.can_referee),
    }

    return DataContext(
        global_context=GlobalContext(values=values),
        players=[PlayerContext(index=i, player=p) for i, p in enumerate(request.players, start=1)],
        educators=[
            CoachContext(index=i, coach=c, is_referent=c.id == request.referent_coach_id)
            for i, c in enumerate(request.coaches, start=1)
        ],
    )
