"""
Candidate field-name generation.

Mapping entries name PDF fields the way a reviewer (or the classifier) saw them,
which rarely matches the AcroForm name byte for byte. These helpers expand one
name into a bounded, ordered list of candidates and intersect that list with
the names that actually exist in a document. Nothing here touches a PDF.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List

PREFIXES = ("field_", "field", "txt_", "txt", "fld_", "fld", "text_")
SUFFIXES = ("_field", "_txt", "_fld")

_BRACKET_TOKEN = "[n]"
_BRACE_TOKEN = "{n}"
_TRAILING_N = re.compile(r"(?<=[^A-Za-z])n$")
_EMBEDDED_N = re.compile(r"(?<=[^A-Za-z])n(?=[^A-Za-z])")
_PLACEHOLDER = re.compile(r"\[n\]|\{n\}|(?<=[^A-Za-z])n(?=[^A-Za-z]|$)")
_SEPARATORS = re.compile(r"[\s_\-]+")


def _ordered_unique(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _strip_decorations(name: str) -> str:
    lowered = name.lower()
    for prefix in PREFIXES:
        if lowered.startswith(prefix) and len(name) > len(prefix):
            name = name[len(prefix):]
            lowered = name.lower()
            break
    for suffix in SUFFIXES:
        if lowered.endswith(suffix) and len(name) > len(suffix):
            name = name[: -len(suffix)]
            break
    return name


def name_variants(name: str) -> List[str]:
    """Expand a field name into case, separator and affix variants.

    The literal name always comes first.
    """
    name = name.strip()
    if not name:
        return []

    cores = _ordered_unique([name, _strip_decorations(name)])
    shapes: List[str] = []
    for core in cores:
        for cased in (core, core.lower(), core.upper(), core.title()):
            shapes.extend(
                [
                    cased,
                    re.sub(r"\s+", "_", cased),
                    re.sub(r"\s+", "-", cased),
                    cased.replace("_", " "),
                    cased.replace("-", "_"),
                    cased.replace("_", "-"),
                    _SEPARATORS.sub("", cased),
                ]
            )
    shapes = _ordered_unique(shapes)

    decorated: List[str] = []
    for shape in _ordered_unique([name, name.lower(), re.sub(r"\s+", "_", name.lower())]):
        decorated.extend(prefix + shape for prefix in PREFIXES)
        decorated.extend(shape + suffix for suffix in SUFFIXES)

    return _ordered_unique(shapes + decorated)


def index_candidates(name: str, index: int) -> List[str]:
    """Names a repeated field may take for the entity at 1-based `index`."""
    name = name.strip()
    if not name:
        return []
    i = str(index)
    candidates: List[str] = []

    if _BRACKET_TOKEN in name:
        candidates.append(name.replace(_BRACKET_TOKEN, f"[{i}]"))
    if _BRACE_TOKEN in name:
        candidates.append(name.replace(_BRACE_TOKEN, f"{{{i}}}"))
    if _TRAILING_N.search(name):
        candidates.append(_TRAILING_N.sub(i, name))
    if _EMBEDDED_N.search(name):
        candidates.append(_EMBEDDED_N.sub(i, name))
    candidates.append(name + i)

    # Placeholder-free forms: "joueur_nom[n]" -> "joueur_nom1", "joueur_nom_1", "joueur1_nom".
    base = re.sub(r"([\s_\-.])\1+", r"\1", _PLACEHOLDER.sub("", name)).strip(" _-.")
    if base:
        candidates.extend([base + i, f"{base}_{i}"])
        match = re.match(r"^([^\s_\-.]+)([\s_\-.])(.+)$", base)
        if match:
            head, sep, tail = match.groups()
            candidates.append(f"{head}{i}{sep}{tail}")
    return _ordered_unique(candidates)


def match_fields(candidates: Iterable[str], field_names: Iterable[str]) -> List[str]:
    """Real field names hit by any candidate, in candidate order.

    Comparison is exact first, then case-insensitive.
    """
    names = list(field_names)
    exact = set(names)
    folded: Dict[str, List[str]] = {}
    for field_name in names:
        folded.setdefault(field_name.casefold(), []).append(field_name)

    hits: List[str] = []
    for candidate in candidates:
        if candidate in exact:
            hits.append(candidate)
        hits.extend(folded.get(candidate.casefold(), []))
    return _ordered_unique(hits)


def resolve_field_names(name: str, field_names: Iterable[str]) -> List[str]:
    return match_fields(name_variants(name), field_names)


def resolve_indexed_field_names(name: str, index: int, field_names: Iterable[str]) -> List[str]:
    names = list(field_names)
    hits: List[str] = []
    for candidate in index_candidates(name, index):
        hits.extend(match_fields(name_variants(candidate), names))
    return _ordered_unique(hits)
