from __future__ import annotations

import io
from typing import Callable, Sequence

import fitz  # PyMuPDF
import pytest
from pypdf import PdfReader

from matchsheet_prefill.models import Coach, FillRequest, Player, Template, Tournament

WIDGET_TYPES = {
    "text": fitz.PDF_WIDGET_TYPE_TEXT,
    "checkbox": fitz.PDF_WIDGET_TYPE_CHECKBOX,
    "combo": fitz.PDF_WIDGET_TYPE_COMBOBOX,
    "radio": fitz.PDF_WIDGET_TYPE_RADIOBUTTON,
}


def build_form_pdf(fields: Sequence[tuple], heading: str = "") -> bytes:
    """One-page PDF with a widget per `(name, kind[, options])` tuple."""
    doc = fitz.open()
    page = doc.new_page()
    if heading:
        page.insert_text((72, 60), heading, fontsize=12)
    y = 90
    for field in fields:
        name, kind = field[0], field[1]
        widget = fitz.Widget()
        widget.field_name = name
        widget.field_type = WIDGET_TYPES[kind]
        widget.rect = fitz.Rect(72, y, 320, y + 18)
        if kind == "combo":
            widget.choice_values = list(field[2])
            widget.field_value = field[2][0]
        elif kind in ("checkbox", "radio"):
            widget.rect = fitz.Rect(72, y, 90, y + 18)
            widget.field_value = False
        else:
            widget.field_value = ""
        page.add_widget(widget)
        y += 24
    data = doc.tobytes()
    doc.close()
    return data


def field_values(pdf_bytes: bytes) -> dict:
    reader = PdfReader(io.BytesIO(pdf_bytes))
    return {name: fld.get("/V") for name, fld in (reader.get_fields() or {}).items()}


def page_text(pdf_bytes: bytes) -> str:
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        return "\n".join(page.get_text("text") for page in doc)
    finally:
        doc.close()


@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    return build_form_pdf


@pytest.fixture
def tournament() -> Tournament:
    return Tournament(location="Stade A", date="2025-05-17", category="U10", name="Tournoi de Nantua", id="t1")


@pytest.fixture
def players() -> list[Player]:
    return [
        Player(last_name="Martin", first_name="Thomas", license_number="L001", can_play_forward=True, id="p1"),
        Player(last_name="Durand", first_name="Lucas", license_number="L002", can_referee=True, id="p2"),
        Player(last_name="Petit", first_name="Hugo", license_number="L003", id="p3"),
    ]


@pytest.fixture
def coaches() -> list[Coach]:
    return [
        Coach(id="c1", last_name="Bernard", first_name="Paul", license_number="E100", diploma="BF"),
        Coach(id="c2", last_name="Moreau", first_name="Julie", license_number="E200", diploma="BE1"),
    ]


@pytest.fixture
def fill_request(tournament, players, coaches) -> FillRequest:
    template = Template(id="tpl1", name="modele.pdf", file_location="modele.pdf")
    return FillRequest(
        template=template,
        tournament=tournament,
        players=players,
        coaches=coaches,
        referent_coach_id="c2",
    )
