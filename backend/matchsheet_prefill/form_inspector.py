"""
Form Inspector

Enumerates the interactive AcroForm fields of a PDF template and reports the
control type of each one. Also extracts the visible page text that is sent to
the field classification service during template analysis.
"""

from __future__ import annotations

import io
import logging
from typing import List, Optional

import fitz  # PyMuPDF
from pypdf import PdfReader

from .errors import MalformedDocument
from .models import ControlType, FormField

logger = logging.getLogger(__name__)

# AcroForm field flags (PDF 32000-1, 12.7.4)
FLAG_RADIO = 1 << 15
FLAG_PUSHBUTTON = 1 << 16
FLAG_COMBO = 1 << 17


class FormInspector:
    """Reads form field metadata from PDF bytes without modifying them."""

    def inspect(self, document_bytes: bytes) -> List[FormField]:
        reader = self._open(document_bytes)
        try:
            fields = reader.get_fields() or {}
        except Exception as exc:
            raise MalformedDocument(f"Unable to read form fields: {exc}") from exc

        results: List[FormField] = []
        for name, fld in fields.items():
            if not name or _has_child_fields(fld):
                continue
            control_type = _control_type(fld)
            options = _options(fld) if control_type in (ControlType.DROPDOWN, ControlType.RADIO_GROUP) else []
            results.append(FormField(name=name, control_type=control_type, options=options))

        logger.debug("Inspected %d form fields", len(results))
        return results

    def extract_text(self, document_bytes: bytes) -> str:
        """Return the page text with page markers, as fed to the classifier."""
        try:
            doc = fitz.open(stream=document_bytes, filetype="pdf")
        except Exception as exc:
            raise MalformedDocument(f"Unable to open PDF: {exc}") from exc

        parts: List[str] = []
        try:
            for page_num in range(len(doc)):
                page_text = doc[page_num].get_text("text").strip()
                if page_text:
                    parts.append(f"--- PAGE {page_num + 1} ---\n{page_text}")
        finally:
            doc.close()
        return "\n".join(parts)

    @staticmethod
    def _open(document_bytes: bytes) -> PdfReader:
        if not document_bytes:
            raise MalformedDocument("Empty document")
        try:
            return PdfReader(io.BytesIO(document_bytes), strict=False)
        except Exception as exc:
            raise MalformedDocument(f"Unable to load PDF: {exc}") from exc


def _inherited(fld, key: str):
    """Look up an attribute on a field or, failing that, on its ancestors."""
    node = fld
    seen = 0
    while node is not None and seen < 32:
        if key in node:
            return node[key]
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
        seen += 1
    return None


def _has_child_fields(fld) -> bool:
    kids = fld.get("/Kids")
    if not kids:
        return False
    return any("/T" in kid.get_object() for kid in kids)


def _control_type(fld) -> ControlType:
    field_type = _inherited(fld, "/FT")
    flags = int(_inherited(fld, "/Ff") or 0)

    if field_type == "/Tx":
        return ControlType.TEXT
    if field_type == "/Btn":
        if flags & FLAG_PUSHBUTTON:
            return ControlType.OTHER
        if flags & FLAG_RADIO:
            return ControlType.RADIO_GROUP
        return ControlType.CHECKBOX
    if field_type == "/Ch":
        return ControlType.DROPDOWN
    return ControlType.OTHER


def _options(fld) -> List[str]:
    raw: Optional[list] = _inherited(fld, "/Opt")
    options: List[str] = []
    if raw:
        for item in raw:
            item = item.get_object() if hasattr(item, "get_object") else item
            if isinstance(item, list) and item:
                options.append(str(item[-1]))
            else:
                options.append(str(item))
        return options

    # Radio groups without /Opt expose their export states instead.
    for state in fld.get("/_States_", []) or []:
        state = str(state).lstrip("/")
        if state and state != "Off":
            options.append(state)
    return options
