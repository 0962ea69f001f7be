import base64
import binascii
import logging

from dotenv import load_dotenv

load_dotenv(".env.local"); load_dotenv()  # also loads .env if present

import os  # noqa: E402
from typing import Optional  # noqa: E402

from fastapi import FastAPI, HTTPException, Response  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from pydantic import BaseModel  # noqa: E402

from matchsheet_prefill import (  # noqa: E402
    MalformedDocument,
    MatchSheetError,
    MatchSheetService,
    ProposalServiceUnavailable,
    TemplateNotFound,
)
from matchsheet_prefill.models import (  # noqa: E402
    Coach,
    FieldMapping,
    FillRequest,
    Player,
    Template,
    Tournament,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Match sheet pre-fill")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8501",
        "http://127.0.0.1:8501",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "*"
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

matchsheet_service = MatchSheetService()


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, MalformedDocument):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ProposalServiceUnavailable):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, (TemplateNotFound, IndexError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.error("Unexpected match sheet error: %s", exc, exc_info=True)
    return HTTPException(status_code=500, detail=str(exc))


def _decode_pdf(pdf_base64: str) -> bytes:
    try:
        return base64.b64decode(pdf_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid base64 payload: {exc}") from exc


def _encode_pdf(pdf_bytes: bytes) -> str:
    return base64.b64encode(pdf_bytes).decode("ascii")


# --- request models -----------------------------------------------------------


class TemplateUploadRequest(BaseModel):
    pdf_base64: str


class MappingEntryModel(BaseModel):
    champ_pdf: str
    type: str
    mapping: str
    valeur_possible: list[str] = []
    obligatoire: Optional[bool] = None
    format: Optional[str] = None

    def to_entry(self) -> FieldMapping:
        return FieldMapping.from_dict(self.model_dump())


class MappingSaveRequest(BaseModel):
    mappings: list[MappingEntryModel]


class TemplateModel(BaseModel):
    id: str = ""
    name: str
    file_location: str = ""
    description: Optional[str] = None
    field_mappings: list[MappingEntryModel] = []


class TournamentModel(BaseModel):
    location: str
    date: str
    category: str = ""
    name: Optional[str] = None
    id: Optional[str] = None


class PlayerModel(BaseModel):
    last_name: str
    first_name: str
    license_number: str = ""
    can_play_forward: bool = False
    can_referee: bool = False
    date_of_birth: Optional[str] = None
    id: Optional[str] = None


class CoachModel(BaseModel):
    id: str
    last_name: str
    first_name: str
    license_number: str = ""
    diploma: str = ""


class GenerateRequest(BaseModel):
    template: TemplateModel
    tournament: TournamentModel
    players: list[PlayerModel] = []
    coaches: list[CoachModel] = []
    referent_coach_id: Optional[str] = None
    persist: bool = True

    def to_fill_request(self) -> FillRequest:
        template = Template(
            id=self.template.id,
            name=self.template.name,
            file_location=self.template.file_location or self.template.name,
            description=self.template.description,
            field_mappings=[m.to_entry() for m in self.template.field_mappings],
        )
        return FillRequest(
            template=template,
            tournament=Tournament(**self.tournament.model_dump()),
            players=[Player(**p.model_dump()) for p in self.players],
            coaches=[Coach(**c.model_dump()) for c in self.coaches],
            referent_coach_id=self.referent_coach_id,
        )


def _mapping_payload(filename: str, entries: list[FieldMapping]) -> dict:
    return {"template": filename, "mappings": [e.to_wire() for e in entries]}


# --- endpoints ----------------------------------------------------------------


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/templates/{filename}")
def upload_template(filename: str, req: TemplateUploadRequest):
    try:
        result = matchsheet_service.upload_template(filename, _decode_pdf(req.pdf_base64))
    except (MatchSheetError, ValueError) as exc:
        raise _http_error(exc) from exc
    return result


@app.get("/templates")
def list_templates():
    return {"templates": matchsheet_service.list_templates()}


@app.get("/templates/{filename}/fields")
def template_fields(filename: str):
    try:
        fields = matchsheet_service.inspect_template(filename)
    except MatchSheetError as exc:
        raise _http_error(exc) from exc
    return {"template": filename, "fields": [f.to_dict() for f in fields]}


@app.post("/templates/{filename}/analyze")
def analyze_template(filename: str, force: bool = False):
    try:
        result = matchsheet_service.analyze_template(filename, force=force)
    except MatchSheetError as exc:
        raise _http_error(exc) from exc
    return result.to_dict()


@app.get("/mappings/{filename}")
def get_mappings(filename: str):
    entries = matchsheet_service.get_mappings(filename)
    if entries is None:
        raise HTTPException(status_code=404, detail=f"No mapping stored for '{filename}'")
    return _mapping_payload(filename, entries)


@app.put("/mappings/{filename}")
def save_mappings(filename: str, req: MappingSaveRequest):
    try:
        entries = matchsheet_service.save_mappings(filename, [m.to_entry() for m in req.mappings])
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _mapping_payload(filename, entries)


@app.post("/mappings/{filename}/entries")
def append_mapping_entry(filename: str, req: MappingEntryModel):
    editor = matchsheet_service.mapping_editor(filename)
    try:
        editor.append(req.to_entry())
        entries = matchsheet_service.commit_mappings(filename, editor)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _mapping_payload(filename, entries)


@app.put("/mappings/{filename}/entries/{index}")
def replace_mapping_entry(filename: str, index: int, req: MappingEntryModel):
    if matchsheet_service.get_mappings(filename) is None:
        raise HTTPException(status_code=404, detail=f"No mapping stored for '{filename}'")
    editor = matchsheet_service.mapping_editor(filename)
    try:
        editor.replace_at(index, req.to_entry())
        entries = matchsheet_service.commit_mappings(filename, editor)
    except (IndexError, ValueError) as exc:
        raise _http_error(exc) from exc
    return _mapping_payload(filename, entries)


@app.delete("/mappings/{filename}/entries/{index}")
def remove_mapping_entry(filename: str, index: int):
    if matchsheet_service.get_mappings(filename) is None:
        raise HTTPException(status_code=404, detail=f"No mapping stored for '{filename}'")
    editor = matchsheet_service.mapping_editor(filename)
    try:
        removed = editor.remove_at(index)
        entries = matchsheet_service.commit_mappings(filename, editor)
    except IndexError as exc:
        raise _http_error(exc) from exc
    payload = _mapping_payload(filename, entries)
    payload["removed"] = removed.to_wire()
    return payload


@app.post("/match-sheets/generate")
def generate_match_sheet(req: GenerateRequest):
    try:
        document = matchsheet_service.generate(req.to_fill_request(), persist=req.persist)
    except (MatchSheetError, ValueError) as exc:
        raise _http_error(exc) from exc

    return {
        "metadata": {
            "filename": document.filename,
            "pdf_url": f"/generated_pdfs/{document.filename}",
            "written_fields": document.written_fields,
            "touched_count": document.touched_count,
            "flattened": document.flattened,
        },
        "skipped": [s.to_dict() for s in document.skipped],
        "pdf_base64": _encode_pdf(document.content),
    }


@app.get("/generated_pdfs/{filename}")
def download_generated(filename: str):
    """Download a generated match sheet by filename"""
    try:
        pdf_bytes = matchsheet_service.get_generated(filename)
    except ValueError:
        pdf_bytes = None
    if pdf_bytes is None:
        raise HTTPException(status_code=404, detail="PDF not found")
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)
