"""API routes for ImportMap."""

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..codec import Delimiter, InputFormatError
from ..config import settings
from ..mapping import (
    AVAILABLE_CAPTIONS,
    ColumnNotFoundError,
    DateFormat,
    DuplicateCaptionError,
    ExportBlockedError,
    SlotNotFoundError,
    UnassignedSlotError,
)
from ..session import MappingSession

router = APIRouter()


def get_registry():
    """Get the global session registry."""
    from .app import get_registry as _get_registry

    return _get_registry()


async def _session(session_id: str) -> MappingSession:
    session = await get_registry().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _http_error(e: Exception) -> HTTPException:
    """Translate a domain exception into an HTTP error."""
    if isinstance(e, InputFormatError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (SlotNotFoundError, ColumnNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (DuplicateCaptionError, ExportBlockedError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (UnassignedSlotError, ValueError)):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


_DOMAIN_ERRORS = (
    InputFormatError,
    SlotNotFoundError,
    ColumnNotFoundError,
    DuplicateCaptionError,
    ExportBlockedError,
    UnassignedSlotError,
    ValueError,
)


class UploadRequest(BaseModel):
    """Request to load a file into a session."""

    text: str
    file_name: Optional[str] = None
    delimiter: Delimiter = Field(default_factory=lambda: Delimiter(settings.default_delimiter))
    has_header: bool = Field(default_factory=lambda: settings.default_has_header)


class MessageRequest(BaseModel):
    """Chat message forwarded to the suggestion provider."""

    message: str


class SlotCreateRequest(BaseModel):
    """Request to add a caption slot."""

    caption: str = ""
    key_field: bool = False
    match_by_id: bool = False


class SlotUpdateRequest(BaseModel):
    """Partial update of a caption slot.

    Set ``clear_column`` to unassign; ``column`` assigns a new column.
    """

    caption: Optional[str] = None
    column: Optional[str] = None
    clear_column: bool = False
    confirm: bool = False
    key_field: Optional[bool] = None
    match_by_id: Optional[bool] = None


class ConfirmMappingRequest(BaseModel):
    """Optional body for confirming a slot with an explicit column."""

    column: Optional[str] = None


class DateFormatRequest(BaseModel):
    date_format: DateFormat


class FixCellRequest(BaseModel):
    """Single-cell correction for a flagged value."""

    caption: str
    row_number: int
    value: str


# Health check


@router.get("/health")
async def health_check():
    """Health check endpoint with non-secret diagnostics."""
    return {
        "status": "ok",
        "service": "importmap",
        "config": {
            "acceptance_threshold": settings.acceptance_threshold,
            "certainty_threshold": settings.certainty_threshold,
            "suggestion_provider_configured": bool(settings.suggestion_provider_url),
            "default_date_format": settings.default_date_format,
        },
        "sessions": get_registry().size(),
    }


@router.get("/captions")
async def list_captions():
    """Captions offered when adding or renaming a slot."""
    return {"captions": list(AVAILABLE_CAPTIONS)}


# Sessions


@router.post("/sessions")
async def create_session():
    """Create a session seeded with the default caption slots."""
    session = await get_registry().create()
    return session.snapshot()


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    session = await _session(session_id)
    return session.snapshot()


@router.post("/sessions/{session_id}/upload")
async def upload_file(session_id: str, request: UploadRequest):
    """Load a file and run the initial suggestion cycle."""
    session = await _session(session_id)
    try:
        outcome = await session.upload(
            request.text,
            delimiter=request.delimiter,
            has_header=request.has_header,
            file_name=request.file_name,
        )
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return {"outcome": outcome.model_dump(mode="json"), "session": session.snapshot()}


@router.post("/sessions/{session_id}/suggestions")
async def refresh_suggestions(session_id: str):
    """Re-run suggestions for captions that are still unconfirmed."""
    session = await _session(session_id)
    outcome = await session.suggest()
    return {"outcome": outcome.model_dump(mode="json"), "session": session.snapshot()}


@router.post("/sessions/{session_id}/messages")
async def send_message(session_id: str, request: MessageRequest):
    session = await _session(session_id)
    outcome = await session.send_message(request.message)
    return {"outcome": outcome.model_dump(mode="json"), "session": session.snapshot()}


# Slots


@router.post("/sessions/{session_id}/slots")
async def add_slot(session_id: str, request: SlotCreateRequest):
    session = await _session(session_id)
    try:
        slot = await session.add_slot(
            request.caption, key_field=request.key_field, match_by_id=request.match_by_id
        )
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return slot.model_dump(mode="json")


@router.patch("/sessions/{session_id}/slots/{slot_id}")
async def update_slot(session_id: str, slot_id: str, request: SlotUpdateRequest):
    """Rename, reassign or re-flag a slot; fields left unset are unchanged."""
    session = await _session(session_id)
    try:
        slot = await session.update_slot(
            slot_id,
            caption=request.caption,
            column=None if request.clear_column else request.column,
            clear_column=request.clear_column,
            confirm=request.confirm,
            key_field=request.key_field,
            match_by_id=request.match_by_id,
        )
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return slot.model_dump(mode="json")


@router.delete("/sessions/{session_id}/slots/{slot_id}")
async def delete_slot(session_id: str, slot_id: str):
    session = await _session(session_id)
    try:
        await session.remove_slot(slot_id)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return {"success": True}


@router.post("/sessions/{session_id}/slots/{slot_id}/confirm")
async def confirm_slot(
    session_id: str, slot_id: str, request: Optional[ConfirmMappingRequest] = None
):
    """Confirm a slot's current column, or assign and confirm a given one."""
    session = await _session(session_id)
    try:
        if request is not None and request.column is not None:
            slot = await session.assign_column(slot_id, request.column, confirm=True)
        else:
            slot = await session.confirm(slot_id)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return slot.model_dump(mode="json")


@router.post("/sessions/{session_id}/confirm-all")
async def confirm_all(session_id: str):
    session = await _session(session_id)
    changed = await session.confirm_all()
    return {"confirmed": changed, "session": session.snapshot()}


# Validation and export


@router.get("/sessions/{session_id}/validation")
async def get_validation(session_id: str):
    """Latest validation report; null until every caption is confirmed."""
    session = await _session(session_id)
    report = await session.validate()
    return {
        "report": report.model_dump(mode="json") if report is not None else None,
        "confirmed": session.confirmed_count,
        "total": session.total_captions,
    }


@router.put("/sessions/{session_id}/date-format")
async def set_date_format(session_id: str, request: DateFormatRequest):
    session = await _session(session_id)
    await session.set_date_format(request.date_format)
    return session.snapshot()


@router.post("/sessions/{session_id}/fix-cell")
async def fix_cell(session_id: str, request: FixCellRequest):
    """Correct one flagged value and return that caption's remaining issue."""
    session = await _session(session_id)
    try:
        issue = await session.fix_cell(request.caption, request.row_number, request.value)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return {"issue": issue.model_dump(mode="json") if issue is not None else None}


@router.get("/sessions/{session_id}/export")
async def export_file(session_id: str):
    session = await _session(session_id)
    try:
        result = await session.export()
    except ExportBlockedError as e:
        raise _http_error(e)
    return result.model_dump(mode="json")
