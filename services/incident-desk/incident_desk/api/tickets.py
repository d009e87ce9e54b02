import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Type

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from incident_desk.api.deps import get_ticket_service, get_uploads_dir
from incident_desk.core.errors import DuplicateKey, TicketNotFound
from incident_desk.schemas.ticket import (
    DeleteRequest,
    DeleteResponse,
    TicketCreate,
    TicketRecord,
    TicketResponse,
    TicketUpdate,
)
from incident_desk.services.tickets import TicketService
from incident_desk.services.uploads import remove_attachments, save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tickets", tags=["Tickets"])

ATTACHMENT_FIELDS = ("attachments[]", "attachments")


def to_response(record: TicketRecord) -> TicketResponse:
    return TicketResponse.model_validate(record.model_dump())


@contextmanager
def discard_uploads_on_failure(uploads_dir: Path, tokens: Sequence[str]) -> Iterator[None]:
    """Delete the request's stored files when the request does not go through."""
    try:
        yield
    except Exception:
        if tokens:
            logger.info("Discarding %d uploaded file(s) of a failed request", len(tokens))
            remove_attachments(uploads_dir, tokens)
        raise


async def read_submission(request: Request, uploads_dir: Path) -> Tuple[Dict[str, Any], List[str]]:
    """
    Accept a JSON body, or a multipart form carrying either a JSON `payload`
    field or plain fields, plus files under `attachments[]`.
    Returns the payload and the tokens of the stored files.
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        raw = await request.body()
        try:
            payload = json.loads(raw) if raw.strip() else {}
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed JSON body")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Expected a JSON object")
        return payload, []

    form = await request.form()
    tokens = []
    with discard_uploads_on_failure(uploads_dir, tokens):
        for field in ATTACHMENT_FIELDS:
            for upload in form.getlist(field):
                if isinstance(upload, UploadFile) and upload.filename:
                    content = await upload.read()
                    tokens.append(await run_in_threadpool(save_upload, uploads_dir, upload.filename, content))

    payload: Dict[str, Any] = {}
    if isinstance(form.get("payload"), str):
        try:
            payload = json.loads(form["payload"])
        except ValueError:
            logger.warning("Ignoring malformed multipart payload field")
    if not payload:
        for key in form.keys():
            if key in ATTACHMENT_FIELDS or key == "payload":
                continue
            values = [v for v in form.getlist(key) if isinstance(v, str)]
            payload[key] = values if len(values) > 1 else (values[0] if values else "")
    return payload, tokens


def validate_body(model: Type[BaseModel], payload: Dict[str, Any]):
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        )


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    request: Request,
    service: TicketService = Depends(get_ticket_service),
    uploads_dir: Path = Depends(get_uploads_dir),
):
    """
    Create a ticket from a JSON body or a multipart form with attachments.
    A ticket id is generated when the caller does not supply one.
    """
    payload, attachments = await read_submission(request, uploads_dir)
    with discard_uploads_on_failure(uploads_dir, attachments):
        ticket_in = validate_body(TicketCreate, payload)
        try:
            record = await run_in_threadpool(service.create, ticket_in, attachments)
        except DuplicateKey as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return to_response(record)


@router.get("", response_model=List[TicketResponse])
def list_tickets(service: TicketService = Depends(get_ticket_service)):
    """
    All tickets, newest first when served from the store, in file order when
    served from the CSV mirror.
    """
    return [to_response(record) for record in service.list_all()]


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket(ticket_id: str, service: TicketService = Depends(get_ticket_service)):
    try:
        return to_response(service.get(ticket_id))
    except TicketNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")


@router.put("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: str,
    request: Request,
    service: TicketService = Depends(get_ticket_service),
    uploads_dir: Path = Depends(get_uploads_dir),
):
    """
    Partially update a ticket. Omitted fields keep their value and uploaded
    files are added to the attachment list.
    """
    payload, attachments = await read_submission(request, uploads_dir)
    with discard_uploads_on_failure(uploads_dir, attachments):
        update_data = validate_body(TicketUpdate, payload)
        try:
            record = await run_in_threadpool(service.update, ticket_id, update_data, attachments)
        except TicketNotFound:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return to_response(record)


@router.delete("/{ticket_id}", response_model=DeleteResponse)
def delete_ticket(
    ticket_id: str,
    body: Optional[DeleteRequest] = Body(None),
    service: TicketService = Depends(get_ticket_service),
):
    editor = body.editor if body else None
    try:
        service.delete(ticket_id, editor=editor)
    except TicketNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return DeleteResponse(message=f"Ticket {ticket_id} deleted.")
