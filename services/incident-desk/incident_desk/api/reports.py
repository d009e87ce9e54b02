from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse, Response
from starlette.concurrency import run_in_threadpool

from incident_desk.api.deps import get_ticket_mirror, get_ticket_service, get_uploads_dir
from incident_desk.core.errors import TicketNotFound
from incident_desk.mirror.csv_mirror import CsvMirror
from incident_desk.services.report import render_ticket_pdf
from incident_desk.services.tickets import TicketService

router = APIRouter(prefix="/tickets", tags=["Reports"])


@router.get("/export/all")
def export_tickets(mirror: CsvMirror = Depends(get_ticket_mirror)):
    """Download the raw ticket CSV mirror."""
    if not mirror.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No tickets found")
    return FileResponse(mirror.path, media_type="text/csv", filename="tickets.csv")


@router.get("/{ticket_id}/download")
async def download_ticket(
    ticket_id: str,
    service: TicketService = Depends(get_ticket_service),
    uploads_dir: Path = Depends(get_uploads_dir),
):
    try:
        record = await run_in_threadpool(service.get, ticket_id)
    except TicketNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    content = await run_in_threadpool(render_ticket_pdf, record, uploads_dir)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={ticket_id}.pdf"},
    )
