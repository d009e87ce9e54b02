from typing import List

from fastapi import APIRouter, Depends

from incident_desk.api.deps import get_ticket_service
from incident_desk.schemas.ticket import HistoryEntry
from incident_desk.services.tickets import TicketService

router = APIRouter(prefix="/tickets", tags=["History"])


@router.get("/{ticket_id}/history", response_model=List[HistoryEntry])
def get_ticket_history(ticket_id: str, service: TicketService = Depends(get_ticket_service)):
    """
    Change log of a ticket, oldest first. Entries survive deletion of the
    ticket itself.
    """
    return service.history_of(ticket_id)
