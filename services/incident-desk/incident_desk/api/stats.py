from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from incident_desk.api.deps import get_statistics_aggregator
from incident_desk.core.errors import ValidationGap
from incident_desk.schemas.ticket import TicketStats
from incident_desk.services.stats import StatisticsAggregator, resolve_window

router = APIRouter(prefix="/tickets", tags=["Statistics"])


@router.get("/stats", response_model=TicketStats)
def get_ticket_stats(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    week: Optional[str] = Query(None, description="ISO week, YYYY-Www"),
    year: Optional[str] = Query(None, description="YYYY"),
    aggregator: StatisticsAggregator = Depends(get_statistics_aggregator),
):
    """
    Dashboard statistics over tickets created in the selected month, week or
    year, or over all tickets when no filter is given.
    """
    try:
        window = resolve_window(month=month, week=week, year=year)
    except ValidationGap as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return aggregator.compute(window)
