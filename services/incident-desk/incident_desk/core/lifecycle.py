from datetime import datetime
from typing import Optional

from incident_desk.schemas.ticket import CLOSED_STATUS


def closed_at_after(
    previous_status: Optional[str],
    new_status: str,
    closed_at: Optional[datetime],
    now: datetime,
) -> Optional[datetime]:
    """
    closed_at for a ticket moving from previous_status to new_status.
    Stamped on entry into Closed, cleared on exit, otherwise carried over.
    previous_status is None for a ticket being created.
    """
    was_closed = previous_status == CLOSED_STATUS
    is_closed = new_status == CLOSED_STATUS
    if is_closed and not was_closed:
        return now
    if was_closed and not is_closed:
        return None
    return closed_at
