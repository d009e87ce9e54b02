class IncidentDeskError(Exception):
    """Base class for the service's own failures."""


class ValidationGap(IncidentDeskError):
    """A request value is missing or malformed."""


class StoreUnavailable(IncidentDeskError):
    """The record store could not complete an operation."""


class DuplicateKey(IncidentDeskError):
    def __init__(self, ticket_id: str, generated: bool = False):
        message = f"Ticket {ticket_id} already exists"
        if generated:
            message = f"Generated ticket id {ticket_id} collides with an existing ticket; supply an explicit ticket_id"
        super().__init__(message)
        self.ticket_id = ticket_id
        self.generated = generated


class TicketNotFound(IncidentDeskError):
    def __init__(self, ticket_id: str):
        super().__init__(f"Ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class SerializationFailure(IncidentDeskError):
    """A mirrored CSV row could not be turned back into a record."""
