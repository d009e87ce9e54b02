"""Mapping between records and their CSV mirror rows."""
from pydantic import ValidationError

from incident_desk.core.coerce import as_text, format_flag, format_timestamp, join_list
from incident_desk.core.errors import SerializationFailure
from incident_desk.mirror.csv_mirror import Row
from incident_desk.schemas.ticket import FLAG_FIELDS, TIMESTAMP_FIELDS, HistoryEntry, TicketRecord

TICKET_COLUMNS = [
    "ticket_id",
    "category",
    "sub_category",
    "opened",
    "reported_by",
    "priority",
    "building",
    "location",
    "impacted",
    "description",
    "detectedBy",
    "time_detected",
    "root_cause",
    "actions_taken",
    "status",
    "assigned_to",
    "resolution_summary",
    "resolution_time",
    "duration",
    "post_review",
    "attachments",
    "escalation_history",
    "closed",
    "sla_breach",
]

HISTORY_COLUMNS = ["ticket_id", "timestamp", "action", "changes", "editor"]


def ticket_to_row(record: TicketRecord) -> Row:
    row = {}
    for column in TICKET_COLUMNS:
        name = "detected_by" if column == "detectedBy" else column
        value = getattr(record, name)
        if name in TIMESTAMP_FIELDS:
            row[column] = format_timestamp(value)
        elif name in FLAG_FIELDS:
            row[column] = format_flag(value)
        elif name in ("assigned_to", "attachments"):
            row[column] = join_list(value)
        else:
            row[column] = as_text(value)
    return row


def ticket_from_row(row: Row) -> TicketRecord:
    if not row.get("ticket_id"):
        raise SerializationFailure("ticket row without a ticket_id")
    values = {column: value for column, value in row.items() if column in TICKET_COLUMNS}
    try:
        return TicketRecord.model_validate(values)
    except ValidationError as exc:
        raise SerializationFailure(f"ticket row {row.get('ticket_id')!r}: {exc}") from exc


def history_to_row(entry: HistoryEntry) -> Row:
    return {
        "ticket_id": entry.ticket_id,
        "timestamp": format_timestamp(entry.timestamp),
        "action": entry.action,
        "changes": entry.changes,
        "editor": entry.editor,
    }


def history_from_row(row: Row) -> HistoryEntry:
    try:
        return HistoryEntry.model_validate(row)
    except ValidationError as exc:
        raise SerializationFailure(f"history row {row.get('ticket_id')!r}: {exc}") from exc
