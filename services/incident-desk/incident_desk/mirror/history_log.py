import csv
import json
import logging
from typing import Any, List, Optional

from incident_desk.core.coerce import utcnow
from incident_desk.core.errors import SerializationFailure, StoreUnavailable
from incident_desk.mirror.csv_mirror import CsvMirror
from incident_desk.mirror.rows import history_from_row, history_to_row
from incident_desk.schemas.ticket import HistoryEntry
from incident_desk.store.record_store import RecordStore

logger = logging.getLogger(__name__)


class HistoryLog:
    """
    Append-only change log written to both the record store and its own
    CSV file. Neither write is allowed to fail the calling request.
    """

    def __init__(self, store: RecordStore, mirror: CsvMirror):
        self.store = store
        self.mirror = mirror

    def record(self, ticket_id: str, action: str, changes: Any, editor: Optional[str] = "") -> HistoryEntry:
        if not isinstance(changes, str):
            changes = json.dumps(changes, default=str)
        entry = HistoryEntry(
            ticket_id=ticket_id,
            timestamp=utcnow(),
            action=action,
            changes=changes,
            editor=editor or "",
        )

        try:
            self.mirror.append(history_to_row(entry))
        except (OSError, csv.Error):
            logger.exception("History CSV append failed for %s (%s)", ticket_id, action)

        try:
            self.store.add_history(entry)
        except StoreUnavailable:
            logger.exception("History store write failed for %s (%s)", ticket_id, action)

        return entry

    def find_by_ticket(self, ticket_id: str) -> List[HistoryEntry]:
        try:
            entries = self.store.find_history(ticket_id)
            if entries:
                return entries
        except StoreUnavailable as exc:
            logger.warning("History store read failed for %s, using CSV: %s", ticket_id, exc)

        entries = []
        for row in self.mirror.read_all():
            if row.get("ticket_id") != ticket_id:
                continue
            try:
                entries.append(history_from_row(row))
            except SerializationFailure as exc:
                logger.warning("Skipping history row: %s", exc)
        return entries
