import logging
from pathlib import Path
from typing import List, Optional, Sequence

from incident_desk.core.coerce import utcnow
from incident_desk.core.errors import DuplicateKey, SerializationFailure, StoreUnavailable, TicketNotFound
from incident_desk.core.lifecycle import closed_at_after
from incident_desk.mirror.csv_mirror import CsvMirror
from incident_desk.mirror.history_log import HistoryLog
from incident_desk.mirror.rows import ticket_from_row, ticket_to_row
from incident_desk.schemas.ticket import HistoryEntry, TicketCreate, TicketRecord, TicketUpdate
from incident_desk.services.identifiers import IdentifierGenerator
from incident_desk.services.uploads import remove_attachments
from incident_desk.store.record_store import RecordStore

logger = logging.getLogger(__name__)


class TicketService:
    """
    Write-through coordination of the record store and the CSV mirror.

    The store is authoritative. Writes go to the store first, then to the
    CSV file, then to the history log; store failures are logged and the
    request carries on with the CSV file alone. Reads fall back to the CSV
    file when the store fails or has nothing.
    """

    def __init__(
        self,
        store: RecordStore,
        mirror: CsvMirror,
        history: HistoryLog,
        identifiers: IdentifierGenerator,
        uploads_dir: Path,
    ):
        self.store = store
        self.mirror = mirror
        self.history = history
        self.identifiers = identifiers
        self.uploads_dir = Path(uploads_dir)

    def create(self, payload: TicketCreate, attachments: Sequence[str] = ()) -> TicketRecord:
        now = utcnow()
        generated = payload.ticket_id is None
        ticket_id = payload.ticket_id or self.identifiers.generate(payload.category, payload.building)
        if self.mirror.find_by_id(ticket_id) is not None:
            raise DuplicateKey(ticket_id, generated=generated)

        data = payload.model_dump(exclude={"ticket_id", "attachments"})
        record = TicketRecord(
            **data,
            ticket_id=ticket_id,
            attachments=list(attachments),
            created_at=now,
            updated_at=now,
            closed_at=closed_at_after(None, payload.status, None, now),
        )
        if record.opened is None:
            record.opened = now

        try:
            record = self.store.create(record)
        except DuplicateKey as exc:
            raise DuplicateKey(ticket_id, generated=generated) from exc
        except StoreUnavailable as exc:
            logger.warning("Store write failed for new ticket %s, keeping CSV copy only: %s", ticket_id, exc)

        self.mirror.append(ticket_to_row(record))

        snapshot = payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
        snapshot["ticket_id"] = ticket_id
        snapshot["attachments"] = record.attachments
        self.history.record(ticket_id, "create", snapshot, editor=record.reported_by)
        logger.info("Created ticket %s", ticket_id)
        return record

    def list_all(self) -> List[TicketRecord]:
        try:
            records = self.store.find_all()
            if records:
                return records
        except StoreUnavailable as exc:
            logger.warning("Store listing failed, reading CSV mirror: %s", exc)

        records = []
        for row in self.mirror.read_all():
            try:
                records.append(ticket_from_row(row))
            except SerializationFailure as exc:
                logger.warning("Skipping ticket row: %s", exc)
        return records

    def get(self, ticket_id: str) -> TicketRecord:
        record = self._lookup(ticket_id)
        if record is None:
            raise TicketNotFound(ticket_id)
        return record

    def update(self, ticket_id: str, changes: TicketUpdate, attachments: Sequence[str] = ()) -> TicketRecord:
        now = utcnow()
        fields = changes.changed_fields()
        stored = None
        try:
            current = self.store.find_by_id(ticket_id)
            if current is not None:
                merged = self._merge(current, fields, attachments, now)
                stored = self.store.update(ticket_id, merged.model_dump(exclude={"ticket_id", "created_at"}))
        except StoreUnavailable as exc:
            logger.warning("Store update failed for %s, updating CSV mirror only: %s", ticket_id, exc)

        if stored is not None:
            row = ticket_to_row(stored)
            if self.mirror.rewrite_with_update(ticket_id, row) is None:
                logger.info("Ticket %s missing from CSV mirror, appending it", ticket_id)
                self.mirror.append(row)
            result = stored
        else:
            current = self._mirrored(ticket_id)
            if current is None:
                raise TicketNotFound(ticket_id)
            result = self._merge(current, fields, attachments, now)
            self.mirror.rewrite_with_update(ticket_id, ticket_to_row(result))

        snapshot = changes.model_dump(mode="json", by_alias=True, exclude_unset=True, exclude={"editor"})
        if attachments:
            snapshot["attachments"] = list(attachments)
        editor = changes.editor or fields.get("reported_by", "")
        self.history.record(ticket_id, "update", snapshot, editor=editor)
        return result

    def delete(self, ticket_id: str, editor: Optional[str] = None) -> None:
        existing = self._lookup(ticket_id)

        removed = False
        try:
            removed = self.store.delete(ticket_id)
        except StoreUnavailable as exc:
            logger.warning("Store delete failed for %s, deleting from CSV mirror only: %s", ticket_id, exc)

        removed = self.mirror.rewrite_without(ticket_id) or removed
        if not removed:
            raise TicketNotFound(ticket_id)

        if existing is not None:
            remove_attachments(self.uploads_dir, existing.attachments)
        self.history.record(ticket_id, "delete", {}, editor=editor or "")
        logger.info("Deleted ticket %s", ticket_id)

    def history_of(self, ticket_id: str) -> List[HistoryEntry]:
        return self.history.find_by_ticket(ticket_id)

    def _lookup(self, ticket_id: str) -> Optional[TicketRecord]:
        try:
            record = self.store.find_by_id(ticket_id)
            if record is not None:
                return record
        except StoreUnavailable as exc:
            logger.warning("Store read failed for %s, reading CSV mirror: %s", ticket_id, exc)
        return self._mirrored(ticket_id)

    def _mirrored(self, ticket_id: str) -> Optional[TicketRecord]:
        row = self.mirror.find_by_id(ticket_id)
        if row is None:
            return None
        try:
            return ticket_from_row(row)
        except SerializationFailure as exc:
            logger.warning("Unreadable CSV row for %s: %s", ticket_id, exc)
            return None

    @staticmethod
    def _merge(current: TicketRecord, fields: dict, attachments: Sequence[str], now) -> TicketRecord:
        data = current.model_dump()
        data.update(fields)
        data["attachments"] = list(current.attachments) + list(attachments)
        data["closed_at"] = closed_at_after(current.status, data["status"], current.closed_at, now)
        data["updated_at"] = now
        return TicketRecord.model_validate(data)
