import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from incident_desk.core.errors import DuplicateKey, StoreUnavailable
from incident_desk.models.ticket import Ticket, TicketHistory
from incident_desk.schemas.ticket import CLOSED_STATUS, HistoryEntry, TicketRecord

logger = logging.getLogger(__name__)

GROUPABLE_COLUMNS = {
    "status": Ticket.status,
    "category": Ticket.category,
    "priority": Ticket.priority,
}

Window = Tuple[Optional[datetime], Optional[datetime]]


def _within(column, window: Window):
    start, end = window
    clauses = []
    if start is not None:
        clauses.append(column >= start)
    if end is not None:
        clauses.append(column < end)
    return clauses


def _day_key(value) -> str:
    # SQLite hands back 'YYYY-MM-DD' text, other backends a date
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


class RecordStore:
    """
    Authoritative ticket and history storage.

    Every call runs in its own session so independent calls can run on
    separate threads. Any SQLAlchemy failure surfaces as StoreUnavailable.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailable(str(exc)) from exc
        finally:
            session.close()

    # -- tickets ---------------------------------------------------------

    def create(self, record: TicketRecord) -> TicketRecord:
        values = record.model_dump(exclude={"created_at", "updated_at"}, exclude_none=False)
        if record.created_at is not None:
            values["created_at"] = record.created_at
        try:
            with self._session() as db:
                ticket = Ticket(**values)
                db.add(ticket)
                db.flush()
                db.refresh(ticket)
                return TicketRecord.model_validate(ticket)
        except IntegrityError as exc:
            raise DuplicateKey(record.ticket_id) from exc

    def find_by_id(self, ticket_id: str) -> Optional[TicketRecord]:
        with self._session() as db:
            ticket = db.query(Ticket).filter(Ticket.ticket_id == ticket_id).first()
            return TicketRecord.model_validate(ticket) if ticket else None

    def find_all(self) -> List[TicketRecord]:
        with self._session() as db:
            tickets = db.query(Ticket).order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()
            return [TicketRecord.model_validate(t) for t in tickets]

    def update(self, ticket_id: str, fields: Dict) -> Optional[TicketRecord]:
        """Apply fields to an existing ticket. Missing ids are a no-op."""
        with self._session() as db:
            ticket = db.query(Ticket).filter(Ticket.ticket_id == ticket_id).first()
            if ticket is None:
                return None
            for name, value in fields.items():
                if name in ("ticket_id", "created_at"):
                    continue
                setattr(ticket, name, value)
            db.flush()
            db.refresh(ticket)
            return TicketRecord.model_validate(ticket)

    def delete(self, ticket_id: str) -> bool:
        with self._session() as db:
            removed = db.query(Ticket).filter(Ticket.ticket_id == ticket_id).delete()
            return removed > 0

    def count_by_category(self, category: str) -> int:
        with self._session() as db:
            return db.query(func.count(Ticket.id)).filter(Ticket.category == category).scalar() or 0

    # -- history ---------------------------------------------------------

    def add_history(self, entry: HistoryEntry) -> None:
        with self._session() as db:
            db.add(TicketHistory(**entry.model_dump(exclude_none=True)))

    def find_history(self, ticket_id: str) -> List[HistoryEntry]:
        with self._session() as db:
            rows = (
                db.query(TicketHistory)
                .filter(TicketHistory.ticket_id == ticket_id)
                .order_by(TicketHistory.timestamp.asc(), TicketHistory.id.asc())
                .all()
            )
            return [HistoryEntry.model_validate(row) for row in rows]

    # -- aggregates ------------------------------------------------------

    def count_tickets(self, window: Window) -> int:
        with self._session() as db:
            return db.query(func.count(Ticket.id)).filter(*_within(Ticket.created_at, window)).scalar() or 0

    def group_counts(self, field: str, window: Window) -> List[Tuple[Optional[str], int]]:
        column = GROUPABLE_COLUMNS[field]
        with self._session() as db:
            rows = (
                db.query(column, func.count(Ticket.id))
                .filter(*_within(Ticket.created_at, window))
                .group_by(column)
                .all()
            )
            return [(value, count) for value, count in rows]

    def opened_per_day(self, window: Window) -> Dict[str, int]:
        day = func.date(Ticket.created_at)
        with self._session() as db:
            rows = (
                db.query(day, func.count(Ticket.id))
                .filter(Ticket.created_at.isnot(None), *_within(Ticket.created_at, window))
                .group_by(day)
                .all()
            )
            return {_day_key(value): count for value, count in rows}

    def closed_per_day(self, window: Window) -> Dict[str, int]:
        closed_instant = func.coalesce(Ticket.closed_at, Ticket.created_at)
        day = func.date(closed_instant)
        with self._session() as db:
            rows = (
                db.query(day, func.count(Ticket.id))
                .filter(
                    Ticket.status == CLOSED_STATUS,
                    closed_instant.isnot(None),
                    *_within(closed_instant, window),
                )
                .group_by(day)
                .all()
            )
            return {_day_key(value): count for value, count in rows}

    def count_sla(self, breached: bool, window: Window) -> int:
        if breached:
            condition = Ticket.sla_breach.is_(True)
        else:
            condition = or_(Ticket.sla_breach.is_(False), Ticket.sla_breach.is_(None))
        with self._session() as db:
            return (
                db.query(func.count(Ticket.id))
                .filter(condition, *_within(Ticket.created_at, window))
                .scalar()
                or 0
            )
