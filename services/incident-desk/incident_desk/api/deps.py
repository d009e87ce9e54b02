from pathlib import Path

from fastapi import Depends

from incident_desk.core.config import settings
from incident_desk.core.db import SessionLocal
from incident_desk.mirror.csv_mirror import CsvMirror
from incident_desk.mirror.history_log import HistoryLog
from incident_desk.mirror.rows import HISTORY_COLUMNS, TICKET_COLUMNS
from incident_desk.services.identifiers import IdentifierGenerator
from incident_desk.services.stats import StatisticsAggregator
from incident_desk.services.tickets import TicketService
from incident_desk.store.record_store import RecordStore


def get_record_store() -> RecordStore:
    return RecordStore(SessionLocal)


def get_ticket_mirror() -> CsvMirror:
    return CsvMirror(settings.tickets_csv_path, TICKET_COLUMNS)


def get_history_mirror() -> CsvMirror:
    return CsvMirror(settings.history_csv_path, HISTORY_COLUMNS)


def get_uploads_dir() -> Path:
    return settings.uploads_dir


def get_history_log(
    store: RecordStore = Depends(get_record_store),
    mirror: CsvMirror = Depends(get_history_mirror),
) -> HistoryLog:
    return HistoryLog(store, mirror)


def get_identifier_generator(
    store: RecordStore = Depends(get_record_store),
    mirror: CsvMirror = Depends(get_ticket_mirror),
) -> IdentifierGenerator:
    return IdentifierGenerator(store, mirror.path, default_building=settings.DEFAULT_BUILDING_CODE)


def get_ticket_service(
    store: RecordStore = Depends(get_record_store),
    mirror: CsvMirror = Depends(get_ticket_mirror),
    history: HistoryLog = Depends(get_history_log),
    identifiers: IdentifierGenerator = Depends(get_identifier_generator),
    uploads_dir: Path = Depends(get_uploads_dir),
) -> TicketService:
    return TicketService(store, mirror, history, identifiers, uploads_dir)


def get_statistics_aggregator(store: RecordStore = Depends(get_record_store)) -> StatisticsAggregator:
    return StatisticsAggregator(store, max_workers=settings.STATS_MAX_WORKERS)
