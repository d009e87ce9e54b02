import csv
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from incident_desk.core.coerce import utcnow
from incident_desk.core.errors import StoreUnavailable
from incident_desk.store.record_store import RecordStore

logger = logging.getLogger(__name__)

ID_PREFIX = "KASI"
FALLBACK_CATEGORY_CODE = "GEN"

BUILDING_CODES = {
    "LOS1": "LOS1",
    "LOS2": "LOS2",
    "LOS3": "LOS3",
    "LOS4": "LOS4",
    "LOS5": "LOS5",
}

CATEGORY_CODES = {
    "Network": "NET",
    "Server": "SER",
    "Storage": "STOR",
    "Power": "PWD",
    "Cooling": "COOL",
    "Security": "SEC",
    "Access Control": "AC",
    "Application": "APP",
    "Database": "DBS",
}


class IdentifierGenerator:
    """
    Builds ids of the form KASI-<building>-<yyyymmdd>-<category>-<NNNN>.

    The sequence is the number of tickets already in the category plus one.
    Nothing is reserved, so two concurrent creations can draw the same id.
    """

    def __init__(self, store: RecordStore, tickets_csv: Path, default_building: str = "LOS5"):
        self.store = store
        self.tickets_csv = Path(tickets_csv)
        self.default_building = default_building

    def generate(self, category: str, building: str, today: Optional[date] = None) -> str:
        today = today or utcnow().date()
        building_code = BUILDING_CODES.get(building, self.default_building)
        category_code = CATEGORY_CODES.get(category, FALLBACK_CATEGORY_CODE)
        sequence = self.existing_count(category) + 1
        return f"{ID_PREFIX}-{building_code}-{today:%Y%m%d}-{category_code}-{sequence:04d}"

    def existing_count(self, category: str) -> int:
        try:
            return self.store.count_by_category(category)
        except StoreUnavailable as exc:
            logger.warning("Counting %r tickets from CSV, store unavailable: %s", category, exc)
            return self._count_in_csv(category)

    def _count_in_csv(self, category: str) -> int:
        # read the file directly so a file without a category column counts 0
        if not self.tickets_csv.exists():
            return 0
        try:
            with self.tickets_csv.open(newline="", encoding="utf-8", errors="replace") as handle:
                reader = csv.reader(handle)
                header = next(reader, None)
                if not header:
                    return 0
                header = [name.strip() for name in header]
                if "category" not in header:
                    return 0
                index = header.index("category")
                return sum(1 for row in reader if len(row) > index and row[index] == category)
        except (OSError, csv.Error):
            logger.exception("CSV category count failed, starting sequence at 1")
            return 0
