import csv
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

logger = logging.getLogger(__name__)

Row = Dict[str, str]

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def file_lock(path: Path) -> threading.Lock:
    """One lock per resolved file path, shared by every mirror on that file."""
    key = str(Path(path).resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


class CsvMirror:
    """
    Flat-file copy of a table. Every value is quoted, embedded quotes are
    doubled, and the first column is the row key.
    """

    def __init__(self, path: Path, columns: Sequence[str]):
        self.path = Path(path)
        self.columns = list(columns)
        self.key_column = self.columns[0]
        self._lock = file_lock(self.path)

    def exists(self) -> bool:
        return self.path.exists()

    def append(self, row: Row) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            header = self._read_header()
            needs_header = header is None
            columns = header or self.columns
            with self.path.open("a", newline="", encoding="utf-8") as handle:
                writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
                if needs_header:
                    writer.writerow(columns)
                writer.writerow([row.get(column, "") for column in columns])

    def read_all(self) -> List[Row]:
        if not self.path.exists():
            return []
        _, rows = self._load()
        return rows

    def find_by_id(self, key: str) -> Optional[Row]:
        for row in self.read_all():
            if row.get(self.key_column) == key:
                return row
        return None

    def rewrite_with_update(self, key: str, fields: Row) -> Optional[Row]:
        """Replace the matching row's values. Returns the new row, or None if absent."""
        with self._lock:
            if not self.path.exists():
                return None
            header, rows = self._load()
            updated = None
            for row in rows:
                if row.get(self.key_column) == key:
                    row.update({column: fields[column] for column in header if column in fields})
                    row[self.key_column] = key
                    updated = row
                    break
            if updated is None:
                return None
            self._write(header, rows)
            return dict(updated)

    def rewrite_without(self, key: str) -> bool:
        with self._lock:
            if not self.path.exists():
                return False
            header, rows = self._load()
            remaining = [row for row in rows if row.get(self.key_column) != key]
            if len(remaining) == len(rows):
                return False
            self._write(header, remaining)
            return True

    def _read_header(self) -> Optional[List[str]]:
        if not self.path.exists():
            return None
        with self.path.open(newline="", encoding="utf-8") as handle:
            for record in csv.reader(handle):
                if record:
                    return [name.strip() for name in record]
        return None

    def _load(self):
        with self.path.open(newline="", encoding="utf-8", errors="replace") as handle:
            records = self._records(csv.reader(handle))
            header = None
            for record in records:
                if record:
                    header = [name.strip() for name in record]
                    break
            if header is None:
                return list(self.columns), []

            rows = []
            for record in records:
                if not any(cell.strip() for cell in record):
                    continue
                if len(record) != len(header):
                    logger.warning(
                        "%s: row %r has %d columns, expected %d",
                        self.path.name, record[:1], len(record), len(header),
                    )
                padded = list(record[: len(header)]) + [""] * (len(header) - len(record))
                rows.append(dict(zip(header, padded)))
            return header, rows

    def _records(self, reader) -> Iterator[List[str]]:
        while True:
            try:
                yield next(reader)
            except StopIteration:
                return
            except csv.Error as exc:
                logger.warning("%s: skipping unreadable record near line %d: %s", self.path.name, reader.line_num, exc)

    def _write(self, header: List[str], rows: List[Row]) -> None:
        descriptor, temp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(descriptor, "w", newline="", encoding="utf-8") as handle:
                writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
                writer.writerow(header)
                for row in rows:
                    writer.writerow([row.get(column, "") for column in header])
            os.replace(temp_name, self.path)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise
