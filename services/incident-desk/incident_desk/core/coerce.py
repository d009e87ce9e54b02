"""Permissive value parsing shared by the request schemas and the CSV mirror.

Tickets arrive from JSON bodies, multipart forms and legacy CSV rows, so the
same attribute may show up as a real boolean, ``"Yes"``, ``"checked"`` or
``1``. Everything is normalised here, once, at the write boundary.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional

from dateutil import parser as date_parser

TRUE_FLAGS = {"yes", "checked", "true", "on", "1"}
LIST_SEPARATOR = ";"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() in TRUE_FLAGS


def format_flag(value: Any) -> str:
    return "Yes" if parse_flag(value) else "No"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse to a naive UTC datetime; blanks become None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = date_parser.parse(str(value).strip())
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.isoformat() + "Z"


def split_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(LIST_SEPARATOR) if item.strip()]
    return [str(item) for item in value if item]


def join_list(values: Optional[List[str]]) -> str:
    return LIST_SEPARATOR.join(values or [])


def as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
