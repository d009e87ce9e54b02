import logging
import re
import time
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

IMAGE_PATTERN = re.compile(r"\.(jpe?g|png|gif|bmp|webp)$", re.IGNORECASE)


def is_image(name: str) -> bool:
    return bool(IMAGE_PATTERN.search(name))


def save_upload(uploads_dir: Path, filename: str, content: bytes) -> str:
    """Store an uploaded file and return its token, <epoch-millis>-<name>."""
    uploads_dir.mkdir(parents=True, exist_ok=True)
    name = Path(filename or "upload").name or "upload"
    stamp = int(time.time() * 1000)
    token = f"{stamp}-{name}"
    while (uploads_dir / token).exists():
        stamp += 1
        token = f"{stamp}-{name}"
    (uploads_dir / token).write_bytes(content)
    return token


def remove_attachments(uploads_dir: Path, tokens: Iterable[str]) -> None:
    for token in tokens:
        path = uploads_dir / Path(token).name
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove attachment %s", path, exc_info=True)
