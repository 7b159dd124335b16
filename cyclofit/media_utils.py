import os
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from .config import settings
from .utils import as_utc, utcnow

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_FILENAME_LENGTH = 120
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def sanitize_filename(filename: Optional[str]) -> str:
    """Reduce a client filename to a safe basename for use inside a storage key."""
    if not filename:
        return "video"
    # Clients on Windows send backslash paths
    base = os.path.basename(filename.replace("\\", "/"))
    base = _UNSAFE_CHARS.sub("_", base).strip("._")
    if not base:
        return "video"
    if len(base) > _MAX_FILENAME_LENGTH:
        stem, ext = os.path.splitext(base)
        base = stem[: _MAX_FILENAME_LENGTH - len(ext)] + ext
    return base


def derive_video_key(filename: Optional[str], now: Optional[datetime] = None, prefix: Optional[str] = None) -> str:
    """videos/{epoch_ms}-{uuid hex}-{filename}

    The timestamp keeps keys roughly sortable by upload time; the uuid
    guarantees two uploads of the same filename in the same millisecond
    never share a key.
    """
    now = as_utc(now or utcnow())
    prefix = (prefix if prefix is not None else settings.VIDEO_KEY_PREFIX).strip("/")
    millis = int((now - _EPOCH).total_seconds() * 1000)
    name = f"{millis}-{uuid.uuid4().hex}-{sanitize_filename(filename)}"
    return f"{prefix}/{name}" if prefix else name


def is_accepted_video(content_type: Optional[str], filename: Optional[str]) -> bool:
    """Accept video/* types, configured generic types, or a known video extension."""
    if content_type and content_type.lower().startswith("video/"):
        return True
    if content_type and content_type.lower() in settings.allowed_video_types_list:
        return True
    if filename:
        ext = os.path.splitext(filename)[1].lower()
        return ext in settings.allowed_video_extensions_list
    return False
