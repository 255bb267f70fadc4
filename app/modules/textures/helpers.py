import re
import secrets
import struct
import time
from typing import Optional, Tuple

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def get_media_type(mime_type: Optional[str]) -> Optional[str]:
    """``image`` or ``video`` for a MIME type, None when it is neither."""
    if not mime_type:
        return None
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    return None


def generate_filename(original_name: str, timestamp_ms: Optional[int] = None, token: Optional[str] = None) -> str:
    """``{ms}-{6 random chars}-{sanitised stem, max 50}.{ext}``"""
    stem, dot, ext = original_name.rpartition(".")
    if not dot:
        stem, ext = original_name, ""
    safe_name = _UNSAFE_CHARS.sub("_", stem)[:50]
    timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    token = token or secrets.token_hex(3)
    name = f"{timestamp_ms}-{token}-{safe_name}"
    return f"{name}.{ext}" if ext else name


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 ** 2:
        return f"{size / 1024:.1f} KB"
    if size < 1024 ** 3:
        return f"{size / 1024 ** 2:.1f} MB"
    return f"{size / 1024 ** 3:.1f} GB"


def format_duration(seconds: float) -> str:
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def png_dimensions(data: bytes) -> Optional[Tuple[int, int]]:
    """Width and height from a PNG's IHDR chunk."""
    if len(data) < 24 or not data.startswith(_PNG_SIGNATURE) or data[12:16] != b"IHDR":
        return None
    width, height = struct.unpack(">II", data[16:24])
    return width, height
