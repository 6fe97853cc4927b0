"""Content-type detection from the uploaded bytes.

The client-declared type and extension are never consulted here: the MIME
type persisted on an asset and used for extension inference is the one sniffed
from the content itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from assetsme.core.errors import InputError

logger = logging.getLogger(__name__)

_HEAD_BYTES = 4096

# Magic byte signatures for known binary file types, checked in order.
_MAGIC_SIGNATURES: list[tuple[bytes, str]] = [
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"%PDF", "application/pdf"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"\x00\x00\x01\x00", "image/vnd.microsoft.icon"),
    (b"PK\x03\x04", "application/zip"),
    (b"PK\x05\x06", "application/zip"),
    (b"\x1f\x8b", "application/gzip"),
    (b"\x7fELF", "application/x-executable"),
    (b"\xca\xfe\xba\xbe", "application/x-mach-binary"),
    (b"\xcf\xfa\xed\xfe", "application/x-mach-binary"),
]

# ISO base media brands found at offset 8 after "ftyp".
_FTYP_BRANDS: dict[bytes, str] = {
    b"avif": "image/avif",
    b"avis": "image/avif",
    b"heic": "image/heic",
    b"heix": "image/heic",
    b"mif1": "image/heif",
    b"isom": "video/mp4",
    b"mp41": "video/mp4",
    b"mp42": "video/mp4",
    b"qt  ": "video/quicktime",
}

_SHEBANG_INTERPRETERS: list[tuple[str, str]] = [
    ("php", "text/x-php"),
    ("python", "text/x-script.python"),
    ("perl", "text/x-perl"),
    ("node", "application/javascript"),
    ("sh", "text/x-shellscript"),
]

RASTER_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/avif",
        "image/tiff",
        "image/bmp",
    }
)


def _decode_text(head: bytes) -> str | None:
    if b"\x00" in head:
        return None
    try:
        return head.decode("utf-8")
    except UnicodeDecodeError as exc:
        # A multi-byte character cut off by the head window is still text.
        if exc.start >= len(head) - 3:
            return head[: exc.start].decode("utf-8")
        return None


def _sniff_text(text: str) -> str:
    stripped = text.lstrip("\ufeff \t\r\n")
    lowered = stripped.lower()
    if lowered.startswith("#!"):
        first_line = lowered.splitlines()[0]
        for needle, mime in _SHEBANG_INTERPRETERS:
            if needle in first_line:
                return mime
        return "text/x-script"
    if lowered.startswith("<?xml") or lowered.startswith("<svg"):
        return "image/svg+xml" if "<svg" in lowered else "text/xml"
    if lowered.startswith("<!doctype html") or lowered.startswith("<html"):
        return "text/html"
    return "text/plain"


def sniff_mime(content: bytes) -> str | None:
    """Classify ``content`` by its bytes; ``None`` when nothing can be said."""
    if not content:
        return None

    # Script payloads hidden behind an image header still execute when served by PHP.
    if b"<?php" in content.lower():
        return "application/x-httpd-php"

    head = content[:_HEAD_BYTES]
    for signature, mime in _MAGIC_SIGNATURES:
        if head.startswith(signature):
            return mime
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if head[4:8] == b"ftyp":
        return _FTYP_BRANDS.get(head[8:12], "application/octet-stream")
    text = _decode_text(head)
    if text is not None:
        return _sniff_text(text)
    if head.startswith(b"BM") and len(head) >= 14:
        return "image/bmp"
    if head.startswith(b"MZ"):
        return "application/x-dosexec"
    return "application/octet-stream"


def is_raster_image(mime: str | None) -> bool:
    return mime in RASTER_MIME_TYPES


@dataclass(frozen=True, slots=True)
class ContentTypeGate:
    denied_patterns: tuple[str, ...]

    @classmethod
    def from_patterns(cls, patterns: Iterable[str]) -> "ContentTypeGate":
        return cls(tuple(pattern.lower() for pattern in patterns if pattern))

    def is_denied(self, mime: str) -> bool:
        lowered = mime.lower()
        return any(pattern in lowered for pattern in self.denied_patterns)

    def inspect(self, content: bytes) -> str:
        """Return the sniffed MIME type or raise ``InputError``."""
        mime = sniff_mime(content)
        if mime is None:
            raise InputError("Unable to detect file MIME type.")
        if self.is_denied(mime):
            logger.warning("Rejected upload with forbidden content type %s", mime)
            raise InputError("The provided file type is not allowed.", details={"mime": mime})
        return mime
