"""Loading image file references as base64 data URLs, with optional resizing."""

from __future__ import annotations

import base64
import io
import os

from PIL import Image

from .config import FileRefsPolicy, ResizePolicy
from .refs import Kind
from .textref import FileRefError, SizeError

_MB = 1024 * 1024
_SNIFF_LEN = 512

MIME_PNG = "image/png"
MIME_JPEG = "image/jpeg"

_EXTENSION_MEDIA = {
    "png": MIME_PNG,
    "jpg": MIME_JPEG,
    "jpeg": MIME_JPEG,
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
}

# Only these formats are decoded for resizing; others pass through untouched.
_DECODABLE = ["PNG", "JPEG"]

_WHITESPACE = b"\t\n\x0c\r "
_HTML_TAGS = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1", b"<DIV",
    b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B", b"<BODY", b"<BR", b"<P",
    b"<!--",
)
_EXACT_SIGNATURES = (
    (b"%PDF-", "application/pdf"),
    (b"%!PS-Adobe-", "application/postscript"),
    (b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xfe", "text/plain; charset=utf-16le"),
    (b"\xef\xbb\xbf", "text/plain; charset=utf-8"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"\x00\x00\x02\x00", "image/x-icon"),
    (b"BM", "image/bmp"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)
_LATE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", MIME_PNG),
    (b"\xff\xd8\xff", MIME_JPEG),
    (b"ID3", "audio/mpeg"),
    (b"OggS\x00", "application/ogg"),
    (b"MThd\x00\x00\x00\x06", "audio/midi"),
    (b"\x1a\x45\xdf\xa3", "video/webm"),
    (b"OTTO", "font/otf"),
    (b"ttcf", "font/collection"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"PK\x03\x04", "application/zip"),
    (b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    (b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    (b"\x00asm", "application/wasm"),
)
_RIFF_FORMS = ((b"WEBPVP", "image/webp"), (b"AVI ", "video/avi"), (b"WAVE", "audio/wave"))
_BINARY = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)


def _extension(path: str) -> str:
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot + 1:].lower() if dot >= 0 else ""


def _is_html(data: bytes) -> bool:
    for tag in _HTML_TAGS:
        if len(data) <= len(tag):
            continue
        if data[: len(tag)].upper() == tag and data[len(tag)] in b" >":
            return True
    return False


def _is_mp4(data: bytes) -> bool:
    if len(data) < 12:
        return False
    box_size = int.from_bytes(data[:4], "big")
    if len(data) < box_size or box_size % 4 != 0 or data[4:8] != b"ftyp":
        return False
    return any(
        data[start:start + 3] == b"mp4" for start in range(8, box_size, 4) if start != 12
    )


def _sniff(data: bytes) -> str:
    """Content-type sniffing in the manner of the common web algorithm."""
    data = data[:_SNIFF_LEN]
    stripped = data.lstrip(_WHITESPACE)
    if _is_html(stripped):
        return "text/html; charset=utf-8"
    if stripped.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"
    for prefix, media in _EXACT_SIGNATURES:
        if data.startswith(prefix):
            return media
    if data.startswith(b"RIFF") and len(data) >= 12:
        for form, media in _RIFF_FORMS:
            if data[8:8 + len(form)] == form:
                return media
    if data.startswith(b"FORM") and data[8:12] == b"AIFF":
        return "audio/aiff"
    if _is_mp4(data):
        return "video/mp4"
    if data.startswith(b"\x00\x01\x00\x00"):
        return "font/ttf"
    for prefix, media in _LATE_SIGNATURES:
        if data.startswith(prefix):
            return media
    if not any(byte in _BINARY for byte in stripped):
        return "text/plain; charset=utf-8"
    return "application/octet-stream"


def detect_media_type(path: str, body: bytes) -> str:
    """Return the media type from the extension, or by sniffing the content."""
    return _EXTENSION_MEDIA.get(_extension(path)) or _sniff(body)


def _maybe_resize(raw: bytes, media: str, policy: ResizePolicy) -> tuple[bytes, str]:
    try:
        with Image.open(io.BytesIO(raw), formats=_DECODABLE) as img:
            img.load()
            source = img.convert("RGBA")
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError):
        return raw, media

    width, height = source.size
    long_edge = max(width, height)
    if long_edge <= policy.max_long_edge_px:
        return raw, media

    scale = policy.max_long_edge_px / long_edge
    size = (int(width * scale), int(height * scale))
    try:
        resized = source.resize(size, Image.Resampling.BICUBIC)
    except ValueError as exc:
        raise FileRefError(f"scale to {size[0]}x{size[1]}: {exc}") from exc

    out = io.BytesIO()
    if media == MIME_PNG:
        try:
            resized.save(out, format="PNG")
        except (OSError, ValueError) as exc:
            raise FileRefError(f"encode png: {exc}") from exc
        return out.getvalue(), MIME_PNG
    try:
        resized.convert("RGB").save(out, format="JPEG", quality=policy.jpeg_quality)
    except (OSError, ValueError) as exc:
        raise FileRefError(f"encode jpeg: {exc}") from exc
    return out.getvalue(), MIME_JPEG


def load_image_ref(path: str, policy: FileRefsPolicy) -> tuple[str, str, int]:
    """Return the data URL, media type and encoded size of an image file.

    Resizes first when the policy enables it. The size limit applies to the
    base64 payload; exceeding it raises :class:`SizeError`.
    """
    try:
        with open(path, "rb") as handle:
            raw = handle.read()
    except OSError as exc:
        raise FileRefError(f"read {path}: {exc}") from exc
    media = detect_media_type(path, raw)

    if policy.resize_images.enabled:
        try:
            raw, media = _maybe_resize(raw, media, policy.resize_images)
        except FileRefError as exc:
            raise FileRefError(f"resize {path}: {exc}") from exc

    encoded = base64.b64encode(raw).decode("ascii")
    total = len(encoded)
    limit = policy.max_image_size_mb * _MB
    if total > limit:
        raise SizeError(path, total, limit, str(Kind.IMAGE), "max_image_size_mb")
    return f"data:{media};base64,{encoded}", media, total