"""Loading text file references as fenced blocks, with size limits."""

from __future__ import annotations

import os
import stat

from .refs import Kind

_KB = 1024
_MB = _KB * 1024


class FileRefError(OSError):
    """A referenced file could not be loaded."""


class SizeError(FileRefError):
    """A referenced file exceeds its configured size limit."""

    def __init__(self, path: str, got: int, limit: int, kind: str, limit_key: str):
        self.path = path
        self.got = got
        self.limit = limit
        self.kind = kind
        self.limit_key = limit_key
        super().__init__(
            f"{path}: {kind} {humanize_size(got)} exceeds {limit_key} ({humanize_size(limit)})"
        )

    def __str__(self) -> str:
        return self.args[0]

    def hint(self) -> str:
        """Advice on how to fix the violation."""
        if self.kind == str(Kind.IMAGE):
            return "enable file_references.resize_images or raise file_references.max_image_size_mb"
        return "raise file_references.max_text_size_kb or trim the input"


def humanize_size(size: int) -> str:
    """Render a byte count as ``B``, ``KB`` or ``MB``."""
    if size >= _MB:
        return f"{size / _MB:.1f} MB"
    if size >= _KB:
        return f"{size / _KB:.1f} KB"
    return f"{size} B"


def load_text_ref(path: str, max_kb: int) -> tuple[str, int]:
    """Return the fenced block for a text file and its size in bytes.

    Raises :class:`SizeError` when the file is larger than ``max_kb`` and
    :class:`FileRefError` for missing files, directories and invalid UTF-8.
    """
    try:
        info = os.stat(path)
    except OSError as exc:
        raise FileRefError(f"stat {path}: {exc}") from exc
    if stat.S_ISDIR(info.st_mode):
        raise FileRefError(f"{path}: is a directory")
    size = info.st_size
    if size // _KB > max_kb:
        raise SizeError(path, size, max_kb * _KB, str(Kind.TEXT), "max_text_size_kb")
    try:
        with open(path, "rb") as handle:
            body = handle.read()
    except OSError as exc:
        raise FileRefError(f"read {path}: {exc}") from exc
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FileRefError(f"{path}: not valid UTF-8") from exc
    return f"```{os.path.basename(path)}\n{text}\n```", size