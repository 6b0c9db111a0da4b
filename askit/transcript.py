"""Transcript entries and writing them to disk as JSON, Markdown or text."""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

_DIR_PERM = 0o750

# Characters escaped in JSON strings so output is safe to embed in HTML.
_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class Role(str, Enum):
    """The role of a message in the transcript."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    def __str__(self) -> str:
        return self.value


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class Entry:
    """One message in the transcript; streamed replies accumulate in ``text``."""

    role: Role
    text: str = ""
    timestamp: datetime = field(default_factory=_now)
    cancelled: bool = False


def _rfc3339(moment: datetime, fractional: bool) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if fractional and moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def write_file_atomic(path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a sibling temporary file and a rename."""
    path = os.fspath(path)
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, mode=_DIR_PERM, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".askit-save-", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.remove(tmp)
        raise


def _entry_record(entry: Entry) -> dict:
    record = {
        "role": str(entry.role),
        "text": entry.text,
        "timestamp": _rfc3339(entry.timestamp, fractional=True),
    }
    if entry.cancelled:
        record["cancelled"] = True
    return record


def save_json(path, entries) -> None:
    """Write the entries as an indented JSON array."""
    text = json.dumps([_entry_record(e) for e in entries], indent=2, ensure_ascii=False)
    for char, escape in _JSON_ESCAPES.items():
        text = text.replace(char, escape)
    write_file_atomic(path, (text + "\n").encode("utf-8"))


def save_markdown(path, entries) -> None:
    """Write the entries as Markdown sections, one heading per message."""
    chunks = []
    for entry in entries:
        chunks.append(f"### {entry.role} \u2014 {_rfc3339(entry.timestamp, fractional=False)}\n\n")
        chunks.append(f"{entry.text}\n\n")
        if entry.cancelled:
            chunks.append("_[cancelled]_\n\n")
    write_file_atomic(path, "".join(chunks).encode("utf-8"))


def save_text(path, entries) -> None:
    """Write the entries as plain role-prefixed blocks."""
    chunks = []
    for entry in entries:
        chunks.append(f"--- {entry.role} ({_rfc3339(entry.timestamp, fractional=False)}) ---\n")
        chunks.append(f"{entry.text}\n")
        if entry.cancelled:
            chunks.append("[cancelled]\n")
    write_file_atomic(path, "".join(chunks).encode("utf-8"))