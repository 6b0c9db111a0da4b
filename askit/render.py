"""Emitting completion output in plain, json or raw form."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import BinaryIO

from .refs import FileRef, Kind

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

# Characters escaped in JSON strings so output is safe to embed in HTML.
_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class RenderError(OSError):
    """Writing rendered output failed."""


@dataclass
class Usage:
    """Token accounting reported by the server."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Meta:
    """Per-request metadata handed to :meth:`Renderer.finalize`."""

    askit_version: str = ""
    model: str = ""
    endpoint: str = ""
    preset_name: str = ""
    system: str = ""
    user_prompt: str = ""
    inputs: list[FileRef] = field(default_factory=list)
    started_at: datetime = _ZERO_TIME
    completed_at: datetime = _ZERO_TIME
    duration: timedelta = field(default_factory=timedelta)
    finish_reason: str = ""
    usage: Usage = field(default_factory=Usage)
    raw_body: bytes = b""
    text: str = ""


def _write(out: BinaryIO, data: bytes, context: str) -> None:
    try:
        out.write(data)
    except OSError as exc:
        raise RenderError(f"{context}: {exc}") from exc


class Renderer(ABC):
    """An output-format backend."""

    @abstractmethod
    def stream(self, delta: str) -> None:
        """Handle one streamed delta."""

    @abstractmethod
    def finalize(self, meta: Meta) -> None:
        """Emit the end-of-response output; called once per request."""


@dataclass
class PlainRenderer(Renderer):
    """Streams text as it arrives and ends the output with a newline."""

    out: BinaryIO
    _saw_newline: bool = field(default=False, init=False, repr=False)
    _wrote: bool = field(default=False, init=False, repr=False)

    def stream(self, delta: str) -> None:
        if not delta:
            return
        _write(self.out, delta.encode("utf-8"), "plain render: write")
        self._wrote = True
        self._saw_newline = delta.endswith("\n")

    def finalize(self, meta: Meta | None = None) -> None:
        if not self._wrote or self._saw_newline:
            return
        _write(self.out, b"\n", "plain render: finalize")


def _rfc3339_utc(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    else:
        moment = moment.astimezone(timezone.utc)
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}Z"
    )


def _milliseconds(value: timedelta) -> int:
    micros = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    millis = abs(micros) // 1000
    return -millis if micros < 0 else millis


def _encode_json(value) -> bytes:
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    for char, escape in _JSON_ESCAPES.items():
        text = text.replace(char, escape)
    return text.encode("utf-8")


def _input_record(ref: FileRef) -> dict:
    return {
        "type": "text" if ref.kind == Kind.TEXT else "image",
        "path": ref.path,
        "media_type": ref.media_type,
        "bytes": ref.size_bytes,
    }


@dataclass
class JSONRenderer(Renderer):
    """Buffers streamed deltas and writes one JSON envelope on finalize."""

    out: BinaryIO
    _buffer: list[str] = field(default_factory=list, init=False, repr=False)

    def stream(self, delta: str) -> None:
        self._buffer.append(delta)

    def finalize(self, meta: Meta) -> None:
        text = meta.text or "".join(self._buffer)
        request: dict = {"model": meta.model, "endpoint": meta.endpoint}
        if meta.preset_name:
            request["preset"] = meta.preset_name
        if meta.system:
            request["system"] = meta.system
        request["prompt"] = meta.user_prompt
        request["inputs"] = [_input_record(ref) for ref in meta.inputs]
        request["started_at"] = _rfc3339_utc(meta.started_at)
        envelope = {
            "askit_version": meta.askit_version,
            "request": request,
            "response": {
                "text": text,
                "finish_reason": meta.finish_reason,
                "usage": asdict(meta.usage),
                "duration_ms": _milliseconds(meta.duration),
                "completed_at": _rfc3339_utc(meta.completed_at),
            },
        }
        _write(self.out, _encode_json(envelope) + b"\n", "json render: write")


@dataclass
class RawRenderer(Renderer):
    """Writes the upstream response body verbatim on finalize."""

    out: BinaryIO

    def stream(self, delta: str) -> None:
        """Deltas are ignored; the body comes from :attr:`Meta.raw_body`."""

    def finalize(self, meta: Meta) -> None:
        body = meta.raw_body
        if not body:
            return
        _write(self.out, body, "raw render: write")
        if not body.endswith(b"\n"):
            _write(self.out, b"\n", "raw render: newline")