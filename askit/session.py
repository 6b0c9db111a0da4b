"""In-memory state of one interactive chat run."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .refs import FileRef
from .transcript import Entry, Role, save_json, save_markdown, save_text, write_file_atomic

UNSUPPORTED_EXTENSION = "unsupported extension; use .json, .md, or .txt"
NO_ASSISTANT_REPLY = "no assistant reply to save"

_SAVERS = {"json": save_json, "md": save_markdown, "txt": save_text}


class SaveError(Exception):
    """Saving a reply or the conversation failed."""


def _extension(path: str) -> str:
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot + 1:].lower() if dot >= 0 else ""


def _unsupported(ext: str) -> SaveError:
    return SaveError(f'extension "{ext}": {UNSUPPORTED_EXTENSION}')


@dataclass
class Session:
    """The transcript, references and settings of one interactive run."""

    system_prompt: str = ""
    preset_name: str = ""
    model: str = ""
    config_file_path: str = ""
    history: list[Entry] = field(default_factory=list)
    references: list[FileRef] = field(default_factory=list)
    in_flight: bool = False

    def append_user(self, text: str) -> None:
        """Add a user message to the transcript."""
        self.history.append(Entry(role=Role.USER, text=text))

    def start_assistant(self) -> Entry:
        """Open a new assistant entry and return it for in-place updates."""
        entry = Entry(role=Role.ASSISTANT)
        self.history.append(entry)
        return entry

    def append_assistant_chunk(self, delta: str) -> None:
        """Add a streamed delta to the latest assistant entry, opening one if needed."""
        if not self.history or self.history[-1].role != Role.ASSISTANT:
            self.start_assistant()
        self.history[-1].text += delta

    def mark_last_cancelled(self) -> None:
        """Tag the latest entry as cancelled when it is an assistant reply."""
        if self.history and self.history[-1].role == Role.ASSISTANT:
            self.history[-1].cancelled = True

    def last_assistant_text(self) -> str:
        """Return the text of the latest assistant message, or ``""``."""
        return next(
            (e.text for e in reversed(self.history) if e.role == Role.ASSISTANT), ""
        )

    def clear_history(self) -> None:
        """Drop all messages; the system prompt stays."""
        self.history = []

    def record_references(self, refs) -> None:
        """Merge new references, skipping paths already recorded."""
        seen = {ref.path for ref in self.references}
        for ref in refs:
            if ref.path in seen:
                continue
            self.references.append(ref)
            seen.add(ref.path)

    def save_last_reply(self, path) -> None:
        """Write the latest assistant reply to a ``.json``, ``.md`` or ``.txt`` file."""
        path = os.fspath(path)
        ext = _extension(path)
        if ext not in _SAVERS:
            raise _unsupported(ext)
        text = self.last_assistant_text()
        if not text:
            raise SaveError(NO_ASSISTANT_REPLY)
        try:
            write_file_atomic(path, text.encode("utf-8"))
        except OSError as exc:
            raise SaveError(f"save-last: {exc}") from exc

    def save_conversation(self, path) -> None:
        """Write the whole transcript in the format its extension names."""
        path = os.fspath(path)
        ext = _extension(path)
        saver = _SAVERS.get(ext)
        if saver is None:
            raise _unsupported(ext)
        try:
            saver(path, self.history)
        except OSError as exc:
            raise SaveError(f"save: {exc}") from exc