"""Parsing and running slash commands typed in the chat input."""

from __future__ import annotations

import json
from dataclasses import dataclass

from .session import SaveError, Session

EMPTY_SLASH_COMMAND = "empty slash command"
SYSTEM_NO_ARG = "/system requires the new system prompt"
PRESET_NO_ARG = "/preset NAME \u2014 use /preset <name>"
PRESET_UNKNOWN = "unknown preset"
MODEL_NO_ARG = "/model NAME"
SAVE_NO_ARG = "/save FILE (extension: .json, .md, .txt)"
SAVE_LAST_NO_ARG = "/save-last FILE (extension: .json, .md, .txt)"
UNKNOWN_COMMAND = "unknown command (try /help)"


class SlashError(ValueError):
    """A slash command was malformed or unknown."""


@dataclass
class SlashResult:
    """What a slash command did, for the UI to act on."""

    handled: bool = False
    notice: str = ""
    error: Exception | None = None
    quit: bool = False
    clear_view: bool = False


def is_slash(text: str) -> bool:
    """Return whether ``text`` is a slash command: starts with ``/`` and has no ``@``."""
    trimmed = text.lstrip(" \t")
    return trimmed.startswith("/") and "@" not in trimmed


def help_text() -> str:
    """Return the one-line list of slash commands."""
    return (
        "slash commands: /help /clear /system TEXT /preset NAME /model NAME "
        "/save FILE /save-last FILE /files /cancel /quit"
    )


def _names_of(presets) -> str:
    if not presets:
        return "(none defined)"
    return ", ".join(sorted(presets))


def _failed(message: str) -> SlashResult:
    return SlashResult(handled=True, error=SlashError(message))


def _files_list(session: Session) -> str:
    if not session.references:
        return "no @ references this session"
    return "\n".join(f"{r.kind} [{r.media_type}] {r.path}" for r in session.references)


def _preset(session: Session, args: list[str], presets) -> SlashResult:
    if not args:
        return _failed(f"{PRESET_NO_ARG}; available: {_names_of(presets)}")
    name = args[0]
    if name not in presets:
        return _failed(
            f"{PRESET_UNKNOWN} {json.dumps(name, ensure_ascii=False)}; "
            f"available: {_names_of(presets)}"
        )
    session.system_prompt = presets[name].system
    session.preset_name = name
    session.clear_history()
    return SlashResult(
        handled=True, clear_view=True, notice=f"preset {name} applied; history cleared"
    )


def _save(session: Session, arg: str, last: bool) -> SlashResult:
    if not arg:
        return _failed(SAVE_LAST_NO_ARG if last else SAVE_NO_ARG)
    try:
        if last:
            session.save_last_reply(arg)
        else:
            session.save_conversation(arg)
    except (SaveError, OSError) as exc:
        return SlashResult(handled=True, error=exc)
    label = "last reply" if last else "conversation"
    return SlashResult(handled=True, notice=f"{label} \u2192 {arg}")


def dispatch_slash(text: str, session: Session, presets=None) -> SlashResult:
    """Run a slash command against ``session``; errors come back in the result."""
    presets = presets or {}
    parts = text.lstrip(" \t").split()
    if not parts:
        return _failed(EMPTY_SLASH_COMMAND)
    cmd, args = parts[0], parts[1:]
    arg = text.removeprefix(cmd).removeprefix(" ").strip()

    if cmd == "/help":
        return SlashResult(handled=True, notice=help_text())
    if cmd == "/clear":
        session.clear_history()
        return SlashResult(handled=True, clear_view=True, notice="history cleared")
    if cmd == "/system":
        if not arg:
            return _failed(SYSTEM_NO_ARG)
        session.system_prompt = arg
        return SlashResult(handled=True, notice="system prompt updated")
    if cmd == "/preset":
        return _preset(session, args, presets)
    if cmd == "/model":
        if not args:
            return _failed(MODEL_NO_ARG)
        session.model = args[0]
        return SlashResult(handled=True, notice=f"model \u2192 {args[0]}")
    if cmd == "/save":
        return _save(session, arg, last=False)
    if cmd == "/save-last":
        return _save(session, arg, last=True)
    if cmd == "/files":
        return SlashResult(handled=True, notice=_files_list(session))
    if cmd == "/cancel":
        return SlashResult(handled=True, notice="cancel signal")
    if cmd in ("/quit", "/exit"):
        return SlashResult(handled=True, quit=True)
    return _failed(f"{cmd}: {UNKNOWN_COMMAND}")