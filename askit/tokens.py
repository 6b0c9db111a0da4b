"""Splitting a prompt string into prose and ``@path`` reference tokens."""

from __future__ import annotations

import os
import re
import sys

from .refs import Kind, Token, TokenKind

BARE_AT_END = "bare `@` at end of input (use \\@ to write a literal at-sign)"
UNTERMINATED_TICK = "unterminated `@`<backtick> quoted path"

# Characters that, right before an `@`, make it start a file reference.
_BOUNDARY = " \t\n\r([{,;\"'"
_UNQUOTED_PATH = re.compile(r"[^ \t\n\r]*")
_SUFFIX_KINDS = {"text": Kind.TEXT, "image": Kind.IMAGE}


class TokenizeError(ValueError):
    """The prompt holds a malformed ``@`` reference."""


def _home_dir() -> str | None:
    name = "USERPROFILE" if sys.platform == "win32" else "HOME"
    return os.environ.get(name) or None


def expand_home(path: str) -> str:
    """Expand a leading ``~`` or ``~/`` to the user's home directory."""
    if path == "~":
        return _home_dir() or path
    if path.startswith("~/"):
        home = _home_dir()
        if home:
            return os.path.normpath(os.path.join(home, path[2:]))
    return path


def _parse_kind_suffix(raw: str, quoted: bool) -> tuple[Kind, str]:
    if quoted:
        return Kind.UNKNOWN, raw
    head, sep, suffix = raw.rpartition(":")
    if sep and suffix in _SUFFIX_KINDS:
        return _SUFFIX_KINDS[suffix], head
    return Kind.UNKNOWN, raw


def _read_ref(text: str, at: int) -> tuple[Token, int]:
    """Read the reference starting at the ``@`` at ``at``; return it and the next index."""
    start = at + 1
    if start >= len(text):
        raise TokenizeError(BARE_AT_END)
    if text[start] == "`":
        end = text.find("`", start + 1)
        if end < 0:
            raise TokenizeError(UNTERMINATED_TICK)
        raw, following, quoted = text[start + 1:end], end + 1, True
    else:
        match = _UNQUOTED_PATH.match(text, start)
        raw, following, quoted = match.group(), match.end(), False
    if not raw:
        raise TokenizeError(f"empty `@` reference at position {at}: {BARE_AT_END}")
    override, path = _parse_kind_suffix(raw, quoted)
    token = Token(kind=TokenKind.FILE_REF, ref_path=expand_home(path), kind_override=override)
    return token, following


def tokenize(text: str) -> list[Token]:
    """Return the prose chunks and ``@path`` references of ``text`` in order.

    Handles plain paths, backtick-quoted paths with spaces, ``\\@`` escapes
    and an optional ``:text`` / ``:image`` suffix.
    """
    tokens: list[Token] = []
    pending: list[str] = []

    def flush() -> None:
        if pending:
            tokens.append(Token(kind=TokenKind.TEXT, text="".join(pending)))
            pending.clear()

    pos = 0
    while pos < len(text):
        ch = text[pos]
        if ch == "\\" and text.startswith("@", pos + 1):
            pending.append("@")
            pos += 2
            continue
        if ch == "@" and (pos == 0 or text[pos - 1] in _BOUNDARY):
            flush()
            token, pos = _read_ref(text, pos)
            tokens.append(token)
            continue
        pending.append(ch)
        pos += 1
    flush()
    return tokens