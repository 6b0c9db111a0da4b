"""Classification of file references as image, text or unknown."""

from __future__ import annotations

import os

from .config import FileRefsPolicy, UnknownKind
from .refs import Kind, Token


def _extension(path: str) -> str:
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot + 1:].lower() if dot >= 0 else ""


def classify(token: Token, policy: FileRefsPolicy) -> tuple[Kind, bool]:
    """Return the final kind of a reference and whether it was explicit.

    An override on the token wins. Otherwise the extension lists decide, and
    for unlisted extensions the ``text`` / ``image`` strategies force a kind
    while ``error`` / ``skip`` yield ``Kind.UNKNOWN`` for the caller to handle.
    """
    if token.kind_override != Kind.UNKNOWN:
        return token.kind_override, True
    ext = _extension(token.ref_path)
    if ext in policy.image_extensions:
        return Kind.IMAGE, False
    if ext in policy.text_extensions:
        return Kind.TEXT, False
    if policy.unknown_strategy == UnknownKind.TEXT:
        return Kind.TEXT, False
    if policy.unknown_strategy == UnknownKind.IMAGE:
        return Kind.IMAGE, False
    return Kind.UNKNOWN, False