"""Assembling chat-completion messages from prose and ``@path`` references."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .classify import classify
from .config import FileRefsPolicy, UnknownKind, builtins
from .imageref import load_image_ref
from .refs import (
    ContentPart,
    FileRef,
    ImageURL,
    Kind,
    Message,
    PartType,
    Prompt,
    Token,
    TokenKind,
)
from .textref import FileRefError, load_text_ref
from .tokens import TokenizeError, expand_home, tokenize

EMPTY_PROMPT = "empty prompt (no prose and no file references)"
UNKNOWN_EXTENSION = (
    "unknown extension (adjust file_references.*_extensions or pass :kind suffix)"
)
UNKNOWN_HANDLE_LOGIC = "internal: unknown extension reached handleUnknown"

_TEXT_MEDIA = {
    "md": "text/markdown",
    "json": "application/json",
    "yaml": "application/yaml",
    "yml": "application/yaml",
    "toml": "application/toml",
    "html": "text/html",
    "xml": "application/xml",
    "csv": "text/csv",
    "tsv": "text/tab-separated-values",
}


class AssembleError(ValueError):
    """The prompt could not be turned into a message."""


@dataclass
class AssembleOptions:
    """Controls how :func:`assemble` resolves and loads references."""

    policy: FileRefsPolicy = field(default_factory=lambda: builtins().file_references)
    system_prompt: str = ""
    extra_files: list[str] = field(default_factory=list)
    logger: logging.Logger | None = None


def _extension(path: str) -> str:
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot + 1:].lower() if dot >= 0 else ""


def detect_text_media(path: str) -> str:
    """Return the media type of a text file, judged by its extension."""
    return _TEXT_MEDIA.get(_extension(path), "text/plain")


def _resolve_path(raw: str) -> str:
    path = raw if os.path.isabs(raw) else os.path.abspath(raw)
    try:
        os.stat(path)
    except OSError as exc:
        raise FileRefError(f"resolve {raw}: {path}: {exc}") from exc
    return path


def _handle_unknown(path: str, options: AssembleOptions) -> FileRef:
    strategy = options.policy.unknown_strategy
    if strategy == UnknownKind.ERROR:
        raise AssembleError(f"{path}: {UNKNOWN_EXTENSION}")
    if strategy == UnknownKind.SKIP:
        if options.logger is not None:
            options.logger.info("skipping unknown-extension file: %s", path)
        return FileRef(raw=path, path=path, kind=Kind.UNKNOWN)
    raise AssembleError(f"{path}: {UNKNOWN_HANDLE_LOGIC}")


def _process_file_ref(
    token: Token, options: AssembleOptions, pending: list[str]
) -> tuple[ContentPart | None, FileRef]:
    """Load one reference; inline text goes into ``pending``, images come back as a part."""
    path = _resolve_path(token.ref_path)
    kind, explicit = classify(
        Token(ref_path=path, kind_override=token.kind_override), options.policy
    )
    if kind == Kind.IMAGE:
        data_url, media, size = load_image_ref(path, options.policy)
        part = ContentPart(type=PartType.IMAGE_URL, image_url=ImageURL(url=data_url, detail="auto"))
        ref = FileRef(
            raw=token.ref_path, path=path, kind=kind, kind_explicit=explicit,
            size_bytes=size, media_type=media,
        )
        return part, ref
    if kind == Kind.TEXT:
        block, size = load_text_ref(path, options.policy.max_text_size_kb)
        pending.append(f"\n{block}\n")
        ref = FileRef(
            raw=token.ref_path, path=path, kind=kind, kind_explicit=explicit,
            size_bytes=size, media_type=detect_text_media(path),
        )
        return None, ref
    return None, _handle_unknown(path, options)


def assemble(
    user_prompt: str, options: AssembleOptions | None = None
) -> tuple[Prompt, list[FileRef]]:
    """Resolve every ``@path`` in ``user_prompt`` and build the user message.

    Stops at the first failure: :class:`AssembleError` for malformed or empty
    prompts and unknown extensions, :class:`FileRefError` (including
    ``SizeError``) for files that cannot be loaded.
    """
    options = options if options is not None else AssembleOptions()
    try:
        tokens = tokenize(user_prompt)
    except TokenizeError as exc:
        raise AssembleError(f"tokenize: {exc}") from exc

    tokens.extend(
        Token(kind=TokenKind.FILE_REF, ref_path=expand_home(extra))
        for extra in options.extra_files
    )

    parts: list[ContentPart] = []
    refs: list[FileRef] = []
    pending: list[str] = []

    def flush() -> None:
        text = "".join(pending)
        pending.clear()
        if text:
            parts.append(ContentPart(type=PartType.TEXT, text=text))

    for token in tokens:
        if token.kind == TokenKind.TEXT:
            pending.append(token.text)
            continue
        part, ref = _process_file_ref(token, options, pending)
        if part is not None:
            # Keep prose that precedes an image ahead of it.
            flush()
            parts.append(part)
        refs.append(ref)
    flush()

    if not parts:
        raise AssembleError(EMPTY_PROMPT)
    message = Message(role="user", content=parts)
    return Prompt(system=options.system_prompt, messages=[message]), refs