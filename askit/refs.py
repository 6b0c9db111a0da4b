"""Data types shared by prompt tokenizing, file loading and message assembly."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class Kind(IntEnum):
    """Classification of a single file reference."""

    UNKNOWN = 0
    IMAGE = 1
    TEXT = 2

    def __str__(self) -> str:
        return self.name.lower()


class TokenKind(IntEnum):
    """Distinguishes prose tokens from file-reference tokens."""

    TEXT = 1
    FILE_REF = 2


@dataclass
class Token:
    """One element of a tokenized prompt: prose or a single file reference.

    ``ref_path`` is the path as written (tilde-expanded); ``kind_override``
    comes from a trailing ``:text`` / ``:image`` suffix, ``Kind.UNKNOWN``
    meaning no override.
    """

    kind: TokenKind = TokenKind.FILE_REF
    text: str = ""
    ref_path: str = ""
    kind_override: Kind = Kind.UNKNOWN


@dataclass
class FileRef:
    """A file reference resolved against the filesystem."""

    raw: str = ""
    path: str = ""
    kind: Kind = Kind.UNKNOWN
    kind_explicit: bool = False
    size_bytes: int = 0
    media_type: str = ""


class PartType(str, Enum):
    """Content-part variants of a chat-completion message."""

    TEXT = "text"
    IMAGE_URL = "image_url"

    def __str__(self) -> str:
        return self.value


@dataclass
class ImageURL:
    """The ``image_url`` payload of a content part."""

    url: str
    detail: str = "auto"


@dataclass
class ContentPart:
    """One multimodal content part of a message."""

    type: PartType
    text: str = ""
    image_url: ImageURL | None = None


@dataclass
class Message:
    """A single chat-completion message."""

    role: str
    content: list[ContentPart] = field(default_factory=list)


@dataclass
class Prompt:
    """System prompt plus the assembled messages."""

    system: str = ""
    messages: list[Message] = field(default_factory=list)