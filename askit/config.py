"""Configuration types, built-in defaults, YAML loading and path discovery."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from fractions import Fraction
from typing import Any, Union

import yaml


class OutputFormat(str, Enum):
    """Renderer selection for ``--output``."""

    PLAIN = "plain"
    JSON = "json"
    RAW = "raw"

    def __str__(self) -> str:
        return self.value


class UnknownKind(str, Enum):
    """How files with an unlisted extension are handled."""

    ERROR = "error"
    SKIP = "skip"
    TEXT = "text"
    IMAGE = "image"

    def __str__(self) -> str:
        return self.value


class Source(str, Enum):
    """Where a resolved value came from, in ascending precedence."""

    BUILTIN = "builtin"
    DEFAULT_FILE = "default-file"
    EXPLICIT_FILE = "explicit-file"
    ENV = "env"
    FLAG = "flag"

    def __str__(self) -> str:
        return self.value


class ConfigError(ValueError):
    """A configuration file or value could not be used."""


class ConfigMissingError(ConfigError):
    """The requested configuration file does not exist."""


class ValidationError(ConfigError):
    """Aggregates every violation found while validating a configuration."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__(self._render())

    def _render(self) -> str:
        if len(self.errors) == 1:
            return str(self.errors[0])
        lines = [f"{len(self.errors)} configuration errors:"]
        lines.extend(f"  - {err}" for err in self.errors)
        return "\n".join(lines)

    def __str__(self) -> str:
        return self._render()


OutputValue = Union[OutputFormat, str]
UnknownValue = Union[UnknownKind, str]


@dataclass
class ResizePolicy:
    """Optional downscale-before-encode behaviour for images."""

    enabled: bool = False
    max_long_edge_px: int = 0
    jpeg_quality: int = 0


@dataclass
class FileRefsPolicy:
    """Classification, size limits and resizing for ``@path`` references."""

    image_extensions: list[str] = field(default_factory=list)
    text_extensions: list[str] = field(default_factory=list)
    max_image_size_mb: int = 0
    max_text_size_kb: int = 0
    unknown_strategy: UnknownValue = ""
    resize_images: ResizePolicy = field(default_factory=ResizePolicy)


@dataclass
class Defaults:
    """Default sampling, streaming and network parameters."""

    temperature: float = 0.0
    top_p: float = 0.0
    max_tokens: int = 0
    stream: bool = False
    output: OutputValue = ""
    timeout: timedelta = field(default_factory=timedelta)
    stream_idle_timeout: timedelta = field(default_factory=timedelta)
    retries: int = 0


@dataclass
class Preset:
    """A named bundle of overrides; ``None`` leaves a field to the defaults."""

    system: str = ""
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    seed: int | None = None
    stream: bool | None = None
    output: OutputValue | None = None
    model: str | None = None


@dataclass
class Config:
    """The resolved configuration for a single invocation."""

    endpoint: str = ""
    api_key: str = ""
    model: str = ""
    defaults: Defaults = field(default_factory=Defaults)
    file_references: FileRefsPolicy = field(default_factory=FileRefsPolicy)
    presets: dict[str, Preset] = field(default_factory=dict)


@dataclass
class PartialResize:
    """Resize block as read from a file; ``None`` means absent."""

    enabled: bool | None = None
    max_long_edge_px: int | None = None
    jpeg_quality: int | None = None


@dataclass
class PartialFileRefs:
    """File-reference block as read from a file; ``None`` means absent."""

    image_extensions: list[str] | None = None
    text_extensions: list[str] | None = None
    max_image_size_mb: int | None = None
    max_text_size_kb: int | None = None
    unknown_strategy: UnknownValue | None = None
    resize_images: PartialResize | None = None


@dataclass
class PartialDefaults:
    """Defaults block as read from a file; ``None`` means absent."""

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stream: bool | None = None
    output: OutputValue | None = None
    timeout: timedelta | None = None
    stream_idle_timeout: timedelta | None = None
    retries: int | None = None


@dataclass
class PartialConfig:
    """A whole configuration file; ``None`` marks every absent field."""

    endpoint: str | None = None
    api_key: str | None = None
    model: str | None = None
    defaults: PartialDefaults | None = None
    file_references: PartialFileRefs | None = None
    presets: dict[str, Preset] | None = None


# --- durations -------------------------------------------------------------

_NANOS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]*)")
_MAX_NANOS = 2**63 - 1


def parse_duration(text: str) -> timedelta:
    """Parse a duration string such as ``"5m"``, ``"1.5s"`` or ``"2h30m"``."""
    quoted = f'"{text}"'
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ConfigError(f"time: invalid duration {quoted}")

    total = 0
    pos = 0
    while pos < len(rest):
        match = _COMPONENT.match(rest, pos)
        whole, frac, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not frac:
            raise ConfigError(f"time: invalid duration {quoted}")
        if not unit:
            raise ConfigError(f"time: missing unit in duration {quoted}")
        if unit not in _NANOS:
            raise ConfigError(f'time: unknown unit "{unit}" in duration {quoted}')
        value = Fraction(int(whole or "0"))
        if frac:
            value += Fraction(int(frac), 10 ** len(frac))
        total += int(value * _NANOS[unit])
        if total > _MAX_NANOS:
            raise ConfigError(f"time: invalid duration {quoted}")
        pos = match.end()

    micros = total // 1000
    return timedelta(microseconds=-micros if negative else micros)


def _fraction_text(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    digits = f"{frac:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_duration(value: timedelta) -> str:
    """Render a duration in canonical form, e.g. ``"1m0s"`` or ``"1.5s"``."""
    micros = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    nanos = micros * 1000
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)
    if nanos == 0:
        return "0s"
    if nanos < 1_000_000_000:
        if nanos < 1_000:
            text = f"{nanos}ns"
        elif nanos < 1_000_000:
            text = _fraction_text(nanos, 3) + "\u00b5s"
        else:
            text = _fraction_text(nanos, 6) + "ms"
        return sign + text

    seconds, frac_nanos = divmod(nanos, 1_000_000_000)
    frac = f"{frac_nanos:09d}".rstrip("0")
    text = f"{seconds % 60}" + (f".{frac}" if frac else "") + "s"
    minutes = seconds // 60
    if minutes:
        text = f"{minutes % 60}m" + text
        hours = minutes // 60
        if hours:
            text = f"{hours}h" + text
    return sign + text


# --- built-in defaults -----------------------------------------------------


def builtins() -> Config:
    """Return a fresh copy of the baseline configuration."""
    return Config(
        defaults=Defaults(
            temperature=0.2,
            top_p=1.0,
            max_tokens=4096,
            stream=True,
            output=OutputFormat.PLAIN,
            timeout=timedelta(seconds=60),
            stream_idle_timeout=timedelta(minutes=2),
            retries=2,
        ),
        file_references=FileRefsPolicy(
            image_extensions=["png", "jpg", "jpeg", "webp", "gif", "bmp"],
            text_extensions=[
                "txt", "md", "json", "yaml", "yml", "toml", "csv", "tsv", "log",
                "go", "py", "rs", "sh", "js", "ts", "html", "xml", "sql", "ini", "conf",
            ],
            max_image_size_mb=20,
            max_text_size_kb=500,
            unknown_strategy=UnknownKind.ERROR,
            resize_images=ResizePolicy(enabled=False, max_long_edge_px=2048, jpeg_quality=85),
        ),
        presets={},
    )


# --- YAML decoding ---------------------------------------------------------

_TOP_SCALARS = ("endpoint", "api_key", "model")
_TOP_BLOCKS = ("defaults", "file_references", "presets")


def _mapping(node: Any, allowed: set[str], where: str) -> dict:
    if not isinstance(node, dict):
        raise ConfigError(f"{where}: expected a mapping")
    for key in node:
        if key not in allowed:
            raise ConfigError(f"field {key} not found in {where}")
    return node


def _as_str(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ConfigError(f"{name}: expected a string")


def _as_float(value: Any, name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ConfigError(f"{name}: expected a number")


def _as_int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{name}: expected an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ConfigError(f"{name}: expected an integer")


def _as_bool(value: Any, name: str) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{name}: expected a boolean")


def _as_duration(value: Any, name: str) -> timedelta | None:
    text = _as_str(value, name)
    if text is None:
        return None
    try:
        return parse_duration(text)
    except ConfigError as exc:
        raise ConfigError(f"{name}: parse duration \"{text}\": {exc}") from exc


def _as_str_list(value: Any, name: str) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ConfigError(f"{name}: expected a list")
    return [_as_str(item, name) if item is not None else "" for item in value]


def _as_enum(value: Any, enum_type: type[Enum], name: str):
    text = _as_str(value, name)
    if text is None:
        return None
    try:
        return enum_type(text)
    except ValueError:
        return text


def _decode_preset(name: str, node: Any) -> Preset:
    where = f"presets.{name}"
    if node is None:
        return Preset()
    data = _mapping(
        node,
        {"system", "temperature", "top_p", "max_tokens", "seed", "stream", "output", "model"},
        where,
    )
    return Preset(
        system=_as_str(data.get("system"), f"{where}.system") or "",
        temperature=_as_float(data.get("temperature"), f"{where}.temperature"),
        top_p=_as_float(data.get("top_p"), f"{where}.top_p"),
        max_tokens=_as_int(data.get("max_tokens"), f"{where}.max_tokens"),
        seed=_as_int(data.get("seed"), f"{where}.seed"),
        stream=_as_bool(data.get("stream"), f"{where}.stream"),
        output=_as_enum(data.get("output"), OutputFormat, f"{where}.output"),
        model=_as_str(data.get("model"), f"{where}.model"),
    )


def _decode_defaults(node: Any) -> PartialDefaults | None:
    if node is None:
        return None
    data = _mapping(
        node,
        {"temperature", "top_p", "max_tokens", "stream", "output", "timeout",
         "stream_idle_timeout", "retries"},
        "defaults",
    )
    return PartialDefaults(
        temperature=_as_float(data.get("temperature"), "defaults.temperature"),
        top_p=_as_float(data.get("top_p"), "defaults.top_p"),
        max_tokens=_as_int(data.get("max_tokens"), "defaults.max_tokens"),
        stream=_as_bool(data.get("stream"), "defaults.stream"),
        output=_as_enum(data.get("output"), OutputFormat, "defaults.output"),
        timeout=_as_duration(data.get("timeout"), "defaults.timeout"),
        stream_idle_timeout=_as_duration(
            data.get("stream_idle_timeout"), "defaults.stream_idle_timeout"
        ),
        retries=_as_int(data.get("retries"), "defaults.retries"),
    )


def _decode_resize(node: Any) -> PartialResize | None:
    if node is None:
        return None
    where = "file_references.resize_images"
    data = _mapping(node, {"enabled", "max_long_edge_px", "jpeg_quality"}, where)
    return PartialResize(
        enabled=_as_bool(data.get("enabled"), f"{where}.enabled"),
        max_long_edge_px=_as_int(data.get("max_long_edge_px"), f"{where}.max_long_edge_px"),
        jpeg_quality=_as_int(data.get("jpeg_quality"), f"{where}.jpeg_quality"),
    )


def _decode_file_refs(node: Any) -> PartialFileRefs | None:
    if node is None:
        return None
    where = "file_references"
    data = _mapping(
        node,
        {"image_extensions", "text_extensions", "max_image_size_mb", "max_text_size_kb",
         "unknown_strategy", "resize_images"},
        where,
    )
    return PartialFileRefs(
        image_extensions=_as_str_list(data.get("image_extensions"), f"{where}.image_extensions"),
        text_extensions=_as_str_list(data.get("text_extensions"), f"{where}.text_extensions"),
        max_image_size_mb=_as_int(data.get("max_image_size_mb"), f"{where}.max_image_size_mb"),
        max_text_size_kb=_as_int(data.get("max_text_size_kb"), f"{where}.max_text_size_kb"),
        unknown_strategy=_as_enum(
            data.get("unknown_strategy"), UnknownKind, f"{where}.unknown_strategy"
        ),
        resize_images=_decode_resize(data.get("resize_images")),
    )


def _decode_presets(node: Any) -> dict[str, Preset] | None:
    if node is None:
        return None
    if not isinstance(node, dict):
        raise ConfigError("presets: expected a mapping")
    return {str(name): _decode_preset(str(name), body) for name, body in node.items()}


def _decode_config(node: Any) -> PartialConfig:
    if node is None:
        return PartialConfig()
    data = _mapping(node, set(_TOP_SCALARS) | set(_TOP_BLOCKS), "config")
    scalars = {name: _as_str(data.get(name), name) for name in _TOP_SCALARS}
    return PartialConfig(
        **scalars,
        defaults=_decode_defaults(data.get("defaults")),
        file_references=_decode_file_refs(data.get("file_references")),
        presets=_decode_presets(data.get("presets")),
    )


def load_file(path) -> PartialConfig:
    """Read and strictly decode a YAML config file.

    A missing file raises :class:`ConfigMissingError`; syntax errors, unknown
    fields and bad values raise :class:`ConfigError`.
    """
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except FileNotFoundError as exc:
        raise ConfigMissingError(f"{path}: config file missing") from exc
    except OSError as exc:
        raise ConfigError(f"open {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"{path}: {exc}") from exc

    try:
        if yaml.compose(text, Loader=yaml.SafeLoader) is None:
            raise ConfigError(f"{path}: empty document")
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: {exc}") from exc

    try:
        return _decode_config(data)
    except ConfigError as exc:
        raise ConfigError(f"{path}: {exc}") from exc


# --- default location ------------------------------------------------------


def _user_config_dir() -> str:
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA", "")
        if not appdata:
            raise ConfigError("user config dir: %AppData% is not defined")
        return appdata
    if sys.platform == "darwin":
        home = os.environ.get("HOME", "")
        if not home:
            raise ConfigError("user config dir: $HOME is not defined")
        return os.path.join(home, "Library", "Application Support")
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if not xdg:
        home = os.environ.get("HOME", "")
        if not home:
            raise ConfigError(
                "user config dir: neither $XDG_CONFIG_HOME nor $HOME are defined"
            )
        return os.path.join(home, ".config")
    if not os.path.isabs(xdg):
        raise ConfigError("user config dir: path in $XDG_CONFIG_HOME is relative")
    return xdg


def default_config_path() -> str:
    """Return the platform default location of ``askit/config.yml``."""
    xdg = os.environ.get("XDG_CONFIG_HOME", "").strip()
    if xdg:
        return os.path.join(xdg, "askit", "config.yml")
    if sys.platform != "win32":
        home = os.environ.get("HOME", "")
        if home:
            return os.path.join(home, ".config", "askit", "config.yml")
    return os.path.join(_user_config_dir(), "askit", "config.yml")