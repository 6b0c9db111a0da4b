"""Validation of a resolved configuration, reporting every problem at once."""

from __future__ import annotations

import json
import math
import re
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from urllib.parse import urlsplit

from .config import Config, ConfigError, FileRefsPolicy, OutputFormat, Preset, UnknownKind

MAX_TEMPERATURE = 2.0

_PRESET_NAME = re.compile(r"[a-zA-Z0-9_-]+")

ENDPOINT_REQUIRED = "endpoint: required (set in config, --endpoint, or ASKIT_ENDPOINT)"
ENDPOINT_SCHEME = "endpoint: scheme must be http or https"
ENDPOINT_MISSING_HOST = "endpoint: missing host"
ENDPOINT_INVALID = "endpoint: invalid URL"
MODEL_REQUIRED = "model: required (set in config, --model, or ASKIT_MODEL)"
TEMPERATURE_RANGE = "defaults.temperature: must be in [0, 2]"
TOP_P_RANGE = "defaults.top_p: must be in [0, 1]"
MAX_TOKENS_POSITIVE = "defaults.max_tokens: must be > 0"
OUTPUT_INVALID = "defaults.output: must be one of plain|json|raw"
TIMEOUT_POSITIVE = "defaults.timeout: must be > 0"
STREAM_IDLE_POSITIVE = "defaults.stream_idle_timeout: must be > 0"
RETRIES_NON_NEGATIVE = "defaults.retries: must be >= 0"
MAX_IMAGE_SIZE_POSITIVE = "file_references.max_image_size_mb: must be > 0"
MAX_TEXT_SIZE_POSITIVE = "file_references.max_text_size_kb: must be > 0"
UNKNOWN_STRATEGY_INVALID = (
    "file_references.unknown_strategy: must be one of error|skip|text|image"
)
MAX_LONG_EDGE_POSITIVE = "file_references.resize_images.max_long_edge_px: must be > 0"
JPEG_QUALITY_RANGE = "file_references.resize_images.jpeg_quality: must be in [1, 100]"
EXT_DUPLICATE = "file_references: extension appears in multiple lists"
EXT_EMPTY = "file_references: empty extension entry"
EXT_NOT_LOWERCASE = "file_references: extension must be lowercase"
EXT_NON_ALPHANUMERIC = "file_references: extension contains non-alphanumeric character"
PRESET_NAME_INVALID = "presets: name must match [a-zA-Z0-9_-]+"
PRESET_SYSTEM_EMPTY = "presets: system required and non-empty"
PRESET_TEMPERATURE_RANGE = "presets: temperature must be in [0, 2]"
PRESET_TOP_P_RANGE = "presets: top_p must be in [0, 1]"
PRESET_MAX_TOKENS_POSITIVE = "presets: max_tokens must be > 0"
PRESET_OUTPUT_INVALID = "presets: output must be one of plain|json|raw"


class ConfigProblem(ConfigError):
    """One validation violation; ``reason`` names the rule that was broken."""

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason if reason is not None else message


def _quote(value) -> str:
    return json.dumps(str(value), ensure_ascii=False)


def _format_g(value) -> str:
    """Shortest general float form: ``3``, ``2.5``, ``1e+06``."""
    v = float(value)
    if math.isnan(v):
        return "NaN"
    if math.isinf(v):
        return "+Inf" if v > 0 else "-Inf"
    if v == 0:
        return "-0" if math.copysign(1.0, v) < 0 else "0"
    sign, digits, exp = Decimal(repr(v)).normalize().as_tuple()
    text = "".join(str(d) for d in digits)
    nd = len(digits)
    dp = nd + exp
    eprec = 6
    if eprec > nd and nd >= dp:
        eprec = nd
    prefix = "-" if sign else ""
    x = dp - 1
    if x < -4 or x >= eprec:
        mantissa = text[0] + ("." + text[1:] if nd > 1 else "")
        return f"{prefix}{mantissa}e{'-' if x < 0 else '+'}{abs(x):02d}"
    if dp <= 0:
        return f"{prefix}0.{'0' * -dp}{text}"
    if dp >= nd:
        return prefix + text + "0" * (dp - nd)
    return f"{prefix}{text[:dp]}.{text[dp:]}"


def _is_member(value, enum_type: type[Enum]) -> bool:
    try:
        enum_type(value)
    except ValueError:
        return False
    return True


def _positive(value: timedelta) -> bool:
    return value > timedelta(0)


def _validate_endpoint(cfg: Config) -> list[ConfigProblem]:
    endpoint = cfg.endpoint
    if not endpoint:
        return [ConfigProblem(ENDPOINT_REQUIRED)]
    try:
        parts = urlsplit(endpoint)
    except ValueError as exc:
        return [ConfigProblem(f"{ENDPOINT_INVALID} {_quote(endpoint)}: {exc}", ENDPOINT_INVALID)]
    if parts.scheme not in ("http", "https"):
        return [ConfigProblem(f"{ENDPOINT_SCHEME} (got {_quote(parts.scheme)})", ENDPOINT_SCHEME)]
    host = parts.netloc.rpartition("@")[2]
    if not host:
        return [
            ConfigProblem(f"{ENDPOINT_MISSING_HOST} in {_quote(endpoint)}", ENDPOINT_MISSING_HOST)
        ]
    return []


def _validate_model(cfg: Config) -> list[ConfigProblem]:
    return [] if cfg.model else [ConfigProblem(MODEL_REQUIRED)]


def _validate_defaults(cfg: Config) -> list[ConfigProblem]:
    d = cfg.defaults
    problems = []
    if d.temperature < 0 or d.temperature > MAX_TEMPERATURE:
        problems.append(
            ConfigProblem(f"{TEMPERATURE_RANGE} (got {_format_g(d.temperature)})", TEMPERATURE_RANGE)
        )
    if d.top_p < 0 or d.top_p > 1:
        problems.append(ConfigProblem(f"{TOP_P_RANGE} (got {_format_g(d.top_p)})", TOP_P_RANGE))
    if d.max_tokens <= 0:
        problems.append(
            ConfigProblem(f"{MAX_TOKENS_POSITIVE} (got {d.max_tokens})", MAX_TOKENS_POSITIVE)
        )
    if not _is_member(d.output, OutputFormat):
        problems.append(ConfigProblem(f"{OUTPUT_INVALID} (got {_quote(d.output)})", OUTPUT_INVALID))
    if not _positive(d.timeout):
        problems.append(ConfigProblem(TIMEOUT_POSITIVE))
    if not _positive(d.stream_idle_timeout):
        problems.append(ConfigProblem(STREAM_IDLE_POSITIVE))
    if d.retries < 0:
        problems.append(
            ConfigProblem(f"{RETRIES_NON_NEGATIVE} (got {d.retries})", RETRIES_NON_NEGATIVE)
        )
    return problems


def _check_extension(list_name: str, ext: str) -> ConfigProblem | None:
    if ext == "":
        return ConfigProblem(f"{EXT_EMPTY} in {list_name}", EXT_EMPTY)
    if ext.lower() != ext:
        return ConfigProblem(
            f"{EXT_NOT_LOWERCASE}: extension {_quote(ext)} in {list_name}", EXT_NOT_LOWERCASE
        )
    if not all("a" <= ch <= "z" or "0" <= ch <= "9" for ch in ext):
        return ConfigProblem(
            f"{EXT_NON_ALPHANUMERIC}: extension {_quote(ext)} in {list_name}",
            EXT_NON_ALPHANUMERIC,
        )
    return None


def _validate_extension_lists(policy: FileRefsPolicy) -> list[ConfigProblem]:
    problems = []
    seen: dict[str, str] = {}
    for list_name, exts in (
        ("image_extensions", policy.image_extensions),
        ("text_extensions", policy.text_extensions),
    ):
        for ext in exts:
            problem = _check_extension(list_name, ext)
            if problem is not None:
                problems.append(problem)
                continue
            if ext in seen:
                problems.append(
                    ConfigProblem(
                        f"{EXT_DUPLICATE}: {_quote(ext)} appears in {seen[ext]} and {list_name}",
                        EXT_DUPLICATE,
                    )
                )
                continue
            seen[ext] = list_name
    return problems


def _validate_file_ref_sizes(cfg: Config) -> list[ConfigProblem]:
    refs = cfg.file_references
    problems = []
    if refs.max_image_size_mb <= 0:
        problems.append(
            ConfigProblem(
                f"{MAX_IMAGE_SIZE_POSITIVE} (got {refs.max_image_size_mb})", MAX_IMAGE_SIZE_POSITIVE
            )
        )
    if refs.max_text_size_kb <= 0:
        problems.append(
            ConfigProblem(
                f"{MAX_TEXT_SIZE_POSITIVE} (got {refs.max_text_size_kb})", MAX_TEXT_SIZE_POSITIVE
            )
        )
    if not _is_member(refs.unknown_strategy, UnknownKind):
        problems.append(
            ConfigProblem(
                f"{UNKNOWN_STRATEGY_INVALID} (got {_quote(refs.unknown_strategy)})",
                UNKNOWN_STRATEGY_INVALID,
            )
        )
    # Resize parameters are checked even when resizing is disabled.
    resize = refs.resize_images
    if resize.max_long_edge_px <= 0:
        problems.append(
            ConfigProblem(
                f"{MAX_LONG_EDGE_POSITIVE} (got {resize.max_long_edge_px})", MAX_LONG_EDGE_POSITIVE
            )
        )
    if not 1 <= resize.jpeg_quality <= 100:
        problems.append(
            ConfigProblem(f"{JPEG_QUALITY_RANGE} (got {resize.jpeg_quality})", JPEG_QUALITY_RANGE)
        )
    return problems


def _validate_preset(name: str, preset: Preset) -> list[ConfigProblem]:
    problems = []
    if not _PRESET_NAME.fullmatch(name):
        problems.append(ConfigProblem(f"{PRESET_NAME_INVALID}: presets.{name}", PRESET_NAME_INVALID))
    if not (preset.system or "").strip():
        problems.append(
            ConfigProblem(f"{PRESET_SYSTEM_EMPTY}: presets.{name}.system", PRESET_SYSTEM_EMPTY)
        )
    if preset.temperature is not None and not 0 <= preset.temperature <= MAX_TEMPERATURE:
        problems.append(
            ConfigProblem(
                f"{PRESET_TEMPERATURE_RANGE}: presets.{name}.temperature "
                f"(got {_format_g(preset.temperature)})",
                PRESET_TEMPERATURE_RANGE,
            )
        )
    if preset.top_p is not None and not 0 <= preset.top_p <= 1:
        problems.append(
            ConfigProblem(
                f"{PRESET_TOP_P_RANGE}: presets.{name}.top_p (got {_format_g(preset.top_p)})",
                PRESET_TOP_P_RANGE,
            )
        )
    if preset.max_tokens is not None and preset.max_tokens <= 0:
        problems.append(
            ConfigProblem(
                f"{PRESET_MAX_TOKENS_POSITIVE}: presets.{name}.max_tokens "
                f"(got {preset.max_tokens})",
                PRESET_MAX_TOKENS_POSITIVE,
            )
        )
    if preset.output is not None and not _is_member(preset.output, OutputFormat):
        problems.append(
            ConfigProblem(
                f"{PRESET_OUTPUT_INVALID}: presets.{name}.output (got {_quote(preset.output)})",
                PRESET_OUTPUT_INVALID,
            )
        )
    return problems


def validate(cfg: Config) -> list[ConfigProblem]:
    """Return every violation in ``cfg`` in a stable order; empty means valid."""
    problems: list[ConfigProblem] = []
    problems += _validate_endpoint(cfg)
    problems += _validate_model(cfg)
    problems += _validate_defaults(cfg)
    problems += _validate_extension_lists(cfg.file_references)
    problems += _validate_file_ref_sizes(cfg)
    for name in sorted(cfg.presets or {}):
        problems += _validate_preset(name, cfg.presets[name])
    return problems