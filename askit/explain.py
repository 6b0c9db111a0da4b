"""Tabulation of resolved configuration values and where each came from."""

from __future__ import annotations

from dataclasses import dataclass

from .config import Config, ConfigError, Source, format_duration

FIELD_PATHS = (
    "endpoint",
    "api_key",
    "model",
    "defaults.temperature",
    "defaults.top_p",
    "defaults.max_tokens",
    "defaults.stream",
    "defaults.output",
    "defaults.timeout",
    "defaults.stream_idle_timeout",
    "defaults.retries",
    "file_references.image_extensions",
    "file_references.text_extensions",
    "file_references.max_image_size_mb",
    "file_references.max_text_size_kb",
    "file_references.unknown_strategy",
    "file_references.resize_images.enabled",
    "file_references.resize_images.max_long_edge_px",
    "file_references.resize_images.jpeg_quality",
    "presets",
)


@dataclass
class ExplainLine:
    """One row of the explain table."""

    field: str
    value: str
    source: Source | str


def format_float(value: float) -> str:
    """Render a float with at most six decimals and no trailing zeros."""
    return f"{float(value):.6f}".rstrip("0").rstrip(".")


def _list(items) -> str:
    return "[" + ", ".join(items) + "]"


def field_value(cfg: Config, path: str) -> str:
    """Return the display value of the field at a dotted ``path``."""
    d = cfg.defaults
    refs = cfg.file_references
    resize = refs.resize_images
    renderers = {
        "endpoint": lambda: cfg.endpoint,
        "api_key": lambda: cfg.api_key,
        "model": lambda: cfg.model,
        "defaults.temperature": lambda: format_float(d.temperature),
        "defaults.top_p": lambda: format_float(d.top_p),
        "defaults.max_tokens": lambda: str(d.max_tokens),
        "defaults.stream": lambda: str(bool(d.stream)).lower(),
        "defaults.output": lambda: str(d.output),
        "defaults.timeout": lambda: format_duration(d.timeout),
        "defaults.stream_idle_timeout": lambda: format_duration(d.stream_idle_timeout),
        "defaults.retries": lambda: str(d.retries),
        "file_references.image_extensions": lambda: _list(refs.image_extensions),
        "file_references.text_extensions": lambda: _list(refs.text_extensions),
        "file_references.max_image_size_mb": lambda: str(refs.max_image_size_mb),
        "file_references.max_text_size_kb": lambda: str(refs.max_text_size_kb),
        "file_references.unknown_strategy": lambda: str(refs.unknown_strategy),
        "file_references.resize_images.enabled": lambda: str(bool(resize.enabled)).lower(),
        "file_references.resize_images.max_long_edge_px": lambda: str(resize.max_long_edge_px),
        "file_references.resize_images.jpeg_quality": lambda: str(resize.jpeg_quality),
        "presets": lambda: _list(sorted(cfg.presets or {})),
    }
    render = renderers.get(path)
    if render is None:
        raise ConfigError(f'unknown field path "{path}"')
    return render()


def explain(cfg: Config, provenance) -> list[ExplainLine]:
    """Return one line per tracked field, in stable display order."""
    return [
        ExplainLine(field=path, value=field_value(cfg, path), source=provenance.get(path, ""))
        for path in FIELD_PATHS
    ]