import os
from datetime import timedelta

import pytest

from askit import config
from askit.config import (
    Config,
    ConfigError,
    ConfigMissingError,
    OutputFormat,
    PartialConfig,
    Source,
    UnknownKind,
    ValidationError,
    builtins,
    default_config_path,
    format_duration,
    load_file,
    parse_duration,
)


def write_temp(tmp_path, content):
    path = tmp_path / "config.yml"
    path.write_text(content, encoding="utf-8")
    return path


def test_load_file_minimal_valid(tmp_path):
    p = write_temp(tmp_path, "\nendpoint: http://localhost:1234/v1\nmodel: test-model\n")
    pc = load_file(p)
    assert pc.endpoint == "http://localhost:1234/v1"
    assert pc.model == "test-model"
    assert pc.defaults is None
    assert pc.presets is None


def test_load_file_missing(tmp_path):
    with pytest.raises(ConfigMissingError):
        load_file(tmp_path / "does-not-exist.yml")


def test_load_file_malformed_yaml(tmp_path):
    p = write_temp(tmp_path, "endpoint: [unclosed\n")
    with pytest.raises(ConfigError):
        load_file(p)


def test_load_file_unknown_field(tmp_path):
    p = write_temp(tmp_path, "\nendpoint: http://x\nmodel: m\nnot_a_real_field: true\n")
    with pytest.raises(ConfigError, match="not_a_real_field"):
        load_file(p)


def test_load_file_bad_duration(tmp_path):
    p = write_temp(
        tmp_path,
        "\nendpoint: http://x\nmodel: m\ndefaults:\n  timeout: not-a-duration\n",
    )
    with pytest.raises(ConfigError, match="timeout"):
        load_file(p)


def test_load_file_unknown_preset_field(tmp_path):
    p = write_temp(tmp_path, "presets:\n  ocr:\n    system: s\n    colour: red\n")
    with pytest.raises(ConfigError, match="colour"):
        load_file(p)


def test_load_file_empty_document(tmp_path):
    p = write_temp(tmp_path, "# only a comment\n")
    with pytest.raises(ConfigError):
        load_file(p)


def test_load_file_null_block_is_absent(tmp_path):
    p = write_temp(tmp_path, "endpoint: http://x\ndefaults:\n")
    pc = load_file(p)
    assert pc == PartialConfig(endpoint="http://x")


def test_load_file_invalid_output_kept_for_validation(tmp_path):
    p = write_temp(tmp_path, "defaults:\n  output: xml\n")
    pc = load_file(p)
    assert pc.defaults.output == "xml"


def test_load_file_all_fields(tmp_path):
    p = write_temp(
        tmp_path,
        """
endpoint: https://api.example.com/v1
api_key: secret
model: gpt-test
defaults:
  temperature: 0.3
  top_p: 0.9
  max_tokens: 2048
  stream: false
  output: json
  timeout: 30s
  stream_idle_timeout: 1m
  retries: 5
file_references:
  image_extensions: [png, jpg]
  text_extensions: [txt, md]
  max_image_size_mb: 10
  max_text_size_kb: 100
  unknown_strategy: skip
  resize_images:
    enabled: true
    max_long_edge_px: 1024
    jpeg_quality: 75
presets:
  ocr:
    system: "you are an ocr engine"
    temperature: 0.0
""",
    )
    pc = load_file(p)
    assert pc.api_key == "secret"
    assert pc.defaults.temperature == 0.3
    assert pc.defaults.top_p == 0.9
    assert pc.defaults.max_tokens == 2048
    assert pc.defaults.stream is False
    assert pc.defaults.output == OutputFormat.JSON
    assert pc.defaults.timeout == timedelta(seconds=30)
    assert pc.defaults.stream_idle_timeout == timedelta(minutes=1)
    assert pc.defaults.retries == 5
    assert pc.file_references.image_extensions == ["png", "jpg"]
    assert pc.file_references.unknown_strategy == UnknownKind.SKIP
    assert pc.file_references.resize_images.enabled is True
    assert pc.file_references.resize_images.max_long_edge_px == 1024
    assert pc.file_references.resize_images.jpeg_quality == 75
    assert "ocr" in pc.presets
    assert pc.presets["ocr"].system == "you are an ocr engine"
    assert pc.presets["ocr"].temperature == 0.0
    assert pc.presets["ocr"].max_tokens is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("5m", timedelta(minutes=5)),
        ("60s", timedelta(seconds=60)),
        ("2h30m", timedelta(hours=2, minutes=30)),
        ("1.5s", timedelta(seconds=1.5)),
        ("500ms", timedelta(milliseconds=500)),
        ("-1m", timedelta(minutes=-1)),
        ("0", timedelta(0)),
        ("+10s", timedelta(seconds=10)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "5", "5x", "-", ".s"])
def test_parse_duration_rejects(text):
    with pytest.raises(ConfigError):
        parse_duration(text)


@pytest.mark.parametrize(
    "value, expected",
    [
        (timedelta(seconds=60), "1m0s"),
        (timedelta(minutes=2), "2m0s"),
        (timedelta(minutes=90), "1h30m0s"),
        (timedelta(seconds=1.5), "1.5s"),
        (timedelta(milliseconds=500), "500ms"),
        (timedelta(microseconds=1500), "1.5ms"),
        (timedelta(0), "0s"),
        (timedelta(seconds=-30), "-30s"),
    ],
)
def test_format_duration(value, expected):
    assert format_duration(value) == expected


@pytest.mark.parametrize(
    "value",
    [timedelta(hours=3, seconds=7), timedelta(milliseconds=1234), timedelta(minutes=-5)],
)
def test_duration_round_trip(value):
    assert parse_duration(format_duration(value)) == value


def test_builtins_values():
    cfg = builtins()
    assert cfg.defaults.temperature == 0.2
    assert cfg.defaults.top_p == 1.0
    assert cfg.defaults.max_tokens == 4096
    assert cfg.defaults.output == OutputFormat.PLAIN
    assert format_duration(cfg.defaults.timeout) == "1m0s"
    assert format_duration(cfg.defaults.stream_idle_timeout) == "2m0s"
    assert cfg.file_references.unknown_strategy == UnknownKind.ERROR
    assert cfg.file_references.resize_images.jpeg_quality == 85
    assert "png" in cfg.file_references.image_extensions
    assert cfg.presets == {}


def test_builtins_fresh_copy():
    first = builtins()
    first.file_references.image_extensions.append("tiff")
    first.defaults.temperature = 1.0
    second = builtins()
    assert "tiff" not in second.file_references.image_extensions
    assert second.defaults.temperature == 0.2


def test_zero_config_has_empty_values():
    cfg = Config()
    assert cfg.endpoint == ""
    assert cfg.defaults.max_tokens == 0
    assert cfg.defaults.timeout == timedelta(0)


@pytest.mark.parametrize(
    "label, member",
    [
        ("builtin", "BUILTIN"),
        ("default-file", "DEFAULT_FILE"),
        ("explicit-file", "EXPLICIT_FILE"),
        ("env", "ENV"),
        ("flag", "FLAG"),
    ],
)
def test_source_from_label(label, member):
    assert Source(label) is Source[member]


def test_source_rejects_unknown_label():
    with pytest.raises(ValueError):
        Source("cli")


def test_validation_error_single():
    err = ValidationError([ValueError("model: required")])
    assert str(err) == "model: required"
    assert len(err.errors) == 1


def test_validation_error_multiple():
    err = ValidationError([ValueError("a"), ValueError("b")])
    assert str(err) == "2 configuration errors:\n  - a\n  - b"


def test_default_config_path_xdg_wins(monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", "/tmp/xdg")
    assert default_config_path() == os.path.join("/tmp/xdg", "askit", "config.yml")


def test_default_config_path_xdg_empty_falls_through(monkeypatch):
    monkeypatch.setattr(config.sys, "platform", "linux")
    monkeypatch.setenv("XDG_CONFIG_HOME", "")
    monkeypatch.setenv("HOME", "/tmp/home")
    assert default_config_path() == os.path.join("/tmp/home", ".config", "askit", "config.yml")


def test_default_config_path_xdg_whitespace_treated_as_empty(monkeypatch):
    monkeypatch.setattr(config.sys, "platform", "linux")
    monkeypatch.setenv("XDG_CONFIG_HOME", "   ")
    monkeypatch.setenv("HOME", "/tmp/home")
    assert default_config_path() == os.path.join("/tmp/home", ".config", "askit", "config.yml")


def test_default_config_path_windows_uses_appdata(monkeypatch):
    monkeypatch.setattr(config.sys, "platform", "win32")
    monkeypatch.setenv("XDG_CONFIG_HOME", "")
    monkeypatch.setenv("HOME", "/tmp/home")
    monkeypatch.setenv("APPDATA", "/tmp/appdata")
    got = default_config_path()
    assert got == os.path.join("/tmp/appdata", "askit", "config.yml")
    assert ".config" not in got


def test_default_config_path_no_home_errors(monkeypatch):
    monkeypatch.setattr(config.sys, "platform", "linux")
    monkeypatch.setenv("XDG_CONFIG_HOME", "")
    monkeypatch.setenv("HOME", "")
    with pytest.raises(ConfigError, match="user config dir"):
        default_config_path()