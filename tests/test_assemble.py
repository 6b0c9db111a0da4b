import dataclasses
import logging
import os

import pytest
from PIL import Image

from askit.assemble import AssembleError, AssembleOptions, assemble, detect_text_media
from askit.config import UnknownKind, builtins
from askit.refs import Kind, PartType
from askit.textref import FileRefError, SizeError


def tiny_png(path, w, h):
    Image.new("RGB", (w, h), (10, 20, 255)).save(path, format="PNG")


def policy(**changes):
    return dataclasses.replace(builtins().file_references, **changes)


def test_text_only():
    prompt, refs = assemble(
        "just some prose",
        AssembleOptions(policy=policy(), system_prompt="you are helpful"),
    )
    assert refs == []
    assert prompt.system == "you are helpful"
    assert len(prompt.messages) == 1
    assert prompt.messages[0].role == "user"
    content = prompt.messages[0].content
    assert len(content) == 1
    assert content[0].text == "just some prose"


def test_single_image(tmp_path):
    p = str(tmp_path / "scan.png")
    tiny_png(p, 20, 20)
    prompt, refs = assemble("ocr @" + p, AssembleOptions(policy=policy()))
    assert len(refs) == 1
    assert refs[0].kind == Kind.IMAGE
    assert refs[0].media_type == "image/png"
    content = prompt.messages[0].content
    assert [c.type for c in content] == [PartType.TEXT, PartType.IMAGE_URL]
    assert content[0].text == "ocr "
    assert content[1].image_url.url.startswith("data:image/png;base64,")
    assert content[1].image_url.detail == "auto"


def test_text_file_inlined(tmp_path):
    p = tmp_path / "notes.md"
    p.write_text("# Hi")
    prompt, refs = assemble("summarize @" + str(p), AssembleOptions(policy=policy()))
    joined = "".join(c.text for c in prompt.messages[0].content if c.type == PartType.TEXT)
    assert "```notes.md" in joined
    assert "# Hi" in joined
    assert "summarize " in joined
    assert joined == "summarize \n```notes.md\n# Hi\n```\n"
    assert refs[0].kind == Kind.TEXT
    assert refs[0].media_type == "text/markdown"
    assert refs[0].size_bytes == 4


def test_unknown_extension_errors(tmp_path):
    p = tmp_path / "blob.xyz"
    p.write_text("hi")
    with pytest.raises(AssembleError) as info:
        assemble("read @" + str(p), AssembleOptions(policy=policy()))
    assert "unknown extension" in str(info.value)


def test_missing_file():
    with pytest.raises(FileRefError):
        assemble("read @/does/not/exist.png", AssembleOptions(policy=policy()))


def test_extra_file_flag(tmp_path):
    p = str(tmp_path / "scan.png")
    tiny_png(p, 10, 10)
    prompt, refs = assemble("describe", AssembleOptions(policy=policy(), extra_files=[p]))
    assert len(refs) == 1
    assert refs[0].raw == p
    content = prompt.messages[0].content
    assert len(content) >= 2
    assert content[0].text == "describe"
    assert content[1].type == PartType.IMAGE_URL


def test_empty_prompt_errors():
    with pytest.raises(AssembleError):
        assemble("", AssembleOptions(policy=policy()))


def test_skip_strategy_records_reference(tmp_path, caplog):
    p = tmp_path / "blob.xyz"
    p.write_text("hi")
    logger = logging.getLogger("askit.assemble.test")
    with caplog.at_level(logging.INFO, logger="askit.assemble.test"):
        prompt, refs = assemble(
            "read @" + str(p),
            AssembleOptions(policy=policy(unknown_strategy=UnknownKind.SKIP), logger=logger),
        )
    assert [c.text for c in prompt.messages[0].content] == ["read "]
    assert len(refs) == 1
    assert refs[0].kind == Kind.UNKNOWN
    assert refs[0].path == str(p)
    assert "skipping unknown-extension file" in caplog.text


def test_only_skipped_reference_is_empty(tmp_path):
    p = tmp_path / "blob.xyz"
    p.write_text("hi")
    with pytest.raises(AssembleError) as info:
        assemble("@" + str(p), AssembleOptions(policy=policy(unknown_strategy=UnknownKind.SKIP)))
    assert "empty prompt" in str(info.value)


def test_text_strategy_inlines_unknown(tmp_path):
    p = tmp_path / "blob.xyz"
    p.write_text("hi")
    prompt, refs = assemble(
        "@" + str(p), AssembleOptions(policy=policy(unknown_strategy=UnknownKind.TEXT))
    )
    assert prompt.messages[0].content[0].text == "\n```blob.xyz\nhi\n```\n"
    assert refs[0].media_type == "text/plain"
    assert refs[0].kind_explicit is False


def test_kind_override_is_explicit(tmp_path):
    p = tmp_path / "blob.dat"
    p.write_text("data")
    _, refs = assemble("@" + str(p) + ":text", AssembleOptions(policy=policy()))
    assert refs[0].kind == Kind.TEXT
    assert refs[0].kind_explicit is True


def test_relative_path_resolved(tmp_path, monkeypatch):
    (tmp_path / "notes.txt").write_text("body")
    monkeypatch.chdir(tmp_path)
    _, refs = assemble("see @./notes.txt", AssembleOptions(policy=policy()))
    assert refs[0].path == os.path.join(os.getcwd(), "notes.txt")
    assert refs[0].raw == "./notes.txt"


def test_oversize_text_raises_size_error(tmp_path):
    p = tmp_path / "big.txt"
    p.write_text("x" * 3 * 1024)
    with pytest.raises(SizeError):
        assemble("@" + str(p), AssembleOptions(policy=policy(max_text_size_kb=1)))


def test_unterminated_backtick_errors():
    with pytest.raises(AssembleError) as info:
        assemble("ocr @`never closed", AssembleOptions(policy=policy()))
    assert str(info.value).startswith("tokenize:")


@pytest.mark.parametrize(
    ("name", "media"),
    [
        ("a.md", "text/markdown"),
        ("a.JSON", "application/json"),
        ("a.yml", "application/yaml"),
        ("a.yaml", "application/yaml"),
        ("a.toml", "application/toml"),
        ("a.html", "text/html"),
        ("a.xml", "application/xml"),
        ("a.csv", "text/csv"),
        ("a.tsv", "text/tab-separated-values"),
        ("a.go", "text/plain"),
        ("noext", "text/plain"),
    ],
)
def test_detect_text_media(name, media):
    assert detect_text_media("/x/" + name) == media