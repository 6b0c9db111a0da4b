import base64
import io
import random

import pytest
from PIL import Image

from askit.config import builtins
from askit.imageref import detect_media_type, load_image_ref
from askit.textref import FileRefError, SizeError


def gradient_image(w, h):
    red = Image.frombytes("L", (w, h), bytes(x % 255 for x in range(w)) * h)
    green = Image.frombytes("L", (w, h), b"".join(bytes([y % 255]) * w for y in range(h)))
    blue = Image.new("L", (w, h), 255)
    return Image.merge("RGB", (red, green, blue))


def tiny_png(path, w, h):
    gradient_image(w, h).save(path, format="PNG")


def noisy_png(path, w, h):
    rng = random.Random(42)
    data = bytes(rng.getrandbits(8) for _ in range(w * h * 3))
    Image.frombytes("RGB", (w, h), data).save(path, format="PNG")


def decode_data_url(url):
    return base64.b64decode(url.split(",", 1)[1])


def test_happy(tmp_path):
    p = tmp_path / "tiny.png"
    tiny_png(p, 10, 10)
    data_url, media, size = load_image_ref(str(p), builtins().file_references)
    assert data_url.startswith("data:image/png;base64,")
    assert media == "image/png"
    assert size > 0
    assert size == len(data_url.split(",", 1)[1])
    assert decode_data_url(data_url) == p.read_bytes()


def test_oversize(tmp_path):
    p = tmp_path / "big.png"
    noisy_png(p, 1000, 1000)
    policy = builtins().file_references
    policy.max_image_size_mb = 1
    with pytest.raises(SizeError) as info:
        load_image_ref(str(p), policy)
    assert "max_image_size_mb" in str(info.value)
    assert info.value.kind == "image"
    assert info.value.limit == 1024 * 1024


def test_resize_png_stays_png(tmp_path):
    p = tmp_path / "big.png"
    tiny_png(p, 3000, 1500)
    policy = builtins().file_references
    policy.max_image_size_mb = 5
    policy.resize_images.enabled = True
    policy.resize_images.max_long_edge_px = 1024
    policy.resize_images.jpeg_quality = 80
    data_url, media, _ = load_image_ref(str(p), policy)
    assert media == "image/png"
    with Image.open(io.BytesIO(decode_data_url(data_url))) as img:
        assert img.size == (1024, 512)


def test_resize_jpeg_reencodes_as_jpeg(tmp_path):
    p = tmp_path / "photo.jpg"
    gradient_image(400, 200).save(p, format="JPEG")
    policy = builtins().file_references
    policy.resize_images.enabled = True
    policy.resize_images.max_long_edge_px = 100
    data_url, media, _ = load_image_ref(str(p), policy)
    assert media == "image/jpeg"
    assert data_url.startswith("data:image/jpeg;base64,")
    with Image.open(io.BytesIO(decode_data_url(data_url))) as img:
        assert img.size == (100, 50)
        assert img.format == "JPEG"


def test_small_image_not_resized(tmp_path):
    p = tmp_path / "small.png"
    tiny_png(p, 20, 10)
    policy = builtins().file_references
    policy.resize_images.enabled = True
    data_url, _, _ = load_image_ref(str(p), policy)
    assert decode_data_url(data_url) == p.read_bytes()


def test_undecodable_passes_through(tmp_path):
    p = tmp_path / "anim.gif"
    p.write_bytes(b"not really an image")
    policy = builtins().file_references
    policy.resize_images.enabled = True
    data_url, media, _ = load_image_ref(str(p), policy)
    assert media == "image/gif"
    assert decode_data_url(data_url) == b"not really an image"


def test_missing_file(tmp_path):
    with pytest.raises(FileRefError):
        load_image_ref(str(tmp_path / "nope.png"), builtins().file_references)


@pytest.mark.parametrize(
    "name, media",
    [
        ("a.png", "image/png"),
        ("a.JPG", "image/jpeg"),
        ("a.jpeg", "image/jpeg"),
        ("a.gif", "image/gif"),
        ("a.webp", "image/webp"),
        ("a.bmp", "image/bmp"),
    ],
)
def test_media_type_from_extension(name, media):
    assert detect_media_type(name, b"") == media


def test_media_type_sniffed(tmp_path):
    p = tmp_path / "scan.png"
    tiny_png(p, 4, 4)
    assert detect_media_type("blob.dat", p.read_bytes()) == "image/png"
    assert detect_media_type("blob.dat", b"\xff\xd8\xff\xe0rest") == "image/jpeg"
    assert detect_media_type("blob.dat", b"GIF89a....") == "image/gif"
    assert detect_media_type("blob.dat", b"plain words") == "text/plain; charset=utf-8"
    assert detect_media_type("blob.dat", b"\x00\x01\x02\x03zz") == "application/octet-stream"