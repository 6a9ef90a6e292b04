#!/usr/bin/env python3
"""
Test the upload/media helpers in skills/process_image.

Run: python tests/test_process_image.py
"""

import re
import sys
import tempfile
from io import BytesIO
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from PIL import Image

from models.errors import ValidationError
from skills.process_image import (
    add_watermark,
    bytes_to_data_url,
    convert_to_jpeg,
    create_media_handle,
    data_url_to_bytes,
    detect_mime_type,
    generate_filename,
    is_data_url,
    is_media_handle,
    load_image_source,
    parse_data_url,
    process_image_for_gemini,
    release_media_handle,
    validate_image_file,
)
from fakes import make_image_bytes


def _expect_validation_error(data, content_type, code):
    try:
        validate_image_file(data, content_type)
    except ValidationError as e:
        assert e.code == code, f"expected {code}, got {e.code}"
        return str(e)
    raise AssertionError(f"{content_type} upload should have been rejected")


def test_validate_rejects_type_and_size():
    print("Validation")
    print("-" * 40)

    message = _expect_validation_error(b"GIF89a...", "image/gif", "INVALID_IMAGE")
    print(f"  ✓ gif rejected: {message}")

    too_big = b"\xff" * (10 * 1024 * 1024 + 1)
    message = _expect_validation_error(too_big, "image/jpeg", "IMAGE_TOO_LARGE")
    print(f"  ✓ >10MB rejected: {message}")

    _expect_validation_error(b"", "image/png", "INVALID_IMAGE")

    validate_image_file(make_image_bytes(fmt="PNG"), "image/png")
    validate_image_file(make_image_bytes(), "image/jpg")
    validate_image_file(make_image_bytes(fmt="WEBP"), "image/webp")
    print("  ✓ jpeg / png / webp accepted")


def test_detect_mime_type():
    assert detect_mime_type(make_image_bytes()) == "image/jpeg"
    assert detect_mime_type(make_image_bytes(fmt="PNG")) == "image/png"
    assert detect_mime_type(b"not an image") is None


def test_process_resizes_to_longest_edge():
    print("Resize")
    print("-" * 40)

    processed = process_image_for_gemini(make_image_bytes(size=(3000, 2000)))
    print(f"  3000x2000 -> {processed.width}x{processed.height}, {len(processed.data)} bytes")

    assert max(processed.width, processed.height) <= 1024
    assert processed.width == 1024
    assert processed.mime_type == "image/jpeg"
    assert len(processed.data) <= 4 * 1024 * 1024
    assert processed.data_url.startswith("data:image/jpeg;base64,")

    with Image.open(BytesIO(processed.data)) as image:
        assert image.format == "JPEG"
        assert max(image.size) <= 1024
    print("  ✓ longest edge ≤ 1024, JPEG")


def test_process_small_image_keeps_size():
    processed = process_image_for_gemini(make_image_bytes(size=(320, 240), fmt="PNG"))
    assert (processed.width, processed.height) == (320, 240)
    assert processed.mime_type == "image/jpeg"


def test_process_steps_down_until_it_fits():
    noise = Image.effect_noise((900, 700), 120).convert("RGB")
    buffer = BytesIO()
    noise.save(buffer, format="PNG")

    processed = process_image_for_gemini(buffer.getvalue(), max_bytes=20_000)
    print(f"  noisy 900x700 -> {processed.width}x{processed.height}, {len(processed.data)} bytes")
    assert len(processed.data) <= 20_000


def test_process_rejects_undecodable_bytes():
    try:
        process_image_for_gemini(b"definitely not an image")
    except ValidationError as e:
        assert e.code == "INVALID_IMAGE"
        return
    raise AssertionError("undecodable bytes should raise ValidationError")


def test_data_urls():
    data = make_image_bytes()
    url = bytes_to_data_url(data, "image/jpeg")

    assert is_data_url(url)
    assert not is_data_url("https://example.com/a.jpg")
    mime_type, payload = parse_data_url(url)
    assert mime_type == "image/jpeg"
    assert payload
    decoded, decoded_type = data_url_to_bytes(url)
    assert decoded == data
    assert decoded_type == "image/jpeg"

    for bad in ("data:image/png,notbase64", "data:image/png;base64,", "hello"):
        try:
            parse_data_url(bad)
        except ValueError:
            continue
        raise AssertionError(f"{bad!r} should not parse")


def test_load_image_source_from_path_and_data_url():
    data = make_image_bytes(fmt="PNG")
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "photo.png"
        path.write_bytes(data)
        loaded, mime_type = load_image_source(str(path))
        assert loaded == data
        assert mime_type == "image/png"

    loaded, mime_type = load_image_source(bytes_to_data_url(data, "image/png"))
    assert loaded == data

    try:
        load_image_source("/no/such/file.png")
    except ValueError:
        pass
    else:
        raise AssertionError("missing file should raise")


def test_watermark_and_jpeg_conversion():
    png = make_image_bytes(size=(400, 300), fmt="PNG")

    stamped = add_watermark(png)
    with Image.open(BytesIO(stamped)) as image:
        assert image.format == "JPEG"
        assert image.size == (400, 300)

    converted = convert_to_jpeg(png)
    assert detect_mime_type(converted) == "image/jpeg"

    jpeg = make_image_bytes()
    assert convert_to_jpeg(jpeg) is jpeg
    print("  ✓ watermark keeps size, output is JPEG")


def test_generate_filename():
    name = generate_filename("memory", "mp4")
    assert re.fullmatch(r"memory-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}\.mp4", name), name
    assert generate_filename("enhanced-memory", "jpg").startswith("enhanced-memory-")


def test_media_handles():
    with tempfile.TemporaryDirectory() as tmp:
        media_dir = Path(tmp)
        handle = create_media_handle(b"abc", ".mp4", media_dir=media_dir)

        assert Path(handle).exists()
        assert is_media_handle(handle, media_dir)
        assert not is_media_handle("data:image/png;base64,AAAA", media_dir)
        assert not is_media_handle("https://replicate.delivery/x.mp4", media_dir)
        assert not is_media_handle(None, media_dir)

        assert release_media_handle(handle, media_dir) is True
        assert not Path(handle).exists()
        assert release_media_handle(handle, media_dir) is False

        # Files outside the media dir are never touched
        outside = Path(tmp) / "nested"
        outside.mkdir()
        keep = outside / "keep.jpg"
        keep.write_bytes(b"x")
        assert release_media_handle(str(keep), media_dir) is False
        assert keep.exists()
    print("  ✓ handles created and released")


if __name__ == "__main__":
    print("\n" + "=" * 60)
    print(" IMAGE PROCESSING TESTS")
    print("=" * 60 + "\n")

    test_validate_rejects_type_and_size()
    test_detect_mime_type()
    test_process_resizes_to_longest_edge()
    test_process_small_image_keeps_size()
    test_process_steps_down_until_it_fits()
    test_process_rejects_undecodable_bytes()
    test_data_urls()
    test_load_image_source_from_path_and_data_url()
    test_watermark_and_jpeg_conversion()
    test_generate_filename()
    test_media_handles()

    print("\n✅ ALL TESTS PASSED\n")
