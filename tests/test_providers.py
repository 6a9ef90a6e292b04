#!/usr/bin/env python3
"""
Test the provider clients (Gemini, Replicate, Veo) against fake SDK/HTTP objects.

No network access: the genai client and the requests session are replaced
by the stand-ins in tests/fakes.py.

Run: python tests/test_providers.py
"""

import asyncio
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

import requests

from agent.prompts import Prompts, get_enhancement_prompt
from models.errors import GenerationTimeoutError, MissingCredentialError, ProviderError
from skills.enhance_image import GeminiService, clean_motion_prompt
from skills.generate_video import VeoService
from skills.process_image import bytes_to_data_url
from skills.replicate import ReplicateClient
from skills.replicate.replicate_client import extract_output_url
from fakes import (
    GEMINI_KEY,
    REPLICATE_TOKEN,
    FakeGenaiClient,
    FakeOperations,
    FakeResponse,
    FakeSession,
    content_response,
    failed_operation,
    finished_operation,
    image_part,
    make_image_bytes,
    no_sleep,
    pending_operation,
    text_part,
)


def _expect(exc_type, coro):
    try:
        asyncio.run(coro)
    except exc_type as e:
        return e
    raise AssertionError(f"expected {exc_type.__name__}")


# =============================================================================
# Gemini
# =============================================================================


def test_gemini_requires_key():
    try:
        GeminiService("")
    except MissingCredentialError as e:
        assert e.code == "NO_API_KEY"
        return
    raise AssertionError("empty key must raise MissingCredentialError")


def test_gemini_enhance_returns_inline_image():
    client = FakeGenaiClient()
    client.models.content_response = content_response(
        parts=[text_part("Brightened and sharpened"), image_part(b"png-bytes", "image/png")]
    )
    service = GeminiService(GEMINI_KEY, client=client)

    result = asyncio.run(service.enhance_image(make_image_bytes(), "image/jpeg"))

    assert result.image_url == bytes_to_data_url(b"png-bytes", "image/png")
    assert result.caption == "Brightened and sharpened"
    assert result.degraded is False
    call, model, _ = client.models.calls[0]
    assert call == "generate_content"
    assert model == "gemini-2.5-flash-image-preview"
    print("  ✓ Gemini enhancement returns inline image")


def test_gemini_enhance_without_image_is_soft_success():
    original = make_image_bytes()
    client = FakeGenaiClient()
    client.models.content_response = content_response(parts=[])
    service = GeminiService(GEMINI_KEY, client=client)

    result = asyncio.run(service.enhance_image(original, "image/jpeg"))

    assert result.degraded is True
    assert result.image_url == bytes_to_data_url(original, "image/jpeg")
    assert result.caption == "Image processed successfully"
    print("  ✓ no image payload -> original image, degraded")


def test_gemini_errors_are_translated():
    client = FakeGenaiClient()
    client.models.content_error = RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded")
    service = GeminiService(GEMINI_KEY, client=client)

    error = _expect(ProviderError, service.enhance_image(make_image_bytes()))
    assert error.code == "QUOTA_EXCEEDED"
    assert error.provider == "gemini"
    assert "quota" in str(error).lower()

    client.models.content_error = RuntimeError("API key not valid. UNAUTHENTICATED")
    error = _expect(ProviderError, service.enhance_image(make_image_bytes()))
    assert error.code == "INVALID_API_KEY"
    assert error.retryable is False


def test_gemini_motion_prompt_from_image_is_cleaned():
    client = FakeGenaiClient()
    client.models.content_response = content_response(text='"Leaves swirl\naround the bench"')
    service = GeminiService(GEMINI_KEY, client=client)
    image_url = bytes_to_data_url(make_image_bytes(), "image/jpeg")

    prompt = asyncio.run(service.generate_video_prompt_from_image(image_url, "grandpa loved autumn"))

    assert prompt == "Leaves swirl around the bench"
    _, model, contents = client.models.calls[0]
    assert model == "gemini-2.5-flash"
    assert "grandpa loved autumn" in contents[0]


def test_gemini_motion_prompt_empty_text_fails():
    client = FakeGenaiClient()
    client.models.content_response = content_response(text="")
    service = GeminiService(GEMINI_KEY, client=client)
    _expect(ProviderError, service.generate_motion_prompt("A beach at sunset"))


def test_gemini_stream_yields_accumulated_text():
    client = FakeGenaiClient()
    client.models.stream_chunks = ["The kids ", "run toward ", "the waves"]
    service = GeminiService(GEMINI_KEY, client=client)

    async def collect():
        return [text async for text in service.generate_motion_prompt_stream("A beach", "summer trip")]

    partials = asyncio.run(collect())
    assert partials == ["The kids", "The kids run toward", "The kids run toward the waves"]


def test_gemini_key_check():
    client = FakeGenaiClient()
    client.models.content_response = content_response(text="Hi")
    assert asyncio.run(GeminiService(GEMINI_KEY, client=client).test_api_key()) is True

    client.models.content_error = RuntimeError("401 UNAUTHENTICATED")
    assert asyncio.run(GeminiService(GEMINI_KEY, client=client).test_api_key()) is False


def test_clean_motion_prompt():
    assert clean_motion_prompt("'Slow pan'\n\n") == "Slow pan"
    assert clean_motion_prompt('"A\nB"') == "A B"


def test_enhancement_prompt_ignores_note():
    assert get_enhancement_prompt() == Prompts.ENHANCE_IMAGE
    assert get_enhancement_prompt("Mum's 60th birthday") == Prompts.ENHANCE_IMAGE


# =============================================================================
# Replicate
# =============================================================================


def test_extract_output_url():
    assert extract_output_url("https://x/a.mp4") == "https://x/a.mp4"
    assert extract_output_url(["https://x/a.png", "https://x/b.png"]) == "https://x/a.png"
    assert extract_output_url([]) is None
    assert extract_output_url(None) is None


def test_replicate_enhance_request_shape():
    session = FakeSession([FakeResponse(201, {"status": "succeeded", "output": ["https://x/enhanced.png"]})])
    client = ReplicateClient(REPLICATE_TOKEN, session=session)

    result = asyncio.run(client.enhance_image("data:image/jpeg;base64,AAAA"))

    assert result.image_url == "https://x/enhanced.png"
    assert result.caption == "Enhanced with AI"
    post = session.posts[0]
    assert post["url"] == "https://api.replicate.com/v1/models/google/nano-banana/predictions"
    assert post["headers"]["Authorization"] == f"Bearer {REPLICATE_TOKEN}"
    assert post["headers"]["Prefer"] == "wait"
    assert post["json"]["input"]["image_input"] == ["data:image/jpeg;base64,AAAA"]
    print("  ✓ Replicate enhancement request")


def test_replicate_video_request_shape():
    session = FakeSession([FakeResponse(201, {"status": "succeeded", "output": "https://x/memory.mp4"})])
    client = ReplicateClient(REPLICATE_TOKEN, session=session)

    url = asyncio.run(client.generate_video("Waves roll in", "https://x/enhanced.png"))

    assert url == "https://x/memory.mp4"
    payload = session.posts[0]["json"]["input"]
    assert session.posts[0]["url"].endswith("/models/bytedance/seedance-1-pro/predictions")
    assert payload["duration"] == 5
    assert payload["resolution"] == "480p"
    assert payload["aspect_ratio"] == "16:9"
    assert payload["image"] == "https://x/enhanced.png"


def test_replicate_failures():
    client = ReplicateClient(REPLICATE_TOKEN, session=FakeSession([FakeResponse(500, text="server exploded")]))
    error = _expect(ProviderError, client.generate_video("prompt"))
    assert error.provider == "replicate"
    assert "Replicate" in str(error)

    client = ReplicateClient(REPLICATE_TOKEN, session=FakeSession([FakeResponse(201, {"status": "failed", "error": "NSFW"})]))
    error = _expect(ProviderError, client.enhance_image("data:image/jpeg;base64,AAAA"))
    assert "NSFW" in str(error)

    client = ReplicateClient(REPLICATE_TOKEN, session=FakeSession([FakeResponse(201, {"status": "succeeded", "output": None})]))
    _expect(ProviderError, client.generate_video("prompt"))

    client = ReplicateClient(REPLICATE_TOKEN, session=FakeSession(error=requests.ConnectionError("no route")))
    error = _expect(ProviderError, client.generate_video("prompt"))
    assert error.code == "NETWORK_ERROR"
    assert error.provider == "replicate"

    try:
        ReplicateClient("")
    except MissingCredentialError:
        pass
    else:
        raise AssertionError("empty token must raise")
    print("  ✓ Replicate failures map to ProviderError")


# =============================================================================
# Veo
# =============================================================================


def _veo(client, media_dir, **kwargs):
    return VeoService(GEMINI_KEY, client=client, media_dir=media_dir, sleep=no_sleep, **kwargs)


def test_veo_completes_and_saves_video():
    with tempfile.TemporaryDirectory() as tmp:
        client = FakeGenaiClient()
        client.models.operation = pending_operation()
        client.operations = FakeOperations([pending_operation(), finished_operation(video_bytes=b"mp4-bytes")])
        messages = []

        path = asyncio.run(_veo(client, Path(tmp)).generate_video(
            make_image_bytes(), "Waves roll in", on_progress=messages.append
        ))

        assert Path(path).parent == Path(tmp)
        assert Path(path).read_bytes() == b"mp4-bytes"
        assert client.operations.calls == 2
        assert messages[0] == "Starting video generation..."
        assert messages[-1] == "Video ready!"
    print("  ✓ Veo completes after polling")


def test_veo_downloads_by_uri():
    with tempfile.TemporaryDirectory() as tmp:
        client = FakeGenaiClient()
        client.models.operation = finished_operation(video_bytes=None)
        image_url = bytes_to_data_url(make_image_bytes(), "image/jpeg")

        path = asyncio.run(_veo(client, Path(tmp)).generate_video_from_url(image_url, "Slow zoom"))

        assert client.files.calls == 1
        assert Path(path).read_bytes() == b"fake-mp4-bytes"


def test_veo_times_out_after_30_polls():
    with tempfile.TemporaryDirectory() as tmp:
        client = FakeGenaiClient()
        client.models.operation = pending_operation()

        error = _expect(GenerationTimeoutError, _veo(client, Path(tmp)).generate_video(make_image_bytes(), "prompt"))

        assert error.attempts == 30
        assert client.operations.calls == 30
        assert str(error) == "Video generation timed out. Please try again."
    print("  ✓ Veo timeout after 30 polls")


def test_veo_operation_failure():
    with tempfile.TemporaryDirectory() as tmp:
        client = FakeGenaiClient()
        client.models.operation = pending_operation()
        client.operations = FakeOperations([failed_operation("Content blocked by safety filters")])

        error = _expect(ProviderError, _veo(client, Path(tmp)).generate_video(make_image_bytes(), "prompt"))
        assert error.provider == "veo"
        assert error.code == "SAFETY_REJECTED"


def test_veo_start_failure_and_missing_key():
    with tempfile.TemporaryDirectory() as tmp:
        client = FakeGenaiClient()
        client.models.videos_error = RuntimeError("500 INTERNAL")
        error = _expect(ProviderError, _veo(client, Path(tmp)).generate_video(make_image_bytes(), "prompt"))
        assert error.provider == "veo"

    try:
        VeoService("")
    except MissingCredentialError:
        return
    raise AssertionError("empty key must raise")


if __name__ == "__main__":
    print("\n" + "=" * 60)
    print(" PROVIDER CLIENT TESTS")
    print("=" * 60 + "\n")

    test_gemini_requires_key()
    test_gemini_enhance_returns_inline_image()
    test_gemini_enhance_without_image_is_soft_success()
    test_gemini_errors_are_translated()
    test_gemini_motion_prompt_from_image_is_cleaned()
    test_gemini_motion_prompt_empty_text_fails()
    test_gemini_stream_yields_accumulated_text()
    test_gemini_key_check()
    test_clean_motion_prompt()
    test_enhancement_prompt_ignores_note()
    test_extract_output_url()
    test_replicate_enhance_request_shape()
    test_replicate_video_request_shape()
    test_replicate_failures()
    test_veo_completes_and_saves_video()
    test_veo_downloads_by_uri()
    test_veo_times_out_after_30_polls()
    test_veo_operation_failure()
    test_veo_start_failure_and_missing_key()

    print("\n✅ ALL TESTS PASSED\n")
