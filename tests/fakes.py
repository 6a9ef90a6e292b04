"""
Offline stand-ins for the providers, used by the tests.

Two levels:
- SDK level (FakeGenaiClient, FakeSession) to exercise the real provider
  clients without network access
- Provider level (FakeGemini, FakeReplicate, FakeVeo) to drive the step
  controllers through specific success/failure paths
"""

import sys
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).parent.parent))

from PIL import Image

from models.errors import MissingCredentialError, ProviderError
from skills.enhance_image import EnhancementResult
from workflow.steps import Providers, StepTiming

GEMINI_KEY = "AIzaTestKey1234567890"
REPLICATE_TOKEN = "r8_TestToken1234567890"
REPLICATE_VIDEO_URL = "https://replicate.delivery/test/memory.mp4"
REPLICATE_IMAGE_URL = "https://replicate.delivery/test/enhanced.png"

# Everything scheduled, nothing actually waited on
FAST_TIMING = StepTiming(
    enhance_progress_interval=0.001,
    generate_progress_interval=0.001,
    generate_progress_duration=0.05,
    enhance_auto_advance=0.01,
    note_edit_auto_advance=0.01,
    generate_auto_advance=0.01,
    note_processing_delay=0.001,
    prefer_alternate_video=True,
)


def make_image_bytes(size=(64, 48), fmt="JPEG", color=(200, 120, 80)) -> bytes:
    mode = "RGBA" if fmt == "PNG" else "RGB"
    fill = (*color, 255) if mode == "RGBA" else color
    buffer = BytesIO()
    Image.new(mode, size, fill).save(buffer, format=fmt)
    return buffer.getvalue()


async def no_sleep(_seconds):
    return None


# =============================================================================
# SDK level
# =============================================================================


class FakeModels:
    def __init__(self):
        self.calls = []
        self.content_response = None
        self.content_error = None
        self.stream_chunks = []
        self.stream_error = None
        self.operation = None
        self.videos_error = None

    def generate_content(self, model, contents, **kwargs):
        self.calls.append(("generate_content", model, contents))
        if self.content_error:
            raise self.content_error
        return self.content_response

    def generate_content_stream(self, model, contents, **kwargs):
        self.calls.append(("generate_content_stream", model, contents))
        if self.stream_error:
            raise self.stream_error
        return iter([SimpleNamespace(text=chunk) for chunk in self.stream_chunks])

    def generate_videos(self, model, prompt, image=None, **kwargs):
        self.calls.append(("generate_videos", model, prompt))
        if self.videos_error:
            raise self.videos_error
        return self.operation


class FakeOperations:
    """operations.get returns the queued states in order, then repeats the last."""

    def __init__(self, states=None):
        self.states = list(states or [])
        self.calls = 0

    def get(self, operation):
        self.calls += 1
        if not self.states:
            return operation
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]


class FakeFiles:
    def __init__(self, data=b"fake-mp4-bytes"):
        self.data = data
        self.calls = 0

    def download(self, file):
        self.calls += 1
        return self.data


class FakeGenaiClient:
    def __init__(self):
        self.models = FakeModels()
        self.operations = FakeOperations()
        self.files = FakeFiles()


def text_part(text):
    return SimpleNamespace(text=text, inline_data=None)


def image_part(data, mime_type="image/png"):
    return SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type))


def content_response(parts=None, text=None):
    return SimpleNamespace(parts=parts or [], text=text, candidates=[SimpleNamespace()])


def pending_operation():
    return SimpleNamespace(done=False, error=None, response=None)


def finished_operation(video_bytes=None, uri="https://generativelanguage.googleapis.com/v1/files/abc"):
    video = SimpleNamespace(video_bytes=video_bytes, uri=uri)
    response = SimpleNamespace(generated_videos=[SimpleNamespace(video=video)])
    return SimpleNamespace(done=True, error=None, response=response)


def failed_operation(message="Internal error"):
    return SimpleNamespace(done=True, error={"message": message}, response=None)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class FakeSession:
    """requests.Session stand-in: replies from a queue, records every POST."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.responses.pop(0)


# =============================================================================
# Provider level
# =============================================================================


class FakeGemini:
    def __init__(self, enhanced_url=None, caption="A warm family portrait", degraded=False,
                 enhance_error=None, prompt="The family turns and smiles as leaves drift by",
                 prompt_error=None, stream_chunks=None, stream_error=None):
        self.enhanced_url = enhanced_url or "data:image/png;base64,ZW5oYW5jZWQ="
        self.caption = caption
        self.degraded = degraded
        self.enhance_error = enhance_error
        self.prompt = prompt
        self.prompt_error = prompt_error
        self.stream_chunks = stream_chunks or ["The family", "The family turns", "The family turns and waves"]
        self.stream_error = stream_error
        self.calls = []

    async def enhance_image(self, image_data, mime_type="image/jpeg", user_note=None):
        self.calls.append("enhance_image")
        if self.enhance_error:
            raise self.enhance_error
        return EnhancementResult(image_url=self.enhanced_url, caption=self.caption, degraded=self.degraded)

    async def generate_video_prompt_from_image(self, image_url, user_note=None):
        self.calls.append(("generate_video_prompt_from_image", user_note))
        if self.prompt_error:
            raise self.prompt_error
        return self.prompt

    async def generate_motion_prompt_stream(self, image_description, user_note=""):
        self.calls.append(("generate_motion_prompt_stream", image_description))
        for chunk in self.stream_chunks:
            yield chunk
        if self.stream_error:
            raise self.stream_error


class FakeReplicate:
    def __init__(self, enhance_error=None, video_error=None, video_url=REPLICATE_VIDEO_URL):
        self.enhance_error = enhance_error
        self.video_error = video_error
        self.video_url = video_url
        self.calls = []

    async def enhance_image(self, image_data_url, user_note=None):
        self.calls.append("enhance_image")
        if self.enhance_error:
            raise self.enhance_error
        return EnhancementResult(image_url=REPLICATE_IMAGE_URL, caption="Enhanced with AI")

    async def generate_video(self, prompt, image_url=None, duration=5, resolution="480p", aspect_ratio="16:9"):
        self.calls.append(("generate_video", prompt, duration, resolution, aspect_ratio))
        if self.video_error:
            raise self.video_error
        return self.video_url


class FakeVeo:
    def __init__(self, video_url="/tmp/veo-memory.mp4", error=None):
        self.video_url = video_url
        self.error = error
        self.calls = []

    async def generate_video_from_url(self, image_url, prompt, on_progress=None, media_dir=None):
        self.calls.append(("generate_video_from_url", prompt))
        if on_progress:
            on_progress("Generating video...")
        if self.error:
            raise self.error
        return self.video_url


def _factory(fake, missing_message):
    def build(credential):
        if not credential:
            raise MissingCredentialError(missing_message)
        return fake
    return build


def make_providers(gemini=None, replicate=None, veo=None) -> Providers:
    """Providers whose factories hand back the given fakes (and enforce credentials)."""
    return Providers(
        gemini=_factory(gemini or FakeGemini(), "API key is required."),
        replicate=_factory(replicate or FakeReplicate(), "Replicate API token not set"),
        veo=veo if callable(veo) else _factory(veo or FakeVeo(), "VEO not initialized"),
    )


def replicate_failure(message="Replicate failed (500): boom"):
    return ProviderError(message, provider="replicate")
