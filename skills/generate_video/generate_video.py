"""
Video Generation Skill - Veo image-to-video for a single memory.

This skill turns the enhanced photo plus a motion description into a clip:
- Photo is the starting frame (image-to-video)
- Motion comes from the Gemini-written description
- Result is downloaded with the same API key and kept as a local media handle

NOTE: Veo uses async operations pattern (generate_videos + polling), not generate_content.
Polling is bounded: VEO_MAX_POLL_ATTEMPTS x VEO_POLL_INTERVAL_SECONDS (5 minutes).
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from google import genai
from google.genai import types

from config import (
    VEO_MODEL,
    MEDIA_DIR,
    VEO_POLL_INTERVAL_SECONDS,
    VEO_MAX_POLL_ATTEMPTS,
)
from models.errors import (
    GenerationTimeoutError,
    MissingCredentialError,
    ProviderError,
    translate_provider_error,
)
from skills.process_image import create_media_handle, load_image_source
from .polling import PollOutcome, poll_until_done

logger = logging.getLogger(__name__)


def _operation_error(operation) -> Optional[str]:
    error = getattr(operation, "error", None)
    if not error:
        return None
    if isinstance(error, dict):
        return error.get("message") or str(error)
    return str(error)


class VeoService:
    """
    Generate a memory clip using Veo.

    Key capability: Image-to-video with starting frame preservation.
    One instance per API key; there is no init step.
    """

    def __init__(
        self,
        api_key: str,
        client: genai.Client = None,
        media_dir: Path = None,
        poll_interval: float = VEO_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = VEO_MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize with the user's Gemini/Veo API key."""
        if not api_key:
            raise MissingCredentialError("VEO service not initialized. Please provide an API key.")
        self.client = client or genai.Client(api_key=api_key)
        self.model = VEO_MODEL
        self.media_dir = Path(media_dir or MEDIA_DIR)
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self._sleep = sleep

    async def generate_video(
        self,
        image_data: bytes,
        prompt: str,
        mime_type: str = "image/jpeg",
        on_progress: Callable[[str], None] = None,
        media_dir: Path = None,
    ) -> str:
        """
        Generate a video from an image.

        Args:
            image_data: Starting frame bytes
            prompt: Motion description
            mime_type: Mime type of image_data
            on_progress: Optional status-message callback
            media_dir: Where to save the clip (defaults to the service's media_dir)

        Returns:
            Local media handle (path string) of the downloaded mp4

        Raises:
            GenerationTimeoutError: not done after max_poll_attempts
            ProviderError: start, operation or download failure
        """

        def report(message: str):
            if on_progress:
                on_progress(message)

        report("Starting video generation...")
        logger.info(f"[VEO] Starting {self.model} operation ({len(image_data)} byte image)")

        try:
            operation = await asyncio.to_thread(
                self.client.models.generate_videos,
                model=self.model,
                prompt=prompt,
                image=types.Image(image_bytes=image_data, mime_type=mime_type),
            )
        except Exception as e:
            logger.error(f"[VEO] API error: {e}")
            raise translate_provider_error(
                e, "veo", default_message="Failed to generate video. Please try again."
            ) from e

        async def refresh(op):
            return await asyncio.to_thread(self.client.operations.get, op)

        def on_attempt(attempt: int, elapsed: float):
            logger.info(f"[VEO] Waiting for video... ({elapsed:.0f}s elapsed)")
            report(f"Generating video... ({attempt * self.poll_interval:.0f}s elapsed)")

        result = await poll_until_done(
            operation,
            refresh=refresh,
            is_done=lambda op: bool(getattr(op, "done", False)),
            interval=self.poll_interval,
            max_attempts=self.max_poll_attempts,
            get_error=_operation_error,
            sleep=self._sleep,
            on_attempt=on_attempt,
        )

        if result.outcome is PollOutcome.TIMED_OUT:
            logger.error(f"[VEO] Timed out after {result.attempts} polls")
            raise GenerationTimeoutError(attempts=result.attempts)

        if result.outcome is PollOutcome.FAILED:
            logger.error(f"[VEO] Operation failed: {result.error}")
            raise translate_provider_error(
                RuntimeError(result.error), "veo", default_message="Failed to generate video. Please try again."
            )

        operation = result.value
        response = getattr(operation, "response", None)
        generated = getattr(response, "generated_videos", None) if response else None
        if not generated or not generated[0].video:
            raise ProviderError("No video was generated.", provider="veo")

        video = generated[0].video

        report("Downloading video...")
        video_bytes = await self._download(video)
        path = create_media_handle(video_bytes, ".mp4", media_dir=media_dir or self.media_dir)

        report("Video ready!")
        logger.info(f"[VEO] Video saved: {Path(path).name} ({len(video_bytes)} bytes)")
        return path

    async def _download(self, video) -> bytes:
        """Fetch the protected video file with the same API key."""
        if getattr(video, "video_bytes", None):
            return video.video_bytes
        if not getattr(video, "uri", None):
            raise ProviderError("No downloadable video URI was returned.", provider="veo")
        try:
            data = await asyncio.to_thread(self.client.files.download, file=video)
        except Exception as e:
            logger.error(f"[VEO] Download failed: {e}")
            raise ProviderError(f"Failed to download video ({e})", provider="veo") from e
        if not data:
            raise ProviderError("Failed to download video (empty response)", provider="veo")
        return data

    async def generate_video_from_url(self, image_url: str, prompt: str, on_progress=None, media_dir: Path = None) -> str:
        """Like generate_video, but accepts a data URL, https URL or local path."""
        try:
            image_data, mime_type = await asyncio.to_thread(load_image_source, image_url)
        except Exception as e:
            logger.error(f"[VEO] Failed to load image for video generation: {e}")
            raise ProviderError("Failed to process image URL for video generation", provider="veo") from e
        return await self.generate_video(
            image_data, prompt, mime_type=mime_type, on_progress=on_progress, media_dir=media_dir
        )
