"""
Image Enhancement Skill - Gemini image + text calls.

This skill covers the primary provider's non-video work:
- Photo enhancement with gemini-2.5-flash-image-preview (inline image out)
- Motion descriptions from the enhanced image (gemini-2.5-flash)
- Motion descriptions from a caption, plain or streamed

Gemini sometimes answers an enhancement request with text only. That is not
treated as a failure: the original image comes back as the "enhanced" one,
flagged as degraded.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from google import genai
from google.genai import types

from config import GEMINI_IMAGE_MODEL, GEMINI_TEXT_MODEL
from agent.prompts import Prompts, get_enhancement_prompt, get_video_prompt
from models.errors import MissingCredentialError, ProviderError, translate_provider_error
from skills.process_image import bytes_to_data_url, load_image_source

logger = logging.getLogger(__name__)

_QUOTES_RE = re.compile(r"^[\"']|[\"']$")
_NEWLINES_RE = re.compile(r"\n+")

_STREAM_DONE = object()


@dataclass
class EnhancementResult:
    """Result of an enhancement call."""
    image_url: str  # data URL or https URL
    caption: str
    degraded: bool = False  # True when the original image was passed through


def clean_motion_prompt(text: str) -> str:
    """Strip wrapping quotes and fold newlines into spaces."""
    text = _QUOTES_RE.sub("", text.strip())
    return _NEWLINES_RE.sub(" ", text).strip()


class GeminiService:
    """
    Gemini image + text client bound to one API key.

    Construct a new instance when the key changes; there is no init step.
    """

    def __init__(self, api_key: str, client: genai.Client = None):
        """Initialize with the user's Gemini API key."""
        if not api_key:
            raise MissingCredentialError("API key is required. Please provide your Gemini API key.")
        self.client = client or genai.Client(api_key=api_key)
        self.image_model = GEMINI_IMAGE_MODEL
        self.text_model = GEMINI_TEXT_MODEL

    async def enhance_image(
        self,
        image_data: bytes,
        mime_type: str = "image/jpeg",
        user_note: Optional[str] = None,
    ) -> EnhancementResult:
        """
        Enhance a photo.

        Args:
            image_data: Processed JPEG/PNG bytes
            mime_type: Mime type of image_data
            user_note: Accepted for symmetry; the instruction ignores it

        Returns:
            EnhancementResult; degraded=True if Gemini returned no image
        """
        instruction = get_enhancement_prompt(user_note)
        logger.info(f"[Gemini] Enhancing image ({len(image_data)} bytes, {mime_type})")

        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.image_model,
                contents=[
                    instruction,
                    types.Part.from_bytes(data=image_data, mime_type=mime_type),
                ],
            )
        except Exception as e:
            logger.error(f"[Gemini] Enhancement failed: {e}")
            raise translate_provider_error(
                e, "gemini", default_message="Failed to enhance image. Please try again."
            ) from e

        images = []
        caption_lines = []
        for part in response.parts or []:
            if getattr(part, "text", None):
                caption_lines.append(part.text)
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data and inline.mime_type:
                images.append(bytes_to_data_url(inline.data, inline.mime_type))

        caption = "\n".join(caption_lines).strip()

        if not images:
            logger.warning("[Gemini] No enhanced image returned, using original image")
            return EnhancementResult(
                image_url=bytes_to_data_url(image_data, mime_type),
                caption=caption or Prompts.UNCHANGED_IMAGE_CAPTION,
                degraded=True,
            )

        logger.info(f"[Gemini] Received {len(images)} enhanced image(s)")
        return EnhancementResult(image_url=images[0], caption=caption)

    async def generate_video_prompt_from_image(
        self,
        image_url: str,
        user_note: Optional[str] = None,
    ) -> str:
        """
        Describe a plausible next five seconds of the pictured scene.

        Args:
            image_url: Data URL, https URL or local path of the enhanced image
            user_note: Optional note from the user, folded into the instruction
        """
        prompt = get_video_prompt(user_note)
        logger.info(f"[Gemini] Motion prompt from image (note: {'yes' if user_note else 'no'})")

        try:
            image_data, mime_type = await asyncio.to_thread(load_image_source, image_url)
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.text_model,
                contents=[
                    prompt,
                    types.Part.from_bytes(data=image_data, mime_type=mime_type),
                ],
            )
        except Exception as e:
            logger.error(f"[Gemini] generate_video_prompt_from_image error: {e}")
            raise translate_provider_error(
                e, "gemini", default_message="Failed to generate motion prompt. Please try again."
            ) from e

        text = clean_motion_prompt(response.text or "")
        if not text:
            raise ProviderError("No motion prompt was generated", provider="gemini")
        return text

    async def generate_motion_prompt(self, image_description: str, user_note: str = "") -> str:
        """Text-only motion prompt from a caption/description."""
        prompt = get_video_prompt(user_note)

        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.text_model,
                contents=[prompt, image_description],
            )
        except Exception as e:
            raise translate_provider_error(
                e, "gemini", default_message="Failed to generate motion prompt. Please try again."
            ) from e

        text = clean_motion_prompt(response.text or "")
        if not text:
            raise ProviderError("Failed to generate motion prompt. Please try again.", provider="gemini")
        return text

    async def generate_motion_prompt_stream(
        self,
        image_description: str,
        user_note: str = "",
    ) -> AsyncGenerator[str, None]:
        """
        Stream a motion prompt. Each yield is the full text so far.

        The SDK stream is synchronous, so chunks are pulled on a worker thread.
        """
        prompt = get_video_prompt(user_note)

        try:
            stream = await asyncio.to_thread(
                self.client.models.generate_content_stream,
                model=self.text_model,
                contents=[prompt, image_description],
            )
            iterator = iter(stream)
            full_text = ""
            while True:
                chunk = await asyncio.to_thread(next, iterator, _STREAM_DONE)
                if chunk is _STREAM_DONE:
                    break
                chunk_text = getattr(chunk, "text", None) or ""
                if chunk_text:
                    full_text += chunk_text
                    yield full_text.strip()
        except Exception as e:
            logger.error(f"[Gemini] Motion prompt stream failed: {e}")
            raise translate_provider_error(
                e, "gemini", default_message="Failed to generate motion prompt. Please try again."
            ) from e

    async def test_api_key(self) -> bool:
        """Make a tiny request to check the key works."""
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.text_model,
                contents=["Hello"],
            )
        except Exception as e:
            logger.warning(f"[Gemini] API key test failed: {e}")
            return False
        return bool(response.candidates)
