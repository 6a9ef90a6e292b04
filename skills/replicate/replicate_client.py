"""
Replicate Skill - alternate provider for enhancement and video.

Two model-prediction endpoints, both called synchronously with
`Prefer: wait` so no prediction polling is needed:
- google/nano-banana: image enhancement (accepts data URLs directly)
- bytedance/seedance-1-pro: image-to-video, 5s / 480p / 16:9 by default

`output` comes back either as a URL string or a list of URLs.
"""

import asyncio
import logging
from typing import Optional, Union

import requests

from config import (
    HTTP_TIMEOUT_SECONDS,
    REPLICATE_API_BASE,
    REPLICATE_IMAGE_MODEL,
    REPLICATE_VIDEO_MODEL,
    REPLICATE_VIDEO_DURATION_SECONDS,
    REPLICATE_VIDEO_RESOLUTION,
    REPLICATE_VIDEO_ASPECT_RATIO,
    REPLICATE_VIDEO_FPS,
)
from agent.prompts import Prompts, get_enhancement_prompt
from models.errors import MissingCredentialError, ProviderError, translate_provider_error
from skills.enhance_image import EnhancementResult

logger = logging.getLogger(__name__)


def extract_output_url(output: Union[str, list, None]) -> Optional[str]:
    """Pull the first URL out of a prediction's `output` field."""
    if isinstance(output, str) and output:
        return output
    if isinstance(output, list) and output and isinstance(output[0], str):
        return output[0]
    return None


class ReplicateClient:
    """Replicate prediction client bound to one API token."""

    def __init__(self, api_token: str, session: requests.Session = None):
        if not api_token:
            raise MissingCredentialError("Replicate API token not set")
        self.api_token = api_token
        self.session = session or requests.Session()
        self.base_url = REPLICATE_API_BASE.rstrip("/")

    def _predict(self, model: str, payload: dict) -> dict:
        """POST a prediction and wait for it. Blocking; run via asyncio.to_thread."""
        url = f"{self.base_url}/models/{model}/predictions"
        try:
            response = self.session.post(
                url,
                headers={
                    "Authorization": f"Bearer {self.api_token}",
                    "Content-Type": "application/json",
                    "Prefer": "wait",
                },
                json={"input": payload},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"[Replicate] Request to {model} failed: {e}")
            raise translate_provider_error(e, "replicate") from e

        if not response.ok:
            logger.error(f"[Replicate] API error ({response.status_code}): {response.text[:500]}")
            raise ProviderError(
                f"Replicate failed ({response.status_code}): {response.text[:200]}",
                provider="replicate",
                retryable=response.status_code != 401,
            )

        result = response.json()
        if result.get("status") == "failed":
            raise ProviderError(
                f"Replicate prediction failed: {result.get('error') or 'unknown error'}",
                provider="replicate",
            )
        return result

    async def enhance_image(self, image_data_url: str, user_note: Optional[str] = None) -> EnhancementResult:
        """
        Enhance an image with nano-banana.

        Args:
            image_data_url: Data URL (or https URL) of the processed upload
        """
        prompt = get_enhancement_prompt(user_note)
        logger.info(f"[Replicate] Enhancing image with {REPLICATE_IMAGE_MODEL}")

        result = await asyncio.to_thread(
            self._predict,
            REPLICATE_IMAGE_MODEL,
            {
                "prompt": prompt,
                "image_input": [image_data_url],
                "output_format": "png",
            },
        )

        image_url = extract_output_url(result.get("output"))
        if not image_url:
            raise ProviderError("Replicate returned no enhanced image in response", provider="replicate")

        logger.info("[Replicate] Received enhanced image")
        return EnhancementResult(image_url=image_url, caption=Prompts.ALTERNATE_ENHANCED_CAPTION)

    async def generate_video(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        duration: int = REPLICATE_VIDEO_DURATION_SECONDS,
        resolution: str = REPLICATE_VIDEO_RESOLUTION,
        aspect_ratio: str = REPLICATE_VIDEO_ASPECT_RATIO,
    ) -> str:
        """
        Generate a short clip with seedance. Returns the output video URL.

        The image is optional; without it the model does text-to-video.
        """
        logger.info(
            f"[Replicate] Generating {duration}s {resolution} {aspect_ratio} video with {REPLICATE_VIDEO_MODEL}"
        )

        result = await asyncio.to_thread(
            self._predict,
            REPLICATE_VIDEO_MODEL,
            {
                "prompt": prompt,
                "duration": duration,
                "resolution": resolution,
                "aspect_ratio": aspect_ratio,
                "image": image_url,
                "fps": REPLICATE_VIDEO_FPS,
                "camera_fixed": False,
            },
        )

        video_url = extract_output_url(result.get("output"))
        if not video_url:
            raise ProviderError("Replicate did not return an output URL.", provider="replicate")

        logger.info("[Replicate] Video ready")
        return video_url
