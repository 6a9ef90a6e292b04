"""
Skills - provider clients and media helpers used by the step controllers.

Each skill is a directory containing its implementation module:
- process_image: upload validation, resizing, data URLs, media handles
- enhance_image: Gemini enhancement + motion prompts
- replicate: alternate enhancement + video via Replicate predictions
- generate_video: Veo long-running generation with bounded polling
"""

from pathlib import Path

# Skill directories
SKILLS_DIR = Path(__file__).parent

from .process_image import ProcessedImage, validate_image_file, process_image_for_gemini
from .enhance_image import GeminiService, EnhancementResult
from .replicate import ReplicateClient
from .generate_video import VeoService, PollOutcome, PollResult, poll_until_done

__all__ = [
    "ProcessedImage",
    "validate_image_file",
    "process_image_for_gemini",
    "GeminiService",
    "EnhancementResult",
    "ReplicateClient",
    "VeoService",
    "PollOutcome",
    "PollResult",
    "poll_until_done",
    "SKILLS_DIR",
]
