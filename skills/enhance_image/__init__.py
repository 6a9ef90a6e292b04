"""Image enhancement skill - Gemini enhancement and motion prompt generation."""
from .enhance_image import GeminiService, EnhancementResult, clean_motion_prompt

__all__ = ["GeminiService", "EnhancementResult", "clean_motion_prompt"]
