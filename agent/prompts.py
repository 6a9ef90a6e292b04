"""
Prompt templates for the memory pipeline.

These prompts are designed to:
1. Enhance an old or dull photo into a vibrant, realistic one
2. Describe what could plausibly happen in the next five seconds
3. Feed that description to a video model (Veo or Seedance)

They are plain strings on purpose so they can be edited without touching
the step controllers.
"""


class Prompts:
    """Collection of prompt templates for the memory pipeline."""

    # =========================================================================
    # ENHANCEMENT PROMPTS
    # =========================================================================

    ENHANCE_IMAGE = """Look at the image, imagine how it would look like if it would have been taken with a modern digital NIKON DSLR camera.
Transform the image to vibrant and realistic colors shot on a Google Pixel 9 Pro. DO NOT RETURN images that look like black and white or greyscale images. Return only the updated image and nothing else.
"""

    # =========================================================================
    # MOTION PROMPTS (for the video model)
    # =========================================================================

    VIDEO_MOTION = """Look at the image and describe what could realistically happen in the next 5 seconds, boring is fine. IF a person is not showing their face on the reference image, ensure they do not turn to the camera but keep looking elsewhere.
Answer directly with the description of what could happen in the five seconds."""

    VIDEO_MOTION_WITH_NOTE = """Look at the image and describe what could realistically happen in the next 5 seconds, boring is fine. IF a person is not showing their face on the reference image, ensure they do not turn to the camera but keep looking elsewhere.
Take into account what the user mentioned about the image. User Note: "{user_note}". The user note is important.
Answer directly with the description in active language of what happens in the next five seconds."""

    FALLBACK_MOTION_PROMPT = "A gentle, cinematic motion around this cherished memory."

    # =========================================================================
    # CAPTIONS
    # =========================================================================

    ALTERNATE_ENHANCED_CAPTION = "Enhanced with AI"
    UNCHANGED_IMAGE_CAPTION = "Image processed successfully"
    DEFAULT_IMAGE_DESCRIPTION = "A meaningful photograph that holds special memories"
    NOTED_IMAGE_DESCRIPTION = "A meaningful photograph with personal significance: {user_note}"


def get_enhancement_prompt(user_note: str = None) -> str:
    """Get the enhancement instruction (the note does not change it)."""
    return Prompts.ENHANCE_IMAGE


def get_video_prompt(user_note: str = None) -> str:
    """Get the motion instruction, folding in the user's note when given."""
    if user_note and user_note.strip():
        return Prompts.VIDEO_MOTION_WITH_NOTE.format(user_note=user_note.strip())
    return Prompts.VIDEO_MOTION


def get_image_description(caption: str = "", user_note: str = "") -> str:
    """Describe the enhanced image for text-only motion prompts."""
    if caption and caption.strip():
        return caption.strip()
    if user_note and user_note.strip():
        return Prompts.NOTED_IMAGE_DESCRIPTION.format(user_note=user_note.strip())
    return Prompts.DEFAULT_IMAGE_DESCRIPTION
