"""
Pure state transitions for the memory wizard.

Every function takes a WorkflowState and returns a new one. Transitions that
commit a step's artifact also move the step, so controllers never need a
separate "advance" call for them.
"""

import time
from typing import Optional

from config import USER_NOTE_MAX_LENGTH, MOTION_PROMPT_MAX_LENGTH
from models.memory import ProcessingStep, STEP_ORDER, STEP_PROGRESS, WorkflowState


def _clamp_progress(value: float) -> float:
    return max(0, min(100, value))


def truncate_text(text: str, max_length: int) -> str:
    """Trim to max_length, backing off to the last word boundary."""
    text = (text or "").strip()
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    if " " in cut:
        cut = cut[: cut.rfind(" ")]
    return cut.rstrip(" ,;:")


# =============================================================================
# Step + artifacts
# =============================================================================


def set_current_step(state: WorkflowState, step: ProcessingStep) -> WorkflowState:
    """Move forward to `step`. Same step is a no-op; going back needs a reset."""
    if step.index < state.current_step.index:
        raise ValueError(
            f"Cannot move back from '{state.current_step.value}' to '{step.value}'; reset the workflow instead"
        )
    if step is state.current_step:
        return state
    return state.evolve(current_step=step, error=None)


def set_original_image(
    state: WorkflowState,
    image: bytes,
    url: str,
    data_url: str,
) -> WorkflowState:
    """New upload: clears everything downstream, including the note."""
    return state.evolve(
        original_image=image,
        original_image_url=url,
        original_image_data_url=data_url,
        enhanced_image_url=None,
        enhanced_image_caption=None,
        video_url=None,
        motion_prompt="",
        user_note="",
        error=None,
        current_step=ProcessingStep.ENHANCE,
    )


def set_enhanced_image(state: WorkflowState, url: str, caption: Optional[str] = None) -> WorkflowState:
    if not url:
        raise ValueError("Enhanced image URL is required")
    return state.evolve(
        enhanced_image_url=url,
        enhanced_image_caption=caption or None,
        current_step=ProcessingStep.GENERATE,
    )


def set_video_url(state: WorkflowState, url: str) -> WorkflowState:
    if not url:
        raise ValueError("Video URL is required")
    return state.evolve(
        video_url=url,
        current_step=ProcessingStep.COMPLETE,
        is_processing=False,
        progress=100,
    )


def set_user_note(state: WorkflowState, note: str) -> WorkflowState:
    return state.evolve(user_note=(note or "")[:USER_NOTE_MAX_LENGTH])


def set_motion_prompt(state: WorkflowState, prompt: str) -> WorkflowState:
    return state.evolve(motion_prompt=truncate_text(prompt, MOTION_PROMPT_MAX_LENGTH))


# =============================================================================
# Processing
# =============================================================================


def set_processing(state: WorkflowState, is_processing: bool) -> WorkflowState:
    return state.evolve(is_processing=is_processing)


def set_progress(state: WorkflowState, progress: float) -> WorkflowState:
    return state.evolve(progress=_clamp_progress(progress))


def set_error(state: WorkflowState, error: Optional[str]) -> WorkflowState:
    return state.evolve(error=error, is_processing=False)


def start_processing(state: WorkflowState, now: float = None) -> WorkflowState:
    return state.evolve(
        is_processing=True,
        processing_start_time=now if now is not None else time.time(),
        error=None,
        progress=0,
    )


def complete_processing(state: WorkflowState) -> WorkflowState:
    return state.evolve(
        is_processing=False,
        processing_start_time=None,
        estimated_time_remaining=None,
        progress=100,
    )


def set_estimated_time(state: WorkflowState, seconds: Optional[float]) -> WorkflowState:
    return state.evolve(estimated_time_remaining=seconds)


# =============================================================================
# Credentials
# =============================================================================


def set_api_key(state: WorkflowState, key: str) -> WorkflowState:
    return state.evolve(api_key=(key or "").strip() or None)


def clear_api_key(state: WorkflowState) -> WorkflowState:
    return state.evolve(api_key=None)


def set_replicate_token(state: WorkflowState, token: str) -> WorkflowState:
    return state.evolve(replicate_token=(token or "").strip() or None)


def clear_replicate_token(state: WorkflowState) -> WorkflowState:
    return state.evolve(replicate_token=None)


# =============================================================================
# Reset
# =============================================================================


def reset_workflow(state: WorkflowState) -> WorkflowState:
    """Back to a blank wizard, keeping only the credentials."""
    return WorkflowState(api_key=state.api_key, replicate_token=state.replicate_token)


def clear_media(state: WorkflowState) -> WorkflowState:
    """Drop the media but keep the note, prompt and credentials."""
    return state.evolve(
        original_image=None,
        original_image_url=None,
        original_image_data_url=None,
        enhanced_image_url=None,
        enhanced_image_caption=None,
        video_url=None,
        current_step=ProcessingStep.UPLOAD,
        progress=0,
        error=None,
    )


# =============================================================================
# Queries
# =============================================================================


def can_proceed_to_step(state: WorkflowState, step: ProcessingStep) -> bool:
    """A step is enterable only once its predecessor's artifact exists."""
    if step is ProcessingStep.UPLOAD:
        return True
    if step is ProcessingStep.ENHANCE:
        return state.original_image is not None
    if step in (ProcessingStep.PROMPT, ProcessingStep.GENERATE):
        return bool(state.enhanced_image_url)
    if step is ProcessingStep.COMPLETE:
        return bool(state.video_url)
    return False


def get_step_progress(state: WorkflowState) -> int:
    return STEP_PROGRESS.get(state.current_step, 0)


def get_next_step(step: ProcessingStep) -> Optional[ProcessingStep]:
    index = STEP_ORDER.index(step)
    if index == len(STEP_ORDER) - 1:
        return None
    return STEP_ORDER[index + 1]
