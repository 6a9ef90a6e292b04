"""
Memory model - the state of one photo's trip through the wizard.

A memory starts as an uploaded photo, gets enhanced, gains a motion
description, and ends as a short video. WorkflowState is a frozen value;
the transitions in workflow/transitions.py return new copies.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


class ProcessingStep(str, Enum):
    """Wizard steps, in order."""

    UPLOAD = "upload"
    ENHANCE = "enhance"
    PROMPT = "prompt"
    GENERATE = "generate"
    COMPLETE = "complete"

    @property
    def index(self) -> int:
        return STEP_ORDER.index(self)

    @property
    def display_step(self) -> "ProcessingStep":
        """The prompt step is shown as part of generate."""
        return ProcessingStep.GENERATE if self is ProcessingStep.PROMPT else self


STEP_ORDER = [
    ProcessingStep.UPLOAD,
    ProcessingStep.ENHANCE,
    ProcessingStep.PROMPT,
    ProcessingStep.GENERATE,
    ProcessingStep.COMPLETE,
]

STEP_PROGRESS = {
    ProcessingStep.UPLOAD: 0,
    ProcessingStep.ENHANCE: 25,
    ProcessingStep.PROMPT: 50,
    ProcessingStep.GENERATE: 75,
    ProcessingStep.COMPLETE: 100,
}


@dataclass(frozen=True)
class WorkflowState:
    """
    Everything the wizard knows about the current memory.

    Only api_key, replicate_token and user_note survive a restart;
    the rest is session-only.
    """

    # Step
    current_step: ProcessingStep = ProcessingStep.UPLOAD

    # Media
    original_image: Optional[bytes] = field(default=None, repr=False)
    original_image_url: Optional[str] = None  # local media handle
    original_image_data_url: Optional[str] = field(default=None, repr=False)
    enhanced_image_url: Optional[str] = field(default=None, repr=False)  # data: or https:
    enhanced_image_caption: Optional[str] = None
    video_url: Optional[str] = None  # local media handle or https:

    # User inputs
    user_note: str = ""
    motion_prompt: str = ""

    # Processing
    is_processing: bool = False
    progress: float = 0
    error: Optional[str] = None

    # Credentials
    api_key: Optional[str] = field(default=None, repr=False)
    replicate_token: Optional[str] = field(default=None, repr=False)

    # Processing metadata
    processing_start_time: Optional[float] = None
    estimated_time_remaining: Optional[float] = None

    def evolve(self, **changes) -> "WorkflowState":
        return replace(self, **changes)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @property
    def has_replicate_token(self) -> bool:
        return bool(self.replicate_token and self.replicate_token.strip())

    def to_public_dict(self) -> dict:
        """Serialize for display. Credentials are reported as present/absent only."""
        return {
            "current_step": self.current_step.value,
            "display_step": self.current_step.display_step.value,
            "has_original_image": self.original_image is not None,
            "original_image_url": self.original_image_url,
            "has_enhanced_image": self.enhanced_image_url is not None,
            "enhanced_image_caption": self.enhanced_image_caption,
            "video_url": self.video_url,
            "user_note": self.user_note,
            "motion_prompt": self.motion_prompt,
            "is_processing": self.is_processing,
            "progress": self.progress,
            "error": self.error,
            "has_api_key": self.has_api_key,
            "has_replicate_token": self.has_replicate_token,
            "estimated_time_remaining": self.estimated_time_remaining,
        }


@dataclass
class ProcessingError:
    """A step-scoped failure shown to the user. Never persisted."""

    step: ProcessingStep
    message: str
    retryable: bool = True
    code: Optional[str] = None

    @property
    def requires_configuration(self) -> bool:
        return self.code == "NO_API_KEY"

    def to_dict(self) -> dict:
        return {
            "step": self.step.value,
            "message": self.message,
            "retryable": self.retryable,
            "code": self.code,
        }


def create_processing_error(
    step: ProcessingStep,
    message: str,
    retryable: bool = True,
    code: Optional[str] = None,
) -> ProcessingError:
    return ProcessingError(step=step, message=message, retryable=retryable, code=code)
