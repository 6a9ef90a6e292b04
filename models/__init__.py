"""
Data models for Moving Memories.

- WorkflowState: one photo's progress through the wizard
- ProcessingStep / ProcessingError: step identity and step-scoped failures
- Error types raised by provider clients and the upload validator
"""

from .memory import (
    ProcessingStep,
    ProcessingError,
    WorkflowState,
    STEP_ORDER,
    STEP_PROGRESS,
    create_processing_error,
)
from .errors import (
    ERROR_MESSAGES,
    ValidationError,
    MissingCredentialError,
    ProviderError,
    GenerationTimeoutError,
    translate_provider_error,
)

__all__ = [
    "ProcessingStep",
    "ProcessingError",
    "WorkflowState",
    "STEP_ORDER",
    "STEP_PROGRESS",
    "create_processing_error",
    "ERROR_MESSAGES",
    "ValidationError",
    "MissingCredentialError",
    "ProviderError",
    "GenerationTimeoutError",
    "translate_provider_error",
]
