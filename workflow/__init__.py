"""
Workflow - the wizard's state, its transitions and the step controllers.

- store: MemoryStore, the single writer for WorkflowState
- transitions: pure state transition functions
- steps: one controller per wizard step
- wizard: mounts controllers as the step changes
"""

from .store import MemoryStore
from .storage import LocalStorage, MemoryOnlyStorage
from .steps import (
    Providers,
    StepTiming,
    StepController,
    UploadStep,
    EnhanceStep,
    PromptStep,
    GenerateStep,
    CompleteStep,
    to_processing_error,
)
from .wizard import MemoryWizard, WizardStepError

__all__ = [
    "MemoryStore",
    "LocalStorage",
    "MemoryOnlyStorage",
    "Providers",
    "StepTiming",
    "StepController",
    "UploadStep",
    "EnhanceStep",
    "PromptStep",
    "GenerateStep",
    "CompleteStep",
    "to_processing_error",
    "MemoryWizard",
    "WizardStepError",
]
