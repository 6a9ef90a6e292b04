"""
MemoryWizard - mounts the right step controller as the store moves.

Plays the part of the page: whenever the displayed step changes, the old
controller is torn down and a fresh one is mounted for the new step.
The prompt step has no page of its own (it shows as generate), so its
controller is only created on demand.
"""

import asyncio
import logging
from typing import Optional

from models.memory import ProcessingStep, WorkflowState
from .steps import (
    STEP_CONTROLLERS,
    CompleteStep,
    EnhanceStep,
    GenerateStep,
    PromptStep,
    Providers,
    StepController,
    StepTiming,
    UploadStep,
)
from .store import MemoryStore

logger = logging.getLogger(__name__)


class WizardStepError(ValueError):
    """Action is not available on the current step."""


class MemoryWizard:
    def __init__(
        self,
        store: MemoryStore = None,
        providers: Providers = None,
        timing: StepTiming = None,
    ):
        self.store = store or MemoryStore()
        self.providers = providers or Providers()
        self.timing = timing or StepTiming()
        self.controller: Optional[StepController] = None
        self.prompt_controller: Optional[PromptStep] = None
        self._sync_pending = False
        self._closed = False
        self._unsubscribe = self.store.subscribe(self._on_change)

    @property
    def display_step(self) -> ProcessingStep:
        return self.store.state.current_step.display_step

    def _make_controller(self, step: ProcessingStep) -> StepController:
        return STEP_CONTROLLERS[step](self.store, providers=self.providers, timing=self.timing)

    def _on_change(self, old: WorkflowState, new: WorkflowState) -> None:
        if self._closed or old.current_step.display_step is new.current_step.display_step:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if not self._sync_pending:
            self._sync_pending = True
            loop.call_soon(self._scheduled_sync)

    def _scheduled_sync(self) -> None:
        if not self._closed:
            self.sync()

    def sync(self) -> StepController:
        """Make sure the mounted controller matches the displayed step."""
        self._sync_pending = False
        step = self.display_step
        if self.controller is None or self.controller.step is not step:
            if self.controller is not None:
                self.controller.teardown()
            logger.info(f"[Wizard] Showing {step.value}")
            self.controller = self._make_controller(step)
        self.controller.mount()
        return self.controller

    def close(self) -> None:
        self._closed = True
        if self.controller is not None:
            self.controller.teardown()
        if self.prompt_controller is not None:
            self.prompt_controller.teardown()
        self._unsubscribe()

    async def settle(self, timeout: float = None) -> StepController:
        """Wait until the wizard stops moving: no running work, no pending step change."""

        async def _settle() -> StepController:
            while True:
                controller = self.sync()
                await controller.wait()
                await asyncio.sleep(0)
                if controller is self.controller and controller.step is self.display_step:
                    return controller

        return await asyncio.wait_for(_settle(), timeout)

    def _require(self, controller_type: type) -> StepController:
        controller = self.sync()
        if not isinstance(controller, controller_type):
            raise WizardStepError(
                f"Not available on the '{self.display_step.value}' step"
            )
        return controller

    # =========================================================================
    # Actions
    # =========================================================================

    def upload_file(self, data: bytes, content_type: str = None, filename: str = None) -> UploadStep:
        controller = self._require(UploadStep)
        controller.handle_file(data, content_type, filename)
        return controller

    async def upload(self, data: bytes, content_type: str = None, filename: str = None) -> UploadStep:
        """Same as upload_file, with the image work done in a worker thread."""
        controller = self._require(UploadStep)
        await controller.handle_file_async(data, content_type, filename)
        return controller

    def update_note(self, note: str) -> None:
        controller = self.sync()
        if isinstance(controller, EnhanceStep):
            controller.update_note(note)
        else:
            self.store.set_user_note(note)

    async def generate_prompt(self) -> PromptStep:
        """Stream a fresh motion prompt from the caption and note."""
        if not self.store.can_proceed_to_step(ProcessingStep.PROMPT):
            raise WizardStepError("An enhanced image is needed before writing a motion prompt")
        if self.prompt_controller is not None:
            self.prompt_controller.teardown()
        self.prompt_controller = PromptStep(self.store, providers=self.providers, timing=self.timing)
        self.store.set_motion_prompt("")
        self.prompt_controller.mount()
        await self.prompt_controller.wait()
        return self.prompt_controller

    def save_prompt(self, text: str) -> str:
        if not self.store.can_proceed_to_step(ProcessingStep.PROMPT):
            raise WizardStepError("An enhanced image is needed before writing a motion prompt")
        controller = self.prompt_controller or PromptStep(self.store, providers=self.providers, timing=self.timing)
        return controller.save(text)

    def start(self, step: ProcessingStep) -> StepController:
        """Mount the controller for `step` if it is the one showing."""
        if step.display_step is not self.display_step:
            raise WizardStepError(
                f"Cannot start '{step.value}' while on the '{self.display_step.value}' step"
            )
        return self.sync()

    def retry(self, step: ProcessingStep):
        controller = self.start(step)
        if not isinstance(controller, (EnhanceStep, GenerateStep)):
            raise WizardStepError(f"Nothing to retry on the '{step.value}' step")
        return controller.retry()

    def complete_step(self) -> CompleteStep:
        return self._require(CompleteStep)

    def reset(self) -> StepController:
        if self.controller is not None:
            self.controller.teardown()
            self.controller = None
        if self.prompt_controller is not None:
            self.prompt_controller.teardown()
            self.prompt_controller = None
        self.store.reset_workflow()
        return self.sync()
