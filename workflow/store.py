"""
MemoryStore - the single writer for WorkflowState.

Wraps the pure transitions in workflow/transitions.py, persists the
credential and note fields, releases local media handles on reset, and
notifies subscribers after every change.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

import config
from models.memory import ProcessingStep, WorkflowState
from skills.process_image import release_media_handle
from . import transitions
from .storage import LocalStorage, PERSISTED_FIELDS

logger = logging.getLogger(__name__)

Listener = Callable[[WorkflowState, WorkflowState], None]


class MemoryStore:
    """
    Explicit state container for one wizard session.

    Controllers read `store.state` and mutate only through the named
    methods below. There is no locking: everything runs on one event loop.
    """

    def __init__(self, storage: LocalStorage = None, media_dir: Path = None, seed_from_env: bool = True):
        self.storage = storage if storage is not None else LocalStorage()
        self.media_dir = Path(media_dir or config.MEDIA_DIR)
        self._listeners: list[Listener] = []

        persisted = self.storage.load()
        # Credentials that only came from the environment stay out of the storage file
        self._env_credentials: dict = {}
        if seed_from_env:
            for field, value in (("api_key", config.GOOGLE_API_KEY), ("replicate_token", config.REPLICATE_API_TOKEN)):
                if value and not persisted.get(field):
                    persisted[field] = value
                    self._env_credentials[field] = value

        self._state = WorkflowState(
            api_key=persisted.get("api_key") or None,
            replicate_token=persisted.get("replicate_token") or None,
            user_note=persisted.get("user_note") or "",
        )

    @property
    def state(self) -> WorkflowState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, new_state: WorkflowState) -> WorkflowState:
        old_state = self._state
        if new_state is old_state:
            return old_state
        self._state = new_state

        if any(getattr(old_state, f) != getattr(new_state, f) for f in PERSISTED_FIELDS):
            self.storage.save(self._persisted_fields(new_state))

        if old_state.current_step is not new_state.current_step:
            logger.info(f"[Store] Step {old_state.current_step.value} -> {new_state.current_step.value}")

        for listener in list(self._listeners):
            listener(old_state, new_state)
        return new_state

    def _persisted_fields(self, state: WorkflowState) -> dict:
        fields = {f: getattr(state, f) for f in PERSISTED_FIELDS}
        for field, value in self._env_credentials.items():
            if fields.get(field) == value:
                fields[field] = None
        return fields

    # =========================================================================
    # Step + artifacts
    # =========================================================================

    def set_current_step(self, step: ProcessingStep) -> WorkflowState:
        return self._commit(transitions.set_current_step(self._state, step))

    def set_original_image(self, image: bytes, url: str, data_url: str) -> WorkflowState:
        return self._commit(transitions.set_original_image(self._state, image, url, data_url))

    def set_enhanced_image(self, url: str, caption: Optional[str] = None) -> WorkflowState:
        return self._commit(transitions.set_enhanced_image(self._state, url, caption))

    def set_video_url(self, url: str) -> WorkflowState:
        return self._commit(transitions.set_video_url(self._state, url))

    def set_user_note(self, note: str) -> WorkflowState:
        return self._commit(transitions.set_user_note(self._state, note))

    def set_motion_prompt(self, prompt: str) -> WorkflowState:
        return self._commit(transitions.set_motion_prompt(self._state, prompt))

    # =========================================================================
    # Processing
    # =========================================================================

    def set_processing(self, is_processing: bool) -> WorkflowState:
        return self._commit(transitions.set_processing(self._state, is_processing))

    def set_progress(self, progress: float) -> WorkflowState:
        return self._commit(transitions.set_progress(self._state, progress))

    def set_error(self, error: Optional[str]) -> WorkflowState:
        return self._commit(transitions.set_error(self._state, error))

    def start_processing(self) -> WorkflowState:
        return self._commit(transitions.start_processing(self._state))

    def complete_processing(self) -> WorkflowState:
        return self._commit(transitions.complete_processing(self._state))

    def set_estimated_time(self, seconds: Optional[float]) -> WorkflowState:
        return self._commit(transitions.set_estimated_time(self._state, seconds))

    # =========================================================================
    # Credentials
    # =========================================================================

    def set_api_key(self, key: str) -> WorkflowState:
        self._env_credentials.pop("api_key", None)
        return self._commit(transitions.set_api_key(self._state, key))

    def clear_api_key(self) -> WorkflowState:
        self._env_credentials.pop("api_key", None)
        return self._commit(transitions.clear_api_key(self._state))

    def set_replicate_token(self, token: str) -> WorkflowState:
        self._env_credentials.pop("replicate_token", None)
        return self._commit(transitions.set_replicate_token(self._state, token))

    def clear_replicate_token(self) -> WorkflowState:
        self._env_credentials.pop("replicate_token", None)
        return self._commit(transitions.clear_replicate_token(self._state))

    # =========================================================================
    # Reset and cleanup
    # =========================================================================

    def _release_handles(self) -> None:
        for url in (self._state.original_image_url, self._state.video_url):
            if release_media_handle(url, self.media_dir):
                logger.info(f"[Store] Released local media {Path(url).name}")

    def reset_workflow(self) -> WorkflowState:
        self._release_handles()
        return self._commit(transitions.reset_workflow(self._state))

    def clear_media(self) -> WorkflowState:
        self._release_handles()
        return self._commit(transitions.clear_media(self._state))

    # =========================================================================
    # Queries
    # =========================================================================

    def can_proceed_to_step(self, step: ProcessingStep) -> bool:
        return transitions.can_proceed_to_step(self._state, step)

    def get_step_progress(self) -> int:
        return transitions.get_step_progress(self._state)
