"""
Step controllers - one per wizard step.

Each controller is mounted when its step becomes visible. Mounting runs the
step's work once (re-mounts are ignored), and teardown cancels everything the
controller started: progress ticker, auto-advance timer and the run task.

Provider failures never escape a controller. They end up in `self.error`
(a ProcessingError) and, for the long-running steps, in the store's error.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Coroutine, Optional

import requests

import config
from agent.prompts import Prompts, get_image_description
from models.errors import (
    ERROR_MESSAGES,
    GenerationTimeoutError,
    MissingCredentialError,
    ProviderError,
    ValidationError,
    translate_provider_error,
)
from models.memory import ProcessingError, ProcessingStep, create_processing_error
from skills.enhance_image import EnhancementResult, GeminiService
from skills.generate_video import VeoService
from skills.process_image import (
    ProcessedImage,
    add_watermark,
    convert_to_jpeg,
    create_media_handle,
    detect_mime_type,
    generate_filename,
    load_image_source,
    process_image_for_gemini,
    validate_image_file,
)
from skills.replicate import ReplicateClient
from .progress import ProgressTicker, eased_progress, step_progress
from .store import MemoryStore

logger = logging.getLogger(__name__)


@dataclass
class Providers:
    """Factories for the provider clients, each taking its credential."""

    gemini: Callable[[str], GeminiService] = GeminiService
    replicate: Callable[[str], ReplicateClient] = ReplicateClient
    veo: Callable[[str], VeoService] = VeoService


@dataclass
class StepTiming:
    enhance_progress_interval: float = config.ENHANCE_PROGRESS_INTERVAL_SECONDS
    generate_progress_interval: float = config.GENERATE_PROGRESS_INTERVAL_SECONDS
    generate_progress_duration: float = config.GENERATE_PROGRESS_DURATION_SECONDS
    enhance_auto_advance: float = config.ENHANCE_AUTO_ADVANCE_SECONDS
    note_edit_auto_advance: float = config.NOTE_EDIT_AUTO_ADVANCE_SECONDS
    generate_auto_advance: float = config.GENERATE_AUTO_ADVANCE_SECONDS
    note_processing_delay: float = config.NOTE_PROCESSING_DELAY_SECONDS
    prefer_alternate_video: bool = config.PREFER_ALTERNATE_VIDEO


def _is_alternate_error(error: Exception) -> bool:
    return getattr(error, "provider", None) == "replicate" or "Replicate" in str(error)


def to_processing_error(step: ProcessingStep, error: Exception, default_message: str) -> ProcessingError:
    """Map anything a provider or validator raised onto a user-facing error."""
    if isinstance(error, MissingCredentialError):
        return create_processing_error(step, ERROR_MESSAGES["NO_API_KEY"], retryable=False, code="NO_API_KEY")
    if isinstance(error, ValidationError):
        return create_processing_error(step, str(error), retryable=False, code=error.code)
    if isinstance(error, GenerationTimeoutError):
        return create_processing_error(step, str(error), retryable=True, code=error.code)
    if isinstance(error, ProviderError):
        return create_processing_error(step, str(error), retryable=error.retryable, code=error.code)
    translated = translate_provider_error(error, "unknown", default_message=default_message)
    return create_processing_error(step, str(translated), retryable=translated.retryable, code=translated.code)


# =============================================================================
# Base controller
# =============================================================================


class StepController:
    """Lifecycle shared by all step controllers."""

    step: ProcessingStep = ProcessingStep.UPLOAD

    def __init__(
        self,
        store: MemoryStore,
        providers: Providers = None,
        timing: StepTiming = None,
    ):
        self.store = store
        self.providers = providers or Providers()
        self.timing = timing or StepTiming()
        self.error: Optional[ProcessingError] = None
        self.status_message = ""
        self._started = False
        self._closed = False
        self._tasks: set[asyncio.Task] = set()
        self._ticker: Optional[ProgressTicker] = None
        self._advance_task: Optional[asyncio.Task] = None

    @property
    def started(self) -> bool:
        return self._started

    @property
    def busy(self) -> bool:
        return any(not task.done() for task in self._tasks if task is not self._advance_task)

    def mount(self) -> None:
        """Run on_enter once. Repeated mounts are no-ops."""
        if self._started or self._closed:
            return
        self._started = True
        logger.info(f"[{type(self).__name__}] Mounted")
        self.on_enter()

    def on_enter(self) -> None:
        pass

    def teardown(self) -> None:
        """Cancel the ticker, the pending auto-advance and any running work."""
        self._closed = True
        self._stop_ticker()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._advance_task = None

    async def wait(self) -> None:
        """Wait until every task this controller started has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _start_ticker(self, interval: float, compute: Callable[[int, float], float]) -> None:
        self._stop_ticker()
        self._ticker = ProgressTicker(interval, compute, self.store.set_progress)
        self._ticker.start()

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    def _schedule_advance(self, target: ProcessingStep, delay: float) -> None:
        """(Re)start the delayed move to `target`."""
        if self._closed:
            return
        if self._advance_task is not None:
            self._advance_task.cancel()
        self._advance_task = self._spawn(self._advance_after(target, delay))

    def _cancel_advance(self) -> None:
        if self._advance_task is not None:
            self._advance_task.cancel()
            self._advance_task = None

    async def _advance_after(self, target: ProcessingStep, delay: float) -> None:
        await asyncio.sleep(delay)
        state = self.store.state
        if state.current_step.index < target.index and self.store.can_proceed_to_step(target):
            self.store.set_current_step(target)

    def _fail(self, error: Exception, default_message: str) -> ProcessingError:
        self._stop_ticker()
        self.error = to_processing_error(self.step, error, default_message)
        self.store.set_progress(0)
        self.store.set_error(self.error.message)
        return self.error


# =============================================================================
# Upload
# =============================================================================


class UploadStep(StepController):
    """Validate, resize and store the uploaded photo."""

    step = ProcessingStep.UPLOAD

    def handle_file(self, data: bytes, content_type: Optional[str] = None, filename: Optional[str] = None) -> bool:
        """
        Accept an upload. Returns True when the photo was stored.

        Validation failures stay local to this controller: the store is
        not touched and no step transition happens.
        """
        self.error = None
        try:
            processed, handle = self._prepare(data, content_type)
        except ValidationError as e:
            return self._reject(e, filename)
        return self._store_upload(processed, handle, filename)

    async def handle_file_async(
        self, data: bytes, content_type: Optional[str] = None, filename: Optional[str] = None
    ) -> bool:
        """Like handle_file, with decoding and re-encoding off the event loop."""
        self.error = None
        try:
            processed, handle = await asyncio.to_thread(self._prepare, data, content_type)
        except ValidationError as e:
            return self._reject(e, filename)
        return self._store_upload(processed, handle, filename)

    def _prepare(self, data: bytes, content_type: Optional[str]) -> tuple[ProcessedImage, str]:
        content_type = content_type or detect_mime_type(data)
        validate_image_file(data, content_type)
        processed = process_image_for_gemini(data)
        handle = create_media_handle(processed.data, ".jpg", media_dir=self.store.media_dir, prefix="upload")
        return processed, handle

    def _reject(self, error: ValidationError, filename: Optional[str]) -> bool:
        logger.warning(f"[Upload] Rejected {filename or 'upload'}: {error}")
        self.error = to_processing_error(self.step, error, ERROR_MESSAGES["INVALID_IMAGE"])
        return False

    def _store_upload(self, processed: ProcessedImage, handle: str, filename: Optional[str]) -> bool:
        self.store.set_original_image(processed.data, handle, processed.data_url)
        logger.info(f"[Upload] Stored {filename or 'upload'} ({processed.width}x{processed.height})")
        return True


# =============================================================================
# Enhance
# =============================================================================


class EnhanceStep(StepController):
    """Enhance the photo: Replicate first when a token exists, then Gemini."""

    step = ProcessingStep.ENHANCE

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.result: Optional[EnhancementResult] = None

    def on_enter(self) -> None:
        state = self.store.state
        if state.original_image is None or state.enhanced_image_url:
            return
        self.store.set_user_note("")
        self.start_enhancement()

    def start_enhancement(self) -> asyncio.Task:
        return self._spawn(self._run())

    def retry(self) -> Optional[asyncio.Task]:
        if self.busy:
            return None
        return self.start_enhancement()

    def update_note(self, note: str) -> None:
        """Edit the note; after a successful enhancement this restarts the advance timer."""
        self.store.set_user_note(note)
        if self.result is not None and not self._closed:
            self._schedule_advance(ProcessingStep.GENERATE, self.timing.note_edit_auto_advance)

    async def _run(self) -> None:
        self.error = None
        self.result = None
        self.store.start_processing()
        self._start_ticker(self.timing.enhance_progress_interval, lambda tick, _: step_progress(tick))

        try:
            result = await self._enhance()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Enhancement] Failed: {e}")
            self._fail(e, "Enhancement failed")
            return

        self._stop_ticker()
        if result.degraded:
            logger.warning("[Enhancement] Using the original image as the enhanced result")

        self.result = result
        self.store.complete_processing()
        self.store.set_enhanced_image(result.image_url, result.caption)
        self._schedule_advance(ProcessingStep.GENERATE, self.timing.enhance_auto_advance)

    async def _enhance(self) -> EnhancementResult:
        state = self.store.state

        if state.has_replicate_token:
            try:
                logger.info("[Enhancement] Using Replicate with existing token...")
                replicate = self.providers.replicate(state.replicate_token)
                result = await replicate.enhance_image(state.original_image_data_url, state.user_note or None)
                logger.info("[Enhancement] Replicate successful!")
                return result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[Enhancement] Replicate failed, falling back to Gemini: {e}")
        else:
            logger.info("[Enhancement] No Replicate token, using Gemini (may not enhance)...")

        gemini = self.providers.gemini(state.api_key)
        return await gemini.enhance_image(state.original_image, "image/jpeg")


# =============================================================================
# Prompt
# =============================================================================


class PromptStep(StepController):
    """
    Write the motion prompt, streaming partial text as it arrives.

    Optional: the generate step writes its own prompt when none is stored.
    """

    step = ProcessingStep.PROMPT

    def __init__(self, *args, on_partial: Callable[[str], None] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.on_partial = on_partial
        self.streamed_prompt = ""
        self.editable_prompt = ""

    def on_enter(self) -> None:
        if self.store.state.motion_prompt:
            self.editable_prompt = self.store.state.motion_prompt
            return
        self.generate_prompt()

    def generate_prompt(self) -> asyncio.Task:
        return self._spawn(self._stream())

    def regenerate(self) -> Optional[asyncio.Task]:
        if self.busy:
            return None
        return self.generate_prompt()

    async def _stream(self) -> None:
        self.error = None
        self.streamed_prompt = ""
        state = self.store.state
        description = get_image_description(state.enhanced_image_caption or "", state.user_note)

        try:
            gemini = self.providers.gemini(state.api_key)
            async for partial in gemini.generate_motion_prompt_stream(description, state.user_note):
                self.streamed_prompt = partial
                if self.on_partial:
                    self.on_partial(partial)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Prompt] Streaming failed: {e}")
            self.error = to_processing_error(self.step, e, "Failed to generate prompt")
            return

        self.store.set_motion_prompt(self.streamed_prompt)
        self.editable_prompt = self.store.state.motion_prompt

    def save(self, text: str) -> str:
        text = (text or "").strip()
        if len(text) > config.MOTION_PROMPT_MAX_LENGTH:
            raise ValidationError(
                f"Motion prompt must be {config.MOTION_PROMPT_MAX_LENGTH} characters or fewer",
                code="PROMPT_TOO_LONG",
            )
        self.store.set_motion_prompt(text)
        self.editable_prompt = self.store.state.motion_prompt
        return self.editable_prompt

    def proceed(self) -> bool:
        if not self.editable_prompt:
            return False
        self.store.set_motion_prompt(self.editable_prompt)
        if self.store.state.current_step.index < ProcessingStep.GENERATE.index:
            self.store.set_current_step(ProcessingStep.GENERATE)
        return True


# =============================================================================
# Generate
# =============================================================================


class GenerateStep(StepController):
    """Motion prompt, then video: Replicate or Veo, with Replicate as fallback."""

    step = ProcessingStep.GENERATE

    def on_enter(self) -> None:
        state = self.store.state
        if not state.enhanced_image_url or state.video_url:
            return
        self._spawn(self._run(note_delay=bool(state.user_note)))

    def retry(self) -> Optional[asyncio.Task]:
        if self.busy:
            return None
        return self._spawn(self._run(note_delay=False))

    def _set_status(self, message: str) -> None:
        self.status_message = message

    async def _run(self, note_delay: bool = False) -> None:
        if note_delay:
            self._set_status("Processing your note...")
            await asyncio.sleep(self.timing.note_processing_delay)

        if not self.store.state.enhanced_image_url:
            self.error = create_processing_error(self.step, "Missing required image for video generation")
            return

        self.error = None
        self.store.start_processing()
        self.store.set_progress(config.GENERATE_PROGRESS_START)
        self._set_status("Analyzing image for motion...")
        duration = self.timing.generate_progress_duration
        self.store.set_estimated_time(duration)
        self._start_ticker(
            self.timing.generate_progress_interval,
            lambda tick, elapsed: eased_progress(elapsed, duration=duration),
        )

        try:
            prompt = await self._ensure_motion_prompt()
            video_url = await self._generate_video(prompt)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Generate] Video generation error: {e}")
            self._fail(e, "Video generation failed")
            self._set_status("")
            return

        self._stop_ticker()
        self._set_status("Your memory is ready!")
        self.store.complete_processing()
        self.store.set_video_url(video_url)
        self._schedule_advance(ProcessingStep.COMPLETE, self.timing.generate_auto_advance)

    async def _ensure_motion_prompt(self) -> str:
        state = self.store.state
        if state.motion_prompt.strip():
            return state.motion_prompt

        logger.info(f"[Generate] Motion prompt from image (note: {'yes' if state.user_note else 'none'})")
        try:
            gemini = self.providers.gemini(state.api_key)
            prompt = await gemini.generate_video_prompt_from_image(
                state.enhanced_image_url, state.user_note or None
            )
            self._set_status("Preparing video generation...")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[Generate] Motion prompt generation failed, using fallback: {e}")
            prompt = Prompts.FALLBACK_MOTION_PROMPT

        self.store.set_motion_prompt(prompt)
        logger.info(f"[Generate] Final motion prompt: {self.store.state.motion_prompt}")
        return self.store.state.motion_prompt

    async def _generate_video(self, prompt: str) -> str:
        state = self.store.state
        use_alternate = state.has_replicate_token and (
            self.timing.prefer_alternate_video or not state.has_api_key
        )

        self._set_status("Generating video...")
        if use_alternate:
            return await self._replicate_video(state.replicate_token, prompt)

        try:
            veo = self.providers.veo(state.api_key)
            return await veo.generate_video_from_url(
                state.enhanced_image_url, prompt, on_progress=self._set_status, media_dir=self.store.media_dir
            )
        except asyncio.CancelledError:
            raise
        except Exception as primary_error:
            # Token is re-read here: it may have been added while Veo was running
            token = self.store.state.replicate_token
            if _is_alternate_error(primary_error) or not token:
                raise
            logger.warning(f"[Generate] Veo failed ({primary_error}), trying Replicate")
            return await self._replicate_video(token, prompt)

    async def _replicate_video(self, token: str, prompt: str) -> str:
        replicate = self.providers.replicate(token)
        return await replicate.generate_video(
            prompt,
            self.store.state.enhanced_image_url,
            duration=config.REPLICATE_VIDEO_DURATION_SECONDS,
            resolution=config.REPLICATE_VIDEO_RESOLUTION,
            aspect_ratio=config.REPLICATE_VIDEO_ASPECT_RATIO,
        )


# =============================================================================
# Complete
# =============================================================================


def _read_media(source: str) -> bytes:
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=config.HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.content
    return Path(source).read_bytes()


class CompleteStep(StepController):
    """Show the result and hand out downloads."""

    step = ProcessingStep.COMPLETE

    def media(self) -> dict:
        state = self.store.state
        return {
            "video_url": state.video_url,
            "poster_url": state.enhanced_image_url,
            "caption": state.enhanced_image_caption,
        }

    async def download_video(self, dest_dir: Path = None) -> Path:
        video_url = self.store.state.video_url
        if not video_url:
            raise ValueError("No video to download")

        dest = Path(dest_dir or config.OUTPUT_DIR) / generate_filename("memory", "mp4")
        dest.parent.mkdir(parents=True, exist_ok=True)
        if Path(video_url).exists():
            await asyncio.to_thread(shutil.copyfile, video_url, dest)
        else:
            data = await asyncio.to_thread(_read_media, video_url)
            await asyncio.to_thread(dest.write_bytes, data)

        logger.info(f"[Complete] Saved video to {dest}")
        return dest

    async def download_image(self, dest_dir: Path = None, watermark: bool = False) -> Path:
        image_url = self.store.state.enhanced_image_url
        if not image_url:
            raise ValueError("No enhanced image to download")

        data, _ = await asyncio.to_thread(load_image_source, image_url)
        if watermark:
            data = await asyncio.to_thread(add_watermark, data)
        else:
            data = await asyncio.to_thread(convert_to_jpeg, data)

        dest = Path(dest_dir or config.OUTPUT_DIR) / generate_filename("enhanced-memory", "jpg")
        dest.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(dest.write_bytes, data)

        logger.info(f"[Complete] Saved image to {dest}")
        return dest

    def start_over(self) -> None:
        self.teardown()
        self.store.reset_workflow()


STEP_CONTROLLERS = {
    ProcessingStep.UPLOAD: UploadStep,
    ProcessingStep.ENHANCE: EnhanceStep,
    ProcessingStep.PROMPT: PromptStep,
    ProcessingStep.GENERATE: GenerateStep,
    ProcessingStep.COMPLETE: CompleteStep,
}
