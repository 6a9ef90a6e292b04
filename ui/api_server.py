"""
API Server for the Moving Memories wizard.

This FastAPI server drives one local wizard session:
1. Credentials and state (/api/credentials, /api/state)
2. The five steps: upload -> enhance -> (prompt) -> generate -> complete
3. Downloads of the finished video and enhanced photo

Step work runs in the background on the server's event loop. Pass
`?wait=true` to a step endpoint to get the response only once the wizard
has settled (useful from scripts and tests).

Run with: uvicorn ui.api_server:app --reload --port 8000
"""

import logging
import time
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import (
    GEMINI_IMAGE_MODEL,
    GEMINI_TEXT_MODEL,
    VEO_MODEL,
    REPLICATE_IMAGE_MODEL,
    REPLICATE_VIDEO_MODEL,
    GEMINI_KEY_PREFIX,
    REPLICATE_TOKEN_PREFIX,
    OUTPUT_DIR,
)
from models.errors import ValidationError
from models.memory import ProcessingError, ProcessingStep
from workflow import MemoryWizard, WizardStepError, to_processing_error
from ui.set_api_key import check_credential_format

# =============================================================================
# Setup Logging - File + Console
# =============================================================================

LOGS_DIR = Path(__file__).parent.parent / "logs"
LOGS_DIR.mkdir(exist_ok=True)

_session_start = time.strftime("%Y%m%d_%H%M%S")
_log_file = LOGS_DIR / f"server_{_session_start}.log"

# force=True overrides handlers installed by config/uvicorn
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(_log_file, mode='a'),
        logging.StreamHandler()
    ],
    force=True
)
logger = logging.getLogger("api_server")
logger.info(f"Server session started. Log file: {_log_file}")

app = FastAPI(
    title="Moving Memories API",
    description="Photo -> enhanced image -> motion prompt -> short video",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

WAIT_TIMEOUT_SECONDS = 600
VALIDATION_CODES = {"INVALID_IMAGE", "IMAGE_TOO_LARGE", "PROMPT_TOO_LONG"}

# One wizard per server process, created on first use
_wizard: Optional[MemoryWizard] = None


def get_wizard() -> MemoryWizard:
    global _wizard
    if _wizard is None:
        _wizard = MemoryWizard()
    return _wizard


# =============================================================================
# Request / Response Models
# =============================================================================

class CredentialsRequest(BaseModel):
    """Either field may be omitted to leave that credential unchanged."""
    api_key: Optional[str] = None
    replicate_token: Optional[str] = None


class NoteRequest(BaseModel):
    note: str = ""


class PromptRequest(BaseModel):
    """With `text`, save it as the motion prompt; without, stream a new one."""
    text: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================

def _http_error(error: ProcessingError) -> HTTPException:
    if error.requires_configuration:
        status_code = 401
    elif error.code in VALIDATION_CODES:
        status_code = 400
    else:
        status_code = 502
    return HTTPException(status_code=status_code, detail=error.to_dict())


def _state_response(wizard: MemoryWizard) -> dict:
    controller = wizard.controller
    error = controller.error if controller is not None else None
    return {
        "state": wizard.store.state.to_public_dict(),
        "status_message": controller.status_message if controller is not None else "",
        "step_error": error.to_dict() if error else None,
    }


async def _finish(wizard: MemoryWizard, wait: bool) -> dict:
    """Optionally wait for the wizard to settle, then report state or the step's error."""
    if wait:
        controller = await wizard.settle(timeout=WAIT_TIMEOUT_SECONDS)
        if controller.error is not None:
            raise _http_error(controller.error)
    return _state_response(wizard)


def _parse_step(step: str) -> ProcessingStep:
    try:
        return ProcessingStep(step)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown step: {step}")


# =============================================================================
# API Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "models": {
            "image": GEMINI_IMAGE_MODEL,
            "text": GEMINI_TEXT_MODEL,
            "video": VEO_MODEL,
            "alternate_image": REPLICATE_IMAGE_MODEL,
            "alternate_video": REPLICATE_VIDEO_MODEL,
        },
    }


@app.get("/api/state")
async def get_state():
    wizard = get_wizard()
    wizard.sync()
    return _state_response(wizard)


@app.post("/api/credentials")
async def set_credentials(request: CredentialsRequest):
    wizard = get_wizard()
    try:
        api_key = (
            check_credential_format(request.api_key, GEMINI_KEY_PREFIX, "Gemini API key")
            if request.api_key is not None else None
        )
        token = (
            check_credential_format(request.replicate_token, REPLICATE_TOKEN_PREFIX, "Replicate token")
            if request.replicate_token is not None else None
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if api_key:
        wizard.store.set_api_key(api_key)
    if token:
        wizard.store.set_replicate_token(token)
    logger.info(f"Credentials updated (gemini: {'yes' if api_key else 'unchanged'}, "
                f"replicate: {'yes' if token else 'unchanged'})")
    return _state_response(wizard)


@app.delete("/api/credentials")
async def clear_credentials(which: str = "all"):
    wizard = get_wizard()
    if which not in ("all", "gemini", "replicate"):
        raise HTTPException(status_code=400, detail="which must be 'all', 'gemini' or 'replicate'")
    if which in ("all", "gemini"):
        wizard.store.clear_api_key()
    if which in ("all", "replicate"):
        wizard.store.clear_replicate_token()
    logger.info(f"Credentials cleared ({which})")
    return _state_response(wizard)


@app.post("/api/upload")
async def upload(file: UploadFile = File(...), wait: bool = False):
    """Upload a photo. Enhancement starts as soon as it is stored."""
    wizard = get_wizard()
    content = await file.read()
    try:
        controller = await wizard.upload(content, file.content_type, file.filename)
    except WizardStepError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if controller.error is not None:
        raise _http_error(controller.error)

    logger.info(f"Uploaded {file.filename} ({len(content)} bytes)")
    wizard.sync()
    return await _finish(wizard, wait)


@app.post("/api/enhance")
async def enhance(wait: bool = False):
    """Start (or report on) enhancement of the uploaded photo."""
    wizard = get_wizard()
    try:
        wizard.start(ProcessingStep.ENHANCE)
    except WizardStepError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return await _finish(wizard, wait)


@app.post("/api/note")
async def set_note(request: NoteRequest):
    wizard = get_wizard()
    wizard.update_note(request.note)
    return _state_response(wizard)


@app.post("/api/prompt")
async def motion_prompt(request: PromptRequest):
    wizard = get_wizard()
    try:
        if request.text is not None:
            wizard.save_prompt(request.text)
        else:
            controller = await wizard.generate_prompt()
            if controller.error is not None:
                raise _http_error(controller.error)
    except WizardStepError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise _http_error(to_processing_error(ProcessingStep.PROMPT, e, str(e)))
    return _state_response(wizard)


@app.post("/api/generate")
async def generate(wait: bool = False):
    """Start (or report on) video generation."""
    wizard = get_wizard()
    try:
        wizard.start(ProcessingStep.GENERATE)
    except WizardStepError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return await _finish(wizard, wait)


@app.post("/api/retry/{step}")
async def retry(step: str, wait: bool = False):
    wizard = get_wizard()
    try:
        task = wizard.retry(_parse_step(step))
    except WizardStepError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if task is None:
        raise HTTPException(status_code=409, detail=f"The '{step}' step is still running")
    return await _finish(wizard, wait)


@app.get("/api/download/video")
async def download_video():
    wizard = get_wizard()
    try:
        path = await wizard.complete_step().download_video(OUTPUT_DIR / "downloads")
    except WizardStepError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Video download failed: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to download video: {e}")
    return FileResponse(path, media_type="video/mp4", filename=path.name)


@app.get("/api/download/image")
async def download_image(watermark: bool = False):
    wizard = get_wizard()
    try:
        path = await wizard.complete_step().download_image(OUTPUT_DIR / "downloads", watermark=watermark)
    except WizardStepError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Image download failed: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to download image: {e}")
    return FileResponse(path, media_type="image/jpeg", filename=path.name)


@app.post("/api/reset")
async def reset():
    """Start over: clears everything except credentials."""
    wizard = get_wizard()
    wizard.reset()
    logger.info("Workflow reset")
    return _state_response(wizard)


if __name__ == "__main__":
    import uvicorn

    print("\n" + "=" * 60)
    print("Moving Memories API Server")
    print("=" * 60)
    print(f"Models: {GEMINI_IMAGE_MODEL}, {GEMINI_TEXT_MODEL}, {VEO_MODEL}")
    print(f"API Docs: http://localhost:8000/docs")
    print("=" * 60 + "\n")

    uvicorn.run("ui.api_server:app", host="127.0.0.1", port=8000, reload=True)
