"""
Configuration for Moving Memories.

Model Selection:
- Enhancement: gemini-2.5-flash-image-preview (returns inline image parts)
- Motion prompts: gemini-2.5-flash
- Video: veo-3.0-generate-preview (long-running operation + polling)

API Access:
- Primary: Google AI Studio key (GOOGLE_API_KEY or GEMINI_API_KEY)
- Alternate: Replicate token (REPLICATE_API_TOKEN), optional

Keys in the environment only seed the local store. Keys set through the
wizard or `python -m ui.set_api_key` are persisted in STORAGE_DIR.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# =============================================================================
# Model Configuration
# =============================================================================

GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image-preview")
GEMINI_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-2.5-flash")
VEO_MODEL = os.getenv("VEO_MODEL", "veo-3.0-generate-preview")

# Replicate models (owner/name, used with the /models/{model}/predictions endpoint)
REPLICATE_API_BASE = os.getenv("REPLICATE_API_BASE", "https://api.replicate.com/v1")
REPLICATE_IMAGE_MODEL = os.getenv("REPLICATE_IMAGE_MODEL", "google/nano-banana")
REPLICATE_VIDEO_MODEL = os.getenv("REPLICATE_VIDEO_MODEL", "bytedance/seedance-1-pro")

# =============================================================================
# API Configuration
# =============================================================================

GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
REPLICATE_API_TOKEN = os.getenv("REPLICATE_API_TOKEN")

GEMINI_KEY_PREFIX = "AIza"
REPLICATE_TOKEN_PREFIX = "r8_"

HTTP_TIMEOUT_SECONDS = 120

# =============================================================================
# Paths
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.resolve()  # Always absolute
_output_env = os.getenv("OUTPUT_DIR")
if _output_env:
    OUTPUT_DIR = (PROJECT_ROOT / _output_env).resolve()
else:
    OUTPUT_DIR = PROJECT_ROOT / "outputs"

# Session media handles (processed uploads, downloaded videos)
MEDIA_DIR = OUTPUT_DIR / "media"

# Local key-value storage for credentials and the user's note
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", str(Path.home() / ".moving_memories")))
STORAGE_NAMESPACE = "moving-memories-store"

for dir_path in [OUTPUT_DIR, MEDIA_DIR]:
    dir_path.mkdir(parents=True, exist_ok=True)

# =============================================================================
# Upload Settings
# =============================================================================

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB

MAX_PROCESSED_BYTES = 4 * 1024 * 1024  # 4MB
MAX_IMAGE_EDGE = 1024
PROCESSED_IMAGE_FORMAT = "JPEG"
PROCESSED_IMAGE_QUALITY = 90

USER_NOTE_MAX_LENGTH = 200
MOTION_PROMPT_MAX_LENGTH = 150

# =============================================================================
# Video Settings
# =============================================================================

# Veo polling: 30 polls x 10s = 5 minutes max
VEO_POLL_INTERVAL_SECONDS = 10
VEO_MAX_POLL_ATTEMPTS = 30

# Replicate (alternate) clip settings
REPLICATE_VIDEO_DURATION_SECONDS = 5
REPLICATE_VIDEO_RESOLUTION = "480p"
REPLICATE_VIDEO_ASPECT_RATIO = "16:9"
REPLICATE_VIDEO_FPS = 24

# With a Replicate token stored, skip Veo entirely (set false to try Veo first)
PREFER_ALTERNATE_VIDEO = os.getenv("PREFER_ALTERNATE_VIDEO", "true").lower() == "true"

# =============================================================================
# Step Timing (cosmetic)
# =============================================================================

ENHANCE_PROGRESS_INTERVAL_SECONDS = 0.4
ENHANCE_PROGRESS_STEP = 10
SIMULATED_PROGRESS_CAP = 90

GENERATE_PROGRESS_INTERVAL_SECONDS = 0.1
GENERATE_PROGRESS_START = 10
GENERATE_PROGRESS_DURATION_SECONDS = 50

ENHANCE_AUTO_ADVANCE_SECONDS = 3.5
NOTE_EDIT_AUTO_ADVANCE_SECONDS = 2.0
GENERATE_AUTO_ADVANCE_SECONDS = 1.2
NOTE_PROCESSING_DELAY_SECONDS = 0.5

# =============================================================================
# Logging
# =============================================================================

import logging

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# =============================================================================
# Print Configuration (for debugging)
# =============================================================================


def print_config():
    """Print current configuration for debugging."""
    print(f"""
Moving Memories Configuration
=============================
Image Model: {GEMINI_IMAGE_MODEL}
Text Model: {GEMINI_TEXT_MODEL}
Video Model: {VEO_MODEL}
Alternate Models: {REPLICATE_IMAGE_MODEL}, {REPLICATE_VIDEO_MODEL}
Prefer Alternate Video: {PREFER_ALTERNATE_VIDEO}
Output Dir: {OUTPUT_DIR}
Storage Dir: {STORAGE_DIR}
Log Level: {LOG_LEVEL}
""")


if __name__ == "__main__":
    print_config()
