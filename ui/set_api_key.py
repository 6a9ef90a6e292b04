"""
Store credentials from the command line.

Usage:
    python -m ui.set_api_key --gemini AIza... [--replicate r8_...]
    python -m ui.set_api_key --clear
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import GEMINI_KEY_PREFIX, REPLICATE_TOKEN_PREFIX
from workflow.storage import LocalStorage

logger = logging.getLogger(__name__)


def check_credential_format(value: str, prefix: str, name: str) -> str:
    """Return the stripped credential or raise ValueError if it looks wrong."""
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{name} is empty")
    if not value.startswith(prefix):
        raise ValueError(f"{name} should start with '{prefix}'")
    return value


def mask(value: str) -> str:
    if not value:
        return "(not set)"
    return f"{value[:4]}...{value[-2:]}" if len(value) > 8 else "****"


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Save Moving Memories credentials locally")
    parser.add_argument("--gemini", help="Gemini API key (starts with AIza)")
    parser.add_argument("--replicate", help="Replicate API token (starts with r8_)")
    parser.add_argument("--clear", action="store_true", help="Remove all stored credentials")
    parser.add_argument("--storage-dir", type=Path, default=None, help="Override the storage directory")
    args = parser.parse_args(argv)

    storage = LocalStorage(directory=args.storage_dir)

    if args.clear:
        storage.update(api_key=None, replicate_token=None)
        print("Cleared stored credentials")
        return 0

    if not args.gemini and not args.replicate:
        parser.error("pass --gemini and/or --replicate (or --clear)")

    updates = {}
    try:
        if args.gemini:
            updates["api_key"] = check_credential_format(args.gemini, GEMINI_KEY_PREFIX, "Gemini API key")
        if args.replicate:
            updates["replicate_token"] = check_credential_format(
                args.replicate, REPLICATE_TOKEN_PREFIX, "Replicate token"
            )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    state = storage.update(**updates)
    print(f"Saved to {storage.path}")
    print(f"  Gemini API key:  {mask(state.get('api_key'))}")
    print(f"  Replicate token: {mask(state.get('replicate_token'))}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
