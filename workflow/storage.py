"""
Local key-value storage for the fields that survive a restart.

One JSON file per namespace, shaped like {"state": {...}, "version": 0}.
Only credentials and the user's note are written here.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from config import STORAGE_DIR, STORAGE_NAMESPACE

logger = logging.getLogger(__name__)

PERSISTED_FIELDS = ("api_key", "replicate_token", "user_note")
STORAGE_VERSION = 0


class LocalStorage:
    """JSON-file storage under a fixed namespace."""

    def __init__(self, directory: Path = None, namespace: str = STORAGE_NAMESPACE):
        self.directory = Path(directory or STORAGE_DIR)
        self.namespace = namespace

    @property
    def path(self) -> Path:
        return self.directory / f"{self.namespace}.json"

    def load(self) -> dict:
        """Return the persisted fields, or {} if nothing usable is stored."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[Storage] Ignoring unreadable {self.path.name}: {e}")
            return {}

        state = data.get("state", {}) if isinstance(data, dict) else {}
        return {k: state[k] for k in PERSISTED_FIELDS if k in state}

    def save(self, fields: dict) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        state = {k: fields.get(k) for k in PERSISTED_FIELDS}
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump({"state": state, "version": STORAGE_VERSION}, f, indent=2)
        # Credentials live here: owner-only
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)

    def update(self, **fields) -> dict:
        """Merge fields into what is stored and save. Returns the merged state."""
        state = self.load()
        state.update({k: v for k, v in fields.items() if k in PERSISTED_FIELDS})
        self.save(state)
        return state

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class MemoryOnlyStorage(LocalStorage):
    """Storage that keeps nothing on disk (tests, ephemeral sessions)."""

    def __init__(self, initial: Optional[dict] = None):
        super().__init__(directory=Path("."), namespace=STORAGE_NAMESPACE)
        self._state = dict(initial or {})

    def load(self) -> dict:
        return {k: self._state[k] for k in PERSISTED_FIELDS if k in self._state}

    def save(self, fields: dict) -> None:
        self._state = {k: fields.get(k) for k in PERSISTED_FIELDS}

    def clear(self) -> None:
        self._state = {}
