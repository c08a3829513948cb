"""
Local JSON State Storage

The default backend: the whole AppState in one JSON file on disk.

CRITICAL: Writes go to a temporary file in the same directory which is then
renamed over the target, so an interrupted save never leaves a truncated
state file behind.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from prompt_finance.models.finance import AppState
from prompt_finance.services.storage.interface import (
    StateStorageInterface,
    StorageError,
)


class LocalJsonStateStorage(StateStorageInterface):
    """State persisted as a single JSON document."""

    def __init__(self, path: str):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load_state(self) -> Optional[AppState]:
        if not self._path.exists():
            return None
        try:
            return AppState.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            raise StorageError(f"Failed to read state file {self._path}: {e}")

    async def save_state(self, state: AppState) -> bool:
        payload = state.model_dump_json(indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self._path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            return True
        except OSError as e:
            raise StorageError(f"Failed to write state file {self._path}: {e}")
