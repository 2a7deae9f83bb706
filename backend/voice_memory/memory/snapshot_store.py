from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from voice_memory.core.security import is_safe_session_id
from voice_memory.memory.types import (
    MemorySnapshot,
    snapshot_from_dict,
    snapshot_to_storage_json,
)

logger = logging.getLogger(__name__)


class SnapshotStore:
    """One JSON file per session under ``storage_dir``.

    Reads and writes are best-effort: failures are logged and never raised.
    """

    def __init__(self, storage_dir: Union[str, Path]) -> None:
        self._storage_dir = Path(storage_dir)

    @property
    def storage_dir(self) -> Path:
        return self._storage_dir

    def path_for(self, session_id: str) -> Path:
        if not is_safe_session_id(session_id):
            raise ValueError(f"Session id is not usable as a file name: {session_id!r}")
        return self._storage_dir / f"{session_id}.json"

    def load_or_create(self, session_id: str) -> MemorySnapshot:
        try:
            path = self.path_for(session_id)
        except ValueError:
            logger.warning("Refusing to load memory for unsafe session id %r", session_id)
            return MemorySnapshot.empty()
        if not path.exists():
            return MemorySnapshot.empty()

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.error("Failed to load memory for session %s: %s", session_id, exc)
            return MemorySnapshot.empty()
        if not isinstance(payload, dict):
            logger.error("Failed to load memory for session %s: payload is not an object", session_id)
            return MemorySnapshot.empty()
        return snapshot_from_dict(payload)

    def save(self, session_id: str, snapshot: MemorySnapshot) -> bool:
        """Write atomically via a temp file in the same directory."""

        tmp_name = None
        try:
            path = self.path_for(session_id)
            self._storage_dir.mkdir(parents=True, exist_ok=True)
            content = snapshot_to_storage_json(snapshot)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{session_id}.", suffix=".tmp", dir=self._storage_dir
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_name, path)
            tmp_name = None
            return True
        except (OSError, ValueError, TypeError) as exc:
            logger.error("Failed to save memory for session %s: %s", session_id, exc)
            return False
        finally:
            if tmp_name is not None:
                _unlink_quietly(Path(tmp_name))

    def delete(self, session_id: str) -> None:
        """Remove the session file; missing files are a no-op."""

        try:
            path = self.path_for(session_id)
        except ValueError:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to delete memory for session %s: %s", session_id, exc)


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.debug("Could not remove temp file %s", path)
