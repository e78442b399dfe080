"""
Optional file-backed persistence for key rotation state.

By default KeyRotationManager keeps keys in memory only, so a restart forgets
both generations and the device must register new keys. Passing a KeyStore
lets the current and previous generations (and the rotation time) survive a
restart, so notifications in flight across the restart still decrypt.

File format (JSON, mode 0600):
    {"current": {"encryption_key": ..., "authentication_key": ...},
     "previous": {...} | null,
     "rotated_at_ms": 1700000000000}

All writes are atomic (temp file + os.replace) for crash safety.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from chatpush.errors import InvalidKeyEncodingError
from chatpush.rotation import KeyRotationState

logger = logging.getLogger(__name__)


class KeyStoreError(Exception):
    """Error in key store operations."""


class KeyStore:
    """Persist a KeyRotationState to a single JSON file.

    Usage:
        store = KeyStore(Path.home() / ".chatpush" / "keys.json")
        manager = KeyRotationManager(store=store)
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> KeyRotationState | None:
        """Read the saved state. Returns None if missing, corrupt or holding invalid keys."""
        if not self.path.is_file():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise TypeError("key file must contain a JSON object")
            state = KeyRotationState.from_dict(data)
            state.validate()
            return state
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError,
                InvalidKeyEncodingError) as e:
            logger.warning("Ignoring unreadable key file %s: %s", self.path, e)
            return None

    def save(self, state: KeyRotationState) -> None:
        """Atomically write state (temp + rename), readable by owner only."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(state.to_dict(), indent=2, sort_keys=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            os.write(fd, data.encode("utf-8"))
            os.close(fd)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, str(self.path))
        except OSError as e:
            try:
                os.close(fd)
            except OSError:
                pass
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise KeyStoreError(f"Failed to write key file {self.path}: {e}") from e

    def clear(self) -> None:
        """Delete the key file if present."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
