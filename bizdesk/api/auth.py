"""Bearer token storage."""

import json
import os
from pathlib import Path

from filelock import FileLock
from loguru import logger


def get_token_path() -> Path:
    """Default location of the stored auth token."""
    return Path.home() / ".bizdesk" / "auth_token.json"


class TokenStore:
    """Persists the session token as a JSON string on disk."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path).expanduser() if path else get_token_path()
        self._lock = FileLock(str(self.path.with_suffix(".lock")), timeout=10)

    def get(self) -> str | None:
        """Stored token, or None if absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
            token = json.loads(raw) if raw.strip() else None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return None
        return token if isinstance(token, str) and token else None

    def set(self, token: str | None) -> None:
        """Store a token; None or an empty string clears it."""
        if not token:
            self.clear()
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            temp_path = self.path.with_suffix(".tmp")
            temp_path.write_text(json.dumps(token), encoding="utf-8")
            os.replace(temp_path, self.path)

    def clear(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self.path.unlink(missing_ok=True)
