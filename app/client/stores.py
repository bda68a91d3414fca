"""
Client-side state: the admin session and the claim form draft.

Both stores are plain objects handed to whoever needs them. With a `path`
they persist to a JSON file between runs; without one they live in memory.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class _JsonStore:
    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._data: Optional[dict] = None

    def load(self) -> Optional[dict]:
        if self._data is None and self.path is not None and self.path.exists():
            try:
                self._data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Ignoring unreadable store {self.path}: {e}")
                self._data = None
        return self._data

    def _write(self, data: dict) -> None:
        self._data = data
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")

    def clear(self) -> None:
        self._data = None
        if self.path is not None and self.path.exists():
            self.path.unlink()


class SessionStore(_JsonStore):
    """Bearer token and user profile of the signed-in admin."""

    def save(self, token: str, user: Optional[dict] = None) -> None:
        self._write({"token": token, "user": user or {}})

    @property
    def token(self) -> Optional[str]:
        data = self.load()
        return data.get("token") if data else None

    @property
    def user(self) -> dict:
        data = self.load()
        return data.get("user", {}) if data else {}


class DraftStore(_JsonStore):
    """
    Multi-step claim form draft.

    Each step's fields are kept under the step name; `current_step` is the
    step the employee was on when the draft was last saved.
    """

    def save(self, steps: dict, current_step: int = 0) -> None:
        self._write({"steps": steps, "current_step": current_step})

    def update_step(self, step: str, fields: dict, current_step: Optional[int] = None) -> None:
        data = self.load() or {"steps": {}, "current_step": 0}
        steps = dict(data.get("steps", {}))
        steps[step] = {**steps.get(step, {}), **fields}
        self.save(steps, data.get("current_step", 0) if current_step is None else current_step)

    @property
    def current_step(self) -> int:
        data = self.load()
        return data.get("current_step", 0) if data else 0

    def merged(self) -> dict[str, Any]:
        """All step fields flattened into one submission payload."""
        data = self.load() or {}
        payload: dict[str, Any] = {}
        for fields in data.get("steps", {}).values():
            payload.update(fields)
        return payload
