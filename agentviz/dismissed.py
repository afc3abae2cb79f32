"""Persistent set of session IDs the user has hidden from the board."""
from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

from agentviz import config

logger = logging.getLogger("agentviz")

FILE_MODE = 0o600


class DismissedStore:
    """Dismissed session IDs backed by a JSON array on disk.

    A missing or corrupt file is an empty set. Every ``add`` rewrites the
    whole file so the on-disk state matches memory.
    """

    def __init__(self, storage_path: Path | None = None):
        self.storage_path = storage_path if storage_path is not None else config.DISMISSED_PATH
        self._lock = threading.Lock()
        self._ids: set[str] = set()
        self._load()

    def _load(self) -> None:
        if not self.storage_path.exists():
            return
        try:
            content = self.storage_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to read dismissed sessions file %s: %s", self.storage_path, e)
            return
        if not content.strip():
            return
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring corrupt dismissed sessions file %s: %s", self.storage_path, e)
            return
        if not isinstance(data, list):
            logger.warning("Ignoring dismissed sessions file %s: expected a JSON array", self.storage_path)
            return
        self._ids = {item for item in data if isinstance(item, str) and item}

    def _save(self) -> None:
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        self.storage_path.write_text(json.dumps(sorted(self._ids), indent=2), encoding="utf-8")
        os.chmod(self.storage_path, FILE_MODE)

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._ids)

    def add(self, session_id: str) -> bool:
        """Dismiss a session; returns False when the ID is empty or already dismissed."""
        session_id = (session_id or "").strip()
        if not session_id:
            return False
        with self._lock:
            if session_id in self._ids:
                return False
            self._ids.add(session_id)
            try:
                self._save()
            except OSError:
                self._ids.discard(session_id)
                raise
        logger.info("Dismissed session %s", session_id)
        return True
