"""
Durable key-value store and throttled workspace saving.

The store is one JSON document ``{"version": ..., "entries": {key: value}}``.
Opening it with a different version discards every entry (hard reset), so a
changed persisted shape never has to be migrated.
"""
from __future__ import annotations

import json
import os
import tempfile
import time
from logging import getLogger
from typing import Any, Callable, Dict, Optional

from .Errors import PersistenceError
from .Throttle import Scheduler, Throttle, loop_scheduler

logger = getLogger(__name__)

STATE_KEY = "workspace"
SAVE_WAIT = 1.0


class JsonFileStore:

    def __init__(self, path: Optional[str], version: str = "1") -> None:
        self.path = path
        self.version = version
        self._entries: Dict[str, Any] = {}
        if path is not None:
            self._open()

    def _open(self) -> None:
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Could not read state file {self.path}: {exc}") from exc

        stored_version = str(document.get("version"))
        if stored_version != self.version:
            logger.warning(
                f"State version {stored_version} does not match {self.version}; discarding saved state"
            )
            self._entries = {}
            self._write()
            return
        self._entries = dict(document.get("entries", {}))

    def _write(self) -> None:
        if self.path is None:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        document = {"version": self.version, "entries": self._entries}
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise PersistenceError(f"Could not write state file {self.path}: {exc}") from exc

    def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value
        self._write()

    def remove(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._write()

    def clear(self) -> None:
        self._entries = {}
        self._write()

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class WorkspacePersister:
    """Saves a workspace snapshot at most once per ``wait`` seconds."""

    def __init__(
        self,
        workspace,
        store: JsonFileStore,
        key: str = STATE_KEY,
        wait: float = SAVE_WAIT,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Scheduler = loop_scheduler,
    ) -> None:
        self.workspace = workspace
        self.store = store
        self.key = key
        self._save = Throttle(self._write_snapshot, wait, clock=clock, scheduler=scheduler)

    def attach(self) -> None:
        """Save whenever the graph, the persisted transform or selection/history change."""
        self.workspace.graph.subscribe(lambda changes: self.request_save())
        self.workspace.viewport.on_commit(lambda transform: self.request_save())
        self.workspace.on_change(lambda kind: self.request_save())

    def load(self) -> bool:
        data = self.store.get(self.key)
        if data is None:
            return False
        self.workspace.load_snapshot(data)
        logger.info(f"Restored {len(self.workspace.graph)} images from {self.store.path}")
        return True

    def request_save(self) -> None:
        self._save()

    def flush(self) -> None:
        self._save.flush()

    def _write_snapshot(self) -> None:
        self.store.set(self.key, self.workspace.snapshot())
        logger.debug(f"Saved workspace to {self.store.path}")
