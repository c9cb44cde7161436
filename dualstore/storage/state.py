"""
Ingestion State Store

Persists IngestionState as a single JSON document per project.

Writes are serialized with a file lock and use rewrite-then-swap: the new
document is written to a temp file and atomically renamed over state.json,
so a crash leaves either the previous or the new checkpoint, never a torn
file.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout
from pydantic import ValidationError

from dualstore.config import DualStoreConfig
from dualstore.errors import IngestionLockedError, StateCorruptionError
from dualstore.types import IngestionState

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"


class StateStore:
    """
    Durable, single-writer store for IngestionState.

    Usage:
        store = StateStore(project_path, config)
        with store.exclusive_run():
            state = await store.load()
            ...  # mutate state
            await store.save(state)

    A state file that fails to parse raises StateCorruptionError. The store
    never discards or rewrites an unreadable file on its own.
    """

    def __init__(self, project_path: Path | str, config: DualStoreConfig | None = None):
        self.project_path = Path(project_path)
        self.config = config or DualStoreConfig()
        self._state_lock = FileLock(
            self.project_path / ".state.lock", timeout=self.config.storage_lock_timeout
        )
        self._run_lock = FileLock(
            self.project_path / ".ingest.lock", timeout=self.config.storage_lock_timeout
        )

    @property
    def state_path(self) -> Path:
        return self.project_path / STATE_FILENAME

    @contextmanager
    def exclusive_run(self) -> Iterator[None]:
        """
        Hold the project-level ingestion lock.

        Raises:
            IngestionLockedError: If another run holds the lock past the timeout
        """
        self.project_path.mkdir(parents=True, exist_ok=True)
        try:
            self._run_lock.acquire()
        except Timeout as e:
            raise IngestionLockedError(
                f"Another ingestion run holds {self._run_lock.lock_file}"
            ) from e
        try:
            yield
        finally:
            self._run_lock.release()

    async def load(self) -> IngestionState:
        """
        Load the persisted state, or a fresh state if none exists yet.

        Raises:
            StateCorruptionError: If state.json exists but cannot be parsed
        """
        def _load() -> IngestionState:
            path = self.state_path
            if not path.exists():
                return IngestionState()
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                return IngestionState.model_validate(data)
            except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
                raise StateCorruptionError(
                    f"Ingestion state at {path} is unreadable; refusing to continue "
                    f"without operator intervention: {e}"
                ) from e

        state = await asyncio.to_thread(_load)
        logger.debug(
            f"Loaded state: {len(state.tables)} tables, {len(state.chunks)} chunks, "
            f"{len(state.pending_relationships)} pending relationships"
        )
        return state

    async def save(self, state: IngestionState) -> None:
        """Persist state atomically under the state lock."""
        payload = state.model_dump_json(indent=2)

        def _save() -> None:
            with self._state_lock:
                self.project_path.mkdir(parents=True, exist_ok=True)
                temp_path = self.state_path.with_name(f".{STATE_FILENAME}.tmp")
                temp_path.write_text(payload, encoding="utf-8")
                temp_path.replace(self.state_path)

        await asyncio.to_thread(_save)
