"""
Checkpoint Store - persistence for suspension checkpoints.

A store supports exactly three operations keyed by run ID: put, get and
delete. Repeated puts for the same run overwrite (last write wins). Any
durable key-value store satisfies the contract; two implementations ship:

- InMemoryCheckpointStore: dict-backed, for tests and single-process use
- FileCheckpointStore: one JSON file per run, written atomically
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path

from stepgraph.schemas.checkpoint import SuspensionCheckpoint
from stepgraph.utils.io import atomic_write

logger = logging.getLogger(__name__)

_SAFE_RUN_ID = re.compile(r"^[A-Za-z0-9_.\-]+$")


class CheckpointStore(ABC):
    """
    Key-value store for suspension checkpoints.

    Stores that keep checkpoints as Python objects set ``serializes = False``.
    For the rest the runner refuses to suspend a run whose state would not
    come back unchanged from JSON.
    """

    serializes: bool = True

    @abstractmethod
    async def put(self, run_id: str, checkpoint: SuspensionCheckpoint) -> None:
        """Store ``checkpoint`` for ``run_id``, replacing any previous one."""

    @abstractmethod
    async def get(self, run_id: str) -> SuspensionCheckpoint | None:
        """Return the checkpoint for ``run_id``, or None."""

    @abstractmethod
    async def delete(self, run_id: str) -> bool:
        """Delete the checkpoint for ``run_id``. Returns True if one existed."""


class InMemoryCheckpointStore(CheckpointStore):
    """Dict-backed store. Holds deep copies, so state keeps its Python types."""

    serializes = False

    def __init__(self):
        self._data: dict[str, SuspensionCheckpoint] = {}

    async def put(self, run_id: str, checkpoint: SuspensionCheckpoint) -> None:
        self._data[run_id] = checkpoint.model_copy(deep=True)
        logger.debug(f"Saved checkpoint for run {run_id}")

    async def get(self, run_id: str) -> SuspensionCheckpoint | None:
        checkpoint = self._data.get(run_id)
        if checkpoint is None:
            return None
        return checkpoint.model_copy(deep=True)

    async def delete(self, run_id: str) -> bool:
        return self._data.pop(run_id, None) is not None

    def __len__(self) -> int:
        return len(self._data)

    def run_ids(self) -> list[str]:
        return list(self._data)


class FileCheckpointStore(CheckpointStore):
    """
    Stores each checkpoint as ``{base_path}/checkpoints/{run_id}.json``.

    Writes use temp file + rename for crash safety. Blocking file I/O runs
    in a worker thread.
    """

    def __init__(self, base_path: Path | str):
        """
        Initialize checkpoint store.

        Args:
            base_path: Storage directory (e.g., ~/.stepgraph/email_support)
        """
        self.base_path = Path(base_path)
        self.checkpoints_dir = self.base_path / "checkpoints"

    def _path_for(self, run_id: str) -> Path:
        if not _SAFE_RUN_ID.match(run_id):
            raise ValueError(f"Invalid run ID: {run_id!r}")
        return self.checkpoints_dir / f"{run_id}.json"

    async def put(self, run_id: str, checkpoint: SuspensionCheckpoint) -> None:
        """
        Atomically save a checkpoint.

        Raises:
            OSError: If the file write fails
        """
        path = self._path_for(run_id)

        def _write():
            with atomic_write(path) as f:
                f.write(checkpoint.model_dump_json(indent=2))

        await asyncio.to_thread(_write)
        logger.debug(f"Saved checkpoint {path}")

    async def get(self, run_id: str) -> SuspensionCheckpoint | None:
        path = self._path_for(run_id)

        def _read() -> SuspensionCheckpoint | None:
            if not path.exists():
                return None
            return SuspensionCheckpoint.model_validate_json(path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

    async def delete(self, run_id: str) -> bool:
        path = self._path_for(run_id)

        def _delete() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        deleted = await asyncio.to_thread(_delete)
        if deleted:
            logger.info(f"Deleted checkpoint for run {run_id}")
        return deleted

    async def list_run_ids(self) -> list[str]:
        """Run IDs with an outstanding checkpoint."""

        def _list() -> list[str]:
            if not self.checkpoints_dir.exists():
                return []
            return sorted(p.stem for p in self.checkpoints_dir.glob("*.json"))

        return await asyncio.to_thread(_list)

    async def prune(self, max_age_days: int = 7) -> int:
        """
        Delete checkpoints older than ``max_age_days``.

        Abandoned runs only leak their checkpoint; callers that need bounded
        storage call this periodically.

        Returns:
            Number of checkpoints deleted
        """
        cutoff = datetime.now() - timedelta(days=max_age_days)
        deleted_count = 0

        for run_id in await self.list_run_ids():
            checkpoint = await self.get(run_id)
            if checkpoint is None:
                continue
            try:
                created = datetime.fromisoformat(checkpoint.created_at)
            except ValueError as e:
                logger.warning(f"Failed to parse timestamp for {run_id}: {e}")
                continue
            if created < cutoff and await self.delete(run_id):
                deleted_count += 1

        if deleted_count > 0:
            logger.info(f"Pruned {deleted_count} checkpoints older than {max_age_days} days")

        return deleted_count
