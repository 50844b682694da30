"""
Run State - the shared record a run enriches step by step.

The engine owns the authoritative dict. Steps only ever see a read-only
snapshot and hand back the fields they changed. Merging is a shallow
per-key overwrite; a key missing from an update means "unchanged", so a
merge can never remove a field written earlier.
"""

import asyncio
import copy
import logging
import warnings
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from stepgraph.errors import MergeConflictWarning

logger = logging.getLogger(__name__)

_MISSING = object()


def merge_update(state: dict[str, Any], update: Mapping[str, Any]) -> list[str]:
    """
    Merge a partial update into ``state`` in place (last write wins).

    Args:
        state: Authoritative state dict
        update: Fields to add or overwrite

    Returns:
        Keys whose value changed
    """
    changed = []
    for key, value in update.items():
        if state.get(key, _MISSING) != value:
            changed.append(key)
        state[key] = value
    return changed


def snapshot(state: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only deep copy of ``state`` handed to a step."""
    return MappingProxyType(copy.deepcopy(dict(state)))


class RunState:
    """
    Authoritative state of one run.

    Writes go through ``merge_branches``, which serializes on an
    asyncio.Lock, so branches of a fan-out can finish in any order without
    losing each other's fields.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self._lock = asyncio.Lock()

    def view(self) -> Mapping[str, Any]:
        return snapshot(self._data)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __len__(self) -> int:
        return len(self._data)

    async def merge_branches(self, updates: Iterable[tuple[str, Mapping[str, Any]]]) -> None:
        """
        Merge the updates of one superstep in the given (frontier) order.

        When two branches write the same key with different values the later
        one wins and a MergeConflictWarning is emitted.
        """
        writers: dict[str, tuple[str, Any]] = {}
        async with self._lock:
            for source, update in updates:
                update = copy.deepcopy(dict(update))
                for key, value in update.items():
                    previous = writers.get(key)
                    if previous is not None and previous[1] != value:
                        message = (
                            f"Field '{key}' written by both '{previous[0]}' and '{source}'; "
                            f"keeping value from '{source}'"
                        )
                        logger.warning(f"⚠ Merge conflict: {message}")
                        warnings.warn(message, MergeConflictWarning, stacklevel=2)
                    writers[key] = (source, value)
                changed = merge_update(self._data, update)
                if changed:
                    logger.debug(f"Merged {changed} from '{source}'")
