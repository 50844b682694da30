"""Checkpoint persistence."""

from stepgraph.storage.checkpoint_store import (
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
)

__all__ = ["CheckpointStore", "InMemoryCheckpointStore", "FileCheckpointStore"]
