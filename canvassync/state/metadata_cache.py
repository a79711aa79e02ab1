"""
In-memory view of the baseline store
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..models import BaselineEntry
from ..utils.hashing import hash_content
from .state_manager import load_state, save_state


@dataclass
class FileSyncMetadata:
    local_hash: str
    last_synced_hash: str
    last_remote_timestamp: Optional[float] = None


class FileMetadataCache:
    """
    Tracks what each file looked like at its last sync.
    Mutations mark the cache dirty; save() writes the baseline once.
    """

    def __init__(self):
        self._metadata: dict[str, FileSyncMetadata] = {}
        self._persisted: dict[str, BaselineEntry] = {}
        self._project_dir: Optional[Path] = None
        self._dirty = False

    def initialize(self, project_dir: Path):
        if self._project_dir == project_dir:
            return
        self._project_dir = project_dir
        self._persisted = load_state(project_dir)
        self._metadata = {
            name: FileSyncMetadata(entry.content_hash, entry.content_hash, entry.timestamp)
            for name, entry in self._persisted.items()
        }
        self._dirty = False

    def get(self, file_name: str) -> Optional[FileSyncMetadata]:
        return self._metadata.get(file_name)

    def has(self, file_name: str) -> bool:
        return file_name in self._metadata

    def __len__(self) -> int:
        return len(self._metadata)

    def persisted_state(self) -> dict[str, BaselineEntry]:
        return self._persisted

    def record_remote_write(self, file_name: str, content: str, remote_modified_at: float):
        self.record_synced_snapshot(file_name, hash_content(content), remote_modified_at)

    def record_synced_snapshot(self, file_name: str, content_hash: str, remote_modified_at: float):
        self._metadata[file_name] = FileSyncMetadata(content_hash, content_hash, remote_modified_at)
        self._persisted[file_name] = BaselineEntry(content_hash, remote_modified_at)
        self._dirty = True

    def record_delete(self, file_name: str):
        self._metadata.pop(file_name, None)
        if self._persisted.pop(file_name, None) is not None:
            self._dirty = True

    async def save(self) -> bool:
        """Persist pending changes off the event loop. True if the state file was written."""
        if not self._dirty or self._project_dir is None:
            return False
        # Mutations made while the write runs mark the cache dirty again
        snapshot = dict(self._persisted)
        self._dirty = False
        if await asyncio.to_thread(save_state, self._project_dir, snapshot):
            return True
        self._dirty = True
        return False
