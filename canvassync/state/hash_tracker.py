"""
Echo prevention: remembers what we wrote or deleted ourselves so the watcher
does not send it straight back to the peer.
"""
import time
from typing import Callable, Optional

from .. import config as _cfg
from ..utils.hashing import hash_content


class HashTracker:
    def __init__(self, delete_window: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._hashes: dict[str, str] = {}
        self._pending_deletes: dict[str, float] = {}
        self._delete_window = delete_window
        self._clock = clock

    def remember(self, file_path: str, content: str):
        self._hashes[file_path] = hash_content(content)

    def should_skip(self, file_path: str, content: str) -> bool:
        return self._hashes.get(file_path) == hash_content(content)

    def forget(self, file_path: str):
        self._hashes.pop(file_path, None)

    def clear(self):
        self._hashes.clear()
        self._pending_deletes.clear()

    def mark_delete(self, file_path: str):
        window = _cfg.DELETE_ECHO_WINDOW if self._delete_window is None else self._delete_window
        self._pending_deletes[file_path] = self._clock() + window

    def should_skip_delete(self, file_path: str) -> bool:
        expires = self._pending_deletes.get(file_path)
        if expires is None:
            return False
        if self._clock() >= expires:
            del self._pending_deletes[file_path]
            return False
        return True

    def clear_delete(self, file_path: str):
        self._pending_deletes.pop(file_path, None)
