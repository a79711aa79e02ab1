"""Operations (local files, conflict detection, peer prompts)"""
from .files import list_files, read_file_safe, write_remote_files, delete_local_file, filter_echoed_files
from .conflict import detect_conflicts, auto_resolve_conflicts, classify_conflict
from .prompts import (
    PromptCoordinator, PromptCancelledError, PeerDisconnectedError,
    PromptSupersededError, ChannelUnavailableError,
)

__all__ = [
    "list_files", "read_file_safe", "write_remote_files", "delete_local_file", "filter_echoed_files",
    "detect_conflicts", "auto_resolve_conflicts", "classify_conflict",
    "PromptCoordinator", "PromptCancelledError", "PeerDisconnectedError",
    "PromptSupersededError", "ChannelUnavailableError",
]
