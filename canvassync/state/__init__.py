"""State management (baseline file, metadata cache, echo tracking)"""
from .state_manager import load_state, save_state, get_state_file
from .metadata_cache import FileMetadataCache, FileSyncMetadata
from .hash_tracker import HashTracker

__all__ = [
    "load_state", "save_state", "get_state_file",
    "FileMetadataCache", "FileSyncMetadata",
    "HashTracker",
]
