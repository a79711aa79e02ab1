"""Core functionality (connection, watcher, sync engine)"""
from .connection import ConnectionServer, PeerChannel, PortInUseError
from .watcher import LocalWatcher
from .sync_engine import SyncEngine, SyncMode, run

__all__ = [
    "ConnectionServer", "PeerChannel", "PortInUseError",
    "LocalWatcher",
    "SyncEngine", "SyncMode", "run",
]
