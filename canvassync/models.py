"""
Data passed between the detector, the auto-resolver, the prompt coordinator
and the peer. Field names are snake_case here and camelCase on the wire.
Timestamps are milliseconds since the epoch.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Resolution(str, Enum):
    """Answer to a conflict prompt."""
    LOCAL = "local"
    REMOTE = "remote"


class AutoResolution(Enum):
    """Outcome of classifying a single conflict without asking the user."""
    KEEP_LOCAL = "keep-local"
    TAKE_REMOTE = "take-remote"
    ASK_USER = "ask-user"


@dataclass
class FileSnapshot:
    name: str
    content: str
    modified_at: Optional[float] = None

    @classmethod
    def from_message(cls, data: dict) -> "FileSnapshot":
        return cls(
            name=str(data["name"]),
            content=str(data.get("content") or ""),
            modified_at=data.get("modifiedAt"),
        )

    def to_message(self) -> dict:
        msg = {"name": self.name, "content": self.content}
        if self.modified_at is not None:
            msg["modifiedAt"] = self.modified_at
        return msg


@dataclass
class BaselineEntry:
    """Fingerprint and timestamp recorded at the last successful sync of a file."""
    content_hash: str
    timestamp: float

    @classmethod
    def from_dict(cls, data: dict) -> "BaselineEntry":
        return cls(content_hash=str(data["contentHash"]), timestamp=data["timestamp"])

    def to_dict(self) -> dict:
        return {"contentHash": self.content_hash, "timestamp": self.timestamp}


@dataclass
class Conflict:
    """
    A file whose two sides disagree.

    None content means the file was deleted on that side. local_clean is True
    when the local file still matches the baseline, False when it was edited,
    None when there is no baseline to compare against.
    """
    file_name: str
    local_content: Optional[str]
    remote_content: Optional[str]
    local_modified_at: Optional[float] = None
    remote_modified_at: Optional[float] = None
    last_synced_at: Optional[float] = None
    local_clean: Optional[bool] = None

    def summary(self) -> dict:
        return {
            "fileName": self.file_name,
            "localContent": self.local_content,
            "remoteContent": self.remote_content,
        }


@dataclass
class RemoteVersionInfo:
    file_name: str
    latest_remote_version_ms: Optional[float] = None

    @classmethod
    def from_message(cls, data: dict) -> "RemoteVersionInfo":
        return cls(
            file_name=str(data["fileName"]),
            latest_remote_version_ms=data.get("latestRemoteVersionMs"),
        )


@dataclass
class DetectionResult:
    writes: list[FileSnapshot] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    local_only: list[FileSnapshot] = field(default_factory=list)
    unchanged: list[FileSnapshot] = field(default_factory=list)


@dataclass
class AutoResolveResult:
    auto_resolved_local: list[Conflict] = field(default_factory=list)
    auto_resolved_remote: list[Conflict] = field(default_factory=list)
    remaining_conflicts: list[Conflict] = field(default_factory=list)


@dataclass
class WatcherEvent:
    kind: str  # "add" | "change" | "delete"
    relative_path: str
    content: Optional[str] = None
