"""
Local file operations: listing, reading, writing and deleting synced files.
Per-file failures are logged and never abort a batch.
"""
import os
from pathlib import Path
from typing import NamedTuple, Optional

from ..models import FileSnapshot
from ..state.hash_tracker import HashTracker
from ..utils.logging import vlog, warn
from ..utils.paths import (
    is_supported_extension, normalize_path, pluralize, sanitize_file_path, sanitize_relative_path,
)


class RemoteReference(NamedTuple):
    relative_path: str
    absolute_path: Path


def resolve_remote_reference(files_dir: Path, raw_name: str) -> RemoteReference:
    relative = sanitize_relative_path(raw_name)
    return RemoteReference(relative, Path(files_dir) / relative)


def list_files(files_dir: Path) -> list[FileSnapshot]:
    """All supported files under files_dir, with content and mtime in ms."""
    files: list[FileSnapshot] = []
    root = Path(files_dir)
    if not root.is_dir():
        return files

    for dirpath, _dirnames, filenames in os.walk(root):
        for fname in sorted(filenames):
            if not is_supported_extension(fname):
                continue
            full = Path(dirpath) / fname
            rel = normalize_path(full.relative_to(root).as_posix())
            # Existing names are kept as they are on disk
            name = sanitize_file_path(rel, capitalize=False).path
            try:
                content = full.read_text("utf-8")
                modified_at = full.stat().st_mtime * 1000
            except (OSError, UnicodeDecodeError) as exc:
                warn(f"Failed to read {full}: {exc}")
                continue
            files.append(FileSnapshot(name=name, content=content, modified_at=modified_at))
    return files


def read_file_safe(file_name: str, files_dir: Path) -> Optional[str]:
    ref = resolve_remote_reference(files_dir, file_name)
    try:
        return ref.absolute_path.read_text("utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def write_remote_files(files: list[FileSnapshot], files_dir: Path, tracker: HashTracker) -> list[FileSnapshot]:
    """
    Write remote content to disk. The hash is remembered before the write so
    the watcher event it triggers is recognised as an echo.
    Returns the files that were written, under their local names.
    """
    vlog(f"[write] writing {pluralize(len(files), 'remote file')}")
    written: list[FileSnapshot] = []
    for f in files:
        try:
            ref = resolve_remote_reference(files_dir, f.name)
            ref.absolute_path.parent.mkdir(parents=True, exist_ok=True)
            tracker.remember(ref.relative_path, f.content)
            ref.absolute_path.write_text(f.content, "utf-8")
        except OSError as exc:
            warn(f"Failed to write file {f.name}: {exc}")
            continue
        vlog(f"  [WRITE] {ref.relative_path}")
        written.append(FileSnapshot(ref.relative_path, f.content, f.modified_at))
    return written


def delete_local_file(file_name: str, files_dir: Path, tracker: HashTracker) -> bool:
    """Remove a file from disk. A file that is already gone counts as deleted."""
    ref = resolve_remote_reference(files_dir, file_name)
    tracker.mark_delete(ref.relative_path)
    try:
        ref.absolute_path.unlink()
    except FileNotFoundError:
        tracker.forget(ref.relative_path)
        vlog(f"  [DEL-SKIP] {ref.relative_path} already deleted")
        return True
    except OSError as exc:
        tracker.clear_delete(ref.relative_path)
        warn(f"Failed to delete file {file_name}: {exc}")
        return False
    tracker.forget(ref.relative_path)
    vlog(f"  [DEL] {ref.relative_path}")
    return True


def filter_echoed_files(files: list[FileSnapshot], tracker: HashTracker) -> list[FileSnapshot]:
    """Drop files whose content matches what we last wrote or sent."""
    return [f for f in files if not tracker.should_skip(sanitize_relative_path(f.name), f.content)]
