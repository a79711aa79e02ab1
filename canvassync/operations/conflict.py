"""
Conflict detection and automatic resolution
"""
import asyncio
from pathlib import Path
from typing import Optional

from ..models import (
    AutoResolution, AutoResolveResult, BaselineEntry, Conflict, DetectionResult, FileSnapshot,
    RemoteVersionInfo,
)
from ..utils.hashing import hash_content
from ..utils.logging import vlog
from ..utils.paths import file_key_for_lookup, pluralize, sanitize_relative_path
from .files import list_files


async def detect_conflicts(remote_files: list[FileSnapshot],
                           files_dir: Path,
                           *,
                           persisted_state: Optional[dict[str, BaselineEntry]] = None,
                           detect: bool = True,
                           prefer_remote: bool = False) -> DetectionResult:
    """
    Split a remote snapshot into files that can be written directly and files
    that need adjudication.

    Per remote file:
      - no local copy                    → writes
      - identical content on both sides  → unchanged
      - detect off / prefer_remote       → writes
      - no baseline                      → conflict (last_synced_at=None, local_clean=None)
      - baseline                         → conflict with local_clean computed from the hash

    Any divergence against a previously synced file is only provisionally a
    conflict: the pushed batch may be stale, so finality comes from
    auto_resolve_conflicts() once the peer confirms its current versions.

    Local files without a remote counterpart are remote deletions when they
    have a baseline (conflict with remote_content=None), otherwise they are
    new local files (local_only).

    Local files that cannot be read are reported by list_files() and treated
    as absent.
    """
    result = DetectionResult()
    baseline = {file_key_for_lookup(name): entry for name, entry in (persisted_state or {}).items()}

    vlog(f"[detect] detecting conflicts for {pluralize(len(remote_files), 'remote file')}")

    local_files = await asyncio.to_thread(list_files, files_dir)
    local_by_key = {file_key_for_lookup(f.name): f for f in local_files}
    seen: set[str] = set()

    for remote in remote_files:
        rel = sanitize_relative_path(remote.name)
        key = file_key_for_lookup(rel)
        seen.add(key)
        local = local_by_key.get(key)
        snapshot = FileSnapshot(rel, remote.content, remote.modified_at)

        if local is None:
            vlog(f"  [NEW-REMOTE] {rel}")
            result.writes.append(snapshot)
            continue

        if local.content == remote.content:
            vlog(f"  [SKIP-SAME] {rel}")
            result.unchanged.append(snapshot)
            continue

        if not detect or prefer_remote:
            result.writes.append(snapshot)
            continue

        entry = baseline.get(key)
        if entry is None:
            # Never synced: no way to tell which side is authoritative
            vlog(f"  [CONFLICT] {rel} (no baseline)")
            result.conflicts.append(Conflict(
                file_name=rel,
                local_content=local.content,
                remote_content=remote.content,
                local_modified_at=local.modified_at,
                remote_modified_at=remote.modified_at,
            ))
            continue

        local_clean = hash_content(local.content) == entry.content_hash
        vlog(f"  [CONFLICT] {rel} (local_clean={local_clean})")
        result.conflicts.append(Conflict(
            file_name=rel,
            local_content=local.content,
            remote_content=remote.content,
            local_modified_at=local.modified_at,
            remote_modified_at=remote.modified_at,
            last_synced_at=entry.timestamp,
            local_clean=local_clean,
        ))

    for local in local_files:
        key = file_key_for_lookup(local.name)
        if key in seen:
            continue
        entry = baseline.get(key)
        if entry is None:
            vlog(f"  [NEW-LOCAL] {local.name}")
            result.local_only.append(local)
            continue
        local_clean = hash_content(local.content) == entry.content_hash
        vlog(f"  [CONFLICT] {local.name} deleted remotely (local_clean={local_clean})")
        result.conflicts.append(Conflict(
            file_name=local.name,
            local_content=local.content,
            remote_content=None,
            local_modified_at=local.modified_at,
            last_synced_at=entry.timestamp,
            local_clean=local_clean,
        ))

    return result


def classify_conflict(conflict: Conflict,
                      versions: dict[str, RemoteVersionInfo]) -> AutoResolution:
    """
    Three-way decision against the common ancestor timestamp (last_synced_at).

    Anything that cannot be positively classified is left for the user, so a
    wrong or missing baseline degrades to asking, never to picking a side.
    """
    info = versions.get(conflict.file_name)
    if info is None or info.latest_remote_version_ms is None:
        return AutoResolution.ASK_USER

    # Any difference counts: the two clocks may disagree on direction
    remote_changed = info.latest_remote_version_ms != conflict.last_synced_at

    if conflict.local_clean is False and not remote_changed:
        return AutoResolution.KEEP_LOCAL
    if conflict.local_clean is True and remote_changed:
        return AutoResolution.TAKE_REMOTE
    return AutoResolution.ASK_USER


def auto_resolve_conflicts(conflicts: list[Conflict],
                           remote_versions: list[RemoteVersionInfo]) -> AutoResolveResult:
    """Partition conflicts into auto-local, auto-remote and remaining (input order kept)."""
    versions = {v.file_name: v for v in remote_versions}
    result = AutoResolveResult()

    for conflict in conflicts:
        outcome = classify_conflict(conflict, versions)
        vlog(f"  [AUTO-RESOLVE] {conflict.file_name} → {outcome.value}")
        if outcome is AutoResolution.KEEP_LOCAL:
            result.auto_resolved_local.append(conflict)
        elif outcome is AutoResolution.TAKE_REMOTE:
            result.auto_resolved_remote.append(conflict)
        else:
            result.remaining_conflicts.append(conflict)

    return result
