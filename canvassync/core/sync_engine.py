"""
Main sync engine - session lifecycle and message handling
"""
import asyncio
import os
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..config import Settings
from ..models import Conflict, FileSnapshot, RemoteVersionInfo, Resolution, WatcherEvent
from ..operations.conflict import auto_resolve_conflicts, detect_conflicts
from ..operations.files import (
    delete_local_file, filter_echoed_files, list_files, read_file_safe, write_remote_files,
)
from ..operations.prompts import (
    ChannelUnavailableError, PromptCoordinator, conflict_action_id, delete_action_id,
)
from ..state.hash_tracker import HashTracker
from ..state.metadata_cache import FileMetadataCache
from ..utils.hashing import hash_content, port_from_hash, projects_match, short_project_hash
from ..utils.logging import error, log, vlog, warn
from ..utils.paths import pluralize, sanitize_relative_path
from ..utils.project import find_or_create_project_dir
from .connection import ConnectionServer, PeerChannel
from .watcher import LocalWatcher


class SyncMode(Enum):
    DISCONNECTED = "disconnected"
    HANDSHAKING = "handshaking"
    SNAPSHOT_PROCESSING = "snapshot_processing"
    CONFLICT_RESOLUTION = "conflict_resolution"
    WATCHING = "watching"


# Modes in which a remote file-change is dropped: the snapshot reconciles it
_SNAPSHOT_MODES = (SyncMode.HANDSHAKING, SyncMode.SNAPSHOT_PROCESSING, SyncMode.CONFLICT_RESOLUTION)


def _now_ms() -> float:
    return time.time() * 1000


class SyncEngine:
    """
    Drives one project's sync lifecycle:

      DISCONNECTED → HANDSHAKING → SNAPSHOT_PROCESSING
                   → (CONFLICT_RESOLUTION →) WATCHING → DISCONNECTED

    Handlers run on the connection's read loop, so anything that waits for the
    user (conflict and delete prompts) runs as a background task; the loop
    has to stay free to deliver the answers.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.mode = SyncMode.DISCONNECTED
        self.channel: Optional[PeerChannel] = None
        self.tracker = HashTracker()
        self.metadata = FileMetadataCache()
        self.prompts = PromptCoordinator()
        self.pending_conflicts: list[Conflict] = []
        self._snapshot_size = 0
        self._tasks: set[asyncio.Task] = set()
        # Called with files_dir once the project directory is known
        self.on_ready: Optional[Callable[[Path], None]] = None

        self._handlers = {
            "request-files": self._on_request_files,
            "file-list": self._on_file_list,
            "conflict-version-response": self._on_conflict_version_response,
            "conflicts-resolved": self._on_conflicts_resolved,
            "conflict-resolution": self._on_conflict_resolution,
            "file-change": self._on_file_change,
            "file-delete": self._on_file_delete,
            "delete-confirmed": self._on_delete_confirmed,
            "delete-cancelled": self._on_delete_cancelled,
            "file-synced": self._on_file_synced,
            "error": self._on_error,
        }

    @property
    def files_dir(self) -> Optional[Path]:
        return self.settings.files_dir

    # ══════════════════════════════════════════════════════════════════════════
    #  CONNECTION LIFECYCLE
    # ══════════════════════════════════════════════════════════════════════════

    async def on_handshake(self, channel: PeerChannel, project_id: Optional[str],
                           project_name: Optional[str]) -> bool:
        # A new handshake always starts a new session
        if self.channel is not None:
            vlog(f"[sync] handshake while {self.mode.value}, replacing previous session")
            await self._end_session()

        if not project_id or not projects_match(self.settings.project_hash, project_id):
            expected = short_project_hash(self.settings.project_hash)
            warn(f"Project ID mismatch: expected {expected}, got {project_id}")
            await channel.close()
            return False

        if self.settings.project_dir is None:
            name = self.settings.project_name or project_name
            try:
                project_dir, created = await asyncio.to_thread(
                    find_or_create_project_dir, self.settings.project_hash, name,
                    self.settings.explicit_dir)
            except (ValueError, OSError) as exc:
                error(f"Cannot set up project directory: {exc}")
                await channel.close()
                return False
            self.settings.project_dir = project_dir
            self.settings.project_dir_created = created
            vlog(f"[sync] files directory: {self.files_dir}")

        self.metadata.initialize(self.settings.project_dir)
        vlog(f"[sync] loaded baseline for {pluralize(len(self.metadata), 'file')}")

        self.prompts = PromptCoordinator()
        self.channel = channel
        self.mode = SyncMode.HANDSHAKING
        log(f"Connected to {project_name or project_id}")

        if self.on_ready is not None:
            self.on_ready(self.files_dir)

        await self._send({"type": "request-files"})
        return True

    async def on_disconnect(self, channel: PeerChannel):
        if channel is not self.channel:
            vlog(f"[sync] ignoring disconnect of inactive {channel!r}")
            return
        await self._end_session()
        log("Disconnected, waiting to reconnect …")

    async def _end_session(self):
        self.prompts.cleanup()
        self.pending_conflicts = []
        self.channel = None
        self.mode = SyncMode.DISCONNECTED
        await self.metadata.save()

    async def shutdown(self):
        await self._end_session()
        await self.wait_idle()

    # ══════════════════════════════════════════════════════════════════════════
    #  BACKGROUND TASKS
    # ══════════════════════════════════════════════════════════════════════════

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            error(f"Background task failed: {exc}")

    async def wait_idle(self):
        """Wait until every pending decision task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ══════════════════════════════════════════════════════════════════════════
    #  MESSAGE DISPATCH
    # ══════════════════════════════════════════════════════════════════════════

    async def handle_message(self, message: dict):
        msg_type = message.get("type")
        if self.settings.project_dir is None:
            warn(f"Received {msg_type} before handshake completed - ignoring")
            return
        handler = self._handlers.get(msg_type)
        if handler is None:
            warn(f"Unhandled message type: {msg_type}")
            return
        vlog(f"[sync] {msg_type} (mode: {self.mode.value})")
        await handler(message)

    async def _send(self, message: dict) -> bool:
        if self.channel is None:
            warn(f"No connection available to send: {message.get('type')}")
            return False
        sent = await self.channel.send(message)
        if not sent:
            warn(f"Failed to send message: {message.get('type')}")
        return sent

    # ── Snapshot ─────────────────────────────────────────────────────────────

    async def _on_request_files(self, message: dict):
        if self.mode is SyncMode.DISCONNECTED:
            warn("Received request-files while disconnected, ignoring")
            return
        files = await asyncio.to_thread(list_files, self.files_dir)
        await self._send({"type": "file-list", "files": [f.to_message() for f in files]})

    async def _on_file_list(self, message: dict):
        if self.mode is not SyncMode.HANDSHAKING:
            warn(f"Received file-list in mode {self.mode.value}, ignoring")
            return

        remote_files = [FileSnapshot.from_message(f) for f in message.get("files") or []]
        vlog(f"[sync] received file list: {pluralize(len(remote_files), 'file')}")
        self.mode = SyncMode.SNAPSHOT_PROCESSING
        self._snapshot_size = len(remote_files)

        result = await detect_conflicts(remote_files, self.files_dir,
                                        persisted_state=self.metadata.persisted_state())

        # Baseline for identical files, so later local events are not re-uploaded
        for f in result.unchanged:
            self.metadata.record_remote_write(f.name, f.content, f.modified_at or _now_ms())

        if result.writes:
            vlog(f"[sync] applying {pluralize(len(result.writes), 'safe write')}")
            await self._write_files(result.writes, silent=True)

        for f in result.local_only:
            await self._send({"type": "file-change", "fileName": f.name, "content": f.content})
            log(f"  [PUSH] {f.name}")

        if result.conflicts:
            self.pending_conflicts = result.conflicts
            self.mode = SyncMode.CONFLICT_RESOLUTION
            vlog(f"[sync] {pluralize(len(result.conflicts), 'conflict')} require version check")
            await self._request_conflict_versions(result.conflicts)
            return

        await self.metadata.save()
        await self._complete_sync(
            total=self._snapshot_size + len(result.local_only),
            updated=len(result.writes) + len(result.local_only),
            unchanged=len(result.unchanged),
        )

    async def _request_conflict_versions(self, conflicts: list[Conflict]):
        persisted = self.metadata.persisted_state()
        requests = []
        for c in conflicts:
            entry = {"fileName": c.file_name}
            last_synced = c.last_synced_at
            if last_synced is None and c.file_name in persisted:
                last_synced = persisted[c.file_name].timestamp
            if last_synced is not None:
                entry["lastSyncedAt"] = last_synced
            requests.append(entry)
        vlog(f"[sync] requesting remote versions for {pluralize(len(requests), 'file')}")
        await self._send({"type": "conflict-version-request", "conflicts": requests})

    async def _complete_sync(self, total: int, updated: int, unchanged: int):
        self.mode = SyncMode.WATCHING
        await self._send({"type": "sync-complete"})

        where = self._relative_project_dir()
        if self.settings.project_dir_created and total == 0:
            log(f"[sync] Created {where} folder")
        elif self.settings.project_dir_created:
            log(f"[sync] Synced into {where} ({updated} files added)")
        else:
            log(f"[sync] Synced into {where} ({updated} files updated, {unchanged} unchanged)")
        log("Watching for changes …")

    def _relative_project_dir(self) -> str:
        try:
            rel = os.path.relpath(self.settings.project_dir, Path.cwd())
        except ValueError:
            return str(self.settings.project_dir)
        return "." if rel == "." else f"./{rel}"

    # ── Conflicts ────────────────────────────────────────────────────────────

    async def _on_conflict_version_response(self, message: dict):
        if self.mode is not SyncMode.CONFLICT_RESOLUTION:
            warn(f"Received conflict-version-response in mode {self.mode.value}, ignoring")
            return

        versions = [RemoteVersionInfo.from_message(v) for v in message.get("versions") or []]
        result = auto_resolve_conflicts(self.pending_conflicts, versions)

        if result.auto_resolved_local:
            vlog(f"[sync] auto-resolved {pluralize(len(result.auto_resolved_local), 'local change')}")
            await self._keep_local(result.auto_resolved_local)
        if result.auto_resolved_remote:
            vlog(f"[sync] auto-resolved {pluralize(len(result.auto_resolved_remote), 'remote change')}")
            await self._take_remote(result.auto_resolved_remote)

        if result.remaining_conflicts:
            self.pending_conflicts = result.remaining_conflicts
            warn(f"{pluralize(len(result.remaining_conflicts), 'conflict')} require resolution")
            self._spawn(self._ask_conflicts(self.channel, result.remaining_conflicts))
            return

        resolved = len(result.auto_resolved_local) + len(result.auto_resolved_remote)
        self.pending_conflicts = []
        await self.metadata.save()
        await self._complete_sync(total=resolved, updated=resolved, unchanged=0)

    async def _ask_conflicts(self, channel: Optional[PeerChannel], conflicts: list[Conflict]):
        try:
            decisions = await self.prompts.request_conflict_decisions(channel, conflicts)
        except ChannelUnavailableError as exc:
            warn(str(exc))
            return

        # The session ended while we were waiting
        if self.channel is not channel or self.mode is not SyncMode.CONFLICT_RESOLUTION:
            vlog("[sync] conflict decisions arrived after the session ended, dropping")
            return

        keep_local = [c for c in conflicts if decisions.get(c.file_name) is Resolution.LOCAL]
        take_remote = [c for c in conflicts if decisions.get(c.file_name) is Resolution.REMOTE]
        if keep_local:
            log(f"[conflict] keeping local version of {pluralize(len(keep_local), 'file')}")
            await self._keep_local(keep_local)
        if take_remote:
            log(f"[conflict] keeping remote version of {pluralize(len(take_remote), 'file')}")
            await self._take_remote(take_remote)

        unresolved = len(conflicts) - len(keep_local) - len(take_remote)
        if unresolved:
            warn(f"{pluralize(unresolved, 'conflict')} left unresolved until the next sync")

        resolved = len(keep_local) + len(take_remote)
        self.pending_conflicts = []
        await self.metadata.save()
        await self._complete_sync(total=len(conflicts), updated=resolved, unchanged=0)

    async def _keep_local(self, conflicts: list[Conflict]):
        for c in conflicts:
            if c.local_content is None:
                self._spawn(self._request_delete(c.file_name))
                continue
            # A decided conflict is always sent, even when local matches the baseline
            message = {"type": "file-change", "fileName": c.file_name, "content": c.local_content}
            if await self._send(message):
                self.tracker.remember(c.file_name, c.local_content)
                log(f"  [PUSH] {c.file_name}")

    async def _take_remote(self, conflicts: list[Conflict]):
        writes = []
        for c in conflicts:
            if c.remote_content is None:
                await self._delete_locally(c.file_name)
            else:
                writes.append(FileSnapshot(c.file_name, c.remote_content,
                                           c.remote_modified_at or _now_ms()))
        if writes:
            await self._write_files(writes, silent=True)

    def _answer_conflict(self, file_name: str, resolution) -> bool:
        try:
            value = Resolution(resolution)
        except ValueError:
            warn(f"Invalid conflict resolution {resolution!r} for {file_name}")
            return False
        return self.prompts.handle_confirmation(conflict_action_id(file_name), value)

    async def _on_conflicts_resolved(self, message: dict):
        resolution = message.get("resolution")
        file_name = message.get("fileName")
        if file_name:
            self._answer_conflict(file_name, resolution)
            return

        pending = [aid for aid in self.prompts.pending_action_ids() if aid.startswith("conflict:")]
        if not pending:
            warn("Received conflicts-resolved with no pending conflicts, ignoring")
            return
        for action_id in pending:
            self._answer_conflict(action_id[len("conflict:"):], resolution)

    async def _on_conflict_resolution(self, message: dict):
        file_name = message.get("fileName")
        if not file_name:
            warn("Received conflict-resolution without fileName, ignoring")
            return
        self._answer_conflict(file_name, message.get("resolution"))

    # ── Remote changes ───────────────────────────────────────────────────────

    async def _on_file_change(self, message: dict):
        file_name = message.get("fileName")
        if self.mode is SyncMode.DISCONNECTED:
            warn(f"Rejected file change while disconnected: {file_name}")
            return
        if self.mode in _SNAPSHOT_MODES:
            vlog(f"[sync] ignoring file change during sync: {file_name}")
            return
        if not file_name or message.get("content") is None:
            warn("Received file-change without fileName or content, ignoring")
            return

        incoming = [FileSnapshot(str(file_name), str(message["content"]), _now_ms())]
        files = filter_echoed_files(incoming, self.tracker)
        if not files:
            vlog(f"[sync] skipped echoed change: {file_name}")
            return
        await self._write_files(files, silent=False)

    async def _on_file_delete(self, message: dict):
        names = message.get("fileNames") or []
        if self.mode is SyncMode.DISCONNECTED:
            warn(f"Rejected delete while disconnected: {', '.join(names)}")
            return
        for name in names:
            await self._delete_locally(name)
        await self.metadata.save()

    async def _on_delete_confirmed(self, message: dict):
        unmatched = [
            name for name in message.get("fileNames") or []
            if not self.prompts.handle_confirmation(delete_action_id(name), True)
        ]
        for name in unmatched:
            vlog(f"[sync] delete confirmed without pending prompt: {name}")
            await self._delete_locally(name)
        if unmatched:
            await self.metadata.save()

    async def _on_delete_cancelled(self, message: dict):
        restored = []
        for f in message.get("files") or []:
            name = f.get("fileName")
            if not name:
                continue
            self.prompts.handle_confirmation(delete_action_id(name), False)
            if f.get("content") is not None:
                restored.append(FileSnapshot(name, str(f["content"]), _now_ms()))
        if restored:
            vlog(f"[sync] restoring {pluralize(len(restored), 'file')} after cancelled delete")
            await self._write_files(restored, silent=False)

    async def _on_file_synced(self, message: dict):
        file_name = message.get("fileName")
        remote_modified_at = message.get("remoteModifiedAt")
        if not file_name or remote_modified_at is None:
            warn("Received file-synced without fileName or remoteModifiedAt, ignoring")
            return
        content = await asyncio.to_thread(read_file_safe, file_name, self.files_dir)
        if content is None:
            vlog(f"[sync] file-synced for missing file {file_name}")
            return
        self.metadata.record_synced_snapshot(sanitize_relative_path(file_name),
                                             hash_content(content), remote_modified_at)
        vlog(f"[sync] remote confirmed sync: {file_name}")

    async def _on_error(self, message: dict):
        file_name = message.get("fileName")
        text = message.get("message") or "unknown error"
        if file_name:
            error(f"Peer error for {file_name}: {text}")
        else:
            error(f"Peer error: {text}")

    # ── Disk ─────────────────────────────────────────────────────────────────

    async def _write_files(self, files: list[FileSnapshot], silent: bool):
        written = await asyncio.to_thread(write_remote_files, files, self.files_dir, self.tracker)
        for f in written:
            if not silent:
                log(f"  [PULL] {f.name}")
            self.metadata.record_remote_write(f.name, f.content, f.modified_at or _now_ms())

    async def _delete_locally(self, file_name: str):
        name = sanitize_relative_path(file_name)
        if await asyncio.to_thread(delete_local_file, name, self.files_dir, self.tracker):
            log(f"  [DEL-LOCAL] {name}")
            self.metadata.record_delete(name)

    # ══════════════════════════════════════════════════════════════════════════
    #  LOCAL CHANGES (watcher)
    # ══════════════════════════════════════════════════════════════════════════

    async def on_local_change(self, event: WatcherEvent):
        if self.mode is not SyncMode.WATCHING:
            vlog(f"[sync] ignoring {event.kind} {event.relative_path} in {self.mode.value} mode")
            return

        if event.kind in ("add", "change"):
            if event.content is None:
                warn(f"Watcher event missing content: {event.relative_path}")
                return
            await self._push_local_change(event.relative_path, event.content)
        elif event.kind == "delete":
            vlog(f"[sync] local delete detected: {event.relative_path}")
            self._spawn(self._request_delete(event.relative_path))

    async def _push_local_change(self, file_name: str, content: str):
        meta = self.metadata.get(file_name)
        if meta is not None and meta.last_synced_hash == hash_content(content):
            vlog(f"  [SKIP-SYNCED] {file_name}")
            return
        if self.tracker.should_skip(file_name, content):
            vlog(f"  [SKIP-ECHO] {file_name}")
            return
        if await self._send({"type": "file-change", "fileName": file_name, "content": content}):
            # Only after a successful send, so a failed push is retried on the next event
            self.tracker.remember(file_name, content)
            log(f"  [PUSH] {file_name}")

    async def _request_delete(self, file_name: str):
        if self.tracker.should_skip_delete(file_name):
            self.tracker.clear_delete(file_name)
            vlog(f"  [SKIP-ECHO] delete {file_name}")
            return
        try:
            confirmed = await self.prompts.request_delete_decision(
                self.channel, file_name,
                require_confirmation=not self.settings.auto_delete)
        except ChannelUnavailableError as exc:
            warn(str(exc))
            return
        if not confirmed:
            vlog(f"[sync] delete of {file_name} not confirmed")
            return
        self.tracker.forget(file_name)
        self.metadata.record_delete(file_name)
        await self.metadata.save()
        log(f"  [DEL-REMOTE] {file_name}")


# ══════════════════════════════════════════════════════════════════════════════
#  ENTRY POINT
# ══════════════════════════════════════════════════════════════════════════════

async def run(settings: Settings):
    """Serve one project until cancelled (Ctrl-C)."""
    engine = SyncEngine(settings)
    port = port_from_hash(settings.project_hash)
    server = ConnectionServer(port, engine.on_handshake, engine.handle_message,
                              engine.on_disconnect, host=settings.bind_host)
    await server.start()

    loop = asyncio.get_running_loop()
    watcher: Optional[LocalWatcher] = None

    def start_watcher(files_dir: Path):
        nonlocal watcher
        if watcher is None:
            files_dir.mkdir(parents=True, exist_ok=True)
            watcher = LocalWatcher(files_dir, loop, engine.on_local_change)
            watcher.start()

    engine.on_ready = start_watcher
    log(f"Waiting for connection on ws://{server.host}:{port} (project {short_project_hash(settings.project_hash)}) …")

    try:
        await asyncio.Event().wait()
    finally:
        log("Shutting down …")
        if watcher is not None:
            await watcher.stop()
        await engine.shutdown()
        await server.close()
