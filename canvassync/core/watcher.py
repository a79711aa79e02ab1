"""
Local file watcher (watchdog)

watchdog calls its handlers on the observer thread; events are handed to the
asyncio loop with call_soon_threadsafe and delivered to the callback in order.
"""
import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..models import WatcherEvent
from ..utils.logging import vlog, warn
from ..utils.paths import is_supported_extension, normalize_path, sanitize_file_path


class _ChangeHandler(FileSystemEventHandler):
    """Translates watchdog events into WatcherEvents (observer thread)."""

    def __init__(self, files_dir: Path, emit: Callable[[WatcherEvent], None]):
        super().__init__()
        self.files_dir = files_dir
        self.emit = emit

    def on_created(self, event):
        if not event.is_directory:
            self._handle("add", event.src_path)

    def on_modified(self, event):
        if not event.is_directory:
            self._handle("change", event.src_path)

    def on_deleted(self, event):
        if not event.is_directory:
            self._handle("delete", event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self._handle("delete", event.src_path)
            self._handle("add", event.dest_path)

    def _relative(self, path: Path) -> Optional[str]:
        try:
            rel = path.relative_to(self.files_dir).as_posix()
        except ValueError:
            return None
        # Hidden files and directories are never synced
        if any(part.startswith(".") for part in rel.split("/")):
            return None
        return normalize_path(rel)

    def _handle(self, kind: str, src_path):
        path = Path(str(src_path))
        if not is_supported_extension(path.name):
            return
        raw = self._relative(path)
        if raw is None:
            return
        # Keep the user's casing; only make the name syncable
        relative_path = sanitize_file_path(raw, capitalize=False).path

        if relative_path != raw and kind == "add":
            target = self.files_dir / relative_path
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                path.rename(target)
                vlog(f"[watch] renamed {raw} -> {relative_path}")
                path = target
            except OSError as exc:
                warn(f"Failed to rename {raw}: {exc}")

        content = None
        if kind != "delete":
            try:
                content = path.read_text("utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                vlog(f"[watch] failed to read {relative_path}: {exc}")
                return

        vlog(f"[watch] {kind} {relative_path}")
        self.emit(WatcherEvent(kind=kind, relative_path=relative_path, content=content))


class LocalWatcher:
    """Watches files_dir recursively and feeds WatcherEvents to callback."""

    def __init__(self, files_dir: Path, loop: asyncio.AbstractEventLoop,
                 callback: Callable[[WatcherEvent], Awaitable[object]]):
        self.files_dir = Path(files_dir).resolve()
        self.loop = loop
        self.callback = callback
        self._queue: asyncio.Queue = asyncio.Queue()
        self._observer = None
        self._pump: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self):
        if self._observer is not None:
            return
        handler = _ChangeHandler(self.files_dir, self._emit_threadsafe)
        observer = Observer()
        observer.schedule(handler, str(self.files_dir), recursive=True)
        observer.start()
        self._observer = observer
        self._pump = self.loop.create_task(self._deliver())
        vlog(f"[watch] watching {self.files_dir}")

    async def stop(self):
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join)
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
            self._pump = None

    def _emit_threadsafe(self, event: WatcherEvent):
        self.loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def _deliver(self):
        while True:
            event = await self._queue.get()
            try:
                await self.callback(event)
            except Exception as exc:
                warn(f"Failed to handle {event.kind} of {event.relative_path}: {exc}")
