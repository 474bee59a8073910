"""Manifest watching — watchdog file events forwarded to the debounced scan trigger.

The watchdog observer runs on its own thread. Events are filtered there and
handed to the event loop with ``call_soon_threadsafe``; debouncing happens in
:class:`~depsentinel.triggers.DebouncedScanTrigger`.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path, PurePath

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from depsentinel.triggers import DebouncedScanTrigger, is_manifest

log = structlog.get_logger("depsentinel.watch")

IGNORED_DIRS = frozenset({"node_modules", ".git", ".depsentinel", ".venv", "venv"})


def is_watched(path: str) -> bool:
    """A manifest outside installed packages and tool directories."""
    parts = PurePath(path).parts
    if any(part in IGNORED_DIRS for part in parts[:-1]):
        return False
    return is_manifest(path)


class ManifestEventHandler(FileSystemEventHandler):
    """Runs on the watchdog thread; forwards manifest paths to the loop."""

    def __init__(self, trigger: DebouncedScanTrigger, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._trigger = trigger
        self._loop = loop

    def _dispatch(self, path: str | bytes) -> None:
        path = os.fsdecode(path)
        if not is_watched(path):
            return
        self._loop.call_soon_threadsafe(self._trigger.notify, path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._dispatch(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._dispatch(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._dispatch(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._dispatch(event.src_path)
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            self._dispatch(dest_path)


class ManifestWatcher:
    """Owns the watchdog observer for one workspace root."""

    def __init__(self, root: str | Path, trigger: DebouncedScanTrigger) -> None:
        self.root = Path(root)
        self._trigger = trigger
        self._observer: Observer | None = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        """Start watching recursively. Returns False if the root is not a directory."""
        if self.is_watching:
            return True
        root = self.root.resolve()
        if not root.is_dir():
            log.error("watch.invalid_root", root=str(root))
            return False

        handler = ManifestEventHandler(self._trigger, loop or asyncio.get_running_loop())
        observer = Observer()
        observer.schedule(handler, str(root), recursive=True)
        observer.start()
        self._observer = observer
        log.info("watch.started", root=str(root))
        return True

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the observer thread; blocks for up to *timeout* seconds."""
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        observer.stop()
        observer.join(timeout=timeout)
        log.info("watch.stopped", root=str(self.root))
