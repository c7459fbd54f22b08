"""File system watcher that re-initializes the source map index on map changes."""

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .file_types import FileTypeRegistry, get_file_type_registry

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Set[str], Set[str]], Awaitable[None]]


class SourceMapEventHandler(FileSystemEventHandler):
    """Collects ``*.map`` changes for debounced processing."""

    def __init__(self, watch_path: Path, registry: Optional[FileTypeRegistry] = None):
        """Initialize event handler.

        Args:
            watch_path: Watched workspace root
            registry: File type registry for map detection and exclusions
        """
        super().__init__()
        self.watch_path = Path(watch_path)
        self.registry = registry or get_file_type_registry()

        # Track pending changes
        self.modified_files: Set[str] = set()
        self.deleted_files: Set[str] = set()
        self.last_change_time = 0.0
        self._lock = threading.Lock()

    def _should_process_file(self, file_path: str) -> bool:
        path = Path(file_path)
        if not self.registry.is_source_map(file_path):
            return False
        try:
            relative = path.relative_to(self.watch_path)
        except ValueError:
            return False
        return not self.registry.is_excluded(relative)

    def _record(self, file_path: str, deleted: bool) -> None:
        with self._lock:
            if deleted:
                self.modified_files.discard(file_path)
                self.deleted_files.add(file_path)
            else:
                self.deleted_files.discard(file_path)
                self.modified_files.add(file_path)
            self.last_change_time = time.time()

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._should_process_file(event.src_path):
            logger.debug(f"Source map modified: {event.src_path}")
            self._record(event.src_path, deleted=False)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._should_process_file(event.src_path):
            logger.debug(f"Source map created: {event.src_path}")
            self._record(event.src_path, deleted=False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._should_process_file(event.src_path):
            logger.debug(f"Source map deleted: {event.src_path}")
            self._record(event.src_path, deleted=True)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        # Treat as delete + create
        if self._should_process_file(event.src_path):
            self._record(event.src_path, deleted=True)
        dest_path = getattr(event, "dest_path", "")
        if dest_path and self._should_process_file(dest_path):
            self._record(dest_path, deleted=False)

    def get_pending_changes(self) -> Tuple[Set[str], Set[str]]:
        """Get pending changes and clear buffers.

        Returns:
            Tuple of (modified_files, deleted_files)
        """
        with self._lock:
            modified = self.modified_files.copy()
            deleted = self.deleted_files.copy()
            self.modified_files.clear()
            self.deleted_files.clear()
        return modified, deleted

    def has_pending_changes(self) -> bool:
        return bool(self.modified_files or self.deleted_files)

    def time_since_last_change(self) -> float:
        return time.time() - self.last_change_time


class WorkspaceWatcher:
    """Watches a workspace and reports debounced source map changes."""

    def __init__(
        self,
        watch_path: str,
        on_change_callback: ChangeCallback,
        debounce_seconds: float = 2.0,
        registry: Optional[FileTypeRegistry] = None,
    ):
        """Initialize workspace watcher.

        Args:
            watch_path: Path to directory to watch
            on_change_callback: Async callback receiving (modified_maps, deleted_maps)
            debounce_seconds: Debounce time for batching changes
            registry: File type registry
        """
        self.watch_path = Path(watch_path).resolve()
        self.on_change_callback = on_change_callback
        self.debounce_seconds = debounce_seconds

        self.event_handler = SourceMapEventHandler(self.watch_path, registry)
        self.observer = Observer()
        self.observer.schedule(self.event_handler, str(self.watch_path), recursive=True)

        self._running = False
        logger.info(f"Initialized workspace watcher for: {self.watch_path}")

    def start(self) -> None:
        if not self._running:
            self.observer.start()
            self._running = True
            logger.info(f"Started watching: {self.watch_path}")

    def stop(self) -> None:
        if self._running:
            self.observer.stop()
            self.observer.join(timeout=5.0)
            self._running = False
            logger.info("Stopped workspace watcher")

    def is_running(self) -> bool:
        return self._running

    async def process_pending(self) -> bool:
        """Flush pending changes to the callback once the debounce window has passed.

        Returns:
            True if a batch was delivered
        """
        if not self.event_handler.has_pending_changes():
            return False
        if self.event_handler.time_since_last_change() < self.debounce_seconds:
            return False

        modified, deleted = self.event_handler.get_pending_changes()
        if not (modified or deleted):
            return False

        logger.info(f"Processing map changes: {len(modified)} modified, {len(deleted)} deleted")
        try:
            await self.on_change_callback(modified, deleted)
        except Exception as e:
            logger.error(f"Error processing map changes: {e}")
        return True

    async def start_debounce_processor(self, interval: float = 0.5) -> None:
        """Poll for debounced changes until the watcher stops."""
        logger.info("Started debounce processor")
        while self._running:
            try:
                await self.process_pending()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                logger.info("Debounce processor cancelled")
                break

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
