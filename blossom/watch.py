"""Watch mode for Blossom.

Watches the source folders and rebuilds on change. Rebuilds run one at a
time on a worker thread fed by a queue of depth one: a change during a build
leaves exactly one rebuild pending, and further changes coalesce into it.

Key classes:
- SiteWatcher: Owns the observer, the request queue and the worker.
- _ChangeHandler: File system event handler for triggering rebuilds.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import BuildError
from .config import CONFIG_FILENAME, ConfigError

logger = logging.getLogger(__name__)

_STOP = object()


class SiteWatcher:
    """Serialized rebuilds driven by file system events.

    Attributes:
        project_root: Root directory of the project.
        source_dirs: Directories watched recursively.
        ignored: Paths whose events never trigger a rebuild.
    """

    def __init__(
        self,
        project_root: Path,
        rebuild: Callable[[], object],
        source_dirs: list[Path],
        ignored: list[Path],
    ):
        self.project_root = project_root
        self.source_dirs = source_dirs
        self.ignored = ignored
        self._rebuild = rebuild
        self._requests: queue.Queue = queue.Queue(maxsize=1)
        self._observer: Observer | None = None
        self._worker: threading.Thread | None = None
        self.builds = 0

    def request_rebuild(self) -> bool:
        """Ask for a rebuild.

        Returns:
            True if a new request was queued, False if one was already
            pending.
        """
        try:
            self._requests.put_nowait(None)
        except queue.Full:
            return False
        return True

    def run_pending(self) -> bool:
        """Run the pending rebuild on the calling thread, if any."""
        try:
            item = self._requests.get_nowait()
        except queue.Empty:
            return False
        if item is _STOP:
            return False
        self._rebuild_once()
        return True

    def should_trigger(self, path: Path) -> bool:
        for ignored in self.ignored:
            if path == ignored or ignored in path.parents:
                return False
        if path.parent == self.project_root:
            return path.name == CONFIG_FILENAME
        return True

    def start(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        for folder in self.source_dirs:
            if folder.exists():
                observer.schedule(handler, str(folder), recursive=True)
        # Root is watched only for blossom.yaml.
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer
        self._worker = threading.Thread(target=self._work, daemon=True)
        self._worker.start()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        if self._worker:
            # A pending rebuild may still occupy the slot; wait for the worker to take it.
            self._requests.put(_STOP)
            self._worker.join()

    def serve_forever(self) -> None:  # pragma: no cover - integration path
        self.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def _work(self) -> None:
        while True:
            item = self._requests.get()
            if item is _STOP:
                return
            self._rebuild_once()

    def _rebuild_once(self) -> None:
        logger.info("Change detected; rebuilding")
        try:
            self._rebuild()
        except BuildError as exc:
            logger.error("Build failed: %s: %s", exc.source_path, exc.message)
        except (ConfigError, OSError) as exc:
            logger.error("Build failed: %s", exc)
        except Exception:
            logger.exception("Build failed with an unexpected error")
        finally:
            self.builds += 1


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: SiteWatcher):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        if self.watcher.should_trigger(path):
            self.watcher.request_rebuild()
