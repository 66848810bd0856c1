"""
Filesystem watching for a vault, built on watchdog.

Events for document files are turned into DocumentIndex.reload() calls, so
only the touched document is re-read. Folder moves and deletions affect an
unknown set of documents and fall back to a full refresh().

Atomic writes arrive as a move from a temp file onto the document; the temp
side is filtered out like any other non-document path.
"""

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from .index import DocumentIndex

logger = logging.getLogger(__name__)


class VaultEventHandler(FileSystemEventHandler):
    """
    Watchdog event handler that keeps a DocumentIndex current.

    Runs on the observer thread; the index swaps snapshots under its own
    lock, so queries never see a half-applied event.
    """

    def __init__(self, index: "DocumentIndex", root: Optional[Path] = None):
        """
        Args:
            index: Index to update
            root: Watched directory (defaults to the store root, resolved)
        """
        super().__init__()
        self._index = index
        self._store = index.store
        self._root = Path(root) if root is not None else self._store.root.resolve()

    def _relative(self, path) -> Optional[str]:
        """Vault-relative document path for an event path, or None to skip it."""
        if not path:
            return None
        try:
            rel = Path(os.path.abspath(os.fsdecode(path))).relative_to(self._root).as_posix()
        except ValueError:
            return None
        return rel if self._store.is_document_path(rel) else None

    def _reload(self, path) -> None:
        rel = self._relative(path)
        if rel is None:
            return
        try:
            self._index.reload(rel)
        except Exception:
            logger.exception("Failed to reload %s after a filesystem event", rel)

    def _refresh(self) -> None:
        try:
            self._index.refresh()
        except Exception:
            logger.exception("Vault refresh after a folder change failed")

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            # Files may land before the new folder is watched
            self._refresh()
            return
        self._reload(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._reload(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._refresh()
            return
        self._reload(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._refresh()
            return
        self._reload(event.src_path)
        self._reload(event.dest_path)


class VaultWatcher:
    """
    Owns the watchdog Observer for one index.

    start() and stop() are idempotent.
    """

    def __init__(self, index: "DocumentIndex"):
        self._index = index
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        """
        Start watching the vault recursively.

        Raises:
            FileNotFoundError: If the vault directory does not exist
        """
        if self._observer is not None:
            return
        root = self._index.store.root.resolve()
        if not root.is_dir():
            raise FileNotFoundError(f"Vault not found: {root}")

        observer = Observer()
        observer.schedule(VaultEventHandler(self._index, root), str(root), recursive=True)
        observer.start()
        self._observer = observer
        logger.debug("Watching %s", root)

    def stop(self, timeout: float = 5.0) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout)
        logger.debug("Stopped watching %s", self._index.store.root)
