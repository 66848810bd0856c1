"""
In-memory index of typed vault documents.

The index is the engine's only view of the vault: "all documents of type T",
path lookup, link lookup relative to a source document, and change
notifications. It caches frontmatter so traversal never touches disk.

Refreshing builds a complete new snapshot and swaps it in under a lock, so
queries running concurrently always see one consistent snapshot.
"""

import logging
import posixpath
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from .document_store import VaultStore
from .protocol import ChangeListener
from .types import Document, normalize_path, strip_extension
from .watcher import VaultWatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexChange:
    """Paths that changed between two index snapshots."""
    added: frozenset[str] = frozenset()
    removed: frozenset[str] = frozenset()
    modified: frozenset[str] = frozenset()

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    @property
    def paths(self) -> frozenset[str]:
        return self.added | self.removed | self.modified


@dataclass
class _Snapshot:
    by_path: dict[str, Document] = field(default_factory=dict)
    by_type: dict[str, list[Document]] = field(default_factory=dict)
    by_stem: dict[str, list[Document]] = field(default_factory=dict)
    by_stem_folded: dict[str, list[Document]] = field(default_factory=dict)
    mtimes: dict[str, float] = field(default_factory=dict)


def _build_snapshot(documents: list[Document], mtimes: dict[str, float]) -> _Snapshot:
    snap = _Snapshot(mtimes=dict(mtimes))
    for doc in sorted(documents, key=lambda d: d.path):
        snap.by_path[doc.path] = doc
        snap.by_type.setdefault(doc.type, []).append(doc)
        snap.by_stem.setdefault(doc.stem, []).append(doc)
        snap.by_stem_folded.setdefault(doc.stem.casefold(), []).append(doc)
    return snap


def _differs(cached: Optional[Document], doc: Document, touched: bool) -> bool:
    """Whether a re-read document changed compared to the cached snapshot."""
    if touched:
        return True
    if cached is None:
        return bool(doc.type)
    return cached.metadata != doc.metadata


class DocumentIndex:
    """
    Frontmatter cache over a VaultStore.

    Only documents that declare a type (``mondoType`` or ``type``) are
    indexed; untyped notes are invisible to relationship queries.
    """

    def __init__(self, store: VaultStore, *, autoload: bool = True):
        """
        Args:
            store: Backing store to scan
            autoload: Scan the vault immediately (otherwise call refresh())
        """
        self._store = store
        self._extension = store.extension
        self._lock = threading.Lock()
        self._snapshot = _Snapshot()
        self._listeners: list[ChangeListener] = []
        self._listeners_lock = threading.Lock()
        self._watcher: Optional[VaultWatcher] = None
        if autoload:
            self.refresh(notify=False)

    @property
    def store(self) -> VaultStore:
        return self._store

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_by_type(self, type: str) -> list[Document]:
        """All documents of an entity type, sorted by path."""
        with self._lock:
            return list(self._snapshot.by_type.get(str(type).strip().lower(), ()))

    def get_by_path(self, path: str) -> Optional[Document]:
        """Exact lookup by vault-relative path."""
        if not path:
            return None
        with self._lock:
            return self._snapshot.by_path.get(normalize_path(path))

    def types(self) -> list[str]:
        """Entity types present in the vault, sorted."""
        with self._lock:
            return sorted(t for t in self._snapshot.by_type if t)

    def all_documents(self) -> list[Document]:
        with self._lock:
            return list(self._snapshot.by_path.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshot.by_path)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.get_by_path(path) is not None

    def resolve_link(self, text: str, from_path: str = "") -> Optional[Document]:
        """
        Resolve link text to a document, relative to a source document.

        Tries, in order:
        1. Relative paths (``./x``, ``../x``) against the source folder
        2. Exact path, with and without the default extension
        3. Path-suffix match for texts containing ``/``
        4. File stem match, exact then case-insensitive

        Ambiguous matches prefer the source's folder, then the shortest
        path, then lexicographic order.

        Returns:
            The matching Document, or None
        """
        raw = str(text or "").strip().replace("\\", "/")
        if not raw:
            return None
        source_folder = posixpath.dirname(normalize_path(from_path or ""))

        if raw.startswith("./") or raw.startswith("../"):
            raw = posixpath.normpath(posixpath.join(source_folder, raw))
            if raw.startswith(".."):
                return None
        target = normalize_path(raw)
        if not target:
            return None

        with self._lock:
            snap = self._snapshot

        for candidate in (target, target + self._extension):
            doc = snap.by_path.get(candidate)
            if doc is not None:
                return doc

        bare = strip_extension(target, self._extension)
        if "/" in bare:
            suffix = "/" + bare
            matches = [
                d for d in snap.by_path.values()
                if strip_extension(d.path, self._extension).endswith(suffix)
            ]
            if not matches:
                folded = suffix.casefold()
                matches = [
                    d for d in snap.by_path.values()
                    if strip_extension(d.path, self._extension).casefold().endswith(folded)
                    or strip_extension(d.path, self._extension).casefold() == bare.casefold()
                ]
        else:
            matches = list(snap.by_stem.get(bare, ()))
            if not matches:
                matches = list(snap.by_stem_folded.get(bare.casefold(), ()))

        if not matches:
            return None
        return min(
            matches,
            key=lambda d: (d.folder != source_folder, len(d.path), d.path),
        )

    # -------------------------------------------------------------------------
    # Refresh & change notification
    # -------------------------------------------------------------------------

    def refresh(self, *, notify: bool = True, full: bool = False) -> IndexChange:
        """
        Rescan the vault and swap in a new snapshot.

        Unchanged files (same mtime) reuse their cached Document unless
        ``full`` is set, which re-reads every file.

        Returns:
            IndexChange describing what differs from the previous snapshot
        """
        mtimes = self._store.stat_mtimes()
        with self._lock:
            previous = self._snapshot

        documents: list[Document] = []
        seen_mtimes: dict[str, float] = {}
        modified: set[str] = set()
        for path, mtime in mtimes.items():
            cached = previous.by_path.get(path)
            old_mtime = previous.mtimes.get(path)
            seen_mtimes[path] = mtime
            if not full and old_mtime is not None and old_mtime == mtime:
                if cached is not None:
                    documents.append(cached)
                continue
            record = self._store.load(path)
            if record is None:
                seen_mtimes.pop(path, None)
                continue
            doc = record.to_document()
            if old_mtime is not None and _differs(cached, doc, old_mtime != mtime):
                modified.add(path)
            if doc.type:
                documents.append(doc)

        snapshot = _build_snapshot(documents, seen_mtimes)
        change = IndexChange(
            added=frozenset(p for p in seen_mtimes if p not in previous.mtimes),
            removed=frozenset(p for p in previous.mtimes if p not in seen_mtimes),
            modified=frozenset(modified),
        )
        with self._lock:
            self._snapshot = snapshot

        if change:
            logger.debug(
                "Index refreshed: %d added, %d removed, %d modified",
                len(change.added), len(change.removed), len(change.modified),
            )
            if notify:
                self._notify(change)
        return change

    def reload(self, path: str, *, notify: bool = True) -> IndexChange:
        """
        Re-read a single document (after a write or a filesystem event).

        A document whose mtime and frontmatter are unchanged produces an
        empty IndexChange and no notification.
        """
        rel = normalize_path(path)
        record = self._store.load(rel)
        doc = record.to_document() if record is not None else None
        with self._lock:
            previous = self._snapshot
            existed = rel in previous.mtimes
            if doc is not None and existed and not _differs(
                previous.by_path.get(rel), doc, previous.mtimes[rel] != doc.mtime,
            ):
                return IndexChange()
            documents = [d for p, d in previous.by_path.items() if p != rel]
            mtimes = dict(previous.mtimes)
            if doc is None:
                mtimes.pop(rel, None)
            else:
                mtimes[rel] = doc.mtime
                if doc.type:
                    documents.append(doc)
            self._snapshot = _build_snapshot(documents, mtimes)

        if doc is None:
            change = IndexChange(removed=frozenset([rel]) if existed else frozenset())
        elif existed:
            change = IndexChange(modified=frozenset([rel]))
        else:
            change = IndexChange(added=frozenset([rel]))
        if change and notify:
            self._notify(change)
        return change

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            A callable that unsubscribes the listener (safe to call twice)
        """
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: IndexChange) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception("Index change listener failed")

    # -------------------------------------------------------------------------
    # Background watching
    # -------------------------------------------------------------------------

    def start_watching(self) -> None:
        """Follow filesystem events and reload changed documents as they happen."""
        if self._watcher is None:
            self._watcher = VaultWatcher(self)
        self._watcher.start()

    def stop_watching(self, timeout: float = 5.0) -> None:
        if self._watcher is not None:
            self._watcher.stop(timeout)

    @property
    def watching(self) -> bool:
        return self._watcher is not None and self._watcher.running
