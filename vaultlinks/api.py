"""
Vault facade: relationship queries over a directory of Markdown documents.

    with Vault("~/notes") as vault:
        employees = vault.related("Companies/Acme.md", "employees")
        for doc in employees.visible:
            print(doc.display_name)
        vault.reorder("Companies/Acme.md", "employees", ["People/Bob.md"])
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from .config import VaultConfig, get_vault_path, load_or_create_config
from .document_store import VaultStore
from .index import DocumentIndex, IndexChange
from .links import LinkResolver
from .matching import PropertyMatcher
from .ordering import OrderedResultSet, fallback_for, order, reorder
from .query import GraphQueryEngine, RelationSpec, parse_relation_spec
from .registry import RelationRegistry
from .types import Document, ResolvedLink, normalize_path

logger = logging.getLogger(__name__)

HostRef = Union[Document, str]


class Vault:
    """
    Related-document lookup, ordering and reorder persistence for one vault.

    Example:
        vault = Vault("~/notes")
        vault.related("People/Alice.md", "teammates").ids
    """

    def __init__(
        self,
        vault_path: Optional[str | Path] = None,
        *,
        config: Optional[VaultConfig] = None,
        registry: Optional[RelationRegistry] = None,
        index: Optional[DocumentIndex] = None,
    ) -> None:
        """
        Open a vault.

        Args:
            vault_path: Vault directory. Defaults to VAULTLINKS_VAULT_PATH,
                then the current directory.
            config: Pre-loaded VaultConfig (skips filesystem config discovery)
            registry: Relation registry. Defaults to the built-in relations
                plus the config's ``[relations]`` overrides.
            index: Injected document index (skips the initial scan)
        """
        # --- Config resolution ---
        if config is not None:
            self._config = config
            self._path = Path(config.path)
        else:
            self._path = get_vault_path(vault_path)
            self._config = load_or_create_config(self._path)

        # --- Persistent operations log ---
        from .logging_config import configure_ops_log
        self._ops_log_handler: Optional[logging.Handler] = configure_ops_log(self._path)

        # --- Storage and index ---
        if index is not None:
            self._index = index
            self._store = index.store
        else:
            self._store = VaultStore(
                self._path,
                extension=self._config.extension,
                ignore=self._config.ignore,
            )
            self._index = DocumentIndex(self._store)

        # --- Relations ---
        if registry is None:
            registry = RelationRegistry.default()
            if self._config.relations:
                registry.merge(self._config.relations)
        self._registry = registry

        # --- Engine ---
        self._resolver = LinkResolver(self._index, extension=self._store.extension)
        self._matcher = PropertyMatcher(self._resolver)
        self._engine = GraphQueryEngine(self._index, self._matcher)

        self._watch_lock = threading.Lock()
        self._watchers: list[Callable[[], None]] = []
        logger.debug("Opened vault %s (%d typed documents)", self._path, len(self._index))

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def store(self) -> VaultStore:
        return self._store

    @property
    def index(self) -> DocumentIndex:
        return self._index

    @property
    def registry(self) -> RelationRegistry:
        return self._registry

    @property
    def engine(self) -> GraphQueryEngine:
        return self._engine

    @property
    def watching(self) -> bool:
        return self._index.watching

    def get(self, ref: HostRef) -> Optional[Document]:
        """
        Look up an indexed document by path, path without extension, or link.
        """
        if isinstance(ref, Document):
            return self._index.get_by_path(ref.path)
        path = normalize_path(ref)
        doc = self._index.get_by_path(path)
        if doc is None and not path.lower().endswith(self._store.extension.lower()):
            doc = self._index.get_by_path(path + self._store.extension)
        if doc is None:
            doc = self._resolver.resolve(ref).document
        return doc

    def list_type(self, entity_type: str) -> list[Document]:
        """All indexed documents of an entity type, sorted by path."""
        return self._index.list_by_type(entity_type)

    def resolve(self, raw: Any, from_path: str = "") -> ResolvedLink:
        """Resolve a link value relative to a document path."""
        return self._resolver.resolve(raw, from_path)

    # -------------------------------------------------------------------------
    # Relations
    # -------------------------------------------------------------------------

    def relations(self, host: HostRef) -> list[RelationSpec]:
        """Relations available for the host's entity type."""
        doc = self.get(host)
        if doc is None:
            return []
        return self._registry.relations_for(doc.type)

    def relation(self, host: HostRef, key: str) -> RelationSpec:
        """
        The relation ``key`` for the host's type.

        Raises:
            UnsupportedRelationError: If the type has no such relation
            KeyError: If the host is not an indexed document
        """
        doc = self.get(host)
        if doc is None:
            raise KeyError(f"Not an indexed document: {host}")
        return self._registry.get(doc.type, key)

    def _evaluate(self, host: Document, spec: RelationSpec) -> OrderedResultSet:
        documents = self._engine.resolve(host, spec)
        page_size = spec.page_size if spec.page_size is not None else self._config.page_size
        return order(
            host,
            documents,
            spec.order_key,
            fallback_for(spec.sort),
            page_size=page_size,
            manual=spec.sort.manual,
        )

    def related(self, host: HostRef, key: str) -> OrderedResultSet:
        """
        Ordered documents related to ``host`` through relation ``key``.

        A host that is not (or no longer) indexed yields an empty result.

        Raises:
            UnsupportedRelationError: If the host's type has no relation ``key``
        """
        doc = self.get(host)
        if doc is None:
            logger.debug("Host %s not indexed; empty result for %s", host, key)
            return OrderedResultSet([])
        return self._evaluate(doc, self._registry.get(doc.type, key))

    def related_for_spec(self, host: HostRef, raw_spec: Any, order_key: str = "") -> OrderedResultSet:
        """
        Evaluate an ad-hoc relation spec (wire format) from ``host``.

        Args:
            host: Host document or path
            raw_spec: Relation spec mapping (flat or ``{"config": ...}``)
            order_key: Key naming the persisted order (default: spec key or
                target type)
        """
        doc = self.get(host)
        if doc is None:
            return OrderedResultSet([])
        spec = parse_relation_spec(raw_spec, doc.type, order_key)
        return self._evaluate(doc, spec)

    def reorder(self, host: HostRef, key: str, new_order: Iterable[HostRef]) -> bool:
        """
        Persist a manual order for relation ``key`` on the host.

        An empty order clears the pinned order.

        Returns:
            True if saved; False if the host is missing or the write failed

        Raises:
            UnsupportedRelationError: If the host's type has no relation ``key``
        """
        doc = self.get(host)
        if doc is None:
            logger.warning("Cannot reorder %s on %s: not an indexed document", key, host)
            return False
        spec = self._registry.get(doc.type, key)
        ids = []
        for item in new_order:
            target = self.get(item) if isinstance(item, str) else item
            ids.append(target if target is not None else item)
        saved = reorder(self._store, doc, ids, spec.order_key)
        if saved:
            self._index.reload(doc.path)
        return saved

    # -------------------------------------------------------------------------
    # Change notification
    # -------------------------------------------------------------------------

    def refresh(self) -> IndexChange:
        """Rescan the vault, notifying watchers if anything changed."""
        return self._index.refresh()

    def watch_relation(
        self,
        host: HostRef,
        key: str,
        callback: Callable[[OrderedResultSet], None],
    ) -> Callable[[], None]:
        """
        Call ``callback`` with the relation's result now and after every
        index change.

        Returns:
            A callable that stops the notifications

        Raises:
            UnsupportedRelationError: If the host's type has no relation ``key``
        """
        doc = self.get(host)
        if doc is not None:
            self._registry.get(doc.type, key)
        path = doc.path if doc is not None else (host.path if isinstance(host, Document) else str(host))

        def on_change(change: IndexChange) -> None:
            callback(self.related(path, key))

        unsubscribe = self._index.subscribe(on_change)
        with self._watch_lock:
            self._watchers.append(unsubscribe)
        callback(self.related(path, key))

        def stop() -> None:
            unsubscribe()
            with self._watch_lock:
                if unsubscribe in self._watchers:
                    self._watchers.remove(unsubscribe)

        return stop

    def start_watching(self) -> None:
        """Follow filesystem changes in the background (watchdog observer)."""
        self._index.start_watching()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Stop watching and release the operations log."""
        self._index.stop_watching()
        with self._watch_lock:
            watchers, self._watchers = self._watchers, []
        for unsubscribe in watchers:
            unsubscribe()
        if self._ops_log_handler is not None:
            logging.getLogger("vaultlinks").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False
