"""
Result ordering, manual reorder persistence and pagination.

A host may pin the display order of a relation in its own frontmatter:

    ---
    type: company
    employeesPriority:
      - People/Bob.md
      - People/Alice.md
    ---

Pinned documents that are still part of the result come first, in the pinned
order. Everything else follows in the relation's fallback order.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, Union

from .protocol import MetadataStoreProtocol
from .query import SortSpec
from .types import Document, normalize_path, priority_key

logger = logging.getLogger(__name__)

FallbackSort = Callable[[Sequence[Document]], list[Document]]


# -----------------------------------------------------------------------------
# Fallback sorts
# -----------------------------------------------------------------------------

def by_display_name(documents: Sequence[Document], *, descending: bool = False) -> list[Document]:
    """Case-insensitive display-name order; the path breaks ties."""
    ordered = sorted(documents, key=lambda d: d.path)
    return sorted(ordered, key=lambda d: d.display_name.casefold(), reverse=descending)


def by_date(documents: Sequence[Document], *, descending: bool = True) -> list[Document]:
    """Order by the ``date`` property; undated documents always go last."""
    dated = sorted((d for d in documents if d.date), key=lambda d: d.path)
    undated = by_display_name([d for d in documents if not d.date])
    return sorted(dated, key=lambda d: d.date, reverse=descending) + undated


def fallback_for(sort: SortSpec) -> FallbackSort:
    """Fallback comparator for a relation's sort spec."""
    descending = sort.direction == "desc"
    if sort.manual or sort.column == "show":
        if sort.manual:
            return by_display_name
        return lambda docs: by_display_name(docs, descending=descending)
    return lambda docs: by_date(docs, descending=descending)


# -----------------------------------------------------------------------------
# Result set
# -----------------------------------------------------------------------------

@dataclass
class OrderedResultSet:
    """
    Final ordered result of a relation with incremental disclosure.

    ``visible_count`` starts at ``page_size`` (everything when None) and only
    ever grows through load_more(), never past the total.
    """
    items: list[Document]
    page_size: Optional[int] = None
    manual: bool = False
    visible_count: int = field(init=False)

    def __post_init__(self) -> None:
        if self.page_size is not None and self.page_size < 1:
            self.page_size = None
        total = len(self.items)
        self.visible_count = total if self.page_size is None else min(self.page_size, total)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def visible(self) -> list[Document]:
        return self.items[: self.visible_count]

    @property
    def has_more(self) -> bool:
        return self.visible_count < self.total

    @property
    def sortable(self) -> bool:
        """Whether the consumer may offer manual reordering."""
        return self.manual and self.total > 1

    @property
    def ids(self) -> list[str]:
        return [d.path for d in self.items]

    def load_more(self, count: Optional[int] = None) -> int:
        """
        Reveal the next page (``count`` items, default ``page_size``).

        Returns:
            The new visible count
        """
        step = count if count is not None else self.page_size
        if step is None or step < 1:
            return self.visible_count
        self.visible_count = max(self.visible_count, min(self.total, self.visible_count + step))
        return self.visible_count

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Document]:
        return iter(self.items)


# -----------------------------------------------------------------------------
# Explicit order
# -----------------------------------------------------------------------------

def read_explicit_order(metadata: dict[str, Any], order_key: str) -> list[str]:
    """
    Pinned document paths for a relation.

    A single string is a one-element list; other shapes are ignored.
    """
    raw = metadata.get(priority_key(order_key))
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    return [normalize_path(v) for v in raw if isinstance(v, str) and v.strip()]


def order(
    host: Document,
    frontier: Iterable[Document],
    order_key: str,
    fallback: FallbackSort = by_display_name,
    *,
    page_size: Optional[int] = None,
    manual: bool = False,
) -> OrderedResultSet:
    """
    Merge the host's pinned order with the fallback order.

    Args:
        host: Document whose frontmatter holds the pinned order
        frontier: Documents to order
        order_key: Relation key; the pinned order lives under ``<key>Priority``
        fallback: Sort for documents that are not pinned
        page_size: Items visible before load_more() (None shows all)
        manual: Relation uses the manual sort strategy
    """
    ordered = fallback(list(frontier))
    explicit = read_explicit_order(host.metadata, order_key)
    if not explicit:
        return OrderedResultSet(ordered, page_size=page_size, manual=manual)

    # Every occurrence of a pinned path moves up; duplicates are never dropped
    by_path: dict[str, list[Document]] = {}
    for doc in ordered:
        by_path.setdefault(doc.path, []).append(doc)

    pinned: list[Document] = []
    used: set[str] = set()
    for path in explicit:
        if path in by_path and path not in used:
            pinned.extend(by_path[path])
            used.add(path)
    rest = [d for d in ordered if d.path not in used]
    return OrderedResultSet(pinned + rest, page_size=page_size, manual=manual)


def reorder(
    store: MetadataStoreProtocol,
    host: Union[Document, str],
    new_order: Iterable[Union[Document, str]],
    order_key: str,
) -> bool:
    """
    Persist a new pinned order to the host's frontmatter.

    An empty order removes the key. Concurrent writers are not coordinated;
    the last write wins.

    Returns:
        True if the host was written, False on I/O failure
    """
    host_path = host.path if isinstance(host, Document) else normalize_path(host)
    ids: list[str] = []
    for item in new_order:
        path = item.path if isinstance(item, Document) else normalize_path(str(item))
        if path and path not in ids:
            ids.append(path)
    key = priority_key(order_key)

    def apply(metadata: dict[str, Any]) -> None:
        if ids:
            metadata[key] = ids
        else:
            metadata.pop(key, None)

    try:
        store.mutate_metadata(host_path, apply)
    except (OSError, ValueError) as e:
        logger.error("Failed to save %s order on %s: %s", key, host_path, e)
        return False
    logger.info("Saved %s order on %s (%d item(s))", key, host_path, len(ids))
    return True
