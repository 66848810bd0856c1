"""
Graph query engine and relation spec parsing.

A relation spec describes how to find the documents related to a host:

    {
        "targetType": "project",
        "find": {
            "query": [
                {"steps": [{"in": {"property": "company", "type": "project"}}]},
                {"steps": [
                    {"in": {"property": "company", "type": "team"}},
                    {"in": {"property": ["team", "teams"], "type": "project"}},
                    {"unique": true}
                ]}
            ],
            "combine": "union"
        }
    }

Each query alternative threads a working list, seeded with the host, through
its steps. Alternatives are combined with union, intersect or subtract.

The flat shorthand ``{"targetType": "person", "properties": ["company"]}`` is
a single implicit ``In(["company"], ["person"])`` step.

Parsing is best-effort: malformed steps and alternatives are skipped with a
warning and never raise.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Collection, Optional, Sequence, Union

from .entities import ENTITY_TYPES
from .filters import FilterEvaluator
from .matching import PropertyMatcher
from .protocol import DocumentIndexProtocol
from .types import Document

logger = logging.getLogger(__name__)

UNION = "union"
INTERSECT = "intersect"
SUBTRACT = "subtract"
COMBINE_STRATEGIES = (UNION, INTERSECT, SUBTRACT)

MANUAL = "manual"
COLUMN = "column"
SORT_COLUMNS = ("show", "date")
SORT_DIRECTIONS = ("asc", "desc")

# Relation spec keys understood by the parser; anything else lands in extras
KNOWN_KEYS = frozenset({
    "key", "type", "desc", "config",
    "targetType", "targetKey", "target", "properties", "prop",
    "find", "filter", "sort", "pageSize", "title", "visibility",
    "createEntity",
})

# Extra match properties used when a relation names none
PROPERTY_SYNONYMS = {
    "person": ("people", "participants"),
    "team": ("teams",),
    "company": ("companies",),
}


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Out:
    """Follow links under ``properties`` from each working document."""
    properties: tuple[str, ...]
    types: tuple[str, ...] = ()


@dataclass(frozen=True)
class In:
    """Documents of ``types`` whose ``properties`` link to a working document."""
    properties: tuple[str, ...]
    types: tuple[str, ...] = ()


@dataclass(frozen=True)
class NotIn:
    """Remove the matching ``In`` result from the working list."""
    properties: tuple[str, ...]
    types: tuple[str, ...] = ()


@dataclass(frozen=True)
class Filter:
    """Keep working documents of the given types."""
    types: tuple[str, ...]


@dataclass(frozen=True)
class Dedupe:
    """Collapse duplicate documents; the first occurrence wins."""


@dataclass(frozen=True)
class NotHost:
    """Remove the host document."""


Step = Union[Out, In, NotIn, Filter, Dedupe, NotHost]


@dataclass(frozen=True)
class QueryAlternative:
    steps: tuple[Step, ...]
    description: Optional[str] = None


@dataclass(frozen=True)
class QuerySpec:
    alternatives: tuple[QueryAlternative, ...] = ()
    combine: str = UNION


@dataclass(frozen=True)
class SortSpec:
    """
    How results are ordered when no explicit order covers them.

    ``manual`` relations are user-reorderable; their fallback order is by
    display name. ``column`` relations sort by ``show`` or ``date``.
    """
    strategy: str = COLUMN
    column: str = "date"
    direction: str = "desc"

    @property
    def manual(self) -> bool:
        return self.strategy == MANUAL


@dataclass(frozen=True)
class RelationSpec:
    """
    A parsed relation spec.

    Attributes:
        key: Relation key (``employees``); also names the persisted order
        target_type: Effective entity type listed by the relation
        query: Query alternatives to run from the host
        properties: Match properties of the shorthand form (empty for find)
        restrict_to_target: Drop results whose type differs from target_type
        filter: Filter expression applied after combination (or None)
        sort: Fallback ordering
        page_size: Items visible before "load more" (None shows everything)
        title: Display title
        visibility: ``always`` or ``notEmpty``
        extras: Keys the parser does not interpret
    """
    key: str
    target_type: str
    query: QuerySpec
    properties: tuple[str, ...] = ()
    restrict_to_target: bool = False
    filter: Optional[dict[str, Any]] = field(default=None, compare=False)
    sort: SortSpec = SortSpec()
    page_size: Optional[int] = None
    title: str = ""
    visibility: str = "always"
    description: Optional[str] = None
    extras: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def order_key(self) -> str:
        return self.key or self.target_type


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------

def _names(value: Any, *, lower: bool = False) -> tuple[str, ...]:
    """String-or-list of names as a tuple: trimmed, non-empty, first occurrence kept."""
    if isinstance(value, str):
        items = [value]
    elif isinstance(value, (list, tuple)):
        items = [v for v in value if isinstance(v, str)]
    else:
        return ()
    result: list[str] = []
    for item in items:
        name = item.strip().lower() if lower else item.strip()
        if name and name not in result:
            result.append(name)
    return tuple(result)


def default_match_properties(entity_type: str) -> tuple[str, ...]:
    """Properties that reference an entity type: its name plus known synonyms."""
    base = str(entity_type or "").strip().lower()
    if not base:
        return ()
    return (base,) + PROPERTY_SYNONYMS.get(base, ())


def parse_step(raw: Any) -> Optional[Step]:
    """
    Parse one wire-format step. Returns None (and logs) for malformed input.

    Wire shapes: ``{"out": {"property", "type"}}``, ``{"in": ...}``,
    ``{"notIn": ...}``, ``{"filter": {"type"}}``, ``{"unique": true}`` or
    ``{"dedupe": true}``, ``{"not": "host"}``.
    """
    if not isinstance(raw, dict):
        logger.warning("Skipping malformed step: %r", raw)
        return None

    for name, cls in (("out", Out), ("in", In), ("notIn", NotIn)):
        if name not in raw:
            continue
        body = raw[name]
        if not isinstance(body, dict):
            logger.warning("Skipping %s step without a body: %r", name, raw)
            return None
        props = _names(body.get("property", body.get("properties")))
        if not props:
            logger.warning("Skipping %s step without properties: %r", name, raw)
            return None
        return cls(props, _names(body.get("type", body.get("types")), lower=True))

    if "filter" in raw:
        body = raw["filter"]
        types = _names(body.get("type", body.get("types")), lower=True) if isinstance(body, dict) else ()
        if not types:
            logger.warning("Skipping filter step without types: %r", raw)
            return None
        return Filter(types)

    if raw.get("unique") or raw.get("dedupe"):
        return Dedupe()
    if raw.get("not") == "host":
        return NotHost()

    logger.warning("Skipping unknown step: %r", raw)
    return None


def parse_query_spec(raw: Any) -> QuerySpec:
    """Parse a ``find`` block. Invalid parts are dropped, never raised."""
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning("Ignoring malformed find block: %r", raw)
        return QuerySpec()

    combine = str(raw.get("combine") or UNION).strip().lower()
    if combine not in COMBINE_STRATEGIES:
        logger.warning("Unknown combine strategy %r, using union", raw.get("combine"))
        combine = UNION

    query = raw.get("query")
    if query is None:
        return QuerySpec(combine=combine)
    if not isinstance(query, list):
        logger.warning("Ignoring non-list find.query: %r", query)
        return QuerySpec(combine=combine)

    alternatives = []
    for i, item in enumerate(query):
        if not isinstance(item, dict) or not isinstance(item.get("steps"), list):
            logger.warning("Skipping malformed query alternative %d: %r", i, item)
            continue
        steps = tuple(s for s in (parse_step(s) for s in item["steps"]) if s is not None)
        if not steps:
            logger.warning("Skipping query alternative %d with no usable steps", i)
            continue
        description = item.get("description")
        alternatives.append(QueryAlternative(
            steps=steps,
            description=str(description) if description is not None else None,
        ))
    return QuerySpec(tuple(alternatives), combine)


def parse_sort(raw: Any) -> SortSpec:
    """Parse ``sort``; absent means newest first by date."""
    if raw is None:
        return SortSpec()
    if not isinstance(raw, dict):
        logger.warning("Ignoring malformed sort: %r", raw)
        return SortSpec()
    strategy = str(raw.get("strategy") or COLUMN).strip().lower()
    if strategy == MANUAL:
        return SortSpec(strategy=MANUAL, column="show", direction="asc")
    if strategy != COLUMN:
        logger.warning("Unknown sort strategy %r, sorting by date", raw.get("strategy"))
        return SortSpec()
    column = str(raw.get("column") or "date").strip().lower()
    if column not in SORT_COLUMNS:
        logger.warning("Unknown sort column %r, sorting by date", raw.get("column"))
        column = "date"
    direction = str(raw.get("direction") or "asc").strip().lower()
    if direction not in SORT_DIRECTIONS:
        direction = "asc"
    return SortSpec(strategy=COLUMN, column=column, direction=direction)


def _page_size(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 1:
        logger.warning("Ignoring invalid pageSize: %r", raw)
        return None
    return int(raw)


def parse_relation_spec(
    raw: Any,
    host_type: str,
    key: str = "",
    *,
    entity_types: Collection[str] = ENTITY_TYPES,
) -> RelationSpec:
    """
    Parse a wire-format relation spec for a host of ``host_type``.

    Accepts the flat form and the panel form ``{"key", "config": {...}}``.

    Effective target type: ``targetType``, else an entity-valued legacy
    ``target``, else the host type. Match properties for the shorthand:
    ``properties`` (or ``prop``), else ``targetKey``, else a property-valued
    legacy ``target``, else the host type and its synonyms.
    """
    host_type = str(host_type or "").strip().lower()
    if not isinstance(raw, dict):
        logger.warning("Relation %r is not a mapping: %r", key, raw)
        return RelationSpec(key=key, target_type=host_type, query=QuerySpec())

    outer: dict[str, Any] = {}
    cfg = raw
    if isinstance(raw.get("config"), dict):
        outer, cfg = raw, raw["config"]
    key = str(key or outer.get("key") or cfg.get("key") or "").strip()

    target_type = str(cfg.get("targetType") or "").strip().lower()
    target_key = str(cfg.get("targetKey") or "").strip()
    legacy = str(cfg.get("target") or "").strip()
    legacy_is_type = bool(legacy) and legacy.lower() in entity_types
    if not target_type:
        target_type = legacy.lower() if legacy_is_type else host_type

    properties = _names(cfg.get("properties", cfg.get("prop")))
    if not properties and target_key:
        properties = (target_key,)
    if not properties and legacy and not legacy_is_type:
        properties = (legacy,)

    if "find" in cfg:
        query = parse_query_spec(cfg.get("find"))
        restrict = False
        properties = ()
    else:
        properties = properties or default_match_properties(host_type)
        query = QuerySpec((QueryAlternative(
            steps=(In(properties, (target_type,) if target_type else ()),),
        ),))
        restrict = True

    filter_expr = cfg.get("filter")
    if filter_expr is not None and not isinstance(filter_expr, dict):
        logger.warning("Ignoring malformed filter on relation %r: %r", key, filter_expr)
        filter_expr = None

    extras = {k: v for k, v in cfg.items() if k not in KNOWN_KEYS}
    extras.update({k: v for k, v in outer.items() if k not in KNOWN_KEYS})
    description = outer.get("desc", cfg.get("desc"))

    return RelationSpec(
        key=key,
        target_type=target_type,
        query=query,
        properties=properties,
        restrict_to_target=restrict,
        filter=filter_expr or None,
        sort=parse_sort(cfg.get("sort")),
        page_size=_page_size(cfg.get("pageSize")),
        title=str(cfg.get("title") or key or target_type).strip(),
        visibility=str(cfg.get("visibility") or "always"),
        description=str(description) if description is not None else None,
        extras=extras,
    )


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------

def unique(documents: Sequence[Document]) -> list[Document]:
    """Drop repeated paths; the first occurrence wins."""
    seen: set[str] = set()
    result = []
    for doc in documents:
        if doc.path not in seen:
            seen.add(doc.path)
            result.append(doc)
    return result


def combine_results(results: Sequence[Sequence[Document]], strategy: str = UNION) -> list[Document]:
    """
    Combine alternative results.

    A single result is returned as-is (duplicates kept). Several results are
    combined as ordered sets: union in first-seen order, intersection in the
    first result's order, subtraction as first minus the union of the rest.
    """
    if not results:
        return []
    if len(results) == 1:
        return list(results[0])
    if strategy == INTERSECT:
        others = [{d.path for d in r} for r in results[1:]]
        return [d for d in unique(results[0]) if all(d.path in o for o in others)]
    if strategy == SUBTRACT:
        removed = {d.path for r in results[1:] for d in r}
        return [d for d in unique(results[0]) if d.path not in removed]
    return unique([d for r in results for d in r])


class _Traversal:
    """State of a single run: the host and the per-call type listings."""

    def __init__(self, index: DocumentIndexProtocol, matcher: PropertyMatcher, host: Document):
        self.index = index
        self.matcher = matcher
        self.host = host
        self._by_type: dict[str, list[Document]] = {}

    def documents_of(self, types: Sequence[str]) -> list[Document]:
        """Candidates of the given types (all indexed types if none), each once."""
        scan = types or self.index.types()
        result: list[Document] = []
        seen: set[str] = set()
        for t in scan:
            if t not in self._by_type:
                self._by_type[t] = self.index.list_by_type(t)
            for doc in self._by_type[t]:
                if doc.path not in seen:
                    seen.add(doc.path)
                    result.append(doc)
        return result

    def backlinks(self, working: list[Document], properties: Sequence[str], types: Sequence[str]) -> list[Document]:
        if not working:
            return []
        return [
            doc for doc in self.documents_of(types)
            if doc.path != self.host.path
            and self.matcher.matches_any(doc, properties, working)
        ]

    def apply(self, step: Step, working: list[Document]) -> list[Document]:
        if isinstance(step, Out):
            result = []
            for node in working:
                for doc in self.matcher.linked_documents(node, step.properties):
                    if step.types and doc.type not in step.types:
                        continue
                    result.append(doc)
            return result
        if isinstance(step, In):
            return self.backlinks(working, step.properties, step.types)
        if isinstance(step, NotIn):
            excluded = {d.path for d in self.backlinks(working, step.properties, step.types)}
            return [d for d in working if d.path not in excluded]
        if isinstance(step, Filter):
            return [d for d in working if d.type in step.types]
        if isinstance(step, Dedupe):
            return unique(working)
        if isinstance(step, NotHost):
            return [d for d in working if d.path != self.host.path]
        logger.warning("Ignoring unsupported step %r", step)
        return working

    def run(self, alternative: QueryAlternative) -> list[Document]:
        working = [self.host]
        for step in alternative.steps:
            working = self.apply(step, working)
        return working


class GraphQueryEngine:
    """
    Runs query specs from a host document against a document index.

    The engine holds no per-query state; concurrent runs for different hosts
    share nothing mutable.
    """

    def __init__(self, index: DocumentIndexProtocol, matcher: PropertyMatcher):
        self._index = index
        self._matcher = matcher
        self._filters = FilterEvaluator(matcher.resolver)

    @property
    def index(self) -> DocumentIndexProtocol:
        return self._index

    def _current(self, host: Union[Document, str]) -> Optional[Document]:
        path = host.path if isinstance(host, Document) else str(host)
        return self._index.get_by_path(path)

    def run(self, host: Union[Document, str], spec: QuerySpec) -> list[Document]:
        """
        Evaluate every alternative from ``host`` and combine the results.

        Returns:
            Related documents; empty if the host is not indexed or the spec
            has no alternatives
        """
        current = self._current(host)
        if current is None:
            logger.debug("Host %s is not indexed", host)
            return []
        if not spec.alternatives:
            return []
        traversal = _Traversal(self._index, self._matcher, current)
        results = [traversal.run(alt) for alt in spec.alternatives]
        combined = combine_results(results, spec.combine)
        logger.debug(
            "Query from %s: %d alternative(s), %s -> %d document(s)",
            current.path, len(results), spec.combine, len(combined),
        )
        return combined

    def resolve(self, host: Union[Document, str], relation: RelationSpec) -> list[Document]:
        """
        Related documents for a relation: query, then filter expression, then
        (for the shorthand form) the target-type restriction.
        """
        current = self._current(host)
        if current is None:
            return []
        documents = self.run(current, relation.query)
        if relation.filter:
            documents = self._filters.apply(documents, relation.filter, current)
        if relation.restrict_to_target:
            documents = [d for d in documents if d.type == relation.target_type]
        return documents
