"""
Filter expressions for relation results.

A relation may carry a ``filter`` that is applied to every candidate after the
query alternatives are combined:

    {"status": {"ne": "done"}}                       # predicate map (ANDed)
    {"participants.length": {"lte": 2}}              # list length
    {"participants": {"contains": "@this"}}          # links to the host
    {"all": [...]}, {"any": [...]}, {"not": {...}}   # logic

Comparators: exists, eq, ne, gt, gte, lt, lte, contains, notContains, in, nin.
Numeric comparators apply to numbers only; list values are compared by their
length. Expressions of an unsupported shape pass.
"""

import datetime
import logging
from typing import Any, Iterable

from .links import LinkResolver, parse_link
from .types import Document

logger = logging.getLogger(__name__)

HOST_TOKEN = "@this"
LENGTH_SUFFIX = ".length"


def _normalize_scalar(value: Any) -> str:
    """Comparable text of a scalar: link target for ``[[...]]`` values."""
    if value is None:
        return ""
    text = str(value).strip()
    if text.startswith("[[") and text.endswith("]]"):
        return parse_link(text).target or text[2:-2].strip()
    return text


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals(a: Any, b: Any) -> bool:
    """Strict equality: booleans never equal numbers."""
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _plain(value: Any) -> Any:
    """YAML dates come back as date objects; compare them as ISO strings."""
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return value


class FilterEvaluator:
    """Evaluates filter expressions against documents, relative to a host."""

    def __init__(self, resolver: LinkResolver):
        self._resolver = resolver

    def apply(self, documents: Iterable[Document], expr: Any, host: Document) -> list[Document]:
        """Keep the documents that satisfy ``expr``, preserving order."""
        if not expr:
            return list(documents)
        return [doc for doc in documents if self.evaluate(doc, expr, host)]

    def evaluate(self, doc: Document, expr: Any, host: Document) -> bool:
        if not expr or not isinstance(expr, dict):
            return True
        if isinstance(expr.get("all"), list):
            return all(self.evaluate(doc, e, host) for e in expr["all"])
        if isinstance(expr.get("any"), list):
            return any(self.evaluate(doc, e, host) for e in expr["any"])
        if expr.get("not") is not None:
            return not self.evaluate(doc, expr["not"], host)
        return all(
            self._compare(doc, str(prop), cmp if isinstance(cmp, dict) else {}, host)
            for prop, cmp in expr.items()
        )

    def _value(self, doc: Document, prop: str) -> Any:
        if prop.endswith(LENGTH_SUFFIX):
            raw = doc.metadata.get(prop[: -len(LENGTH_SUFFIX)])
            if isinstance(raw, (list, tuple)):
                return len(raw)
            return 0 if raw is None else 1
        return _plain(doc.metadata.get(prop))

    def _links_to(self, doc: Document, value: Any, host: Document) -> bool:
        values = value if isinstance(value, (list, tuple)) else [value]
        return any(
            self._resolver.resolve(v, doc.path).path == host.path
            for v in values
        )

    def _compare(self, doc: Document, prop: str, cmp: dict[str, Any], host: Document) -> bool:
        value = self._value(doc, prop)
        has = value is not None and not (isinstance(value, (list, tuple)) and not value)
        if "exists" in cmp and cmp["exists"] is not None:
            return has if cmp["exists"] else not has

        if cmp.get("contains") == HOST_TOKEN:
            return self._links_to(doc, value, host)
        if cmp.get("notContains") == HOST_TOKEN:
            return not self._links_to(doc, value, host)

        if cmp.get("contains") is not None:
            needle = _normalize_scalar(cmp["contains"])
            if isinstance(value, (list, tuple)):
                return needle in [_normalize_scalar(v) for v in value]
            if isinstance(value, str):
                return _normalize_scalar(value) == needle
            return False
        if cmp.get("notContains") is not None:
            needle = _normalize_scalar(cmp["notContains"])
            if isinstance(value, (list, tuple)):
                return needle not in [_normalize_scalar(v) for v in value]
            if isinstance(value, str):
                return _normalize_scalar(value) != needle
            return True

        if isinstance(value, (list, tuple)):
            return self._scalar(len(value), cmp)
        if isinstance(value, (str, int, float, bool)):
            return self._scalar(value, cmp)
        return True

    @staticmethod
    def _scalar(value: Any, cmp: dict[str, Any]) -> bool:
        if cmp.get("eq") is not None:
            return _equals(value, cmp["eq"])
        if cmp.get("ne") is not None:
            return not _equals(value, cmp["ne"])
        if _is_number(value):
            for op, test in (
                ("gt", lambda a, b: a > b),
                ("gte", lambda a, b: a >= b),
                ("lt", lambda a, b: a < b),
                ("lte", lambda a, b: a <= b),
            ):
                bound = cmp.get(op)
                if bound is None:
                    continue
                if not _is_number(bound):
                    logger.warning("Ignoring non-numeric %s bound: %r", op, bound)
                    continue
                if not test(value, bound):
                    return False
        if isinstance(cmp.get("in"), list):
            return any(_equals(value, v) for v in cmp["in"])
        if isinstance(cmp.get("nin"), list):
            return not any(_equals(value, v) for v in cmp["nin"])
        return True
