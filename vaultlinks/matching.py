"""
Property relationship matching.

A candidate document references a target when one of the named frontmatter
properties holds a link that resolves to the target. Property names are
synonyms (``team``, ``teams``): every name is consulted and any hit counts.

When a link cannot be resolved through the index, the normalized raw text is
compared with the target's path (extension stripped) and with its file stem.
This lossy comparison keeps hand-written references like ``company: Acme``
working when the exact note name differs in case or punctuation.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from .links import LinkResolver, normalize_link_text
from .types import Document, as_list, strip_extension

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelationshipEdge:
    """
    A derived (source, property, target) triple.

    ``mode`` is ``single`` for scalar properties and ``list`` for sequences.
    Edges are computed from metadata on demand and never stored.
    """
    source: Document
    property: str
    target: str
    mode: str = "single"
    document: Optional[Document] = field(default=None, compare=False)


@dataclass
class _LinkKeys:
    """Everything a candidate's properties point at, in comparable form."""
    paths: set[str] = field(default_factory=set)
    texts: set[str] = field(default_factory=set)


class PropertyMatcher:
    """
    Decides whether documents reference each other through named properties.

    Stateless apart from the resolver; safe to share between concurrent
    queries.
    """

    def __init__(self, resolver: LinkResolver):
        self._resolver = resolver

    @property
    def resolver(self) -> LinkResolver:
        return self._resolver

    def edges(self, source: Document, properties: Sequence[str]) -> list[RelationshipEdge]:
        """All edges leaving ``source`` through the given properties, in value order."""
        result = []
        for prop in properties:
            raw = source.metadata.get(prop)
            mode = "list" if isinstance(raw, (list, tuple)) else "single"
            for value in as_list(raw):
                link = self._resolver.resolve(value, source.path)
                if not link.reference.target:
                    continue
                result.append(RelationshipEdge(
                    source=source,
                    property=prop,
                    target=link.reference.target,
                    mode=mode,
                    document=link.document,
                ))
        return result

    def linked_documents(self, source: Document, properties: Sequence[str]) -> list[Document]:
        """
        Resolved targets of ``source``'s links, in value order.

        Duplicates are kept; unresolved links are dropped.
        """
        return [
            edge.document for edge in self.edges(source, properties)
            if edge.document is not None
        ]

    def _keys(self, candidate: Document, properties: Sequence[str]) -> _LinkKeys:
        keys = _LinkKeys()
        ext = self._resolver.extension
        for prop in properties:
            for value in as_list(candidate.metadata.get(prop)):
                text = normalize_link_text(value, ext)
                if not text:
                    continue
                keys.texts.add(text)
                link = self._resolver.resolve(value, candidate.path)
                if link.document is not None:
                    keys.paths.add(link.document.path)
        return keys

    def _hit(self, keys: _LinkKeys, target: Document) -> bool:
        if target.path in keys.paths:
            return True
        bare = strip_extension(target.path, self._resolver.extension)
        return bare in keys.texts or target.stem in keys.texts

    def matches(self, candidate: Document, properties: Sequence[str], target: Document) -> bool:
        """
        True if any of ``properties`` on ``candidate`` references ``target``.

        Args:
            candidate: Document whose frontmatter is inspected
            properties: Property names, all consulted (OR)
            target: Document the links must point to
        """
        if not properties:
            return False
        return self._hit(self._keys(candidate, properties), target)

    def matches_any(
        self,
        candidate: Document,
        properties: Sequence[str],
        targets: Iterable[Document],
    ) -> bool:
        """True if ``candidate`` references at least one of ``targets``."""
        if not properties:
            return False
        keys = self._keys(candidate, properties)
        if not keys.texts:
            return False
        return any(self._hit(keys, target) for target in targets)
