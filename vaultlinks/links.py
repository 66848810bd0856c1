"""
Link reference parsing and resolution.

Frontmatter properties refer to other documents with link strings:

    company: "[[Companies/Acme|ACME Corp]]"
    team: ["[[Platform]]", "[[Infra#Oncall]]"]
    project: "[Website](Projects/Website.md)"
    reportsTo: Alice

Resolution never raises: anything that cannot be resolved comes back as an
unresolved ResolvedLink carrying the raw text for display.
"""

import logging
import re
from typing import Any
from urllib.parse import unquote

from .protocol import DocumentIndexProtocol
from .types import DEFAULT_EXTENSION, LinkReference, ResolvedLink, strip_extension

logger = logging.getLogger(__name__)

ALIAS_SEPARATOR = "|"
ANCHOR_SEPARATOR = "#"

# [[target|alias]] with an optional embed marker
_WIKI_LINK = re.compile(r'^!?\[\[(.*)\]\]$', re.DOTALL)
# [alias](target)
_MARKDOWN_LINK = re.compile(r'^\[([^\]]*)\]\((.*)\)$', re.DOTALL)
# Anything with a URI scheme is an external link, never a vault document
_URI_SCHEME = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*://')


def _scalar_text(raw: Any) -> str:
    """String form of a frontmatter scalar; containers and None give ''."""
    if raw is None or isinstance(raw, (dict, list, tuple, set)):
        return ""
    return str(raw).strip()


def parse_link(raw: Any) -> LinkReference:
    """
    Parse a raw frontmatter value into a LinkReference.

    The alias is split off at the first ``|`` and the anchor at the first
    ``#``; the anchor is kept for display only and plays no part in
    resolution.
    """
    text = _scalar_text(raw)
    alias = ""

    wiki = _WIKI_LINK.match(text)
    markdown = _MARKDOWN_LINK.match(text) if wiki is None else None
    if wiki is not None:
        target, _, alias = wiki.group(1).partition(ALIAS_SEPARATOR)
    elif markdown is not None:
        alias = markdown.group(1)
        target = markdown.group(2).strip()
        if target.startswith("<") and target.endswith(">"):
            target = target[1:-1]
        target = unquote(target)
    else:
        target, _, alias = text.partition(ALIAS_SEPARATOR)

    target, _, anchor = target.partition(ANCHOR_SEPARATOR)
    return LinkReference(
        raw=text,
        target=target.strip(),
        alias=alias.strip() or None,
        anchor=anchor.strip() or None,
    )


def normalize_link_text(raw: Any, extension: str = DEFAULT_EXTENSION) -> str:
    """Lossy comparable form of a link: no brackets, alias, anchor or extension."""
    return strip_extension(parse_link(raw).target, extension).strip()


def is_external(target: str) -> bool:
    return bool(_URI_SCHEME.match(target))


class LinkResolver:
    """
    Resolves link values to indexed documents.

    Lookup order for the link target:
    1. Literal vault path
    2. Path plus the default extension
    3. The index's link lookup relative to the source document
    """

    def __init__(self, index: DocumentIndexProtocol, *, extension: str = DEFAULT_EXTENSION):
        self._index = index
        self._extension = extension

    @property
    def extension(self) -> str:
        return self._extension

    def resolve(self, raw: Any, from_path: str = "") -> ResolvedLink:
        """
        Resolve a raw value relative to ``from_path``.

        Args:
            raw: Frontmatter value (string; other types are tolerated)
            from_path: Path of the document the value was read from

        Returns:
            ResolvedLink; ``document`` is None when unresolved
        """
        ref = parse_link(raw)
        if not ref.target or is_external(ref.target):
            return ResolvedLink(ref)

        target = ref.target
        doc = self._index.get_by_path(target)
        if doc is None and not target.lower().endswith(self._extension.lower()):
            doc = self._index.get_by_path(target + self._extension)
        if doc is None:
            doc = self._index.resolve_link(strip_extension(target, self._extension), from_path)
        if doc is None:
            logger.debug("Unresolved link %r from %s", ref.raw, from_path or "<root>")
        return ResolvedLink(ref, doc)

    def resolve_all(self, values: Any, from_path: str = "") -> list[ResolvedLink]:
        """Resolve a scalar-or-list value. Empty entries are skipped."""
        if isinstance(values, (list, tuple)):
            items = list(values)
        elif values is None:
            items = []
        else:
            items = [values]
        resolved = []
        for value in items:
            link = self.resolve(value, from_path)
            if link.reference.target:
                resolved.append(link)
        return resolved
