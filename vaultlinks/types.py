"""
Data types for vault documents and link references.
"""

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Optional


# Default file extension for vault documents
DEFAULT_EXTENSION = ".md"

# Frontmatter keys that declare a document's entity type, in precedence order.
# Migrated vaults use mondoType; older notes still carry a plain type.
TYPE_KEYS = ("mondoType", "type")

# Suffix for the frontmatter key that stores a manual display order
PRIORITY_SUFFIX = "Priority"

UNTITLED = "Untitled"


def strip_extension(path: str, extension: str = DEFAULT_EXTENSION) -> str:
    """Remove a trailing extension (case-insensitive) from a path or link text."""
    if extension and path.lower().endswith(extension.lower()):
        return path[: -len(extension)]
    return path


def normalize_path(path: str) -> str:
    """Normalize a vault-relative path to POSIX form without leading './' or '/'."""
    value = str(path).strip().replace("\\", "/")
    while value.startswith("./"):
        value = value[2:]
    return value.lstrip("/")


def get_type(metadata: dict[str, Any]) -> str:
    """Declared entity type from frontmatter, lower-cased. Empty if missing.

    ``mondoType`` wins over ``type`` whenever it is present.
    """
    raw = None
    for key in TYPE_KEYS:
        raw = metadata.get(key)
        if raw is not None:
            break
    if raw is None or isinstance(raw, (list, dict)):
        return ""
    return str(raw).strip().lower()


def as_list(value: Any) -> list[Any]:
    """Normalize a scalar-or-list frontmatter value into a list.

    None and empty strings become an empty list; tuples are treated
    like lists.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str) and not value.strip():
        return []
    return [value]


@dataclass(frozen=True)
class Document:
    """
    A single vault document as seen by the relationship engine.

    This is a read-only snapshot of the document's frontmatter at the time
    the index scanned it. Identity is the vault-relative path; two snapshots
    of the same file compare equal even if their metadata differs.

    Attributes:
        path: Vault-relative POSIX path including extension (``People/Alice.md``)
        type: Declared entity type (lower-case), empty for untyped files
        metadata: Frontmatter mapping, in file order
        mtime: Modification time reported by the store (0.0 if unknown)
    """
    path: str
    type: str = field(default="", compare=False)
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    mtime: float = field(default=0.0, compare=False, repr=False)

    @classmethod
    def from_metadata(cls, path: str, metadata: Optional[dict[str, Any]], mtime: float = 0.0) -> "Document":
        meta = dict(metadata or {})
        return cls(path=normalize_path(path), type=get_type(meta), metadata=meta, mtime=mtime)

    @property
    def stem(self) -> str:
        """File name without folder or extension."""
        return PurePosixPath(self.path).stem

    @property
    def folder(self) -> str:
        """Containing folder ('' for the vault root)."""
        parent = str(PurePosixPath(self.path).parent)
        return "" if parent == "." else parent

    @property
    def display_name(self) -> str:
        """Human-friendly name: ``show``, then ``name``, then the file stem."""
        for key in ("show", "name"):
            value = self.metadata.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return self.stem or UNTITLED

    @property
    def date(self) -> str:
        """First non-empty ``date`` value as a string ('' when absent)."""
        for value in as_list(self.metadata.get("date")):
            text = str(value).strip()
            if text:
                return text
        return ""

    def get(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    def __str__(self) -> str:
        return f"{self.path} ({self.type or 'untyped'})"


@dataclass(frozen=True)
class LinkReference:
    """
    A parsed link value from a frontmatter property.

    ``[[Companies/Acme|ACME Corp]]`` parses to target ``Companies/Acme`` and
    alias ``ACME Corp``; ``[[Acme#History]]`` to target ``Acme`` and anchor
    ``History``. Bare strings are treated as link text.
    """
    raw: str
    target: str
    alias: Optional[str] = None
    anchor: Optional[str] = None


@dataclass(frozen=True)
class ResolvedLink:
    """Result of resolving a LinkReference. ``document`` is None if unresolved."""
    reference: LinkReference
    document: Optional[Document] = None

    @property
    def resolved(self) -> bool:
        return self.document is not None

    @property
    def path(self) -> Optional[str]:
        return self.document.path if self.document is not None else None

    @property
    def display(self) -> str:
        """Text to show for this link, falling back to the raw target text."""
        if self.reference.alias:
            return self.reference.alias
        if self.document is not None:
            return self.document.display_name
        return self.reference.target or self.reference.raw


def priority_key(order_key: str) -> str:
    """Frontmatter key holding the explicit order for a relation."""
    return f"{order_key}{PRIORITY_SUFFIX}"
