"""
Document store over a directory of Markdown files.

Each document is a file with an optional YAML frontmatter block:

    ---
    type: person
    company: "[[Acme]]"
    ---
    Body text...

The store is the source of truth for:
- Document identity (vault-relative path)
- Frontmatter metadata (read and read-modify-write)
- Modification times (used by the index for change detection)

The store does no caching. DocumentIndex keeps the in-memory snapshot.
"""

import fnmatch
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from .protocol import MetadataMutator
from .types import DEFAULT_EXTENSION, Document, normalize_path

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"

# Folders skipped by default when scanning a vault
DEFAULT_IGNORE = (".vaultlinks", ".obsidian", ".trash", ".git")


def _find_block(text: str) -> Optional[tuple[str, str]]:
    """(yaml block, body) when the text opens with a closed ``---`` block."""
    if not text.startswith(FRONTMATTER_DELIMITER):
        return None
    lines = text.split("\n")
    if lines[0].strip() != FRONTMATTER_DELIMITER:
        return None
    for i in range(1, len(lines)):
        if lines[i].strip() == FRONTMATTER_DELIMITER:
            return "\n".join(lines[1:i]), "\n".join(lines[i + 1:])
    # Opening delimiter without a closing one: not frontmatter
    return None


def split_frontmatter(text: str, *, strict: bool = False) -> tuple[dict[str, Any], str]:
    """
    Split a Markdown document into (frontmatter, body).

    Frontmatter must start on the first line with ``---`` and end with a
    line containing only ``---``. Invalid YAML or a non-mapping block is
    treated as empty metadata; the body is returned unchanged.

    Args:
        text: Full document text
        strict: Raise instead of treating an unusable block as empty

    Raises:
        ValueError: In strict mode, if the block is not a YAML mapping
    """
    found = _find_block(text)
    if found is None:
        return {}, text
    block, body = found
    try:
        data = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as e:
        if strict:
            raise ValueError(f"Invalid frontmatter YAML: {e}") from e
        logger.warning("Invalid frontmatter YAML: %s", e)
        return {}, body
    if data is None:
        data = {}  # Comments only
    if not isinstance(data, dict):
        if strict:
            raise ValueError(f"Frontmatter is a {type(data).__name__}, not a mapping")
        return {}, body
    return data, body


def join_frontmatter(metadata: dict[str, Any], body: str) -> str:
    """Render frontmatter + body. Empty metadata omits the block entirely."""
    if not metadata:
        return body
    block = yaml.safe_dump(
        metadata,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{FRONTMATTER_DELIMITER}\n{block}{FRONTMATTER_DELIMITER}\n{body}"


@dataclass
class DocumentRecord:
    """A scanned file: path, metadata and modification time."""
    path: str
    metadata: dict[str, Any]
    mtime: float

    def to_document(self) -> Document:
        return Document.from_metadata(self.path, self.metadata, self.mtime)


class VaultStore:
    """
    File-backed store for vault documents.

    Paths given to and returned by the store are vault-relative POSIX paths
    (``People/Alice.md``). Writes replace the file atomically; concurrent
    writers to the same document are not coordinated (last write wins).
    """

    def __init__(
        self,
        root: Path,
        *,
        extension: str = DEFAULT_EXTENSION,
        ignore: Optional[tuple[str, ...] | list[str]] = None,
    ):
        """
        Args:
            root: Vault directory
            extension: Document file extension (default ``.md``)
            ignore: Folder names or glob patterns skipped while scanning
        """
        self._root = Path(root)
        self._extension = extension
        self._ignore = tuple(ignore) if ignore is not None else DEFAULT_IGNORE

    @property
    def root(self) -> Path:
        return self._root

    @property
    def extension(self) -> str:
        return self._extension

    def _abs(self, path: str) -> Path:
        """Absolute filesystem path for a vault-relative path."""
        rel = normalize_path(path)
        full = (self._root / rel).resolve()
        root = self._root.resolve()
        if full != root and root not in full.parents:
            raise ValueError(f"Path escapes the vault: {path!r}")
        return full

    def _is_ignored(self, rel: str) -> bool:
        parts = rel.split("/")
        for pattern in self._ignore:
            if any(fnmatch.fnmatch(part, pattern) for part in parts[:-1]):
                return True
            if fnmatch.fnmatch(rel, pattern):
                return True
        return False

    def is_document_path(self, rel: str) -> bool:
        """Whether a vault-relative path names a document the store would list."""
        rel = normalize_path(rel)
        if not rel or not rel.lower().endswith(self._extension.lower()):
            return False
        return not self._is_ignored(rel)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def list_paths(self) -> list[str]:
        """All document paths in the vault, sorted."""
        if not self._root.exists():
            return []
        paths = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            rel_dir = Path(dirpath).relative_to(self._root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir
            # Prune ignored folders in place so os.walk skips them
            dirnames[:] = sorted(
                d for d in dirnames
                if not self._is_ignored(f"{rel_dir}/{d}/x" if rel_dir else f"{d}/x")
            )
            for name in filenames:
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if self.is_document_path(rel):
                    paths.append(rel)
        return sorted(paths)

    def stat_mtimes(self) -> dict[str, float]:
        """Map of path → mtime for every document (cheap change detection)."""
        mtimes: dict[str, float] = {}
        for rel in self.list_paths():
            try:
                mtimes[rel] = self._abs(rel).stat().st_mtime
            except OSError:
                continue  # Removed between listing and stat
        return mtimes

    def exists(self, path: str) -> bool:
        try:
            return self._abs(path).is_file()
        except ValueError:
            return False

    def load(self, path: str) -> Optional[DocumentRecord]:
        """
        Read a document's frontmatter.

        Returns:
            DocumentRecord, or None if the file does not exist
        """
        try:
            full = self._abs(path)
            text = full.read_text(encoding="utf-8")
            mtime = full.stat().st_mtime
        except (OSError, ValueError, UnicodeDecodeError) as e:
            logger.debug("Cannot read %s: %s", path, e)
            return None
        metadata, _ = split_frontmatter(text)
        return DocumentRecord(path=normalize_path(path), metadata=metadata, mtime=mtime)

    def scan(self) -> Iterator[DocumentRecord]:
        """Yield a record for every readable document in the vault."""
        for rel in self.list_paths():
            record = self.load(rel)
            if record is not None:
                yield record

    def read_metadata(self, path: str) -> dict[str, Any]:
        """Frontmatter of a document (empty dict if missing or unreadable)."""
        record = self.load(path)
        return dict(record.metadata) if record else {}

    def read_body(self, path: str) -> str:
        full = self._abs(path)
        _, body = split_frontmatter(full.read_text(encoding="utf-8"))
        return body

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def _write_atomic(self, full: Path, text: str) -> None:
        """
        Write via temp file + rename so readers never see a partial file.

        An existing file keeps its permission bits; new files get the
        process default (umask) rather than mkstemp's 0600.
        """
        full.parent.mkdir(parents=True, exist_ok=True)
        try:
            mode = stat.S_IMODE(full.stat().st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            mode = 0o666 & ~umask
        fd, tmp = tempfile.mkstemp(dir=str(full.parent), prefix=".vaultlinks-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.chmod(tmp, mode)
            os.replace(tmp, full)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def create(self, path: str, metadata: dict[str, Any], body: str = "") -> DocumentRecord:
        """
        Write a new document (or overwrite an existing one).

        Args:
            path: Vault-relative path; the extension is added if missing
            metadata: Frontmatter mapping
            body: Markdown body

        Returns:
            The stored DocumentRecord
        """
        rel = normalize_path(path)
        if not rel.lower().endswith(self._extension.lower()):
            rel += self._extension
        full = self._abs(rel)
        self._write_atomic(full, join_frontmatter(dict(metadata), body))
        return DocumentRecord(path=rel, metadata=dict(metadata), mtime=full.stat().st_mtime)

    def mutate_metadata(self, path: str, fn: MetadataMutator) -> None:
        """
        Read-modify-write a document's frontmatter.

        ``fn`` receives the current frontmatter dict and edits it in place
        (add, remove, replace keys). The body is preserved.

        Raises:
            FileNotFoundError: If the document does not exist
            ValueError: If the existing frontmatter is not a YAML mapping
                (the file is left untouched)
        """
        full = self._abs(path)
        text = full.read_text(encoding="utf-8")
        metadata, body = split_frontmatter(text, strict=True)
        fn(metadata)
        self._write_atomic(full, join_frontmatter(metadata, body))
        logger.debug("Updated frontmatter of %s", path)

    def delete(self, path: str) -> bool:
        """Delete a document. Returns True if a file was removed."""
        try:
            self._abs(path).unlink()
            return True
        except FileNotFoundError:
            return False
