"""
Protocol definitions for the collaborators of the relationship engine.

The engine never scans storage directly. It consumes:
- DocumentIndexProtocol: typed document listing, path lookup, link lookup
  and change notifications (implemented by DocumentIndex)
- MetadataStoreProtocol: frontmatter read and read-modify-write
  (implemented by VaultStore)
"""

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from .types import Document


# Callback invoked by the index after its snapshot changed.
# Receives an IndexChange (see index.py); return value is ignored.
ChangeListener = Callable[[Any], None]

# Mutator for read-modify-write: receives the frontmatter dict and edits it in place.
MetadataMutator = Callable[[dict[str, Any]], None]


@runtime_checkable
class DocumentIndexProtocol(Protocol):
    """
    Read-only view of all typed documents in a vault.

    Implemented by:
    - DocumentIndex (frontmatter cache over a VaultStore)
    """

    def list_by_type(self, type: str) -> list[Document]: ...

    def get_by_path(self, path: str) -> Optional[Document]: ...

    def resolve_link(self, text: str, from_path: str) -> Optional[Document]: ...

    def types(self) -> list[str]: ...

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]: ...


@runtime_checkable
class MetadataStoreProtocol(Protocol):
    """
    Frontmatter storage for vault documents.

    ``mutate_metadata`` is an atomic read-modify-write of a single document.
    No cross-writer locking is implied: the last write wins.
    """

    def read_metadata(self, path: str) -> dict[str, Any]: ...

    def mutate_metadata(self, path: str, fn: MetadataMutator) -> None: ...
