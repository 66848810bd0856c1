"""
Vault Links

Relationship queries for a Markdown knowledge base whose documents link to
each other through YAML frontmatter properties.

Quick Start:
    from vaultlinks import Vault

    vault = Vault("~/notes")
    employees = vault.related("Companies/Acme.md", "employees")
    for doc in employees.visible:
        print(doc.display_name)

CLI Usage:
    vaultlinks related Companies/Acme.md employees
    vaultlinks relations People/Alice.md
    vaultlinks reorder Companies/Acme.md employees People/Bob.md People/Alice.md

Environment Variables:
    VAULTLINKS_VAULT_PATH   - Default vault directory
    VAULTLINKS_VERBOSE      - Set to 1 for debug logging in the CLI

Configuration and logs live in .vaultlinks/ inside the vault.
"""

from .api import Vault
from .errors import UnsupportedRelationError, VaultLinksError
from .index import DocumentIndex, IndexChange
from .document_store import VaultStore
from .links import LinkResolver, normalize_link_text, parse_link
from .matching import PropertyMatcher
from .ordering import OrderedResultSet
from .query import (
    Dedupe, Filter, GraphQueryEngine, In, NotHost, NotIn, Out,
    QueryAlternative, QuerySpec, RelationSpec, SortSpec,
    parse_query_spec, parse_relation_spec,
)
from .registry import RelationRegistry
from .types import Document, LinkReference, ResolvedLink

__version__ = "0.1.0"
__all__ = [
    "Vault",
    "VaultStore",
    "DocumentIndex",
    "IndexChange",
    "Document",
    "LinkReference",
    "ResolvedLink",
    "LinkResolver",
    "PropertyMatcher",
    "GraphQueryEngine",
    "QuerySpec",
    "QueryAlternative",
    "RelationSpec",
    "SortSpec",
    "Out",
    "In",
    "NotIn",
    "Filter",
    "Dedupe",
    "NotHost",
    "OrderedResultSet",
    "RelationRegistry",
    "VaultLinksError",
    "UnsupportedRelationError",
    "normalize_link_text",
    "parse_link",
    "parse_query_spec",
    "parse_relation_spec",
]
