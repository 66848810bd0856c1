"""
Shared pytest fixtures for vaultlinks tests.

Tests build small synthetic vaults in tmp_path: Markdown files with YAML
frontmatter written through VaultStore, then indexed from disk.
"""

from typing import Any, Iterable

import pytest

from vaultlinks.document_store import VaultStore
from vaultlinks.index import DocumentIndex
from vaultlinks.links import LinkResolver
from vaultlinks.matching import PropertyMatcher
from vaultlinks.query import GraphQueryEngine
from vaultlinks.types import Document


class Graph:
    """Index plus engine over a store, built after the test wrote its files."""

    def __init__(self, store: VaultStore):
        self.store = store
        self.index = DocumentIndex(store)
        self.resolver = LinkResolver(self.index)
        self.matcher = PropertyMatcher(self.resolver)
        self.engine = GraphQueryEngine(self.index, self.matcher)

    def doc(self, path: str) -> Document:
        doc = self.index.get_by_path(path)
        assert doc is not None, f"{path} is not indexed"
        return doc


def paths(docs: Iterable[Document]) -> list[str]:
    return [d.path for d in docs]


@pytest.fixture
def vault_path(tmp_path):
    """Empty vault directory."""
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def store(vault_path):
    return VaultStore(vault_path)


@pytest.fixture
def write(store):
    """Write a document: write("People/Alice.md", {"type": "person"}, body="")."""
    def _write(path: str, metadata: dict[str, Any], body: str = ""):
        return store.create(path, metadata, body)
    return _write


@pytest.fixture
def graph(store):
    """Factory: call after writing files to index the vault."""
    return lambda: Graph(store)


@pytest.fixture
def acme(write):
    """
    Company Acme with people, teams and projects.

    People/P1 works at Acme, People/P2 at Acme and OtherCo (list value),
    People/P3 only at OtherCo. Teams Platform and Infra belong to Acme.
    Projects: Website (company Acme), Portal (team Platform), Search
    (teams Infra and company Acme), Unrelated (company OtherCo).
    """
    write("Companies/Acme.md", {"type": "company", "show": "ACME Corp"})
    write("Companies/OtherCo.md", {"type": "company"})
    write("People/P1.md", {"type": "person", "name": "Pat One", "company": "[[Acme]]"})
    write("People/P2.md", {"type": "person", "name": "Pat Two", "company": ["[[Acme]]", "[[OtherCo]]"]})
    write("People/P3.md", {"type": "person", "name": "Pat Three", "company": "[[OtherCo]]"})
    write("Teams/Platform.md", {"type": "team", "company": "[[Acme]]"})
    write("Teams/Infra.md", {"type": "team", "company": "[[Companies/Acme|Acme]]"})
    write("Projects/Website.md", {"type": "project", "company": "[[Acme]]", "date": "2024-03-01"})
    write("Projects/Portal.md", {"type": "project", "team": "[[Platform]]", "date": "2024-05-10"})
    write("Projects/Search.md", {"type": "project", "teams": ["[[Infra]]"], "company": "[[Acme]]"})
    write("Projects/Unrelated.md", {"type": "project", "company": "[[OtherCo]]"})
    return "Companies/Acme.md"
