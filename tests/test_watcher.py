"""Tests for filesystem event handling."""

import logging

import pytest
from watchdog.events import (
    DirCreatedEvent, DirDeletedEvent, FileCreatedEvent, FileDeletedEvent,
    FileModifiedEvent, FileMovedEvent,
)

from vaultlinks.index import DocumentIndex
from vaultlinks.watcher import VaultEventHandler, VaultWatcher

from conftest import paths


@pytest.fixture
def root(vault_path):
    return vault_path.resolve()


@pytest.fixture
def index(store):
    return DocumentIndex(store)


@pytest.fixture
def handler(index, root):
    return VaultEventHandler(index, root)


@pytest.fixture
def changes(index):
    seen = []
    index.subscribe(seen.append)
    return seen


class TestEventHandler:
    def test_created_document_is_added(self, handler, index, changes, write, root):
        write("People/Ann.md", {"type": "person"})
        handler.dispatch(FileCreatedEvent(str(root / "People" / "Ann.md")))
        assert paths(index.list_by_type("person")) == ["People/Ann.md"]
        assert [c.added for c in changes] == [{"People/Ann.md"}]

    def test_modified_document_is_reloaded(self, handler, index, write, root):
        write("People/Ann.md", {"type": "person"})
        index.refresh()
        write("People/Ann.md", {"type": "person", "name": "Ann Lee"})
        handler.dispatch(FileModifiedEvent(str(root / "People" / "Ann.md")))
        assert index.get_by_path("People/Ann.md").display_name == "Ann Lee"

    def test_deleted_document_is_removed(self, handler, index, store, write, root):
        write("People/Ann.md", {"type": "person"})
        index.refresh()
        store.delete("People/Ann.md")
        handler.dispatch(FileDeletedEvent(str(root / "People" / "Ann.md")))
        assert len(index) == 0

    def test_atomic_write_arrives_as_move(self, handler, index, changes, write, root):
        write("People/Ann.md", {"type": "person"})
        handler.dispatch(FileMovedEvent(
            str(root / "People" / ".vaultlinks-x1.tmp"), str(root / "People" / "Ann.md"),
        ))
        assert "People/Ann.md" in index
        assert [c.added for c in changes] == [{"People/Ann.md"}]

    def test_rename_moves_the_document(self, handler, index, store, write, root):
        write("People/Ann.md", {"type": "person"})
        index.refresh()
        (root / "People" / "Ann.md").rename(root / "People" / "Anne.md")
        handler.dispatch(FileMovedEvent(str(root / "People" / "Ann.md"), str(root / "People" / "Anne.md")))
        assert paths(index.list_by_type("person")) == ["People/Anne.md"]

    def test_non_documents_are_ignored(self, handler, changes, root, vault_path):
        (vault_path / "notes.txt").write_text("plain")
        handler.dispatch(FileCreatedEvent(str(root / "notes.txt")))
        handler.dispatch(FileModifiedEvent(str(root / ".vaultlinks" / "vaultlinks-ops.log")))
        handler.dispatch(FileCreatedEvent(str(root / ".obsidian" / "workspace.md")))
        assert changes == []

    def test_paths_outside_the_vault_are_ignored(self, handler, changes, tmp_path):
        handler.dispatch(FileCreatedEvent(str(tmp_path / "elsewhere" / "Ann.md")))
        assert changes == []

    def test_folder_deletion_refreshes(self, handler, index, store, write, root):
        write("Archive/Old.md", {"type": "person"})
        write("People/Ann.md", {"type": "person"})
        index.refresh()
        store.delete("Archive/Old.md")
        (root / "Archive").rmdir()
        handler.dispatch(DirDeletedEvent(str(root / "Archive")))
        assert paths(index.list_by_type("person")) == ["People/Ann.md"]

    def test_folder_creation_refreshes(self, handler, index, write, root):
        write("New/Ann.md", {"type": "person"})
        handler.dispatch(DirCreatedEvent(str(root / "New")))
        assert "New/Ann.md" in index

    def test_reload_failure_is_logged(self, handler, index, root, monkeypatch, caplog):
        def broken(path, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(index, "reload", broken)
        with caplog.at_level(logging.ERROR, logger="vaultlinks.watcher"):
            handler.dispatch(FileModifiedEvent(str(root / "People" / "Ann.md")))
        assert "Failed to reload People/Ann.md" in caplog.text


class TestVaultWatcher:
    def test_missing_vault(self, tmp_path):
        from vaultlinks.document_store import VaultStore

        watcher = VaultWatcher(DocumentIndex(VaultStore(tmp_path / "nope")))
        with pytest.raises(FileNotFoundError):
            watcher.start()
        assert not watcher.running

    def test_start_stop(self, index):
        watcher = VaultWatcher(index)
        watcher.start()
        try:
            assert watcher.running
        finally:
            watcher.stop()
        assert not watcher.running
