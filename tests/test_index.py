"""Tests for the in-memory document index."""

import logging
import threading

from vaultlinks.index import DocumentIndex, IndexChange
from vaultlinks.protocol import DocumentIndexProtocol

from conftest import paths


class TestLookups:
    def test_only_typed_documents_are_indexed(self, write, store):
        write("People/Ann.md", {"type": "person"})
        write("Inbox/Loose.md", {"title": "untyped"})
        index = DocumentIndex(store)
        assert len(index) == 1
        assert "People/Ann.md" in index
        assert "Inbox/Loose.md" not in index

    def test_list_by_type_sorted_by_path(self, write, store):
        write("People/Zed.md", {"type": "person"})
        write("People/Amy.md", {"type": "Person"})
        index = DocumentIndex(store)
        assert paths(index.list_by_type("person")) == ["People/Amy.md", "People/Zed.md"]
        assert paths(index.list_by_type("PERSON")) == ["People/Amy.md", "People/Zed.md"]
        assert index.list_by_type("company") == []

    def test_types(self, acme, store):
        assert DocumentIndex(store).types() == ["company", "person", "project", "team"]

    def test_get_by_path_normalizes(self, write, store):
        write("People/Ann.md", {"type": "person"})
        index = DocumentIndex(store)
        assert index.get_by_path("./People/Ann.md").path == "People/Ann.md"
        assert index.get_by_path("") is None

    def test_satisfies_protocol(self, store):
        assert isinstance(DocumentIndex(store), DocumentIndexProtocol)

    def test_autoload_disabled(self, write, store):
        write("People/Ann.md", {"type": "person"})
        index = DocumentIndex(store, autoload=False)
        assert len(index) == 0
        index.refresh()
        assert len(index) == 1


class TestResolveLink:
    def test_path_suffix(self, write, store):
        write("Work/Companies/Acme.md", {"type": "company"})
        index = DocumentIndex(store)
        assert index.resolve_link("Companies/Acme").path == "Work/Companies/Acme.md"

    def test_path_suffix_case_insensitive(self, write, store):
        write("Work/Companies/Acme.md", {"type": "company"})
        index = DocumentIndex(store)
        assert index.resolve_link("companies/acme").path == "Work/Companies/Acme.md"

    def test_relative_link_outside_vault(self, write, store):
        write("Acme.md", {"type": "company"})
        index = DocumentIndex(store)
        assert index.resolve_link("../../Acme", "People/Ann.md") is None

    def test_current_folder(self, write, store):
        write("People/Bob.md", {"type": "person"})
        index = DocumentIndex(store)
        assert index.resolve_link("./Bob", "People/Ann.md").path == "People/Bob.md"

    def test_empty(self, store):
        assert DocumentIndex(store).resolve_link("  ") is None


class TestRefresh:
    def test_added(self, write, store):
        index = DocumentIndex(store)
        write("People/Ann.md", {"type": "person"})
        change = index.refresh()
        assert change.added == {"People/Ann.md"}
        assert index.get_by_path("People/Ann.md") is not None

    def test_removed(self, write, store):
        write("People/Ann.md", {"type": "person"})
        index = DocumentIndex(store)
        store.delete("People/Ann.md")
        change = index.refresh()
        assert change.removed == {"People/Ann.md"}
        assert index.get_by_path("People/Ann.md") is None

    def test_modified(self, write, store):
        write("People/Ann.md", {"type": "person", "company": "[[Acme]]"})
        index = DocumentIndex(store)
        write("People/Ann.md", {"type": "person", "company": "[[OtherCo]]"})
        change = index.refresh(full=True)
        assert change.modified == {"People/Ann.md"}
        assert index.get_by_path("People/Ann.md").get("company") == "[[OtherCo]]"

    def test_no_change(self, acme, store):
        index = DocumentIndex(store)
        change = index.refresh(full=True)
        assert not change
        assert change == IndexChange()

    def test_document_losing_its_type_drops_out(self, write, store):
        write("People/Ann.md", {"type": "person"})
        index = DocumentIndex(store)
        write("People/Ann.md", {"name": "Ann"})
        index.refresh(full=True)
        assert index.get_by_path("People/Ann.md") is None


class TestReload:
    def test_reload_modified(self, write, store):
        write("People/Ann.md", {"type": "person"})
        index = DocumentIndex(store)
        write("People/Ann.md", {"type": "person", "name": "Ann"})
        change = index.reload("People/Ann.md")
        assert change.modified == {"People/Ann.md"}
        assert index.get_by_path("People/Ann.md").display_name == "Ann"

    def test_reload_added_and_removed(self, write, store):
        index = DocumentIndex(store)
        write("People/Ann.md", {"type": "person"})
        assert index.reload("People/Ann.md").added == {"People/Ann.md"}
        store.delete("People/Ann.md")
        assert index.reload("People/Ann.md").removed == {"People/Ann.md"}
        assert len(index) == 0


class TestSubscribe:
    def test_listener_receives_changes(self, write, store):
        index = DocumentIndex(store)
        seen = []
        index.subscribe(seen.append)
        write("People/Ann.md", {"type": "person"})
        index.refresh()
        assert [c.added for c in seen] == [{"People/Ann.md"}]

    def test_unsubscribe(self, write, store):
        index = DocumentIndex(store)
        seen = []
        unsubscribe = index.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        write("People/Ann.md", {"type": "person"})
        index.refresh()
        assert seen == []

    def test_no_notification_when_disabled(self, write, store):
        index = DocumentIndex(store)
        seen = []
        index.subscribe(seen.append)
        write("People/Ann.md", {"type": "person"})
        index.refresh(notify=False)
        assert seen == []

    def test_failing_listener_is_logged(self, write, store, caplog):
        index = DocumentIndex(store)
        seen = []

        def broken(change):
            raise RuntimeError("boom")

        index.subscribe(broken)
        index.subscribe(seen.append)
        write("People/Ann.md", {"type": "person"})
        with caplog.at_level(logging.ERROR, logger="vaultlinks.index"):
            index.refresh()
        assert "listener failed" in caplog.text
        assert len(seen) == 1


class TestWatching:
    def test_observer_picks_up_new_documents(self, store, write):
        index = DocumentIndex(store)
        added = threading.Event()
        index.subscribe(lambda change: added.set() if "People/Ann.md" in change.added else None)
        (store.root / "People").mkdir()
        index.start_watching()
        try:
            assert index.watching
            write("People/Ann.md", {"type": "person"})
            assert added.wait(5)
            assert index.get_by_path("People/Ann.md") is not None
        finally:
            index.stop_watching()
        assert not index.watching

    def test_start_and_stop_are_idempotent(self, store):
        index = DocumentIndex(store)
        index.stop_watching()
        index.start_watching()
        index.start_watching()
        index.stop_watching()
        index.stop_watching()
        assert not index.watching


class TestReloadUnchanged:
    def test_unchanged_document_is_not_reported(self, write, store):
        write("People/Ann.md", {"type": "person"})
        index = DocumentIndex(store)
        seen = []
        index.subscribe(seen.append)
        assert index.reload("People/Ann.md") == IndexChange()
        assert seen == []


class TestTypeKeys:
    def test_mondo_type_is_indexed(self, write, store):
        write("People/Ann.md", {"mondoType": "person"})
        index = DocumentIndex(store)
        assert paths(index.list_by_type("person")) == ["People/Ann.md"]

    def test_plain_type_is_indexed(self, write, store):
        write("People/Bob.md", {"type": "person"})
        index = DocumentIndex(store)
        assert paths(index.list_by_type("person")) == ["People/Bob.md"]

    def test_mondo_type_wins(self, write, store):
        write("Notes/Mixed.md", {"mondoType": "company", "type": "person"})
        index = DocumentIndex(store)
        assert paths(index.list_by_type("company")) == ["Notes/Mixed.md"]
        assert index.list_by_type("person") == []
