"""Tests for the Vault facade."""

import logging

import pytest

from vaultlinks import Vault
from vaultlinks.config import VaultConfig, save_config
from vaultlinks.errors import UnsupportedRelationError
from vaultlinks.registry import RelationRegistry


@pytest.fixture
def vault(acme, vault_path):
    v = Vault(vault_path)
    yield v
    v.close()


class TestLookup:
    def test_get_by_path_stem_or_link(self, vault, acme):
        assert vault.get(acme).path == acme
        assert vault.get("Companies/Acme").path == acme
        assert vault.get("Acme").path == acme
        assert vault.get("[[Acme|ACME]]").path == acme
        assert vault.get("Companies/Nope.md") is None

    def test_list_type(self, vault):
        assert [d.path for d in vault.list_type("team")] == ["Teams/Infra.md", "Teams/Platform.md"]

    def test_resolve(self, vault):
        link = vault.resolve("[[Acme|A]]", "People/P1.md")
        assert link.path == "Companies/Acme.md"
        assert link.display == "A"


class TestRelated:
    def test_employees(self, vault, acme):
        result = vault.related(acme, "employees")
        assert result.ids == ["People/P1.md", "People/P2.md"]
        assert not result.sortable

    def test_company_projects(self, vault, acme):
        result = vault.related(acme, "projects")
        assert result.ids == ["Projects/Portal.md", "Projects/Search.md", "Projects/Website.md"]
        assert result.sortable

    def test_unsupported_relation(self, vault, acme):
        with pytest.raises(UnsupportedRelationError):
            vault.related(acme, "investors")

    def test_missing_host_is_empty(self, vault):
        result = vault.related("Companies/Gone.md", "employees")
        assert result.total == 0

    def test_relations(self, vault, acme):
        assert [s.order_key for s in vault.relations(acme)][:3] == ["employees", "teams", "projects"]
        assert vault.relations("Companies/Gone.md") == []

    def test_relation_missing_host(self, vault):
        with pytest.raises(KeyError):
            vault.relation("Companies/Gone.md", "employees")

    def test_one_on_ones_and_group_meetings(self, vault, write):
        write("Meetings/1on1.md", {"type": "meeting", "participants": ["[[P1]]"], "date": "2024-01-10"})
        write("Meetings/Sync.md", {"type": "meeting", "participants": ["[[P1]]", "[[P2]]"], "date": "2024-02-01"})
        write("Meetings/Retro.md", {"type": "meeting", "participants": ["[[P1]]", "[[P3]]"], "date": "2024-03-01"})
        vault.refresh()
        assert vault.related("People/P1.md", "1o1s").ids == ["Meetings/1on1.md"]
        assert vault.related("People/P1.md", "meetings").ids == ["Meetings/Retro.md", "Meetings/Sync.md"]
        assert vault.related("People/P3.md", "1o1s").ids == []

    def test_teammates(self, vault, write):
        write("People/T1.md", {"type": "person", "team": "[[Platform]]"})
        write("People/T2.md", {"type": "person", "teams": ["[[Platform]]", "[[Infra]]"]})
        write("People/T3.md", {"type": "person", "team": "[[Infra]]"})
        vault.refresh()
        assert vault.related("People/T1.md", "teammates").ids == ["People/T2.md"]
        assert vault.related("People/T2.md", "teammates").ids == ["People/T1.md", "People/T3.md"]

    def test_migrated_type_key(self, vault, write):
        write("Companies/Beta.md", {"mondoType": "company"})
        write("People/B1.md", {"mondoType": "person", "company": "[[Beta]]"})
        vault.refresh()
        assert vault.related("Companies/Beta.md", "employees").ids == ["People/B1.md"]

    def test_related_for_spec(self, vault, acme):
        result = vault.related_for_spec(acme, {"targetType": "team", "properties": ["company"]})
        assert result.ids == ["Teams/Infra.md", "Teams/Platform.md"]

    def test_related_for_spec_with_find(self, vault, acme):
        spec = {"config": {"targetType": "person", "find": {"query": [
            {"steps": [{"in": {"property": "company", "type": "person"}}]},
        ]}, "sort": {"strategy": "column", "column": "show", "direction": "desc"}}}
        assert vault.related_for_spec(acme, spec).ids == ["People/P2.md", "People/P1.md"]


class TestReorder:
    def test_reorder_then_related(self, vault, acme):
        assert vault.reorder(acme, "projects", ["Projects/Website.md", "Portal"])
        result = vault.related(acme, "projects")
        assert result.ids == ["Projects/Website.md", "Projects/Portal.md", "Projects/Search.md"]
        assert vault.store.read_metadata(acme)["projectsPriority"] == [
            "Projects/Website.md", "Projects/Portal.md",
        ]

    def test_reorder_keeps_other_metadata(self, vault, acme):
        vault.reorder(acme, "projects", ["Projects/Search.md"])
        assert vault.get(acme).display_name == "ACME Corp"

    def test_empty_order_clears(self, vault, acme):
        vault.reorder(acme, "projects", ["Projects/Website.md"])
        assert vault.reorder(acme, "projects", [])
        assert "projectsPriority" not in vault.store.read_metadata(acme)
        assert vault.related(acme, "projects").ids[0] == "Projects/Portal.md"

    def test_reorder_unsupported(self, vault, acme):
        with pytest.raises(UnsupportedRelationError):
            vault.reorder(acme, "investors", [])

    def test_reorder_missing_host(self, vault):
        assert not vault.reorder("Companies/Gone.md", "projects", [])

    def test_reorder_is_logged(self, vault, acme, vault_path):
        vault.reorder(acme, "projects", ["Projects/Search.md"])
        for handler in logging.getLogger("vaultlinks").handlers:
            handler.flush()
        ops_log = vault_path / ".vaultlinks" / "vaultlinks-ops.log"
        assert "projectsPriority" in ops_log.read_text()


class TestConfiguration:
    def test_config_page_size(self, acme, vault_path):
        save_config(VaultConfig(path=vault_path, page_size=1))
        with Vault(vault_path) as v:
            result = v.related(acme, "employees")
            assert result.visible_count == 1
            assert result.has_more

    def test_relation_page_size_wins(self, acme, vault_path, write):
        save_config(VaultConfig(path=vault_path, page_size=1))
        for i in range(7):
            write(f"Meetings/M{i}.md", {"type": "meeting", "participants": ["[[P1]]"], "date": f"2024-01-0{i + 1}"})
        with Vault(vault_path) as v:
            assert v.related("People/P1.md", "1o1s").visible_count == 5

    def test_config_relations(self, acme, vault_path):
        relations = {"company": {"clients": {"targetType": "person", "properties": ["company"], "title": "Clients"}}}
        save_config(VaultConfig(path=vault_path, relations=relations))
        with Vault(vault_path) as v:
            assert v.related(acme, "clients").ids == ["People/P1.md", "People/P2.md"]
            assert v.relation(acme, "clients").title == "Clients"

    def test_injected_registry(self, acme, vault_path):
        registry = RelationRegistry({"company": [{"key": "staff", "config": {"targetType": "person"}}]})
        with Vault(vault_path, registry=registry) as v:
            assert [s.order_key for s in v.relations(acme)] == ["staff"]
            assert v.related(acme, "staff").ids == ["People/P1.md", "People/P2.md"]

    def test_close_removes_ops_log_handler(self, acme, vault_path):
        v = Vault(vault_path)
        handler = v._ops_log_handler
        assert handler in logging.getLogger("vaultlinks").handlers
        v.close()
        assert handler not in logging.getLogger("vaultlinks").handlers


class TestWatchRelation:
    def test_called_now_and_on_change(self, vault, acme, write):
        seen = []
        stop = vault.watch_relation(acme, "employees", lambda result: seen.append(result.ids))
        assert seen == [["People/P1.md", "People/P2.md"]]

        write("People/P4.md", {"type": "person", "name": "Pat Four", "company": "[[Acme]]"})
        vault.refresh()
        assert seen[-1] == ["People/P4.md", "People/P1.md", "People/P2.md"]

        stop()
        write("People/P5.md", {"type": "person", "company": "[[Acme]]"})
        vault.refresh()
        assert len(seen) == 2

    def test_unsupported_relation(self, vault, acme):
        with pytest.raises(UnsupportedRelationError):
            vault.watch_relation(acme, "investors", lambda result: None)

    def test_close_stops_watchers(self, acme, vault_path, write):
        v = Vault(vault_path)
        seen = []
        v.watch_relation(acme, "employees", seen.append)
        v.close()
        write("People/P4.md", {"type": "person", "company": "[[Acme]]"})
        v.refresh()
        assert len(seen) == 1
