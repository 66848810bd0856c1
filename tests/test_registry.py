"""Tests for the relation registry and the built-in entity relations."""

import logging

import pytest

from vaultlinks.entities import BUILTIN_RELATIONS, ENTITY_TYPES
from vaultlinks.errors import UnsupportedRelationError, VaultLinksError
from vaultlinks.query import In
from vaultlinks.registry import RelationRegistry


@pytest.fixture
def registry():
    return RelationRegistry.default()


def _keys(specs):
    return [s.order_key for s in specs]


class TestBuiltinRelations:
    def test_company(self, registry):
        assert _keys(registry.relations_for("company")) == [
            "employees", "teams", "projects", "facts", "logs", "documents", "tasks",
        ]

    def test_company_employees_is_a_shorthand(self, registry):
        spec = registry.get("company", "employees")
        assert spec.target_type == "person"
        assert spec.restrict_to_target
        assert spec.query.alternatives[0].steps == (In(("company",), ("person",)),)
        assert spec.sort.column == "show"

    def test_company_projects_has_two_alternatives(self, registry):
        spec = registry.get("company", "projects")
        assert len(spec.query.alternatives) == 2
        assert spec.query.combine == "union"
        assert spec.sort.manual

    def test_person_one_on_ones(self, registry):
        spec = registry.get("person", "1o1s")
        assert spec.page_size == 5
        assert spec.filter == {"participants.length": {"eq": 1}}
        assert spec.title == "1:1s"

    def test_person_reports_keeps_create_entity(self, registry):
        # createEntity is a known key, not an extra
        assert registry.get("person", "reports").extras == {}

    def test_types_without_relations_get_default_backlinks(self, registry):
        specs = registry.relations_for("location")
        assert _keys(specs) == ["facts", "logs", "documents", "tasks"]
        assert all(s.properties == ("reference",) for s in specs)

    def test_every_builtin_type_is_an_entity_type(self):
        assert set(BUILTIN_RELATIONS) <= set(ENTITY_TYPES)

    def test_every_builtin_relation_parses_to_a_query(self, registry):
        for entity_type in BUILTIN_RELATIONS:
            for spec in registry.relations_for(entity_type):
                assert spec.query.alternatives, f"{entity_type}.{spec.order_key}"


class TestLookup:
    def test_unknown_relation(self, registry):
        with pytest.raises(UnsupportedRelationError) as exc_info:
            registry.get("company", "investors")
        assert exc_info.value.entity_type == "company"
        assert exc_info.value.relation_key == "investors"
        assert isinstance(exc_info.value, LookupError)
        assert isinstance(exc_info.value, VaultLinksError)

    def test_untyped_host(self, registry):
        with pytest.raises(UnsupportedRelationError):
            registry.get("", "facts")
        assert registry.relations_for("") == []

    def test_type_is_case_insensitive(self, registry):
        assert registry.get("Company", "employees").key == "employees"

    def test_contains(self, registry):
        assert ("company", "employees") in registry
        assert ("company", "investors") not in registry
        assert "company" not in registry


class TestCustomRegistry:
    def test_no_defaults(self):
        registry = RelationRegistry({"company": [{"key": "staff", "config": {"targetType": "person"}}]})
        assert registry.entity_types == ["company"]
        assert _keys(registry.relations_for("company")) == ["staff"]
        assert registry.relations_for("person") == []

    def test_keyed_by_target_type_without_key(self):
        registry = RelationRegistry({"company": [{"targetType": "person", "properties": ["employer"]}]})
        assert registry.get("company", "person").properties == ("employer",)

    def test_register_replaces(self):
        registry = RelationRegistry()
        registry.register("company", {"targetType": "person"}, "staff")
        registry.register("company", {"targetType": "team"}, "staff")
        assert registry.get("company", "staff").target_type == "team"
        assert len(registry.relations_for("company")) == 1


class TestMerge:
    def test_adds_relation(self, registry):
        registry.merge({"company": {"investors": {"targetType": "company", "properties": ["investedIn"]}}})
        assert registry.get("company", "investors").properties == ("investedIn",)
        assert "employees" in _keys(registry.relations_for("company"))

    def test_overrides_builtin(self, registry):
        registry.merge({"company": {"employees": {"targetType": "person", "properties": ["employer"]}}})
        assert registry.get("company", "employees").properties == ("employer",)

    def test_new_type_keeps_default_backlinks(self, registry):
        registry.merge({"location": {"visitors": {"targetType": "person", "properties": ["location"]}}})
        assert _keys(registry.relations_for("location")) == ["facts", "logs", "documents", "tasks", "visitors"]

    def test_non_table_entries_are_ignored(self, registry, caplog):
        with caplog.at_level(logging.WARNING, logger="vaultlinks.registry"):
            registry.merge({"company": {"bad": "employees"}, "person": ["nope"]})
        assert ("company", "bad") not in registry
        assert len(caplog.records) == 2
