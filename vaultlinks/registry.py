"""
Relation registry: which relations exist for each entity type.

The registry is an explicit object handed to the Vault facade (and to tests),
so synthetic vaults can use their own relation sets. Specs are parsed once,
when they are registered.
"""

import logging
import threading
from typing import Any, Iterable, Mapping, Optional

from .entities import BUILTIN_RELATIONS, DEFAULT_BACKLINKS, ENTITY_TYPES
from .errors import UnsupportedRelationError
from .query import RelationSpec, parse_relation_spec

logger = logging.getLogger(__name__)


class RelationRegistry:
    """
    Parsed relation specs keyed by entity type and relation key.

    Entity types without relations of their own get the shared default
    relations (parsed for that host type on first use).
    """

    def __init__(
        self,
        relations: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None,
        *,
        defaults: Iterable[Mapping[str, Any]] = (),
        entity_types: Iterable[str] = ENTITY_TYPES,
    ):
        """
        Args:
            relations: {entity_type: [relation spec, ...]}; each spec names
                its ``key`` (panel form) or is keyed by its target type
            defaults: Relations for entity types without their own
            entity_types: Known entity type names (used to read legacy
                ``target`` values)
        """
        self._lock = threading.Lock()
        self._specs: dict[str, dict[str, RelationSpec]] = {}
        self._defaults = [dict(d) for d in defaults]
        self._entity_types = set(t.lower() for t in entity_types)
        for entity_type, specs in (relations or {}).items():
            for raw in specs:
                self.register(entity_type, raw)

    @classmethod
    def default(cls) -> "RelationRegistry":
        """Registry with the built-in entity relations."""
        return cls(BUILTIN_RELATIONS, defaults=DEFAULT_BACKLINKS)

    def _parse(self, entity_type: str, raw: Any, key: str = "") -> RelationSpec:
        return parse_relation_spec(raw, entity_type, key, entity_types=self._entity_types)

    def _table(self, entity_type: str) -> dict[str, RelationSpec]:
        """Relations of a type, seeding it with the defaults. Caller holds the lock."""
        table = self._specs.get(entity_type)
        if table is None:
            table = {}
            for raw in self._defaults:
                spec = self._parse(entity_type, raw)
                table[spec.order_key] = spec
            self._specs[entity_type] = table
        return table

    def register(self, entity_type: str, raw: Mapping[str, Any], key: str = "") -> RelationSpec:
        """
        Parse and add (or replace) one relation for an entity type.

        Returns:
            The parsed spec
        """
        entity_type = str(entity_type).strip().lower()
        self._entity_types.add(entity_type)
        spec = self._parse(entity_type, raw, key)
        with self._lock:
            table = self._specs.setdefault(entity_type, {})
            if spec.order_key in table:
                logger.debug("Replacing relation %s.%s", entity_type, spec.order_key)
            table[spec.order_key] = spec
        return spec

    def merge(self, overrides: Mapping[str, Mapping[str, Any]]) -> None:
        """
        Add or replace relations from a ``{entity_type: {key: spec}}`` mapping
        (the ``[relations]`` table of vaultlinks.toml).
        """
        for entity_type, relations in overrides.items():
            if not isinstance(relations, Mapping):
                logger.warning("Ignoring relations for %r: not a table", entity_type)
                continue
            entity_type = str(entity_type).strip().lower()
            with self._lock:
                self._table(entity_type)
            for key, raw in relations.items():
                if not isinstance(raw, Mapping):
                    logger.warning("Ignoring relation %s.%s: not a table", entity_type, key)
                    continue
                self.register(entity_type, raw, str(key))

    def get(self, entity_type: str, key: str) -> RelationSpec:
        """
        Look up a relation.

        Raises:
            UnsupportedRelationError: If the type has no relation ``key``
        """
        entity_type = str(entity_type or "").strip().lower()
        if not entity_type:
            raise UnsupportedRelationError(entity_type, key)
        with self._lock:
            spec = self._table(entity_type).get(key)
        if spec is None:
            raise UnsupportedRelationError(entity_type, key)
        return spec

    def relations_for(self, entity_type: str) -> list[RelationSpec]:
        """Relations of an entity type, in registration order."""
        entity_type = str(entity_type or "").strip().lower()
        if not entity_type:
            return []
        with self._lock:
            return list(self._table(entity_type).values())

    @property
    def entity_types(self) -> list[str]:
        """Entity types the registry holds relations for, sorted."""
        with self._lock:
            return sorted(self._specs)

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, tuple) or len(item) != 2:
            return False
        try:
            self.get(*item)
        except UnsupportedRelationError:
            return False
        return True
