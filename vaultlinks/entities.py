"""
Built-in entity types and their relation definitions.

Definitions are kept in the wire format (the same shape users put in
``vaultlinks.toml``) and parsed by RelationRegistry.
"""

from typing import Any, Optional

ENTITY_TYPES = (
    "person", "fact", "log", "task", "project", "idea", "company", "team",
    "meeting", "role", "location", "restaurant", "gear", "tool", "recipe",
    "book", "show", "document",
)

BY_NAME = {"strategy": "column", "column": "show", "direction": "asc"}
BY_DATE = {"strategy": "column", "column": "date", "direction": "desc"}
MANUAL = {"strategy": "manual"}

# Meetings with several participants (or none); 1:1s are listed separately
GROUP_MEETINGS = {
    "any": [
        {"participants.length": {"eq": 0}},
        {"participants.length": {"gt": 1}},
    ],
}


def _backlinks(key: str, target_type: str, prop: str, title: str, sort: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    config: dict[str, Any] = {"targetType": target_type, "properties": [prop], "title": title}
    if sort is not None:
        config["sort"] = sort
    return {"key": key, "config": config}


def _notes(prop: str) -> list[dict[str, Any]]:
    """Facts, logs, documents and tasks that link to an entity through ``prop``."""
    return [
        _backlinks("facts", "fact", prop, "Facts", MANUAL),
        _backlinks("logs", "log", prop, "Logs"),
        _backlinks("documents", "document", prop, "Documents", MANUAL),
        _backlinks("tasks", "task", prop, "Tasks", MANUAL),
    ]


def _via_teams(target_type: str) -> dict[str, Any]:
    return {
        "description": f"{target_type.title()}s linked to the host's teams",
        "steps": [
            {"out": {"property": ["team", "teams"], "type": "team"}},
            {"in": {"property": ["team", "teams"], "type": target_type}},
        ],
    }


# Shared relations for every entity type without its own definition
DEFAULT_BACKLINKS: list[dict[str, Any]] = _notes("reference")

BUILTIN_RELATIONS: dict[str, list[dict[str, Any]]] = {
    "company": [
        _backlinks("employees", "person", "company", "Employees", BY_NAME),
        _backlinks("teams", "team", "company", "Teams", BY_NAME),
        {
            "key": "projects",
            "config": {
                "targetType": "project",
                "title": "Projects",
                "find": {
                    "query": [
                        {
                            "description": "Projects linked via the company property",
                            "steps": [
                                {"in": {"property": ["company"], "type": "project"}},
                                {"unique": True},
                            ],
                        },
                        {
                            "description": "Projects linked to teams of this company",
                            "steps": [
                                {"in": {"property": ["company"], "type": "team"}},
                                {"in": {"property": ["team", "teams"], "type": "project"}},
                                {"unique": True},
                            ],
                        },
                    ],
                    "combine": "union",
                },
                "sort": MANUAL,
            },
        },
        *_notes("company"),
    ],
    "person": [
        {
            "key": "reports",
            "config": {
                "title": "Reports",
                "targetType": "person",
                "find": {"query": [{"steps": [{"in": {"property": ["reportsTo"], "type": "person"}}]}]},
                "sort": BY_NAME,
                "createEntity": {"enabled": True, "attributes": {"reportsTo": "{@this}"}},
            },
        },
        {
            "key": "teammates",
            "config": {
                "title": "Teammates",
                "targetType": "person",
                "find": {
                    "query": [{
                        "steps": [
                            {"out": {"property": ["team", "teams"], "type": "team"}},
                            {"in": {"property": ["team", "teams"], "type": "person"}},
                            {"not": "host"},
                            {"unique": True},
                        ],
                    }],
                    "combine": "union",
                },
                "sort": BY_NAME,
            },
        },
        {
            "key": "1o1s",
            "config": {
                "title": "1:1s",
                "targetType": "meeting",
                "find": {"query": [{"steps": [{"in": {"property": ["participants", "people"], "type": "meeting"}}]}]},
                "filter": {"participants.length": {"eq": 1}},
                "sort": BY_DATE,
                "pageSize": 5,
            },
        },
        {
            "key": "meetings",
            "config": {
                "title": "Meetings",
                "targetType": "meeting",
                "find": {
                    "query": [
                        {
                            "description": "Meetings listing the person",
                            "steps": [{"in": {"property": ["participants", "people"], "type": "meeting"}}],
                        },
                        _via_teams("meeting"),
                    ],
                },
                "filter": GROUP_MEETINGS,
                "sort": BY_DATE,
            },
        },
        {
            "key": "projects",
            "config": {
                "title": "Projects",
                "targetType": "project",
                "find": {
                    "query": [
                        {
                            "description": "Projects listing the person",
                            "steps": [{"in": {"property": ["participants", "people"], "type": "project"}}],
                        },
                        _via_teams("project"),
                    ],
                },
                "sort": MANUAL,
            },
        },
        *_notes("participants"),
    ],
    "team": [
        _backlinks("people", "person", "team", "People", BY_NAME),
        _backlinks("projects", "project", "team", "Projects", MANUAL),
        *_notes("team"),
    ],
    "role": [
        _backlinks("people", "person", "role", "People", BY_NAME),
        _backlinks("projects", "project", "role", "Projects", MANUAL),
        *_notes("role"),
    ],
    "project": [
        {
            "key": "meetings",
            "config": {
                "title": "Meetings",
                "targetType": "meeting",
                "properties": ["project"],
                "filter": GROUP_MEETINGS,
                "sort": BY_DATE,
            },
        },
        *_notes("project"),
    ],
    "meeting": _notes("meeting"),
    "task": _notes("task"),
}
