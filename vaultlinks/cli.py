"""
CLI interface for vault relationship queries.

Usage:
    vaultlinks related Companies/Acme.md employees
    vaultlinks relations People/Alice.md
    vaultlinks query Companies/Acme.md '{"targetType": "person", "properties": "company"}'
    vaultlinks reorder Companies/Acme.md employees People/Bob.md People/Alice.md
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .api import Vault
from .errors import UnsupportedRelationError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .ordering import OrderedResultSet
from .query import RelationSpec
from .types import Document, ResolvedLink


# Configure quiet mode by default
# Set VAULTLINKS_VERBOSE=1 to enable debug mode via environment
if os.environ.get("VAULTLINKS_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"vaultlinks {version('vaultlinks')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_vault_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _vault_callback(value: Optional[Path]):
    global _vault_override
    if value is not None:
        _vault_override = value


def _get_vault_override() -> Optional[Path]:
    return _vault_override


app = typer.Typer(
    name="vaultlinks",
    help="Relationship queries over a Markdown knowledge base.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    vault: Annotated[Optional[Path], typer.Option(
        "--vault", "-V",
        envvar="VAULTLINKS_VAULT_PATH",
        help="Path to the vault directory",
        callback=_vault_callback,
        is_eager=True,
    )] = None,
):
    """Relationship queries over a Markdown knowledge base."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

VaultOption = Annotated[
    Optional[Path],
    typer.Option(
        "--vault", "-V",
        envvar="VAULTLINKS_VAULT_PATH",
        help="Path to the vault directory (default: current directory)"
    )
]

AllOption = Annotated[
    bool,
    typer.Option(
        "--all", "-a",
        help="Show every result, ignoring the page size"
    )
]


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

def _document_to_dict(doc: Document) -> dict[str, Any]:
    return {
        "path": doc.path,
        "type": doc.type,
        "name": doc.display_name,
        "date": doc.date or None,
    }


def render_documents(docs: list[Document], as_json: bool = False) -> str:
    """One line per document: path, type and display name."""
    if as_json:
        return json.dumps([_document_to_dict(d) for d in docs], indent=2)
    if not docs:
        return "No documents."
    width = max(len(d.path) for d in docs)
    return "\n".join(
        f"{d.path:<{width}}  {d.type:<10} {d.display_name}" for d in docs
    )


def render_result(
    result: OrderedResultSet,
    title: str = "",
    *,
    show_all: bool = False,
    as_json: bool = False,
) -> str:
    """Render an ordered result set, honouring pagination unless show_all."""
    docs = result.items if show_all else result.visible
    if as_json:
        return json.dumps({
            "title": title,
            "total": result.total,
            "visible": len(docs),
            "has_more": result.has_more and not show_all,
            "sortable": result.sortable,
            "items": [_document_to_dict(d) for d in docs],
        }, indent=2)
    lines = []
    if title:
        lines.append(f"{title} ({result.total})")
    if docs:
        date_width = max((len(d.date) for d in docs), default=0)
        for doc in docs:
            date = f"{doc.date:<{date_width}}  " if date_width else ""
            lines.append(f"  {date}{doc.display_name}  [{doc.path}]")
    else:
        lines.append("  (none)")
    hidden = result.total - len(docs)
    if hidden > 0:
        lines.append(f"  ... {hidden} more (use --all)")
    return "\n".join(lines)


def render_relations(specs: list[RelationSpec], as_json: bool = False) -> str:
    if as_json:
        return json.dumps([
            {
                "key": s.order_key,
                "title": s.title,
                "target_type": s.target_type,
                "sort": s.sort.strategy,
                "page_size": s.page_size,
            }
            for s in specs
        ], indent=2)
    if not specs:
        return "No relations."
    width = max(len(s.order_key) for s in specs)
    return "\n".join(
        f"{s.order_key:<{width}}  {s.target_type:<10} {s.title}"
        + ("  [manual]" if s.sort.manual else "")
        for s in specs
    )


def render_link(link: ResolvedLink, as_json: bool = False) -> str:
    if as_json:
        return json.dumps({
            "raw": link.reference.raw,
            "target": link.reference.target,
            "alias": link.reference.alias,
            "anchor": link.reference.anchor,
            "path": link.path,
            "display": link.display,
        }, indent=2)
    if link.resolved:
        return f"{link.reference.raw} -> {link.path} ({link.display})"
    return f"{link.reference.raw} -> unresolved ({link.display})"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_vault(vault: Optional[Path]) -> Vault:
    """Open the vault, handling errors gracefully."""
    import atexit

    actual = vault if vault is not None else _get_vault_override()
    try:
        v = Vault(actual)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(v.close)
    return v


def _require_host(v: Vault, host: str) -> Document:
    doc = v.get(host)
    if doc is None:
        typer.echo(f"Not found: {host}", err=True)
        raise typer.Exit(1)
    return doc


def _load_spec(spec: str) -> Any:
    """Parse a JSON spec given inline or as @path."""
    text = spec
    if spec.startswith("@"):
        try:
            text = Path(spec[1:]).expanduser().read_text(encoding="utf-8")
        except OSError as e:
            typer.echo(f"Error: cannot read {spec[1:]}: {e}", err=True)
            raise typer.Exit(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: invalid JSON spec: {e}", err=True)
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def related(
    host: Annotated[str, typer.Argument(help="Host document path or link")],
    relation: Annotated[str, typer.Argument(help="Relation key (e.g. 'employees')")],
    show_all: AllOption = False,
    vault: VaultOption = None,
):
    """List documents related to a host through a configured relation.

    \b
    Examples:
        vaultlinks related Companies/Acme.md employees
        vaultlinks related "People/Alice" 1o1s --all
    """
    v = _get_vault(vault)
    doc = _require_host(v, host)
    try:
        spec = v.relation(doc, relation)
    except UnsupportedRelationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    result = v.related(doc, relation)
    typer.echo(render_result(result, spec.title, show_all=show_all, as_json=_get_json_output()))


@app.command()
def relations(
    host: Annotated[str, typer.Argument(help="Host document path or link")],
    vault: VaultOption = None,
):
    """List the relations available for a host's entity type."""
    v = _get_vault(vault)
    doc = _require_host(v, host)
    typer.echo(render_relations(v.relations(doc), as_json=_get_json_output()))


@app.command()
def query(
    host: Annotated[str, typer.Argument(help="Host document path or link")],
    spec: Annotated[str, typer.Argument(help="Relation spec as JSON, or @file.json")],
    key: Annotated[str, typer.Option(
        "--key", "-k",
        help="Relation key naming the pinned order"
    )] = "",
    show_all: AllOption = False,
    vault: VaultOption = None,
):
    """Evaluate an ad-hoc relation spec from a host.

    \b
    Examples:
        vaultlinks query Companies/Acme.md '{"targetType": "person", "properties": ["company"]}'
        vaultlinks query Teams/Infra.md @projects.json
    """
    raw = _load_spec(spec)
    v = _get_vault(vault)
    doc = _require_host(v, host)
    result = v.related_for_spec(doc, raw, key)
    title = raw.get("title", "") if isinstance(raw, dict) else ""
    typer.echo(render_result(result, title, show_all=show_all, as_json=_get_json_output()))


@app.command()
def reorder(
    host: Annotated[str, typer.Argument(help="Host document path or link")],
    relation: Annotated[str, typer.Argument(help="Relation key")],
    paths: Annotated[Optional[list[str]], typer.Argument(
        help="Documents in the new order (none clears the pinned order)"
    )] = None,
    vault: VaultOption = None,
):
    """Pin the display order of a relation on the host document."""
    v = _get_vault(vault)
    doc = _require_host(v, host)
    try:
        saved = v.reorder(doc, relation, paths or [])
    except UnsupportedRelationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if not saved:
        typer.echo(f"Error: could not save order on {doc.path}", err=True)
        raise typer.Exit(1)
    if paths:
        typer.echo(f"Saved order of {relation} on {doc.path} ({len(paths)} item(s))")
    else:
        typer.echo(f"Cleared order of {relation} on {doc.path}")


@app.command()
def resolve(
    link: Annotated[str, typer.Argument(help="Link text, e.g. '[[Acme|ACME Corp]]'")],
    from_path: Annotated[str, typer.Option(
        "--from", "-f",
        help="Path of the document containing the link"
    )] = "",
    vault: VaultOption = None,
):
    """Resolve a link the way frontmatter links are resolved."""
    v = _get_vault(vault)
    typer.echo(render_link(v.resolve(link, from_path), as_json=_get_json_output()))


@app.command("list")
def list_cmd(
    entity_type: Annotated[str, typer.Argument(help="Entity type (e.g. 'person')")],
    vault: VaultOption = None,
):
    """List all documents of an entity type."""
    v = _get_vault(vault)
    typer.echo(render_documents(v.list_type(entity_type), as_json=_get_json_output()))


@app.command()
def watch(
    host: Annotated[str, typer.Argument(help="Host document path or link")],
    relation: Annotated[str, typer.Argument(help="Relation key")],
    vault: VaultOption = None,
):
    """Print a relation and re-print it whenever the vault changes."""
    v = _get_vault(vault)
    doc = _require_host(v, host)
    try:
        spec = v.relation(doc, relation)
    except UnsupportedRelationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    def show(result: OrderedResultSet) -> None:
        typer.echo(render_result(result, spec.title, as_json=_get_json_output()))
        typer.echo("")

    stop = v.watch_relation(doc, relation, show)
    v.start_watching()
    try:
        while v.watching:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        stop()
        v.close()


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="vaultlinks CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
