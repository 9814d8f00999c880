"""
CLI utility helpers: settings, connectors and output formatting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from replcheck.core.adapters.mysql import MySQLConnector
from replcheck.core.config import HarnessSettings, get_settings
from replcheck.core.errors import ReplCheckError
from replcheck.core.logging import configure_from_settings

console = Console()
err_console = Console(stderr=True)


# ── Settings / connection helpers ────────────────────────────────────────


def load_settings(**overrides: Any) -> HarnessSettings:
    """Settings from the environment plus any CLI flags that were given.

    Configures logging as a side effect. Invalid values exit with code 2.
    """
    given = {k: v for k, v in overrides.items() if v is not None}
    try:
        settings = get_settings(**given)
    except ValidationError as e:
        err_console.print(f"[bold red]Invalid settings[/bold red]\n{e}")
        raise typer.Exit(code=2) from e
    configure_from_settings(settings)
    return settings


def make_connector(settings: HarnessSettings, database: str | None = None) -> MySQLConnector:
    return MySQLConnector.from_settings(settings, database=database)


def split_nodes(nodes: str | None) -> list[str] | None:
    """``"n1,n2, n3"`` -> ``["n1", "n2", "n3"]``; None passes through."""
    if nodes is None:
        return None
    return [n.strip() for n in nodes.split(",") if n.strip()]


def fail(error: ReplCheckError, *, code: int = 1) -> NoReturn:
    """Print a harness error and exit."""
    err_console.print(f"[bold red]Error[/bold red] ({error.reason}): {error.message}")
    raise typer.Exit(code=code)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_data(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a result (dict, list of dicts, or object) to the terminal."""
    if as_json:
        if isinstance(data, (list, tuple)):
            payload: Any = [_to_dict(d) for d in data]
        else:
            payload = _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, (list, tuple)):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(list(data), title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(str(col), overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
