"""Inquiry CLI — entry-point for all service operations.

Usage:
    python cli/main.py --help

Sub-command groups:
    db        → document store
    graph     → choose and browse a graph
    node      → read, rate, generate and explain nodes
    images    → node images
    ratings   → rating maintenance
    believes  → "This House Believes" for the active graph
    serve     → run the HTTP API
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from inquiry.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio

import typer

from inquiry.config import configure_logging, settings
from inquiry.db import get_connection, init_db
from inquiry.errors import InquiryError
from inquiry.services.debate import generate_beliefs

from cli.commands.graph import graph_app
from cli.commands.images import images_app
from cli.commands.node import node_app
from cli.commands.ratings import ratings_app
from cli.context import fail, load_context, require_graph

app = typer.Typer(
    name="inquiry",
    help="Inquiry Complex CLI.",
    no_args_is_help=True,
)


@app.callback()
def main() -> None:
    configure_logging()


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite document store (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


app.add_typer(graph_app, name="graph")
app.add_typer(node_app, name="node")
app.add_typer(images_app, name="images")
app.add_typer(ratings_app, name="ratings")


# ---------------------------------------------------------------------------
# This House Believes
# ---------------------------------------------------------------------------
@app.command("believes")
@require_graph
def believes() -> None:
    """Ask the model for the three strongest theses of the active graph."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    typer.echo(f"[believes] Weighing the theses of {ctx.active_graph_name or ctx.active_graph} …")
    try:
        beliefs = asyncio.run(generate_beliefs(conn, ctx.active_graph))
    except (InquiryError, ValueError) as exc:
        fail(str(exc))
    finally:
        conn.close()

    typer.echo("This House Believes:")
    for i, belief in enumerate(beliefs, 1):
        typer.echo(f"\n{i}. {belief.title}  (confidence {belief.confidence}%)")
        typer.echo(f"   {belief.description}")


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------
@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("inquiry.api.app:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
