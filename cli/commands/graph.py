"""Graph selection commands."""

import asyncio

import typer

from inquiry.db import get_connection, init_db
from inquiry.db.nodes import list_all_nodes
from inquiry.errors import InquiryError
from inquiry.services.graphs import QUESTION_GRAPH, get_graph, initialize_graph, list_graphs

from cli.context import fail, load_context, require_graph, save_context
from cli.rendering import render_tree

graph_app = typer.Typer(help="Browse and select argument graphs.")


@graph_app.command("list")
def graph_list() -> None:
    """List every configured graph."""
    active = load_context().active_graph

    current_kind = None
    for g in list_graphs():
        if g.kind != current_kind:
            current_kind = g.kind
            typer.echo("Questions:" if g.kind == QUESTION_GRAPH else "\nTexts:")
        marker = "*" if g.collection == active else " "
        author = f" ({g.author})" if g.author else ""
        typer.echo(f" {marker} {g.collection:<40} {g.name}{author}")


@graph_app.command("select")
def graph_select(
    collection: str = typer.Argument(..., help="Collection name of the graph."),
) -> None:
    """Make *collection* the active graph."""
    try:
        graph = get_graph(collection)
    except InquiryError as exc:
        fail(str(exc))

    ctx = load_context()
    ctx.active_graph = graph.collection
    ctx.active_graph_name = graph.name
    save_context(ctx)
    typer.echo(f"📂 Switched to graph: {graph.name}")


@graph_app.command("show")
@require_graph
def graph_show(
    depth: int = typer.Option(2, "--depth", help="Levels below the root to display."),
) -> None:
    """Display the active graph as a tree, starting at its root."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    try:
        root = asyncio.run(initialize_graph(conn, ctx.active_graph))
        nodes = list_all_nodes(conn, ctx.active_graph)
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()

    typer.echo(f"Graph: {ctx.active_graph_name or ctx.active_graph}")
    typer.echo(render_tree(nodes, root.id, max_depth=depth))
