"""Commands for reading, rating, extending and explaining nodes."""

import asyncio
from typing import Optional

import typer

from inquiry.db import get_connection, init_db
from inquiry.db.nodes import get_child_nodes, require_node
from inquiry.errors import InquiryError
from inquiry.node_types import get_possible_child_types, label
from inquiry.services.ai_rating import trigger_ai_rating
from inquiry.services.explanation import ExplanationStream, fetch_explanation
from inquiry.services.generation import GenerationAttempt
from inquiry.services.graphs import initialize_graph, load_node_view
from inquiry.services.ratings import submit_human_rating
from inquiry.storage.blobs import BlobStore

from cli.context import ensure_user_id, fail, load_context, require_graph
from cli.rendering import node_line, render_children, render_node

node_app = typer.Typer(help="Read, rate, extend and explain nodes of the active graph.")


def _resolve_id(conn, collection: str, node_id: Optional[str]) -> str:
    """Return *node_id*, or the graph's root when it is omitted."""
    if node_id:
        return node_id
    return asyncio.run(initialize_graph(conn, collection)).id


@node_app.command("show")
@require_graph
def node_show(
    node_id: Optional[str] = typer.Argument(None, help="Node ID (defaults to the graph root)."),
) -> None:
    """Show a node with its parent, ratings and images."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    try:
        nid = _resolve_id(conn, ctx.active_graph, node_id)
        view = asyncio.run(load_node_view(conn, BlobStore(), nid, ctx.active_graph))
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()

    typer.echo(render_node(view.node, parent=view.parent, images=view.images))
    if view.children:
        typer.echo("")
        typer.echo(render_children(view.children))


@node_app.command("children")
@require_graph
def node_children(
    node_id: Optional[str] = typer.Argument(None, help="Node ID (defaults to the graph root)."),
) -> None:
    """List a node's children grouped by type."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    try:
        nid = _resolve_id(conn, ctx.active_graph, node_id)
        require_node(conn, nid, ctx.active_graph)
        children = get_child_nodes(conn, nid, ctx.active_graph)
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()

    typer.echo(render_children(children))


@node_app.command("rate")
@require_graph
def node_rate(
    node_id: str = typer.Argument(..., help="Node ID."),
    rating: int = typer.Argument(..., help="Rating from 0 to 100."),
    with_ai: bool = typer.Option(
        False, "--with-ai", help="Also request the node's AI rating if it has none."
    ),
) -> None:
    """Rate a node.  Rating it again replaces your earlier rating."""
    ctx = load_context()
    user_id = ensure_user_id()
    conn = get_connection()
    init_db(conn)

    try:
        summary = submit_human_rating(conn, node_id, user_id, rating, ctx.active_graph)
        typer.echo(
            f"✅ Rated {rating}. Average {summary.average_rating} "
            f"from {summary.total_rating_count} rating(s)."
        )
        if with_ai and summary.ai_rating is None:
            result = asyncio.run(trigger_ai_rating(conn, node_id, ctx.active_graph))
            if result is not None:
                typer.echo(f"🤖 AI rating: {result.ai_rating}")
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()


@node_app.command("ai-rate")
@require_graph
def node_ai_rate(
    node_id: str = typer.Argument(..., help="Node ID."),
) -> None:
    """Request the node's AI rating (once per node; questions are never rated)."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    try:
        result = asyncio.run(trigger_ai_rating(conn, node_id, ctx.active_graph))
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()

    if result is None:
        typer.echo("Question nodes are not AI-rated.")
    elif result.already_exists:
        typer.echo(f"🤖 Node already has an AI rating: {result.ai_rating}")
    else:
        typer.echo(
            f"🤖 AI rating: {result.ai_rating}. Average {result.average_rating} "
            f"from {result.total_rating_count} rating(s)."
        )


@node_app.command("generate")
@require_graph
def node_generate(
    node_id: str = typer.Argument(..., help="Parent node ID."),
    child_type: Optional[str] = typer.Option(None, "--type", help="Type of the new child node."),
    idea: Optional[str] = typer.Option(None, "--idea", help="Your idea for the new node."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Add the node without asking."),
) -> None:
    """Draft a new child node with the model, then add or discard it."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    try:
        parent = require_node(conn, node_id, ctx.active_graph)
        allowed = [] if parent.terminal else get_possible_child_types(parent.node_type)
        if not allowed:
            fail(f"{label(parent.node_type)} nodes like this one cannot have children.")
        if child_type is None:
            child_type = allowed[0] if len(allowed) == 1 else typer.prompt(
                f"Child type ({' / '.join(allowed)})"
            )
        if idea is None:
            idea = typer.prompt("Your idea")

        attempt = GenerationAttempt(conn, parent, ctx.active_graph)
        typer.echo("⏳ Generating …")
        candidate = asyncio.run(attempt.preview(child_type, idea))

        typer.echo("")
        typer.echo(f"[{label(candidate.node_type)}] {candidate.summary}")
        typer.echo(candidate.content)
        typer.echo("")

        if yes or typer.confirm("Add this node to the graph?", default=True):
            node = attempt.commit()
            typer.echo(f"✅ Added: {node_line(node)}")
        else:
            attempt.reject()
            typer.echo("🗑️ Discarded.")
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()


@node_app.command("explain")
@require_graph
def node_explain(
    node_id: str = typer.Argument(..., help="Node ID."),
    stream: bool = typer.Option(True, "--stream/--no-stream", help="Print tokens as they arrive."),
) -> None:
    """Explain a node in plain language."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    async def _stream(node) -> None:
        async with ExplanationStream.for_node(conn, node, ctx.active_graph) as explanation:
            async for chunk in explanation.chunks():
                typer.echo(chunk.delta, nl=False)
        typer.echo("")

    try:
        node = require_node(conn, node_id, ctx.active_graph)
        if stream:
            asyncio.run(_stream(node))
        else:
            typer.echo(asyncio.run(fetch_explanation(conn, node, ctx.active_graph)))
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()
