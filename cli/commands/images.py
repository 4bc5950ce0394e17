"""Commands for node images."""

import asyncio
from pathlib import Path

import typer

from inquiry.db import get_connection, init_db
from inquiry.db.nodes import require_node
from inquiry.errors import InquiryError
from inquiry.services.images import (
    backfill_has_image,
    generate_node_image,
    list_node_images,
    upload_node_image,
)
from inquiry.storage.blobs import BlobStore

from cli.context import fail, load_context, require_graph

images_app = typer.Typer(help="Attach, list and generate node images.")


@images_app.command("upload")
@require_graph
def images_upload(
    node_id: str = typer.Argument(..., help="Node ID."),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image file."),
) -> None:
    """Attach a local image file to a node."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    try:
        image = upload_node_image(
            conn, BlobStore(), node_id, path.name, path.read_bytes(), ctx.active_graph
        )
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()

    typer.echo(f"✅ Uploaded {image.name}")
    typer.echo(f"   {image.url}")


@images_app.command("list")
@require_graph
def images_list(
    node_id: str = typer.Argument(..., help="Node ID."),
) -> None:
    """List a node's images."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    try:
        require_node(conn, node_id, ctx.active_graph)
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()

    images = list_node_images(BlobStore(), node_id, ctx.active_graph)
    if not images:
        typer.echo("No images.")
        return
    for image in images:
        typer.echo(f"  🖼️ {image.name}  {image.url}")


@images_app.command("generate")
@require_graph
def images_generate(
    node_id: str = typer.Argument(..., help="Node ID."),
    prompt: str = typer.Option(None, "--prompt", help="Custom prompt (default: built from the node)."),
) -> None:
    """Generate an illustration of a node with the image model."""
    ctx = load_context()
    conn = get_connection()
    init_db(conn)

    try:
        typer.echo("⏳ Generating image …")
        image = asyncio.run(
            generate_node_image(conn, BlobStore(), node_id, ctx.active_graph, prompt=prompt)
        )
    except InquiryError as exc:
        fail(str(exc))
    finally:
        conn.close()

    typer.echo(f"✅ Generated {image.name}")
    typer.echo(f"   {image.url}")


@images_app.command("backfill")
def images_backfill() -> None:
    """Flag every node that has stored images with ``has_image``."""
    conn = get_connection()
    init_db(conn)

    try:
        flagged = backfill_has_image(conn, BlobStore())
    finally:
        conn.close()

    if not flagged:
        typer.echo("No image directories found.")
        return
    for collection, count in flagged.items():
        typer.echo(f"  {collection}: {count} node(s) flagged")
