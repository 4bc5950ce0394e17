"""Rating maintenance commands."""

import typer

from inquiry.db import get_connection, init_db
from inquiry.services.ratings import migrate_collection_ratings

from cli.context import fail, load_context

ratings_app = typer.Typer(help="Rating maintenance.")


@ratings_app.command("migrate")
def ratings_migrate(
    collection: str = typer.Option(
        None, "--collection", help="Collection to migrate (default: the active graph)."
    ),
) -> None:
    """Fold legacy ``ratings`` arrays into per-user ``humanRatings``."""
    target = collection or load_context().active_graph
    if not target:
        fail("No collection given and no active graph selected.")

    conn = get_connection()
    init_db(conn)
    try:
        migrated = migrate_collection_ratings(conn, target)
    finally:
        conn.close()

    typer.echo(f"✅ Migrated {migrated} node(s) in {target}.")
