"""Persistent state management for the Inquiry CLI.

Tracks the "active graph" and the reader's user id (ratings are stored per
user).  Stored in `~/.inquiry_cli/context.json`.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from functools import wraps
from pathlib import Path
from typing import Callable, NoReturn

import typer
from inquiry.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CliContext:
    active_graph: str | None = None
    active_graph_name: str | None = None
    user_id: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, data: str) -> CliContext:
        try:
            raw = json.loads(data)
            return cls(**raw)
        except (json.JSONDecodeError, TypeError):
            return cls()


def _get_context_path() -> Path:
    """Return the path to the context JSON file."""
    return settings.cli_config_dir / "context.json"


def load_context() -> CliContext:
    """Load the CLI context from disk. Returns defaults if missing/corrupt."""
    path = _get_context_path()
    if not path.exists():
        return CliContext()

    try:
        return CliContext.from_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return CliContext()


def save_context(ctx: CliContext) -> None:
    """Save the CLI context to disk."""
    settings.cli_config_dir.mkdir(parents=True, exist_ok=True)
    _get_context_path().write_text(ctx.to_json(), encoding="utf-8")


def ensure_user_id() -> str:
    """Return this reader's user id, creating and saving one on first use."""
    ctx = load_context()
    if not ctx.user_id:
        ctx.user_id = f"cli-{uuid.uuid4().hex[:12]}"
        save_context(ctx)
    return ctx.user_id


def fail(message: str) -> NoReturn:
    """Print *message* as an error and exit with status 1."""
    typer.echo(f"❌ {message}")
    raise typer.Exit(code=1)


def require_graph(func: Callable) -> Callable:
    """Decorator for CLI commands that operate on the active graph.

    Aborts execution if no graph is selected; the command reads the graph
    from :func:`load_context`.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        ctx = load_context()
        if not ctx.active_graph:
            typer.echo("❌ No active graph selected.")
            typer.echo("Run 'graph list' and 'graph select <collection>' first.")
            raise typer.Exit(code=1)
        return func(*args, **kwargs)

    return wrapper
