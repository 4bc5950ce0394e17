"""AI explanations of a node, in full or as a cancellable token stream.

The explanation prompt for a node of type ``T`` is
``explanation/explain_T.txt``; when that template is missing a generic one
is used instead.  Parent context is loaded for every type except
``question``; ``synthesis`` nodes also get their grandparent (the thesis the
antithesis challenged).
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from inquiry.config import settings
from inquiry.db.models import Node
from inquiry.db.nodes import get_node
from inquiry.errors import TemplateNotFoundError
from inquiry.llm import gateway
from inquiry.node_types import QUESTION, SYNTHESIS
from inquiry.prompts.loader import DOUBLE_BRACE, fill_template, load_node_template
from inquiry.services.formatter import format_explanation

logger = logging.getLogger(__name__)

_NOT_AVAILABLE = "Not available"

_FALLBACK_TEMPLATE = """Explain this philosophical node of type "{node_type}" with the following information:
Summary: {{{{summary}}}}
Content: {{{{content}}}}
Parent Node Summary: {{{{parent_summary}}}}
Parent Node Content: {{{{parent_content}}}}
Grandparent Node Summary: {{{{grandparent_summary}}}}
Grandparent Node Content: {{{{grandparent_content}}}}

Please provide a clear explanation that helps someone understand the philosophical significance and meaning."""


@dataclass
class ExplanationChunk:
    delta: str
    text: str
    formatted: str


ChunkCallback = Callable[[ExplanationChunk], Union[Awaitable[Any], Any]]


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------

def get_explanation_template(node_type: str) -> str:
    try:
        return load_node_template("explanation", "explain_", node_type)
    except TemplateNotFoundError:
        logger.warning("No explanation template for %r; using the generic prompt", node_type)
        return _FALLBACK_TEMPLATE.format(node_type=node_type)


def _pair(node: Optional[Node]) -> tuple[str, str]:
    if node is not None and node.summary and node.content:
        return node.summary, node.content
    return _NOT_AVAILABLE, _NOT_AVAILABLE


def fill_explanation_prompt(
    template: str,
    node: Node,
    parent: Optional[Node] = None,
    grandparent: Optional[Node] = None,
) -> str:
    parent_summary, parent_content = _pair(parent)
    grandparent_summary, grandparent_content = _pair(grandparent)
    return fill_template(
        template,
        {
            "summary": node.summary,
            "content": node.content,
            "parent_summary": parent_summary,
            "parent_content": parent_content,
            "grandparent_summary": grandparent_summary,
            "grandparent_content": grandparent_content,
        },
        syntax=DOUBLE_BRACE,
    )


def _prefetch(conn: sqlite3.Connection, node_id: Optional[str], collection: str) -> Optional[Node]:
    if not node_id:
        return None
    try:
        return get_node(conn, node_id, collection)
    except sqlite3.Error:
        logger.warning("Could not load context node %s; continuing without it", node_id)
        return None


def load_context(
    conn: sqlite3.Connection, node: Node, collection: str
) -> tuple[Optional[Node], Optional[Node]]:
    """Return ``(parent, grandparent)`` as needed for *node*'s type."""
    if node.node_type == QUESTION:
        return None, None
    parent = _prefetch(conn, node.parent_id, collection)
    grandparent = None
    if node.node_type == SYNTHESIS and parent is not None:
        grandparent = _prefetch(conn, parent.parent_id, collection)
    return parent, grandparent


def build_explanation_prompt(conn: sqlite3.Connection, node: Node, collection: str) -> str:
    parent, grandparent = load_context(conn, node, collection)
    template = get_explanation_template(node.node_type)
    return fill_explanation_prompt(template, node, parent, grandparent)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def fetch_explanation(conn: sqlite3.Connection, node: Node, collection: str) -> str:
    """Return the complete explanation text for *node*.

    Raises:
        GatewayError: If the model call fails.
    """
    prompt = await asyncio.to_thread(build_explanation_prompt, conn, node, collection)
    return await gateway.chat_complete(
        prompt,
        model=settings.explanation_model,
        temperature=settings.explanation_temperature,
    )


class ExplanationStream:
    """A streamed explanation whose lifetime is bound to its consumer.

    Iterate :meth:`chunks` directly, or :meth:`start` a background task that
    feeds a callback.  :meth:`cancel` / :meth:`aclose` (or leaving the
    ``async with`` block) abort the underlying HTTP request.

    Usage::

        async with ExplanationStream(prompt) as stream:
            async for chunk in stream.chunks():
                render(chunk.formatted)
    """

    def __init__(self, prompt: str) -> None:
        self.prompt = prompt
        self.text = ""
        self._task: Optional[asyncio.Task[str]] = None
        self._source: Optional[AsyncIterator[str]] = None

    @classmethod
    def for_node(cls, conn: sqlite3.Connection, node: Node, collection: str) -> ExplanationStream:
        return cls(build_explanation_prompt(conn, node, collection))

    @property
    def formatted(self) -> str:
        return format_explanation(self.text)

    async def chunks(self) -> AsyncIterator[ExplanationChunk]:
        """Yield each delta together with the accumulated and formatted text."""
        self.text = ""
        self._source = gateway.stream_chat(
            self.prompt,
            model=settings.explanation_model,
            temperature=settings.explanation_temperature,
        )
        try:
            async for delta in self._source:
                self.text += delta
                yield ExplanationChunk(delta=delta, text=self.text, formatted=self.formatted)
        finally:
            await self._close_source()

    def start(self, on_chunk: Optional[ChunkCallback] = None) -> asyncio.Task[str]:
        """Consume the stream in a task; the task's result is the full text."""

        async def _run() -> str:
            async for chunk in self.chunks():
                if on_chunk is not None:
                    result = on_chunk(chunk)
                    if inspect.isawaitable(result):
                        await result
            return self.text

        self._task = asyncio.ensure_future(_run())
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Cancel any running task and close the upstream response."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._close_source()

    async def _close_source(self) -> None:
        source, self._source = self._source, None
        if source is not None:
            await source.aclose()  # type: ignore[attr-defined]

    async def __aenter__(self) -> ExplanationStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
