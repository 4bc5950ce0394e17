"""Node generation pipeline: preview with the model, then commit or reject.

Generation is two-phase.  :func:`generate_preview` turns a parent node, a
requested child type and the user's idea into an uncommitted
:class:`~inquiry.db.models.CandidateNode`; nothing is written.  Only an
explicit :func:`commit` persists it.  A failed model call or an unparsable
reply therefore leaves no trace in the store.

:class:`GenerationAttempt` tracks one attempt through its states::

    IDLE -> PROMPT_FILLED -> AWAITING_MODEL -> PREVIEWED -> COMMITTED | REJECTED
                                     \\-> FAILED (-> IDLE on the next attempt)
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from inquiry.config import settings
from inquiry.db.models import CandidateNode, Node
from inquiry.db.nodes import get_node, insert_node
from inquiry.errors import InvalidStateError, InvalidTransitionError, ParseError
from inquiry.llm import gateway
from inquiry.node_types import get_possible_child_types, is_terminal_type
from inquiry.prompts.loader import SINGLE_BRACE, fill_template, load_node_template

logger = logging.getLogger(__name__)

_BLOCK = re.compile(r"\[START\](.*?)\[BREAK\](.*?)\[END\]", re.DOTALL)
_NOT_AVAILABLE = "Not available"


@dataclass
class ParsedGeneration:
    summary: str
    content: str


class GenerationState(str, enum.Enum):
    IDLE = "idle"
    PROMPT_FILLED = "prompt_filled"
    AWAITING_MODEL = "awaiting_model"
    PREVIEWED = "previewed"
    COMMITTED = "committed"
    REJECTED = "rejected"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def validate_child_type(parent: Node, child_type: str) -> None:
    """Raise :class:`InvalidTransitionError` unless *child_type* may sit under *parent*."""
    allowed = get_possible_child_types(parent.node_type)
    if parent.terminal or child_type not in allowed:
        raise InvalidTransitionError(
            f"Invalid child node type {child_type!r} for parent of type {parent.node_type!r}"
        )


def fill_generation_prompt(
    template: str,
    parent: Node,
    grandparent: Optional[Node],
    user_input: str,
) -> str:
    """Substitute the ``{parent_*}``, ``{grandparent_*}`` and ``{user_input}`` placeholders.

    Grandparent placeholders read ``Not available`` when there is no
    grandparent or it lacks a summary or content.
    """
    if grandparent is not None and grandparent.summary and grandparent.content:
        gp_summary, gp_content = grandparent.summary, grandparent.content
    else:
        gp_summary = gp_content = _NOT_AVAILABLE

    return fill_template(
        template,
        {
            "parent_summary": parent.summary,
            "parent_content": parent.content,
            "user_input": user_input,
            "grandparent_summary": gp_summary,
            "grandparent_content": gp_content,
        },
        syntax=SINGLE_BRACE,
    )


def parse_generation_response(response: str) -> ParsedGeneration:
    """Extract the first ``[START]summary[BREAK]content[END]`` block.

    Raises:
        ParseError: If no such block is present.
    """
    match = _BLOCK.search(response or "")
    if match is None:
        raise ParseError("Failed to parse the AI response into the correct format")
    return ParsedGeneration(summary=match.group(1).strip(), content=match.group(2).strip())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _fetch_grandparent(conn: sqlite3.Connection, parent: Node, collection: str) -> Optional[Node]:
    if not parent.parent_id:
        return None
    try:
        return get_node(conn, parent.parent_id, collection)
    except sqlite3.Error:
        logger.warning("Could not load grandparent %s; continuing without it", parent.parent_id)
        return None


def prepare_prompt(
    conn: sqlite3.Connection,
    parent: Node,
    child_type: str,
    user_input: str,
    collection: str,
) -> str:
    """Validate the transition and return the filled generation prompt.

    Raises:
        InvalidTransitionError: Before any I/O, if the child type is not allowed.
        TemplateNotFoundError: If there is no generation template for the type.
    """
    validate_child_type(parent, child_type)
    template = load_node_template("children_generation", "generate_", child_type)
    grandparent = _fetch_grandparent(conn, parent, collection)
    return fill_generation_prompt(template, parent, grandparent, user_input)


def build_candidate(parent: Node, child_type: str, parsed: ParsedGeneration) -> CandidateNode:
    return CandidateNode(
        summary=parsed.summary,
        content=parsed.content,
        node_type=child_type,
        parent_id=parent.id,
        depth=parent.depth + 1,
        terminal=is_terminal_type(child_type),
        user_generated=True,
        created_at=_now(),
    )


async def generate_preview(
    conn: sqlite3.Connection,
    parent: Node,
    child_type: str,
    user_input: str,
    collection: str,
) -> CandidateNode:
    """Ask the model for a child of *parent* and return it uncommitted.

    Raises:
        InvalidTransitionError: If *child_type* is not allowed under *parent*
            (no template is loaded and no request is made).
        TemplateNotFoundError: If there is no generation template for the type.
        GatewayError: If the model call fails.
        ParseError: If the reply lacks the delimited block.
    """
    prompt = await asyncio.to_thread(
        prepare_prompt, conn, parent, child_type, user_input, collection
    )
    reply = await gateway.chat_complete(
        prompt,
        model=settings.generation_model,
        temperature=settings.generation_temperature,
    )
    return build_candidate(parent, child_type, parse_generation_response(reply))


def commit(
    conn: sqlite3.Connection,
    candidate: CandidateNode,
    parent_id: str,
    collection: str,
) -> Node:
    """Persist *candidate* under a fresh id, as a child of *parent_id*.

    ``parent_id`` always overrides whatever the candidate carries.  The parent
    document is never modified.
    """
    data = candidate.to_document()
    data["parent_id"] = parent_id
    node = insert_node(conn, data, collection)
    logger.info(
        "Committed generated %s %s under %s in %s", node.node_type, node.id, parent_id, collection
    )
    return node


def reject(candidate: CandidateNode) -> None:
    """Discard *candidate*.  Nothing was persisted, so nothing is undone."""
    logger.debug("Rejected generated %s candidate", candidate.node_type)


class GenerationAttempt:
    """State machine for one user's generation attempts under one parent.

    Starting a new attempt replaces any uncommitted preview.  Stages run one
    at a time; driving the machine out of order raises
    :class:`InvalidStateError`.
    """

    def __init__(self, conn: sqlite3.Connection, parent: Node, collection: str) -> None:
        self.conn = conn
        self.parent = parent
        self.collection = collection
        self.state = GenerationState.IDLE
        self.child_type: Optional[str] = None
        self.prompt: Optional[str] = None
        self.candidate: Optional[CandidateNode] = None
        self.committed: Optional[Node] = None
        self.error: Optional[Exception] = None

    def _require(self, *states: GenerationState) -> None:
        if self.state not in states:
            raise InvalidStateError(
                f"Cannot do that while generation is {self.state.value!r}"
            )

    async def preview(self, child_type: str, user_input: str) -> CandidateNode:
        """Run a new attempt and hold its candidate."""
        self._require(
            GenerationState.IDLE,
            GenerationState.PREVIEWED,
            GenerationState.FAILED,
            GenerationState.COMMITTED,
            GenerationState.REJECTED,
        )
        self.state = GenerationState.IDLE
        self.candidate = None
        self.error = None
        self.child_type = child_type

        try:
            self.prompt = await asyncio.to_thread(
                prepare_prompt, self.conn, self.parent, child_type, user_input, self.collection
            )
            self.state = GenerationState.PROMPT_FILLED
            logger.debug("Generation prompt ready (%d chars)", len(self.prompt))

            self.state = GenerationState.AWAITING_MODEL
            reply = await gateway.chat_complete(
                self.prompt,
                model=settings.generation_model,
                temperature=settings.generation_temperature,
            )
            candidate = build_candidate(self.parent, child_type, parse_generation_response(reply))
        except Exception as exc:
            self.error = exc
            self.state = GenerationState.FAILED
            raise

        self.candidate = candidate
        self.state = GenerationState.PREVIEWED
        return candidate

    def commit(self) -> Node:
        self._require(GenerationState.PREVIEWED)
        assert self.candidate is not None
        self.committed = commit(self.conn, self.candidate, self.parent.id, self.collection)
        self.candidate = None
        self.state = GenerationState.COMMITTED
        return self.committed

    def reject(self) -> None:
        self._require(GenerationState.PREVIEWED)
        assert self.candidate is not None
        reject(self.candidate)
        self.candidate = None
        self.state = GenerationState.REJECTED
