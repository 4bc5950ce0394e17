""""This House Believes": the three strongest theses of a graph.

The model sees the root question, every thesis and the nodes readers have
engaged with (rated, illustrated or written), and names the strongest
answers.  Reply lines are matched back to thesis summaries; when fewer than
three match, the highest-rated remaining theses fill the gap.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import asdict, dataclass
from typing import Any, Optional

from inquiry.config import settings
from inquiry.db.models import Node
from inquiry.db.nodes import get_root_question, get_user_modified_nodes, list_thesis_nodes
from inquiry.errors import NodeNotFoundError
from inquiry.llm import gateway

logger = logging.getLogger(__name__)

BELIEF_COUNT = 3
_NO_CONTENT = "No content available"

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that analyzes philosophical positions and can "
    "determine the strongest answers to a question based on reasoning, evidence, "
    "and user ratings."
)


@dataclass
class Belief:
    title: str
    description: str
    confidence: int
    supporting_nodes: int
    node_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _belief(thesis: Node, position: int) -> Belief:
    return Belief(
        title=thesis.summary,
        description=thesis.content or _NO_CONTENT,
        confidence=70 + position * 5,
        supporting_nodes=5 - position,
        node_id=thesis.id,
    )


def _describe_modified(node: Node) -> str:
    return "\n".join(
        [
            f"Node ID: {node.id}",
            f"    Summary: {node.summary}",
            f"    Type: {node.node_type}",
            f"    Content: {node.content or _NO_CONTENT}",
            f"    Human Rating: {node.human_average_rating} ({node.human_rating_count} ratings)",
            f"    AI Rating: {node.ai_rating if node.ai_rating else 'None'}",
            f"    Has Images: {'Yes' if node.has_image else 'No'}",
            f"    User Generated: {'Yes' if node.user_generated else 'No'}",
        ]
    )


def build_prompt(root: Node, theses: list[Node], modified: list[Node]) -> str:
    thesis_list = "\n\n".join(
        f"Title: {t.summary}\nContent: {t.content or _NO_CONTENT}" for t in theses
    )
    modified_list = "\n\n".join(_describe_modified(n) for n in modified)
    question = root.summary
    return (
        f"Given all and only the views on the question {question} in the file, as well as "
        "all and only the reasons, objections and replies in the file exclusively, which of "
        f"the below are the three philosophically strongest answers to the question {question}. "
        "Do not consider anything not in the file. Please output exactly which of the views it "
        "is from the below in exactly the same format as below and nothing else.\n\n"
        f"{thesis_list}\n{modified_list}"
    )


def _strength(thesis: Node) -> int:
    return thesis.human_average_rating or thesis.ai_rating or 0


def parse_beliefs(reply: str, theses: list[Node]) -> list[Belief]:
    """Match reply lines to thesis summaries, then top up by rating.

    Each non-empty line contributes at most one thesis (the first whose
    summary it contains, case-insensitively) and no thesis is named twice.
    """
    beliefs: list[Belief] = []
    chosen: set[str] = set()

    for line in (reply or "").splitlines():
        lowered = line.strip().lower()
        if not lowered:
            continue
        for thesis in theses:
            if thesis.id in chosen or not thesis.summary:
                continue
            if thesis.summary.lower() in lowered:
                beliefs.append(_belief(thesis, len(beliefs)))
                chosen.add(thesis.id)
                break
        if len(beliefs) >= BELIEF_COUNT:
            return beliefs

    if len(beliefs) < BELIEF_COUNT:
        logger.info("Matched %d theses in the reply; topping up by rating", len(beliefs))
        for thesis in sorted(theses, key=_strength, reverse=True):
            if len(beliefs) >= BELIEF_COUNT:
                break
            if thesis.id not in chosen:
                beliefs.append(_belief(thesis, len(beliefs)))
                chosen.add(thesis.id)
    return beliefs


def _load_graph_context(
    conn: sqlite3.Connection, collection: str
) -> tuple[Node, list[Node], list[Node]]:
    root = get_root_question(conn, collection)
    if root is None:
        raise NodeNotFoundError("root question", collection)
    theses = list_thesis_nodes(conn, collection)
    if not theses:
        raise ValueError(f"No thesis nodes found in {collection!r}")
    return root, theses, get_user_modified_nodes(conn, collection)


async def generate_beliefs(conn: sqlite3.Connection, collection: str) -> list[Belief]:
    """Ask the model for the graph's three strongest theses.

    Raises:
        NodeNotFoundError: If the graph has no root question.
        ValueError: If the graph has no thesis nodes.
        GatewayError: If the model call fails.
    """
    root, theses, modified = await asyncio.to_thread(_load_graph_context, conn, collection)
    logger.info(
        "Found %d user-modified nodes and %d theses in %s", len(modified), len(theses), collection
    )
    prompt = build_prompt(root, theses, modified)
    reply = await gateway.chat_complete(
        prompt,
        model=settings.generation_model,
        temperature=settings.generation_temperature,
        system=SYSTEM_PROMPT,
        max_tokens=1000,
    )
    return parse_beliefs(reply, theses)
