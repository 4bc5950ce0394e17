"""Model-generated quality ratings.

A node receives at most one AI rating, normally requested right after its
first human rating.  ``question`` nodes are never AI-rated.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from dataclasses import dataclass
from typing import Optional

from inquiry.config import settings
from inquiry.db.models import Node
from inquiry.db.nodes import get_node, require_node
from inquiry.errors import AIRatingExistsError, TemplateNotFoundError
from inquiry.llm import gateway
from inquiry.node_types import QUESTION
from inquiry.prompts.loader import DOUBLE_BRACE, fill_template, load_node_template
from inquiry.services.ratings import get_ai_rating, submit_ai_rating

logger = logging.getLogger(__name__)

DEFAULT_RATING = 50
_RATING = re.compile(r"\b(100|[1-9][0-9]|[0-9])\b")
_NOT_AVAILABLE = "Not available"

_FALLBACK_TEMPLATE = """Rate the quality of this philosophical node of type "{node_type}" on a scale from 0 to 100:
Summary: {{{{summary}}}}
Content: {{{{content}}}}
Parent Node Summary: {{{{parent_summary}}}}
Parent Node Content: {{{{parent_content}}}}

Provide a single number between 0 and 100 representing the quality rating, where:
0-20: Poor quality - unclear, illogical, or irrelevant
21-40: Below average - has significant issues in reasoning or relevance
41-60: Average - acceptable but not exceptional
61-80: Good - clear, logical, and relevant
81-100: Excellent - insightful, profound, and exceptionally well-reasoned

Your response should contain only a number between 0 and 100."""


@dataclass
class AIRatingResult:
    ai_rating: int
    already_exists: bool
    average_rating: Optional[int] = None
    total_rating_count: Optional[int] = None


def get_rating_template(node_type: str) -> str:
    try:
        return load_node_template("rating", "rate_", node_type)
    except TemplateNotFoundError:
        logger.warning("No rating template for %r; using the generic prompt", node_type)
        return _FALLBACK_TEMPLATE.format(node_type=node_type)


def fill_rating_prompt(template: str, node: Node, parent: Optional[Node]) -> str:
    if parent is not None and parent.summary and parent.content:
        parent_summary, parent_content = parent.summary, parent.content
    else:
        parent_summary = parent_content = _NOT_AVAILABLE
    return fill_template(
        template,
        {
            "summary": node.summary,
            "content": node.content,
            "parent_summary": parent_summary,
            "parent_content": parent_content,
        },
        syntax=DOUBLE_BRACE,
    )


def extract_rating(reply: str) -> int:
    """Return the first integer 0–100 in *reply*, or :data:`DEFAULT_RATING`."""
    match = _RATING.search(reply or "")
    if match is None:
        logger.warning("Could not extract a rating from model reply: %r", (reply or "")[:200])
        return DEFAULT_RATING
    return int(match.group(1))


async def generate_ai_rating(
    conn: sqlite3.Connection, node: Node, collection: str
) -> Optional[int]:
    """Ask the model to rate *node*.  Returns ``None`` for question nodes.

    Raises:
        GatewayError: If the model call fails.
    """
    if node.node_type == QUESTION:
        logger.info("Skipping AI rating for question node %s", node.id)
        return None

    parent = None
    if node.parent_id:
        try:
            parent = await asyncio.to_thread(get_node, conn, node.parent_id, collection)
        except sqlite3.Error:
            logger.warning("Could not load parent %s; rating without it", node.parent_id)

    prompt = fill_rating_prompt(get_rating_template(node.node_type), node, parent)
    reply = await gateway.chat_complete(
        prompt,
        model=settings.rating_model,
        temperature=settings.rating_temperature,
    )
    rating = extract_rating(reply)
    logger.info("AI rating for node %s: %d", node.id, rating)
    return rating


async def trigger_ai_rating(
    conn: sqlite3.Connection, node_id: str, collection: str
) -> Optional[AIRatingResult]:
    """Ensure the node has its AI rating, generating one if needed.

    Returns the existing rating with ``already_exists=True``, the new rating
    with the updated combined average, or ``None`` for question nodes.

    Raises:
        NodeNotFoundError: If the node does not exist.
        GatewayError: If the model call fails.
    """
    status = await asyncio.to_thread(get_ai_rating, conn, node_id, collection)
    if status.has_rating:
        logger.info("Node %s already has an AI rating: %s", node_id, status.rating)
        return AIRatingResult(ai_rating=int(status.rating), already_exists=True)  # type: ignore[arg-type]

    node = await asyncio.to_thread(require_node, conn, node_id, collection)
    rating = await generate_ai_rating(conn, node, collection)
    if rating is None:
        return None

    try:
        summary = await asyncio.to_thread(submit_ai_rating, conn, node_id, rating, collection)
    except AIRatingExistsError:
        # A concurrent trigger stored its rating while the model was answering.
        status = await asyncio.to_thread(get_ai_rating, conn, node_id, collection)
        logger.info("Node %s was AI-rated concurrently: %s", node_id, status.rating)
        return AIRatingResult(ai_rating=int(status.rating), already_exists=True)  # type: ignore[arg-type]

    return AIRatingResult(
        ai_rating=rating,
        already_exists=False,
        average_rating=summary.average_rating,
        total_rating_count=summary.total_rating_count,
    )
