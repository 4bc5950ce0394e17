"""Explanation endpoints, in full or as Server-Sent Events.

Routes
------
All paths are relative to ``/graphs/{collection}/nodes``::

    GET /{node_id}/explanation          {"node_id", "explanation", "formatted"}
    GET /{node_id}/explanation/stream   text/event-stream

SSE event format
----------------
Each event is a JSON-encoded object on the ``data:`` line::

    data: {"event": "token", "delta": "...", "text": "...", "formatted": "..."}

    data: {"event": "done", "text": "...", "formatted": "..."}

    data: {"event": "error", "detail": "..."}

A client that disconnects aborts the upstream model request.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from inquiry.api.routers.nodes import fetch_node
from inquiry.errors import InquiryError
from inquiry.services.explanation import (
    ExplanationStream,
    build_explanation_prompt,
    fetch_explanation,
)
from inquiry.services.formatter import format_explanation

logger = logging.getLogger(__name__)

router = APIRouter()


class ExplanationResponse(BaseModel):
    node_id: str
    explanation: str
    formatted: str


# ---------------------------------------------------------------------------
# SSE helpers
# ---------------------------------------------------------------------------

def _sse(payload: dict[str, Any]) -> str:
    """Format a payload dict as a single SSE ``data:`` line."""
    return f"data: {json.dumps(payload)}\n\n"


async def _explanation_sse(stream: ExplanationStream) -> AsyncIterator[str]:
    try:
        async for chunk in stream.chunks():
            yield _sse(
                {
                    "event": "token",
                    "delta": chunk.delta,
                    "text": chunk.text,
                    "formatted": chunk.formatted,
                }
            )
        yield _sse({"event": "done", "text": stream.text, "formatted": stream.formatted})
    except InquiryError as exc:
        logger.warning("Explanation stream failed: %s", exc)
        yield _sse({"event": "error", "detail": str(exc)})
    finally:
        await stream.aclose()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/{node_id}/explanation", response_model=ExplanationResponse)
async def explanation(collection: str, node_id: str, request: Request) -> dict[str, Any]:
    node = await asyncio.to_thread(fetch_node, request, node_id, collection)
    text = await fetch_explanation(request.app.state.db, node, collection)
    return {"node_id": node.id, "explanation": text, "formatted": format_explanation(text)}


@router.get("/{node_id}/explanation/stream")
async def explanation_stream(collection: str, node_id: str, request: Request) -> StreamingResponse:
    """Stream the explanation token by token.

    The prompt is built before the response starts, so a missing node is
    still reported as a plain 404.
    """
    node = await asyncio.to_thread(fetch_node, request, node_id, collection)
    prompt = await asyncio.to_thread(
        build_explanation_prompt, request.app.state.db, node, collection
    )
    stream = ExplanationStream(prompt)
    return StreamingResponse(
        _explanation_sse(stream),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
