"""Two-phase node generation endpoints.

Routes
------
All paths are relative to ``/graphs/{collection}/nodes``::

    POST /{node_id}/generate/preview   Body: {"child_type": "...", "user_input": "..."}
    POST /{node_id}/generate/commit    Body: a candidate returned by preview
    POST /{node_id}/generate/reject    Body: a candidate returned by preview

The server keeps no per-user state between the phases: the client holds the
candidate and sends it back to commit it.  The parent of a committed node is
always the ``node_id`` in the path.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from inquiry.api.routers.nodes import NodeResponse, fetch_node, node_response
from inquiry.db.models import CandidateNode
from inquiry.errors import InvalidTransitionError
from inquiry.services import generation

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class PreviewRequest(BaseModel):
    child_type: str
    user_input: str


class Candidate(BaseModel):
    summary: str
    content: str
    node_type: str
    depth: int
    terminal: bool
    created_at: str
    parent_id: Optional[str] = None
    user_generated: bool = True


def _candidate_response(candidate: CandidateNode) -> dict[str, Any]:
    return {
        "summary": candidate.summary,
        "content": candidate.content,
        "node_type": candidate.node_type,
        "depth": candidate.depth,
        "terminal": candidate.terminal,
        "created_at": candidate.created_at,
        "parent_id": candidate.parent_id,
        "user_generated": candidate.user_generated,
    }


def _to_candidate(body: Candidate, parent_id: str) -> CandidateNode:
    return CandidateNode(
        summary=body.summary,
        content=body.content,
        node_type=body.node_type,
        parent_id=parent_id,
        depth=body.depth,
        terminal=body.terminal,
        created_at=body.created_at,
        user_generated=True,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/{node_id}/generate/preview", response_model=Candidate)
async def preview(
    collection: str, node_id: str, body: PreviewRequest, request: Request
) -> dict[str, Any]:
    """Ask the model for a new child of the node.  Nothing is stored."""
    parent = await asyncio.to_thread(fetch_node, request, node_id, collection)
    candidate = await generation.generate_preview(
        request.app.state.db, parent, body.child_type, body.user_input, collection
    )
    return _candidate_response(candidate)


@router.post("/{node_id}/generate/commit", response_model=NodeResponse, status_code=201)
def commit(collection: str, node_id: str, body: Candidate, request: Request) -> dict[str, Any]:
    """Store a previewed candidate as a child of the node."""
    parent = fetch_node(request, node_id, collection)
    generation.validate_child_type(parent, body.node_type)
    if body.depth != parent.depth + 1:
        raise InvalidTransitionError(
            f"Candidate depth {body.depth} does not sit under a parent at depth {parent.depth}"
        )
    node = generation.commit(
        request.app.state.db, _to_candidate(body, node_id), node_id, collection
    )
    return node_response(node)


@router.post("/{node_id}/generate/reject", status_code=204)
def reject(collection: str, node_id: str, body: Candidate) -> Response:
    """Discard a previewed candidate."""
    generation.reject(_to_candidate(body, node_id))
    return Response(status_code=204)
