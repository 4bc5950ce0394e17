"""Read endpoints for graph nodes.

Routes
------
All paths are relative to ``/graphs/{collection}/nodes``::

    GET  /{node_id}               Fetch a single node
    GET  /{node_id}/children      Direct children in canonical type order
    GET  /{node_id}/view          Node with parent, children and images
    GET  /{node_id}/propositions  The node's content split into propositions
    GET  /{node_id}/child-types   Child types that may be generated under the node
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from inquiry.content import parse_propositions
from inquiry.db.models import ImageAsset, Node
from inquiry.db.nodes import get_child_nodes, get_node
from inquiry.node_types import get_possible_child_types, label
from inquiry.services.graphs import load_node_view

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class HumanRatingResponse(BaseModel):
    rating: int
    timestamp: str


class NodeResponse(BaseModel):
    id: str
    node_type: str
    parent_id: Optional[str]
    depth: int
    summary: str
    content: str
    terminal: bool
    user_generated: bool
    has_image: bool
    created_at: Optional[str]
    human_ratings: dict[str, HumanRatingResponse]
    human_average_rating: int
    human_rating_count: int
    ai_rating: Optional[int]
    average_rating: int
    total_rating_count: int


class ImageResponse(BaseModel):
    id: str
    url: str
    name: str
    path: str


class NodeViewResponse(BaseModel):
    node: NodeResponse
    parent: Optional[NodeResponse]
    children: list[NodeResponse]
    images: list[ImageResponse]


class PropositionsResponse(BaseModel):
    node_id: str
    propositions: list[str]


class ChildTypeResponse(BaseModel):
    node_type: str
    label: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def node_response(node: Node) -> dict[str, Any]:
    return {
        "id": node.id,
        "node_type": node.node_type,
        "parent_id": node.parent_id,
        "depth": node.depth,
        "summary": node.summary,
        "content": node.content,
        "terminal": node.terminal,
        "user_generated": node.user_generated,
        "has_image": node.has_image,
        "created_at": node.created_at,
        "human_ratings": {u: r.to_document() for u, r in node.human_ratings.items()},
        "human_average_rating": node.human_average_rating,
        "human_rating_count": node.human_rating_count,
        "ai_rating": node.ai_rating,
        "average_rating": node.average_rating,
        "total_rating_count": node.total_rating_count,
    }


def image_response(image: ImageAsset) -> dict[str, Any]:
    return {"id": image.id, "url": image.url, "name": image.name, "path": image.path}


def fetch_node(request: Request, node_id: str, collection: str) -> Node:
    """Return the node or raise a 404."""
    node = get_node(request.app.state.db, node_id, collection)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id!r}")
    return node


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/{node_id}", response_model=NodeResponse)
def get_one(collection: str, node_id: str, request: Request) -> dict[str, Any]:
    """Fetch a single node by id."""
    return node_response(fetch_node(request, node_id, collection))


@router.get("/{node_id}/children", response_model=list[NodeResponse])
def children(collection: str, node_id: str, request: Request) -> list[dict[str, Any]]:
    """Return the node's direct children, questions first and direct replies last."""
    fetch_node(request, node_id, collection)
    nodes = get_child_nodes(request.app.state.db, node_id, collection)
    return [node_response(n) for n in nodes]


@router.get("/{node_id}/view", response_model=NodeViewResponse)
async def view(collection: str, node_id: str, request: Request) -> dict[str, Any]:
    """Return the node with its parent, children and images."""
    result = await load_node_view(
        request.app.state.db, request.app.state.blobs, node_id, collection
    )
    return {
        "node": node_response(result.node),
        "parent": node_response(result.parent) if result.parent else None,
        "children": [node_response(n) for n in result.children],
        "images": [image_response(i) for i in result.images],
    }


@router.get("/{node_id}/propositions", response_model=PropositionsResponse)
def propositions(collection: str, node_id: str, request: Request) -> dict[str, Any]:
    node = fetch_node(request, node_id, collection)
    return {"node_id": node.id, "propositions": parse_propositions(node.content)}


@router.get("/{node_id}/child-types", response_model=list[ChildTypeResponse])
def child_types(collection: str, node_id: str, request: Request) -> list[dict[str, Any]]:
    """List the child types a reader may add under this node.

    Terminal nodes accept none.
    """
    node = fetch_node(request, node_id, collection)
    if node.terminal:
        return []
    return [
        {"node_type": t, "label": label(t)} for t in get_possible_child_types(node.node_type)
    ]
