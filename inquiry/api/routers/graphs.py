"""Graph-level endpoints.

Routes
------
GET  /graphs                                List the graph catalogue
GET  /graphs/{collection}/root              Resolve the graph's starting node
POST /graphs/{collection}/migrate-ratings   Fold legacy ratings into humanRatings
POST /graphs/{collection}/believes          "This House Believes" summary
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from inquiry.api.routers.nodes import NodeResponse, node_response
from inquiry.services.debate import generate_beliefs
from inquiry.services.graphs import initialize_graph, list_graphs
from inquiry.services.ratings import migrate_collection_ratings

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class GraphResponse(BaseModel):
    collection: str
    name: str
    description: str
    kind: str
    author: Optional[str]
    root_node_id: Optional[str]


class MigrationResponse(BaseModel):
    collection: str
    migrated: int


class BeliefResponse(BaseModel):
    title: str
    description: str
    confidence: int
    supporting_nodes: int
    node_id: Optional[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("", response_model=list[GraphResponse])
def graphs() -> list[dict[str, Any]]:
    """Return every configured graph, question graphs before text graphs."""
    return [g.to_dict() for g in list_graphs()]


@router.get("/{collection}/root", response_model=NodeResponse)
async def root(collection: str, request: Request) -> dict[str, Any]:
    """Return the node a reader starts from; 504 if loading takes too long."""
    node = await initialize_graph(request.app.state.db, collection)
    return node_response(node)


@router.post("/{collection}/migrate-ratings", response_model=MigrationResponse)
def migrate_ratings(collection: str, request: Request) -> dict[str, Any]:
    migrated = migrate_collection_ratings(request.app.state.db, collection)
    return {"collection": collection, "migrated": migrated}


@router.post("/{collection}/believes", response_model=list[BeliefResponse])
async def believes(collection: str, request: Request) -> list[dict[str, Any]]:
    """Ask the model for the graph's three strongest theses."""
    try:
        beliefs = await generate_beliefs(request.app.state.db, collection)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return [b.to_dict() for b in beliefs]
