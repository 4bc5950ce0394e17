"""Graph catalogue, graph initialisation and node views.

Each graph lives in its own collection.  The catalogue maps collection names
to a title, a description and (usually) the id of the node a reader starts
from.  ``settings.graphs_file`` may point at a JSON file that replaces the
built-in catalogue::

    {
      "nodes": {"name": "What is Knowledge?", "kind": "question",
                "root_node_id": "004d648a-..."},
      ...
    }
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from inquiry.config import settings
from inquiry.db.models import ImageAsset, Node
from inquiry.db.nodes import get_child_nodes, get_node, get_root_question, require_node
from inquiry.errors import GraphInitTimeoutError, GraphNotFoundError, NodeNotFoundError
from inquiry.services.images import list_node_images
from inquiry.storage.blobs import BlobStore

logger = logging.getLogger(__name__)

QUESTION_GRAPH = "question"
TEXT_GRAPH = "text"


@dataclass
class Graph:
    collection: str
    name: str
    description: str = ""
    kind: str = QUESTION_GRAPH
    author: Optional[str] = None
    root_node_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class NodeView:
    """A node together with everything a reader sees around it."""

    node: Node
    parent: Optional[Node] = None
    children: list[Node] = field(default_factory=list)
    images: list[ImageAsset] = field(default_factory=list)


BUILTIN_GRAPHS: tuple[Graph, ...] = (
    Graph(
        collection="nodes",
        name="What is Knowledge?",
        description="The Socratic Question",
        root_node_id="004d648a-1557-4549-8b22-fd1ae43fcd33",
    ),
    Graph(
        collection="freedom",
        name="What is Freedom (in the sense of Liberty)?",
        description="Philosophical perspectives on freedom and liberty",
        root_node_id="a5e92802-75b0-4c29-ad4f-f07d15889d15",
    ),
    Graph(
        collection="human_flourishing",
        name="What is Human Flourishing?",
        description="Philosophical perspectives on human flourishing",
        root_node_id="ed7c4c1a-0dae-4857-977a-f3af8295f2b4",
    ),
    Graph(
        collection="AGI",
        name="What is the right definition of AGI (artificial general intelligence)?",
        description="Philosophical perspectives on AGI",
        root_node_id="af659166-31de-476b-aa91-66c7934a0b6a",
    ),
    Graph(
        collection="reasons",
        name="What are Reasons?",
        description="Philosophical perspectives on reasons",
        root_node_id="afb54e2d-3b82-464a-80d1-f766da42395b",
    ),
    Graph(
        collection="semantics",
        name="What is Semantics?",
        description="Philosophical perspectives on semantics",
        root_node_id="069e0a67-8365-46b0-a5db-6c8013f18563",
    ),
    Graph(
        collection="lewis-counterfactual-dependence-times-arrow",
        name="Counterfactual Dependence and Time's Arrow",
        description="Lewis on the asymmetry of counterfactuals and time",
        kind=TEXT_GRAPH,
        author="David Lewis",
        root_node_id="a240deac-w532-714f-5983-6f8w9d9d1pdq",
    ),
    Graph(
        collection="frankfurt-alternate-possibilities-and_moral-responsibility",
        name="Alternate Possibilities and Moral Responsibility",
        description="Frankfurt on moral responsibility without alternate possibilities",
        kind=TEXT_GRAPH,
        author="Harry Frankfurt",
    ),
)


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

def _load_graphs_file(path: Path) -> list[Graph]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    return [
        Graph(
            collection=collection,
            name=entry.get("name", collection),
            description=entry.get("description", ""),
            kind=entry.get("kind", QUESTION_GRAPH),
            author=entry.get("author"),
            root_node_id=entry.get("root_node_id"),
        )
        for collection, entry in raw.items()
    ]


def list_graphs() -> list[Graph]:
    """Return the configured graphs, question graphs first."""
    if settings.graphs_file is not None:
        graphs = _load_graphs_file(settings.graphs_file)
    else:
        graphs = list(BUILTIN_GRAPHS)
    return sorted(graphs, key=lambda g: g.kind != QUESTION_GRAPH)


def get_graph(collection: str) -> Graph:
    """Return the catalogue entry for *collection*.

    Raises:
        GraphNotFoundError: If no graph is configured under that name.
    """
    for graph in list_graphs():
        if graph.collection == collection:
            return graph
    raise GraphNotFoundError(f"Graph not found: {collection!r}")


# ---------------------------------------------------------------------------
# Initialisation
# ---------------------------------------------------------------------------

def resolve_root(conn: sqlite3.Connection, graph: Graph) -> Node:
    """Return the graph's starting node.

    The configured root id wins; without one, or when it is not stored, the
    depth-0 question is used.

    Raises:
        NodeNotFoundError: If the starting node cannot be found.
    """
    if graph.root_node_id:
        node = get_node(conn, graph.root_node_id, graph.collection)
        if node is not None:
            return node
        logger.warning(
            "Configured root %s missing from %s; falling back to the root question",
            graph.root_node_id, graph.collection,
        )
    root = get_root_question(conn, graph.collection)
    if root is None:
        raise NodeNotFoundError(graph.root_node_id or "root question", graph.collection)
    return root


async def initialize_graph(
    conn: sqlite3.Connection,
    collection: str,
    timeout: Optional[float] = None,
) -> Node:
    """Resolve the starting node of *collection* within the loading deadline.

    Raises:
        GraphNotFoundError: If the graph is not in the catalogue.
        NodeNotFoundError: If the starting node does not exist.
        GraphInitTimeoutError: If resolution takes longer than *timeout*
            (default ``settings.graph_init_timeout``).
    """
    graph = get_graph(collection)
    deadline = settings.graph_init_timeout if timeout is None else timeout
    try:
        root = await asyncio.wait_for(asyncio.to_thread(resolve_root, conn, graph), deadline)
    except asyncio.TimeoutError as exc:
        logger.warning("Loading %s exceeded %.1fs", collection, deadline)
        raise GraphInitTimeoutError(
            f"Loading timeout reached for graph {collection!r}"
        ) from exc
    logger.info("Initialised graph %s at node %s", collection, root.id)
    return root


# ---------------------------------------------------------------------------
# Node views
# ---------------------------------------------------------------------------

def _load_parent(conn: sqlite3.Connection, node: Node, collection: str) -> Optional[Node]:
    if not node.parent_id:
        return None
    try:
        return get_node(conn, node.parent_id, collection)
    except sqlite3.Error as exc:
        logger.warning("Could not load parent %s of %s: %s", node.parent_id, node.id, exc)
        return None


async def load_node_view(
    conn: sqlite3.Connection,
    store: BlobStore,
    node_id: str,
    collection: str,
) -> NodeView:
    """Load a node, then its parent, children and images concurrently.

    A failed parent or image load leaves that part empty.

    Raises:
        NodeNotFoundError: If the node itself does not exist.
    """
    node = await asyncio.to_thread(require_node, conn, node_id, collection)
    parent, children, images = await asyncio.gather(
        asyncio.to_thread(_load_parent, conn, node, collection),
        asyncio.to_thread(get_child_nodes, conn, node.id, collection),
        asyncio.to_thread(list_node_images, store, node.id, collection),
    )
    return NodeView(node=node, parent=parent, children=children, images=images)
