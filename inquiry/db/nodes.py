"""Typed node accessors over the document store."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import Any, Optional

from inquiry.db.documents import get_document, query_documents, set_document, update_fields
from inquiry.db.models import Node
from inquiry.errors import NodeNotFoundError
from inquiry.node_types import QUESTION, THESIS, sort_by_type

logger = logging.getLogger(__name__)


def get_node(conn: sqlite3.Connection, node_id: str, collection: str) -> Optional[Node]:
    """Fetch a single node by id.  Returns ``None`` if not found."""
    doc = get_document(conn, collection, node_id)
    return Node.from_document(doc) if doc else None


def require_node(conn: sqlite3.Connection, node_id: str, collection: str) -> Node:
    """Like :func:`get_node` but raises :class:`NodeNotFoundError`."""
    node = get_node(conn, node_id, collection)
    if node is None:
        raise NodeNotFoundError(node_id, collection)
    return node


def get_child_nodes(conn: sqlite3.Connection, parent_id: str, collection: str) -> list[Node]:
    """Return the direct children of *parent_id* in canonical type order."""
    docs = query_documents(conn, collection, [("parent_id", "==", parent_id)])
    logger.debug("Found %d children for %s in %s", len(docs), parent_id, collection)
    return sort_by_type(Node.from_document(d) for d in docs)


def get_root_nodes(conn: sqlite3.Connection, collection: str) -> list[Node]:
    """Return nodes without a parent."""
    docs = query_documents(conn, collection, [("parent_id", "==", None)])
    return [Node.from_document(d) for d in docs]


def get_root_question(conn: sqlite3.Connection, collection: str) -> Optional[Node]:
    """Return the depth-0 question node of a graph, or ``None``."""
    docs = query_documents(
        conn,
        collection,
        [("depth", "==", 0), ("node_type", "==", QUESTION)],
        limit=1,
    )
    if not docs:
        logger.warning("No root question node found in %s", collection)
        return None
    return Node.from_document(docs[0])


def list_nodes_by_type(conn: sqlite3.Connection, node_type: str, collection: str) -> list[Node]:
    docs = query_documents(conn, collection, [("node_type", "==", node_type)])
    return [Node.from_document(d) for d in docs]


def list_thesis_nodes(conn: sqlite3.Connection, collection: str) -> list[Node]:
    return list_nodes_by_type(conn, THESIS, collection)


def list_all_nodes(conn: sqlite3.Connection, collection: str) -> list[Node]:
    return [Node.from_document(d) for d in query_documents(conn, collection)]


def insert_node(
    conn: sqlite3.Connection,
    data: dict[str, Any],
    collection: str,
    node_id: Optional[str] = None,
) -> Node:
    """Persist a new node document under a fresh UUID (unless *node_id* is given)."""
    nid = node_id or str(uuid.uuid4())
    return Node.from_document(set_document(conn, collection, nid, data))


def update_node_fields(
    conn: sqlite3.Connection, node_id: str, fields: dict[str, Any], collection: str
) -> Node:
    """Merge *fields* into a node document.

    Raises:
        NodeNotFoundError: If the node does not exist.
    """
    return Node.from_document(update_fields(conn, collection, node_id, fields))


def get_user_modified_nodes(conn: sqlite3.Connection, collection: str) -> list[Node]:
    """Return nodes that carry human ratings, images, or were user-generated.

    Each node appears once, in the order the three queries first surface it.
    """
    queries = [
        [("humanRatingCount", ">", 0)],
        [("has_image", "==", True)],
        [("user_generated", "==", True)],
    ]
    seen: dict[str, Node] = {}
    for filters in queries:
        for doc in query_documents(conn, collection, filters):
            if doc["id"] not in seen:
                seen[doc["id"]] = Node.from_document(doc)
    return list(seen.values())
