"""Image assets attached to nodes.

Images are stored in the blob store under
``{collection}/{node_id}/images/{timestamp_ms}-{name}``.  Uploading the first
image flips the node's ``has_image`` flag.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import PurePath
from time import time
from typing import Optional

from inquiry.content import flatten_content
from inquiry.db.documents import WriteOp, batch_write, get_document
from inquiry.db.models import ImageAsset, Node
from inquiry.db.nodes import require_node, update_node_fields
from inquiry.llm import gateway
from inquiry.prompts.loader import DOUBLE_BRACE, fill_template, load_template
from inquiry.storage.blobs import BlobRef, BlobStore, image_prefix

logger = logging.getLogger(__name__)

IMAGE_PROMPT_TEMPLATE = "image_generation/imagePrompt.txt"


def _asset(store: BlobStore, ref: BlobRef, display_name: Optional[str] = None) -> ImageAsset:
    return ImageAsset(
        id=ref.name,
        url=store.download_url(ref),
        name=display_name or ref.name,
        path=ref.key,
    )


def _timestamp_ms() -> int:
    return int(time() * 1000)


def _store_image(
    conn: sqlite3.Connection,
    store: BlobStore,
    node: Node,
    file_name: str,
    data: bytes,
    collection: str,
    display_name: Optional[str] = None,
) -> ImageAsset:
    ref = store.upload(f"{image_prefix(collection, node.id)}/{file_name}", data)
    if not node.has_image:
        update_node_fields(conn, node.id, {"has_image": True}, collection)

    logger.info("Stored image %s for node %s in %s", ref.key, node.id, collection)
    return _asset(store, ref, display_name=display_name)


def upload_node_image(
    conn: sqlite3.Connection,
    store: BlobStore,
    node_id: str,
    filename: str,
    data: bytes,
    collection: str,
) -> ImageAsset:
    """Store *data* as an image of the node and return the new asset.

    Raises:
        NodeNotFoundError: If the node does not exist.
    """
    node = require_node(conn, node_id, collection)
    name = PurePath(filename).name or "image"
    return _store_image(conn, store, node, f"{_timestamp_ms()}-{name}", data, collection, name)


def list_node_images(store: BlobStore, node_id: str, collection: str) -> list[ImageAsset]:
    """Return the node's images; an unreadable listing yields ``[]``."""
    try:
        refs = store.list(image_prefix(collection, node_id))
    except (OSError, ValueError) as exc:
        logger.warning("Error listing images for %s in %s: %s", node_id, collection, exc)
        return []
    return [_asset(store, ref) for ref in refs]


def build_image_prompt(node: Node) -> str:
    """Fill the image-generation template with the node's summary and flattened content."""
    template = load_template(IMAGE_PROMPT_TEMPLATE)
    return fill_template(
        template,
        {"summary": node.summary, "content": flatten_content(node.content)},
        syntax=DOUBLE_BRACE,
    )


async def generate_node_image(
    conn: sqlite3.Connection,
    store: BlobStore,
    node_id: str,
    collection: str,
    prompt: Optional[str] = None,
) -> ImageAsset:
    """Generate an illustration for the node and store it as one of its images.

    Raises:
        NodeNotFoundError: If the node does not exist.
        GatewayError: If the image call fails.
    """
    node = await asyncio.to_thread(require_node, conn, node_id, collection)
    png = await gateway.generate_image(prompt or build_image_prompt(node))
    return await asyncio.to_thread(
        _store_image, conn, store, node, f"ai-generated-{_timestamp_ms()}.png", png, collection
    )


def backfill_has_image(conn: sqlite3.Connection, store: BlobStore) -> dict[str, int]:
    """Set ``has_image`` on every stored node that has an image directory.

    Scans ``{collection}/{node_id}/`` in the blob store and issues one batched
    write per collection.  Directories without a matching node are skipped.

    Returns:
        Number of nodes flagged, per collection.
    """
    flagged: dict[str, int] = {}
    for collection in store.list_prefixes():
        writes = []
        for node_id in store.list_prefixes(collection):
            doc = get_document(conn, collection, node_id)
            if doc is None:
                logger.warning("Image directory %s/%s has no matching node", collection, node_id)
                continue
            if not doc.get("has_image"):
                writes.append(WriteOp(kind="update", doc_id=node_id, data={"has_image": True}))
        flagged[collection] = batch_write(conn, collection, writes) if writes else 0
        logger.info("Flagged %d nodes with images in %s", flagged[collection], collection)
    return flagged
