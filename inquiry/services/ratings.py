"""Rating aggregation.

Each node keeps one human rating per user in ``humanRatings`` plus at most one
AI rating.  After every write the derived fields are recomputed together::

    humanAverageRating = round(mean(humanRatings[*].rating))
    averageRating      = round((humanAverageRating * humanRatingCount + aiRating)
                               / (humanRatingCount + 1))        # with AI rating
                       = humanAverageRating                      # without
    totalRatingCount   = humanRatingCount (+1 with AI rating)

Rounding is half-up, matching how the values were originally computed.

Every read-modify-write runs inside :func:`~inquiry.db.connection.transaction`,
so two raters submitting at once are serialised rather than one update being
lost.

Older documents stored ratings as a ``ratings`` array
(``[{"userId", "rating", "timestamp"}]``) or map.  Those are folded into
``humanRatings`` before any rating operation touches the node.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from inquiry.db.connection import transaction
from inquiry.db.documents import DELETE_FIELD, WriteOp, batch_write, get_document, query_documents, update_fields
from inquiry.errors import AIRatingExistsError, InvalidRatingError, NodeNotFoundError

logger = logging.getLogger(__name__)

_LEGACY_FIELDS = ("ratings", "totalRatings")


@dataclass
class RatingSummary:
    human_average_rating: int
    human_rating_count: int
    average_rating: int
    total_rating_count: int
    ai_rating: Optional[int] = None


@dataclass
class AIRatingStatus:
    has_rating: bool
    rating: Optional[int] = None


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def validate_rating(rating: Any) -> int:
    """Return *rating* if it is an integer in [0, 100], else raise."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRatingError(f"Rating must be an integer, got {rating!r}")
    if not 0 <= rating <= 100:
        raise InvalidRatingError(f"Rating must be between 0 and 100, got {rating}")
    return rating


def combined_average(human_average: int, human_count: int, ai_rating: Optional[int]) -> int:
    if ai_rating is None:
        return human_average
    return round_half_up((human_average * human_count + ai_rating) / (human_count + 1))


def aggregate(human_ratings: dict[str, dict[str, Any]], ai_rating: Optional[int]) -> dict[str, Any]:
    """Return the derived rating fields for a node's current ratings."""
    values = [int(r["rating"]) for r in human_ratings.values()]
    count = len(values)
    human_average = round_half_up(sum(values) / count) if count else 0
    return {
        "humanAverageRating": human_average,
        "humanRatingCount": count,
        "averageRating": combined_average(human_average, count, ai_rating),
        "totalRatingCount": count + (1 if ai_rating is not None else 0),
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _summary(doc: dict[str, Any]) -> RatingSummary:
    return RatingSummary(
        human_average_rating=doc.get("humanAverageRating", 0),
        human_rating_count=doc.get("humanRatingCount", 0),
        average_rating=doc.get("averageRating", 0),
        total_rating_count=doc.get("totalRatingCount", 0),
        ai_rating=doc.get("aiRating"),
    )


def _legacy_entries(legacy: Any) -> dict[str, dict[str, Any]]:
    """Normalise a legacy ``ratings`` value into ``{user_id: {rating, timestamp}}``.

    Later entries for the same user win, as they did when the array was
    written.
    """
    entries: dict[str, dict[str, Any]] = {}
    if isinstance(legacy, list):
        for item in legacy:
            if not isinstance(item, dict) or "rating" not in item:
                continue
            user_id = str(item.get("userId") or "anonymous")
            entries[user_id] = {
                "rating": int(item["rating"]),
                "timestamp": str(item.get("timestamp") or ""),
            }
    elif isinstance(legacy, dict):
        for user_id, item in legacy.items():
            if isinstance(item, dict) and "rating" in item:
                entries[str(user_id)] = {
                    "rating": int(item["rating"]),
                    "timestamp": str(item.get("timestamp") or ""),
                }
            elif isinstance(item, (int, float)) and not isinstance(item, bool):
                entries[str(user_id)] = {"rating": int(item), "timestamp": ""}
    return entries


def legacy_migration_fields(doc: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Return the field updates that migrate *doc*'s legacy ratings, or ``None``.

    Ratings already present in ``humanRatings`` take precedence over legacy
    entries for the same user.
    """
    if not any(name in doc for name in _LEGACY_FIELDS):
        return None

    merged = _legacy_entries(doc.get("ratings"))
    merged.update(doc.get("humanRatings") or {})

    fields: dict[str, Any] = {"humanRatings": merged}
    fields.update(aggregate(merged, doc.get("aiRating")))
    for name in _LEGACY_FIELDS:
        if name in doc:
            fields[name] = DELETE_FIELD
    return fields


def _load(conn: sqlite3.Connection, node_id: str, collection: str) -> dict[str, Any]:
    doc = get_document(conn, collection, node_id)
    if doc is None:
        raise NodeNotFoundError(node_id, collection)
    migration = legacy_migration_fields(doc)
    if migration is not None:
        logger.info("Migrating legacy ratings on node %s in %s", node_id, collection)
        doc = update_fields(conn, collection, node_id, migration)
    return doc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def submit_human_rating(
    conn: sqlite3.Connection,
    node_id: str,
    user_id: str,
    rating: int,
    collection: str,
) -> RatingSummary:
    """Upsert *user_id*'s rating on a node and recompute its aggregates.

    Raises:
        InvalidRatingError: If *rating* is not an integer in [0, 100].
        NodeNotFoundError: If the node does not exist.
    """
    rating = validate_rating(rating)

    with transaction(conn):
        doc = _load(conn, node_id, collection)
        human_ratings = dict(doc.get("humanRatings") or {})
        human_ratings[user_id] = {"rating": rating, "timestamp": _now()}

        fields: dict[str, Any] = {"humanRatings": human_ratings}
        fields.update(aggregate(human_ratings, doc.get("aiRating")))
        doc = update_fields(conn, collection, node_id, fields)

    logger.info(
        "Rated node %s in %s: user=%s rating=%d average=%d",
        node_id, collection, user_id, rating, doc["averageRating"],
    )
    return _summary(doc)


def submit_ai_rating(
    conn: sqlite3.Connection,
    node_id: str,
    rating: int,
    collection: str,
) -> RatingSummary:
    """Record the node's single AI rating and recompute the combined average.

    Raises:
        InvalidRatingError: If *rating* is not an integer in [0, 100].
        NodeNotFoundError: If the node does not exist.
        AIRatingExistsError: If the node already has an AI rating.
    """
    rating = validate_rating(rating)

    with transaction(conn):
        doc = _load(conn, node_id, collection)
        if doc.get("aiRating") is not None:
            raise AIRatingExistsError(
                f"Node {node_id!r} already has an AI rating ({doc['aiRating']})"
            )
        human_ratings = doc.get("humanRatings") or {}
        fields: dict[str, Any] = {"aiRating": rating, "aiRatingTimestamp": _now()}
        fields.update(aggregate(human_ratings, rating))
        doc = update_fields(conn, collection, node_id, fields)

    logger.info("AI rating for node %s in %s: %d", node_id, collection, rating)
    return _summary(doc)


def get_ai_rating(conn: sqlite3.Connection, node_id: str, collection: str) -> AIRatingStatus:
    """Return whether the node has an AI rating, and its value."""
    doc = get_document(conn, collection, node_id)
    if doc is None:
        raise NodeNotFoundError(node_id, collection)
    rating = doc.get("aiRating")
    return AIRatingStatus(has_rating=rating is not None, rating=rating)


def has_ai_rating(conn: sqlite3.Connection, node_id: str, collection: str) -> bool:
    return get_ai_rating(conn, node_id, collection).has_rating


def get_user_rating(
    conn: sqlite3.Connection, node_id: str, user_id: str, collection: str
) -> Optional[int]:
    """Return *user_id*'s own rating of the node, or ``None``."""
    doc = get_document(conn, collection, node_id)
    if doc is None:
        raise NodeNotFoundError(node_id, collection)
    entry = (doc.get("humanRatings") or {}).get(user_id)
    if entry is None:
        entry = _legacy_entries(doc.get("ratings")).get(user_id)
    return int(entry["rating"]) if entry else None


def get_rating_summary(conn: sqlite3.Connection, node_id: str, collection: str) -> RatingSummary:
    doc = get_document(conn, collection, node_id)
    if doc is None:
        raise NodeNotFoundError(node_id, collection)
    return _summary(doc)


def migrate_legacy_ratings(conn: sqlite3.Connection, node_id: str, collection: str) -> bool:
    """Fold a node's legacy ratings into ``humanRatings``.

    Returns ``True`` if the node was changed; a node without legacy fields is
    left untouched.
    """
    with transaction(conn):
        doc = get_document(conn, collection, node_id)
        if doc is None:
            raise NodeNotFoundError(node_id, collection)
        migration = legacy_migration_fields(doc)
        if migration is None:
            return False
        update_fields(conn, collection, node_id, migration)
    return True


def migrate_collection_ratings(conn: sqlite3.Connection, collection: str) -> int:
    """Migrate every node in *collection* in one batch.  Returns nodes changed."""
    writes = []
    for doc in query_documents(conn, collection):
        migration = legacy_migration_fields(doc)
        if migration is not None:
            writes.append(WriteOp(kind="update", doc_id=doc["id"], data=migration))
    if not writes:
        return 0
    count = batch_write(conn, collection, writes)
    logger.info("Migrated legacy ratings on %d nodes in %s", count, collection)
    return count
