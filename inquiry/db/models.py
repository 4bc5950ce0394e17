"""Dataclass models for stored documents.

These are plain Python objects – not ORM models.  The node accessors
serialise / deserialise between these types and the JSON documents held in
the document store, whose field names (``humanRatings``, ``aiRating``,
``createdAt`` …) are kept as-is for compatibility with existing graphs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

# Document keys owned by Node; anything else round-trips through Node.extra.
_NODE_KEYS = {
    "id",
    "node_type",
    "parent_id",
    "depth",
    "summary",
    "content",
    "terminal",
    "user_generated",
    "has_image",
    "createdAt",
    "humanRatings",
    "humanAverageRating",
    "humanRatingCount",
    "aiRating",
    "aiRatingTimestamp",
    "averageRating",
    "totalRatingCount",
}


@dataclass
class HumanRating:
    rating: int
    timestamp: str

    def to_document(self) -> dict[str, Any]:
        return {"rating": self.rating, "timestamp": self.timestamp}


@dataclass
class Node:
    id: str
    node_type: str
    parent_id: Optional[str] = None
    depth: int = 0
    summary: str = ""
    content: str = ""
    terminal: bool = False
    user_generated: bool = False
    has_image: bool = False
    created_at: Optional[str] = None

    human_ratings: dict[str, HumanRating] = field(default_factory=dict)
    human_average_rating: int = 0
    human_rating_count: int = 0
    ai_rating: Optional[int] = None
    ai_rating_timestamp: Optional[str] = None
    average_rating: int = 0
    total_rating_count: int = 0

    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Node:
        ratings = {
            user_id: HumanRating(rating=int(r["rating"]), timestamp=str(r.get("timestamp", "")))
            for user_id, r in (doc.get("humanRatings") or {}).items()
        }
        return cls(
            id=doc["id"],
            node_type=doc.get("node_type", ""),
            parent_id=doc.get("parent_id"),
            depth=int(doc.get("depth") or 0),
            summary=doc.get("summary") or "",
            content=doc.get("content") or "",
            terminal=bool(doc.get("terminal", False)),
            user_generated=bool(doc.get("user_generated", False)),
            has_image=bool(doc.get("has_image", False)),
            created_at=doc.get("createdAt"),
            human_ratings=ratings,
            human_average_rating=int(doc.get("humanAverageRating") or 0),
            human_rating_count=int(doc.get("humanRatingCount") or 0),
            ai_rating=doc.get("aiRating"),
            ai_rating_timestamp=doc.get("aiRatingTimestamp"),
            average_rating=int(round(doc.get("averageRating") or 0)),
            total_rating_count=int(doc.get("totalRatingCount") or 0),
            extra={k: v for k, v in doc.items() if k not in _NODE_KEYS},
        )

    def to_document(self) -> dict[str, Any]:
        """Serialise to a store document (without ``id``)."""
        doc: dict[str, Any] = dict(self.extra)
        doc.update(
            {
                "node_type": self.node_type,
                "parent_id": self.parent_id,
                "depth": self.depth,
                "summary": self.summary,
                "content": self.content,
                "terminal": self.terminal,
                "user_generated": self.user_generated,
                "has_image": self.has_image,
                "humanRatings": {u: r.to_document() for u, r in self.human_ratings.items()},
                "humanAverageRating": self.human_average_rating,
                "humanRatingCount": self.human_rating_count,
                "averageRating": self.average_rating,
                "totalRatingCount": self.total_rating_count,
            }
        )
        if self.created_at is not None:
            doc["createdAt"] = self.created_at
        if self.ai_rating is not None:
            doc["aiRating"] = self.ai_rating
            doc["aiRatingTimestamp"] = self.ai_rating_timestamp
        return doc


@dataclass
class CandidateNode:
    """An uncommitted, model-generated child node awaiting user confirmation."""

    summary: str
    content: str
    node_type: str
    parent_id: str
    depth: int
    terminal: bool
    created_at: str
    user_generated: bool = True

    def to_document(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "content": self.content,
            "node_type": self.node_type,
            "parent_id": self.parent_id,
            "depth": self.depth,
            "terminal": self.terminal,
            "user_generated": self.user_generated,
            "createdAt": self.created_at,
        }


@dataclass
class ImageAsset:
    id: str
    url: str
    name: str
    path: str
