"""The node-type table: display ordering, allowed children, terminal types.

Every consumer (validation in the generation pipeline, child sorting in the
node accessors, the API's child-type listing and the CLI) reads from this
module so the rules cannot drift apart.
"""

from __future__ import annotations

from typing import Any, Iterable, TypeVar

T = TypeVar("T")

QUESTION = "question"
THESIS = "thesis"
ANTITHESIS = "antithesis"
SYNTHESIS = "synthesis"
REASON = "reason"
DIRECT_REPLY = "direct_reply"

# Canonical display order.
NODE_TYPES: tuple[str, ...] = (
    QUESTION,
    THESIS,
    REASON,
    ANTITHESIS,
    SYNTHESIS,
    DIRECT_REPLY,
)

CHILD_TYPES: dict[str, tuple[str, ...]] = {
    QUESTION: (THESIS,),
    THESIS: (ANTITHESIS, REASON),
    ANTITHESIS: (SYNTHESIS, DIRECT_REPLY),
    SYNTHESIS: (ANTITHESIS,),
}

TERMINAL_TYPES: frozenset[str] = frozenset({REASON, DIRECT_REPLY})

# Display labels (singular, plural).
LABELS: dict[str, tuple[str, str]] = {
    QUESTION: ("Question", "Questions"),
    THESIS: ("Thesis", "Theses"),
    REASON: ("Reason", "Reasons"),
    ANTITHESIS: ("Antithesis", "Antitheses"),
    SYNTHESIS: ("Synthesis", "Syntheses"),
    DIRECT_REPLY: ("Direct reply", "Direct replies"),
}


def get_possible_child_types(parent_type: str) -> list[str]:
    """Return the child types that may be created under *parent_type*."""
    return list(CHILD_TYPES.get(parent_type, ()))


def is_terminal_type(node_type: str) -> bool:
    return node_type in TERMINAL_TYPES


def type_ordinal(node_type: str) -> int:
    """Position of *node_type* in the canonical order; unknown types sort last."""
    try:
        return NODE_TYPES.index(node_type)
    except ValueError:
        return len(NODE_TYPES)


def sort_by_type(items: Iterable[T], key: Any = None) -> list[T]:
    """Stable-sort *items* by canonical type ordinal.

    Args:
        items: Node objects, node dicts, or bare type strings.
        key: Optional callable returning the node type of an item.  By default
            the ``node_type`` attribute or key is used, falling back to the
            item itself for strings.
    """
    def _type_of(item: Any) -> str:
        if key is not None:
            return key(item)
        if isinstance(item, str):
            return item
        if isinstance(item, dict):
            return item.get("node_type", "")
        return getattr(item, "node_type", "")

    # sorted() is stable, so ties keep their arrival order.
    return sorted(items, key=lambda item: type_ordinal(_type_of(item)))


def label(node_type: str, count: int = 1) -> str:
    singular, plural = LABELS.get(node_type, (node_type.replace("_", " ").title(),) * 2)
    return plural if count > 1 else singular
