"""Utilities for rendering nodes and graphs in the CLI."""

from __future__ import annotations

from typing import Optional

from inquiry.content import parse_propositions
from inquiry.db.models import ImageAsset, Node
from inquiry.node_types import label, sort_by_type


def _get_icon(node_type: str) -> str:
    icons = {
        "question": "❓",
        "thesis": "💡",
        "reason": "📌",
        "antithesis": "⚔️",
        "synthesis": "🔗",
        "direct_reply": "↩️",
    }
    return icons.get(node_type, "📦")


def node_line(node: Node) -> str:
    """One-line summary: icon, type, summary, short id and average rating."""
    rating = f"  ★{node.average_rating} ({node.total_rating_count})" if node.total_rating_count else ""
    return f"{_get_icon(node.node_type)} [{label(node.node_type)}] {node.summary}  ({node.id[:8]}){rating}"


def render_node(
    node: Node,
    parent: Optional[Node] = None,
    images: Optional[list[ImageAsset]] = None,
) -> str:
    """Render a node in full: header, propositions, ratings and images."""
    lines = [node_line(node), f"  id: {node.id}", f"  depth: {node.depth}"]
    if parent is not None:
        lines.append(f"  parent: [{label(parent.node_type)}] {parent.summary}")
    if node.terminal:
        lines.append("  terminal: yes")

    propositions = parse_propositions(node.content)
    if propositions:
        lines.append("")
        for i, prop in enumerate(propositions, 1):
            lines.append(f"  {i}. {prop}")

    lines.append("")
    lines.append(
        f"  Human rating: {node.human_average_rating} ({node.human_rating_count} ratings)"
    )
    lines.append(f"  AI rating: {node.ai_rating if node.ai_rating is not None else 'None'}")
    lines.append(f"  Average: {node.average_rating} ({node.total_rating_count} total)")

    if images:
        lines.append("")
        lines.append(f"  Images ({len(images)}):")
        for image in images:
            lines.append(f"    🖼️ {image.name}  {image.url}")
    return "\n".join(lines)


def render_children(children: list[Node]) -> str:
    """Group children under their plural type label, in canonical order."""
    if not children:
        return "No children."
    lines: list[str] = []
    current: Optional[str] = None
    for child in sort_by_type(children):
        if child.node_type != current:
            current = child.node_type
            count = sum(1 for c in children if c.node_type == current)
            if lines:
                lines.append("")
            lines.append(f"{label(current, count)}:")
        lines.append(f"  {node_line(child)}")
    return "\n".join(lines)


def render_tree(nodes: list[Node], root_id: str, max_depth: Optional[int] = None) -> str:
    """Render the subtree below *root_id* as an ASCII tree.

    Children appear in canonical type order.  ``max_depth`` limits how many
    levels below the root are shown.
    """
    node_map = {n.id: n for n in nodes}
    adj: dict[str, list[Node]] = {}
    for n in nodes:
        if n.parent_id:
            adj.setdefault(n.parent_id, []).append(n)

    root = node_map.get(root_id)
    if root is None:
        return "Root node not found."

    lines = [node_line(root)]
    visited = {root.id}

    def _render(node: Node, prefix: str, level: int) -> None:
        if max_depth is not None and level > max_depth:
            return
        children = sort_by_type(adj.get(node.id, []))
        for i, child in enumerate(children):
            if child.id in visited:
                continue
            visited.add(child.id)
            is_last = i == len(children) - 1
            connector = "└── " if is_last else "├── "
            lines.append(f"{prefix}{connector}{node_line(child)}")
            _render(child, prefix + ("    " if is_last else "│   "), level + 1)

    _render(root, "", 1)
    return "\n".join(lines)

