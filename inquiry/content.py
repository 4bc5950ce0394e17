"""Parser / encoder for the ``content`` field of a node.

Node content is stored as a sequence of brace-delimited propositions joined
by ``},``::

    {Knowledge requires belief},{Belief alone is not sufficient}

Content that carries no braces at all is treated as a single proposition.
"""

from __future__ import annotations

import re

_SEPARATOR = "},"
_WHITESPACE = re.compile(r"\s+")


def parse_propositions(content: str | None) -> list[str]:
    """Split *content* into its propositions, with braces and padding removed.

    Empty propositions are dropped, so ``""`` and ``"{}"`` both yield ``[]``.
    """
    if not content:
        return []

    propositions: list[str] = []
    for part in content.split(_SEPARATOR):
        text = part.strip()
        if text.startswith("{"):
            text = text[1:]
        if text.endswith("}"):
            text = text[:-1]
        text = text.strip()
        if text:
            propositions.append(text)
    return propositions


def encode_propositions(propositions: list[str]) -> str:
    """Inverse of :func:`parse_propositions` for non-empty propositions."""
    return ",".join("{" + p.strip() + "}" for p in propositions if p.strip())


def flatten_content(content: str | None) -> str:
    """Return *content* as one line of prose, with braces and runs of whitespace removed."""
    if not content:
        return ""
    text = content.replace("{", "").replace("}", "")
    return _WHITESPACE.sub(" ", text).strip()
