"""Turn a loosely Markdown-formatted model reply into display markup.

Rules are applied in a fixed order per line:

1. ``N. text``            -> numbered item, keeping the original ``N``
2. ``# text`` .. ``### text`` and lines that are only ``**text**`` -> ``<h3>``
3. ``**text**``           -> ``<strong>`` (before italics, so ``*`` rules
   never eat half of a bold marker)
4. ``*text*``             -> ``<em>``
5. ``- text``             -> ``<li>``; consecutive items share one ``<ul>``

The function is pure and deterministic, so it can be re-run on the
accumulated text after every streamed chunk.  Its output contains none of
the source markers, so formatting already-formatted text changes nothing.
"""

from __future__ import annotations

import re

_NUMBERED = re.compile(r"^(\d+)\.\s+(.*)$")
_HASH_HEADING = re.compile(r"^\s*#{1,3}\s+(.+)$")
_BOLD_HEADING = re.compile(r"^\s*\*\*([^*]+)\*\*\s*$")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"(?<!\*)\*(?!\*)([^*\n]+?)(?<!\*)\*(?!\*)")
_BULLET = re.compile(r"^\s*-\s+(.*)$")


def _inline(text: str) -> str:
    text = _BOLD.sub(r"<strong>\1</strong>", text)
    return _ITALIC.sub(r"<em>\1</em>", text)


def format_explanation(text: str | None) -> str:
    """Format *text* for display.  ``None`` and ``""`` yield ``""``."""
    if not text:
        return ""

    out: list[str] = []
    bullets: list[str] = []

    def _flush() -> None:
        if bullets:
            out.append("<ul>" + "".join(bullets) + "</ul>")
            bullets.clear()

    for line in text.split("\n"):
        numbered = _NUMBERED.match(line)
        if numbered:
            _flush()
            num, body = numbered.groups()
            out.append(
                f'<div class="numbered-item"><span class="number">{num}.</span> '
                f'<span class="content">{_inline(body)}</span></div>'
            )
            continue

        heading = _HASH_HEADING.match(line) or _BOLD_HEADING.match(line)
        if heading:
            _flush()
            out.append(f"<h3>{_inline(heading.group(1).strip())}</h3>")
            continue

        bullet = _BULLET.match(line)
        if bullet:
            bullets.append(f"<li>{_inline(bullet.group(1))}</li>")
            continue

        _flush()
        out.append(_inline(line))

    _flush()
    return "\n".join(out)
