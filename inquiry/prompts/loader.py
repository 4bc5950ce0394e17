"""Load prompt templates from disk and substitute placeholders.

Two placeholder syntaxes are in use:

* ``{name}``   — generation prompts (``children_generation/``)
* ``{{name}}`` — explanation, rating and image prompts

Substitution is verbatim: user text is inserted as-is, and unknown
placeholders are left untouched.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Mapping, Optional

from inquiry.config import settings
from inquiry.errors import TemplateNotFoundError

logger = logging.getLogger(__name__)

SINGLE_BRACE = "single"
DOUBLE_BRACE = "double"

_SINGLE = re.compile(r"(?<!\{)\{(\w+)\}(?!\})")
_DOUBLE = re.compile(r"\{\{(\w+)\}\}")


def load_template(relative_path: str, prompts_dir: Optional[Path] = None) -> str:
    """Return the text of the template at *relative_path*.

    Raises:
        TemplateNotFoundError: If the file does not exist.
    """
    root = Path(prompts_dir or settings.prompts_dir)
    path = root / relative_path
    if not path.is_file():
        raise TemplateNotFoundError(f"No prompt template at {relative_path!r}")
    logger.debug("Loaded prompt template %s", relative_path)
    return path.read_text(encoding="utf-8")


def load_node_template(
    category: str,
    prefix: str,
    node_type: str,
    prompts_dir: Optional[Path] = None,
) -> str:
    """Load ``{category}/{prefix}{node_type}.txt``."""
    return load_template(f"{category}/{prefix}{node_type}.txt", prompts_dir)


def fill_template(
    template: str,
    values: Mapping[str, str],
    syntax: str = DOUBLE_BRACE,
) -> str:
    """Replace every ``{name}`` / ``{{name}}`` occurrence with ``values[name]``.

    Substitution happens in a single pass, so placeholder-like text inside a
    substituted value is never expanded again.
    """
    pattern = _DOUBLE if syntax == DOUBLE_BRACE else _SINGLE

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        return values[name] if name in values else match.group(0)

    return pattern.sub(_sub, template)
