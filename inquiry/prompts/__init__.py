"""Prompt template store.

Templates are plain text files under ``settings.prompts_dir`` addressed as
``{category}/{prefix}{node_type}.txt``.
"""

from inquiry.prompts.loader import (
    fill_template,
    load_node_template,
    load_template,
)

__all__ = ["fill_template", "load_node_template", "load_template"]
