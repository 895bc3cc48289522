"""YAML frontmatter parsing.

A source file may start with a YAML mapping fenced by ``---`` lines::

    ---
    title: Hello
    layout: post
    ---
    # Body starts here

The mapping becomes the page data handed to renderers.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL
)


class FrontmatterError(ValueError):
    """Raised when a frontmatter block is present but is not a YAML mapping."""


def parse_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split text into (frontmatter data, remaining content).

    Text without a frontmatter block returns an empty mapping and the text
    unchanged. An empty block yields an empty mapping.

    Raises:
        FrontmatterError: If the block is invalid YAML or not a mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1) or "")
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"Invalid YAML frontmatter: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontmatterError(
            f"Frontmatter must be a mapping, got {type(data).__name__}"
        )
    return data, text[match.end() :]
