"""Usage snippets: example calls of a function, looked up by function name."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

SnippetMap = Callable[[str], list[str] | None]
"""Maps a function name to its usage snippets, or ``None`` if there are none."""


def empty_snippet_map(function_name: str) -> list[str] | None:
    return None


def load_snippet_map(path: str | Path) -> SnippetMap:
    """Build a ``SnippetMap`` from a YAML or JSON mapping of name to snippets.

    A value may be a single snippet string or a list of snippets.

    Raises:
        ValueError: If the file does not contain such a mapping.
    """
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if raw is None:
        return empty_snippet_map
    if not isinstance(raw, dict):
        raise ValueError(f"Snippet file {path} must map function names to snippets")

    snippets: dict[str, list[str]] = {}
    for name, value in raw.items():
        if isinstance(value, str):
            snippets[str(name)] = [value]
        elif isinstance(value, list):
            snippets[str(name)] = [str(item) for item in value]
        else:
            raise ValueError(f"Snippets for {name!r} must be a string or a list of strings")

    logger.debug("Loaded snippets for %d function(s) from %s", len(snippets), path)
    return snippets.get
