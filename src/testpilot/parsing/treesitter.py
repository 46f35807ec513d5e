"""Tree-sitter wrapper for checking generated JavaScript tests for syntax errors."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

import tree_sitter_language_pack as tslp

if TYPE_CHECKING:
    import tree_sitter
    from tree_sitter_language_pack import SupportedLanguage

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = frozenset({"javascript", "typescript"})

_parser_cache: dict[str, tree_sitter.Parser] = {}


def get_parser(language: str) -> tree_sitter.Parser:
    """Get a (cached) tree-sitter parser for the given language."""
    if language not in SUPPORTED_LANGUAGES:
        raise ValueError(f"Unsupported language: {language}")
    cached = _parser_cache.get(language)
    if cached is not None:
        return cached
    parser = tslp.get_parser(cast("SupportedLanguage", language))
    _parser_cache[language] = parser
    return parser


def parse_code(source: bytes, language: str = "javascript") -> tree_sitter.Tree:
    """Parse source code bytes into a tree-sitter AST."""
    return get_parser(language).parse(source)


def has_parse_errors(root: tree_sitter.Node) -> bool:
    """Check if the AST contains any parse errors."""
    return root.has_error


def collect_error_ranges(root: tree_sitter.Node) -> list[tuple[int, int]]:
    """Collect 1-based line ranges of parse error nodes."""
    errors: list[tuple[int, int]] = []
    _walk_errors(root, errors)
    return errors


def syntax_errors(code: str, language: str = "javascript") -> list[str]:
    """Return human-readable syntax error descriptions for *code* (empty if valid)."""
    root = parse_code(code.encode("utf-8"), language).root_node
    if not has_parse_errors(root):
        return []
    errors = [f"Syntax error at line {start}-{end}" for start, end in collect_error_ranges(root)]
    logger.debug("Found %d syntax error(s) in generated test", len(errors))
    return errors or ["Syntax error"]


def _walk_errors(node: tree_sitter.Node, errors: list[tuple[int, int]]) -> None:
    if node.is_error or node.is_missing:
        errors.append((node.start_point.row + 1, node.end_point.row + 1))
    for child in node.children:
        _walk_errors(child, errors)
