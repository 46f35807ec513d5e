"""Source-text helpers for generated JavaScript tests."""

from testpilot.parsing.syntax import close_brackets, trim_and_combine_doc_comment
from testpilot.parsing.treesitter import parse_code, syntax_errors

__all__ = [
    "close_brackets",
    "parse_code",
    "syntax_errors",
    "trim_and_combine_doc_comment",
]
