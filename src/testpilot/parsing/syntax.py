"""Lightweight JavaScript text helpers used when completing generated tests.

These are lexical heuristics, not a parser: they understand enough of
JavaScript's literal syntax (strings, template literals, comments, regular
expressions) to balance brackets in a truncated test fragment.
"""

from __future__ import annotations

import re

_CLOSER_FOR = {"(": ")", "[": "]", "{": "}"}
_OPENER_FOR = {")": "(", "]": "[", "}": "{"}

# Template literal and ``${`` substitution markers share the bracket stack.
_TEMPLATE = "`"
_SUBSTITUTION = "${"

_REGEX_PRECEDERS = frozenset("(,=:[!&|?{};+-*%<>~^")
_REGEX_KEYWORDS = frozenset(
    {
        "return",
        "typeof",
        "instanceof",
        "case",
        "do",
        "else",
        "in",
        "of",
        "new",
        "delete",
        "void",
        "throw",
        "yield",
        "await",
    }
)

_DOC_PREFIX_RE = re.compile(r"^/?\*+/?")
_DOC_SUFFIX_RE = re.compile(r"\*+/$")


def trim_and_combine_doc_comment(doc_comment: str) -> str:
    """Convert a JSDoc-style comment into ``// `` line comments.

    Comment delimiters and leading asterisks are stripped, blank lines are
    dropped, and each remaining line becomes ``// <text>\\n``.
    """
    lines: list[str] = []
    for raw_line in doc_comment.splitlines():
        text = _DOC_PREFIX_RE.sub("", raw_line.strip())
        text = _DOC_SUFFIX_RE.sub("", text).strip()
        if text:
            lines.append(f"// {text}\n")
    return "".join(lines)


def close_brackets(code: str) -> str | None:
    """Append the closing brackets needed to balance *code*.

    Returns ``None`` when the fragment cannot be closed mechanically: a
    closing bracket does not match the innermost open one, or a string,
    template literal or block comment is left unterminated.
    """
    stack: list[str] = []
    i = 0
    n = len(code)

    while i < n:
        if stack and stack[-1] == _TEMPLATE:
            i = _scan_template(code, i, stack)
            if i < 0:
                return None
            continue

        ch = code[i]
        nxt = code[i + 1] if i + 1 < n else ""

        if ch == "/" and nxt == "/":
            end = code.find("\n", i)
            i = n if end == -1 else end
            continue
        if ch == "/" and nxt == "*":
            end = code.find("*/", i + 2)
            if end == -1:
                return None
            i = end + 2
            continue
        if ch in "'\"":
            i = _skip_string(code, i)
            if i < 0:
                return None
            continue
        if ch == "/" and _regex_allowed(code, i):
            end = _skip_regex(code, i)
            # Not a terminated regex on this line: treat the slash as division.
            i = end if end > 0 else i + 1
            continue
        if ch == _TEMPLATE:
            stack.append(_TEMPLATE)
        elif ch in _CLOSER_FOR:
            stack.append(ch)
        elif ch in _OPENER_FOR:
            if ch == "}" and stack and stack[-1] == _SUBSTITUTION:
                stack.pop()
            elif stack and stack[-1] == _OPENER_FOR[ch]:
                stack.pop()
            else:
                return None
        i += 1

    if _TEMPLATE in stack or _SUBSTITUTION in stack:
        return None
    return code + "".join(_CLOSER_FOR[opener] for opener in reversed(stack))


def _skip_string(code: str, start: int) -> int:
    """Return the index just past the string literal at *start*, or -1."""
    quote = code[start]
    j = start + 1
    while j < len(code):
        c = code[j]
        if c == "\\":
            j += 2
            continue
        if c == quote:
            return j + 1
        if c == "\n":
            return -1
        j += 1
    return -1


def _scan_template(code: str, start: int, stack: list[str]) -> int:
    """Scan template-literal text until it ends or a substitution opens."""
    j = start
    while j < len(code):
        c = code[j]
        if c == "\\":
            j += 2
            continue
        if c == _TEMPLATE:
            stack.pop()
            return j + 1
        if c == "$" and code.startswith("{", j + 1):
            stack.append(_SUBSTITUTION)
            return j + 2
        j += 1
    return -1


def _regex_allowed(code: str, slash: int) -> bool:
    """Guess whether the ``/`` at *slash* starts a regular expression literal."""
    j = slash - 1
    while j >= 0 and code[j].isspace():
        j -= 1
    if j < 0:
        return True
    c = code[j]
    if c in _REGEX_PRECEDERS or c == "}":
        return True
    if c.isalnum() or c in "_$":
        k = j
        while k >= 0 and (code[k].isalnum() or code[k] in "_$"):
            k -= 1
        return code[k + 1 : j + 1] in _REGEX_KEYWORDS
    return False


def _skip_regex(code: str, start: int) -> int:
    """Return the index just past the regex literal at *start*, or -1."""
    j = start + 1
    in_class = False
    while j < len(code):
        c = code[j]
        if c == "\\":
            j += 2
            continue
        if c == "\n":
            return -1
        if in_class:
            if c == "]":
                in_class = False
        elif c == "[":
            in_class = True
        elif c == "/":
            j += 1
            while j < len(code) and (code[j].isalnum() or code[j] == "_"):
                j += 1
            return j
        j += 1
    return -1
