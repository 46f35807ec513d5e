"""Extract candidate test bodies from raw model completions."""

from __future__ import annotations

import re

# First fenced block; the body may not itself contain a fence.
_FENCED_BLOCK_RE = re.compile(r"```[^\n\r]*\n((?:.(?!```))*)\n```", re.DOTALL)

_TEST_CASE_MARKER = "it("


def extract_tests_from_completion(completion: str) -> list[str]:
    """Return the test bodies contained in *completion*.

    If the completion holds a fenced code block, only that block is used.
    A block with several ``it(`` test cases is split so that each candidate
    keeps the preamble before the first case plus exactly one case.
    Without a fenced block the whole completion is returned unchanged.
    """
    match = _FENCED_BLOCK_RE.search(completion)
    if match is None:
        return [completion]

    code = match.group(1)
    starts = [m.start() for m in re.finditer(re.escape(_TEST_CASE_MARKER), code)]
    if len(starts) <= 1:
        return [code]

    preamble = code[: starts[0]]
    ends = [*starts[1:], len(code)]
    tests = [preamble + code[start:end] for start, end in zip(starts, ends)]
    return list(dict.fromkeys(tests))
