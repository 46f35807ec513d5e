"""Structured representation of a prompt sent to the model.

A prompt asks the model to complete a Mocha test for one function. The
textual material is laid out like this::

    let mocha = require('mocha');            // -+
    let assert = require('assert');          //  | Imports
    let pkg = require('pkg');                // -+

    // usage #1                              // -+
    ...                                      //  | Usage snippets (optional)
    // usage #2                              // -+

    // this does...                          // -+
    // @param foo                            //  | Doc comment (optional)
    // @returns bar                          // -+

    fn(args)                                 //    Signature of the function under test
    function fn(args) {                      // -+
        ...                                  //  | Function body (optional)
    }                                        // -+

    describe('test pkg', function() {        //    Test suite header
        it('test fn', function(done) {       //    Test case header

``Prompt`` keeps these parts apart, renders them into the configured
template (``assemble``) and turns model output back into a complete test
(``complete_test``).
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from testpilot.models.api_function import sanitize_package_name
from testpilot.parsing.syntax import close_brackets, trim_and_combine_doc_comment
from testpilot.prompting.templates import render_template

if TYPE_CHECKING:
    from collections.abc import Iterable

    from testpilot.models.api_function import APIFunction

_FENCE = "```"

# Generic headers make tests that differ only in their titles identical.
_STUB_SUITE_HEADER = "describe('test suite', function() {\n"
_STUB_TEST_HEADER = "    it('test case', function(done) {\n"

_BODY_INDENT = " " * 8
_TRAILING_CLOSERS_RE = re.compile(r"\}\)\}\)\Z")

_PARAGRAPH_STARTERS = ("Please", "This function", "You may use")

_prompt_ids = itertools.count()


@dataclass(frozen=True)
class PromptOptions:
    """Options controlling which material a prompt includes."""

    include_snippets: bool = False
    """Whether to include usage snippets."""

    include_doc_comment: bool = False
    """Whether to include the function's doc comment."""

    include_function_body: bool = False
    """Whether to include the function's implementation."""

    template_file_name: str | None = None
    """Template used to assemble the prompt."""

    retry_template_file_name: str | None = None
    """Template used to assemble retry prompts after a failing test."""


def default_prompt_options() -> PromptOptions:
    return PromptOptions()


@dataclass(frozen=True)
class PromptProvenance:
    """How a prompt was derived: from which prompt, test and refiner."""

    original_prompt_id: int
    test_id: int
    refiner: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalPrompt": self.original_prompt_id,
            "testId": self.test_id,
            "refiner": self.refiner,
        }


def normalize_prompt_text(text: str) -> str:
    """Tidy up an expanded template regardless of which sections are empty.

    Collapses runs of blank lines, drops blank lines just inside fenced
    blocks, and makes the instruction, function-body and snippet sentences
    start their own paragraphs.
    """
    text = _replace_until_stable(text, "\n\n\n", "\n\n")
    text = _replace_until_stable(text, f"{_FENCE}\n\n", f"{_FENCE}\n")
    text = _replace_until_stable(text, f"\n\n{_FENCE}", f"\n{_FENCE}")
    for phrase in _PARAGRAPH_STARTERS:
        text = _start_paragraph(text, phrase)
    return text


def _replace_until_stable(text: str, old: str, new: str) -> str:
    while old in text:
        text = text.replace(old, new)
    return text


def _start_paragraph(text: str, phrase: str) -> str:
    """Insert a newline before the first *phrase* unless it already starts a paragraph."""
    index = text.find(phrase)
    if index <= 0 or text[:index].endswith("\n\n"):
        return text
    return text[:index] + "\n" + text[index:]


class Prompt:
    """A request for a test of ``fun``, plus how it came about.

    The textual parts are fixed at construction; only ``provenance`` grows
    afterwards. Equality is structural and ignores ``id`` and provenance.
    """

    def __init__(
        self,
        fun: APIFunction,
        usage_snippets: Iterable[str],
        options: PromptOptions,
    ) -> None:
        self.id = next(_prompt_ids)
        self.fun = fun
        self.usage_snippets = tuple(usage_snippets)
        self.options = options
        self.provenance: list[PromptProvenance] = []

        sanitized = sanitize_package_name(fun.package_name)
        self._imports = (
            "let mocha = require('mocha');\n"
            "let assert = require('assert');\n"
            f"let {sanitized} = require('{fun.package_name}');\n"
        )
        self._signature = fun.signature
        self._suite_header = f"describe('test {sanitized}', function() {{\n"
        self._test_header = f"    it('test {fun.access_path}', function(done) {{\n"

        descriptor = fun.descriptor
        self._function_body = descriptor.implementation if options.include_function_body else ""
        self._doc_comment = (
            trim_and_combine_doc_comment(descriptor.doc_comment or "")
            if options.include_doc_comment
            else ""
        )

    # ── Read-only parts ───────────────────────────────────────────

    @property
    def imports(self) -> str:
        return self._imports

    @property
    def signature(self) -> str:
        return self._signature

    @property
    def doc_comment(self) -> str:
        return self._doc_comment

    @property
    def function_body(self) -> str:
        return self._function_body

    @property
    def suite_header(self) -> str:
        return self._suite_header

    @property
    def test_header(self) -> str:
        return self._test_header

    # ── Assembly ──────────────────────────────────────────────────

    def _assemble_usage_snippets(self) -> str:
        """Number the snippets and squash each onto a single line."""
        if not self.options.include_snippets:
            return ""
        return "".join(
            f"// usage #{index}\n" + "".join(snippet.split("\n")) + "\n"
            for index, snippet in enumerate(self.usage_snippets, start=1)
        )

    def assemble(self) -> str:
        """Render the prompt text sent to the model.

        Raises:
            TemplateError: If the prompt template cannot be rendered.
        """
        snippets = self._assemble_usage_snippets()
        function_body = (
            f"This function is defined as follows:\n{_FENCE}\n"
            f"{self._function_body.strip()}\n{_FENCE}"
            if self._function_body
            else ""
        )
        expanded = render_template(
            self.options.template_file_name,
            signature=self._signature.strip(),
            doc_comment=self._doc_comment,
            function_body=function_body,
            snippets=(
                "You may use the following examples to guide your implementation:\n"
                f"{_FENCE}\n{snippets}\n{_FENCE}"
                if snippets
                else ""
            ),
            code=self._imports + self._suite_header + self._test_header,
        )
        return normalize_prompt_text(expanded)

    def complete_test(self, body: str, stub_out_headers: bool = True) -> str | None:
        """Turn a test body suggested by the model into a complete test.

        Imports and suite/case headers are added where the body lacks them
        and unbalanced brackets are closed. With *stub_out_headers* the
        headers are generic, so tests differing only in their titles compare
        equal. Returns ``None`` if the brackets cannot be balanced.
        """
        code = ""
        first_line = body.split("\n", 1)[0]
        if "require" not in first_line:
            code += self._imports + "\n"

        if "describe(" not in body:
            if stub_out_headers:
                code += _STUB_SUITE_HEADER + _STUB_TEST_HEADER
            else:
                code += self._suite_header + self._test_header
            trimmed = body.strip()
            code += (_BODY_INDENT + trimmed if trimmed else trimmed) + "\n"
        else:
            code += body

        fixed = close_brackets(code)
        if fixed is None:
            return None
        return _TRAILING_CLOSERS_RE.sub("    })\n})", fixed)

    # ── Provenance ────────────────────────────────────────────────

    def with_provenance(self, *provenance: PromptProvenance) -> Prompt:
        """Append *provenance* records and return ``self``."""
        self.provenance.extend(provenance)
        return self

    def function_has_doc_comment(self) -> bool:
        return self.fun.descriptor.doc_comment is not None

    # ── Identity ──────────────────────────────────────────────────

    def _key(self) -> tuple[Any, ...]:
        return (type(self), self.fun, self.usage_snippets, self.options)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Prompt):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self.id}, fun={self.fun.access_path!r}, "
            f"options={self.options!r})"
        )


class RetryPrompt(Prompt):
    """A follow-up prompt showing the model its failing test and the error."""

    def __init__(self, prev: Prompt, body: str, error: str) -> None:
        super().__init__(prev.fun, prev.usage_snippets, prev.options)
        self._prev = prev
        self._body = body
        self._error = error

    @property
    def prev(self) -> Prompt:
        return self._prev

    @property
    def body(self) -> str:
        return self._body

    @property
    def error(self) -> str:
        return self._error

    def assemble(self) -> str:
        """Render the retry template with the failing test and its error.

        Raises:
            TemplateError: If the retry template cannot be rendered.
        """
        failing_test = self._prev.complete_test(self._body)
        if failing_test is None:
            failing_test = self._body
        return render_template(
            self.options.retry_template_file_name,
            test=failing_test,
            error=self._error,
        )

    def _key(self) -> tuple[Any, ...]:
        return (*super()._key(), self._prev, self._body, self._error)
