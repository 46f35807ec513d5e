"""Tests for the prompt refiners (prompting/refiners.py)."""

from __future__ import annotations

from dataclasses import replace

import pytest

from testpilot.config import DEFAULT_RETRY_TEMPLATE, DEFAULT_TEMPLATE
from testpilot.models.api_function import APIFunction
from testpilot.models.report import TestOutcome
from testpilot.prompting.prompt import Prompt, PromptOptions, RetryPrompt, default_prompt_options
from testpilot.prompting.refiners import (
    DocCommentIncluder,
    FunctionBodyIncluder,
    RetryWithError,
    SnippetIncluder,
    default_refiners,
)

SNIPPETS = [
    'plural.addRule("goose", "geese");',
    "plural.addRule('bacterium', neuterPlural);",
]


@pytest.fixture
def options() -> PromptOptions:
    return replace(
        default_prompt_options(),
        template_file_name=str(DEFAULT_TEMPLATE),
        retry_template_file_name=str(DEFAULT_RETRY_TEMPLATE),
    )


def _add_rule(doc_comment: str | None = None, implementation: str = "") -> APIFunction:
    return APIFunction.from_signature(
        "plural.addRule(match, result)",
        implementation=implementation,
        doc_comment=doc_comment,
    )


# ── Registry ─────────────────────────────────────────────────────


def test_default_refiners_order() -> None:
    assert [refiner.name for refiner in default_refiners()] == [
        "SnippetIncluder",
        "RetryWithError",
        "DocCommentIncluder",
        "FunctionBodyIncluder",
    ]


# ── DocCommentIncluder ───────────────────────────────────────────


def test_doc_comment_includer_adds_doc_comment(options: PromptOptions) -> None:
    fun = _add_rule(doc_comment="*\n* adds rule \n* @param {string}")
    prompt = Prompt(fun, [], options)

    refined = DocCommentIncluder().refine(prompt, "", TestOutcome.passed())

    assert refined == [Prompt(fun, [], replace(options, include_doc_comment=True))]


def test_doc_comment_includer_keeps_snippets(options: PromptOptions) -> None:
    fun = _add_rule(doc_comment="doc string")
    prompt = Prompt(fun, SNIPPETS, options)

    refined = DocCommentIncluder().refine(prompt, "", TestOutcome.passed())

    assert refined == [Prompt(fun, SNIPPETS, replace(options, include_doc_comment=True))]


def test_doc_comment_includer_noop_when_already_included(options: PromptOptions) -> None:
    prompt = Prompt(_add_rule(doc_comment="doc string"), [], replace(options, include_doc_comment=True))
    assert DocCommentIncluder().refine(prompt, "", TestOutcome.passed()) == []


def test_doc_comment_includer_noop_without_doc_comment(options: PromptOptions) -> None:
    prompt = Prompt(_add_rule(), [], options)
    assert DocCommentIncluder().refine(prompt, "", TestOutcome.passed()) == []


# ── SnippetIncluder ──────────────────────────────────────────────


def test_snippet_includer_adds_snippets(options: PromptOptions) -> None:
    fun = _add_rule(doc_comment="Add a rule for forming the plural of a word.")
    prompt = Prompt(fun, SNIPPETS, replace(options, include_doc_comment=True))

    refined = SnippetIncluder().refine(prompt, "", TestOutcome.passed())

    assert refined == [
        Prompt(fun, SNIPPETS, replace(options, include_doc_comment=True, include_snippets=True))
    ]


def test_snippet_includer_noop_without_snippets(options: PromptOptions) -> None:
    prompt = Prompt(_add_rule(), [], options)
    assert SnippetIncluder().refine(prompt, "", TestOutcome.passed()) == []


def test_snippet_includer_noop_when_already_included(options: PromptOptions) -> None:
    prompt = Prompt(_add_rule(), SNIPPETS, replace(options, include_snippets=True))
    assert SnippetIncluder().refine(prompt, "", TestOutcome.passed()) == []


# ── RetryWithError ───────────────────────────────────────────────


def test_retry_with_error_after_failure(options: PromptOptions) -> None:
    prompt = Prompt(APIFunction.from_signature("plus(x, y)"), [], options)
    completion = "assert(plus(1, 1), 3);"

    refined = RetryWithError().refine(
        prompt, completion, TestOutcome.failed("expected 2 to equal 3")
    )

    assert refined == [RetryPrompt(prompt, completion, "expected 2 to equal 3")]
    assert isinstance(refined[0], RetryPrompt)
    assert refined[0].prev is prompt


@pytest.mark.parametrize(
    "outcome",
    [TestOutcome.passed(), TestOutcome.pending(), TestOutcome.other("crashed")],
)
def test_retry_with_error_ignores_non_failures(
    options: PromptOptions, outcome: TestOutcome
) -> None:
    prompt = Prompt(APIFunction.from_signature("plus(x, y)"), [], options)
    assert RetryWithError().refine(prompt, "body", outcome) == []


def test_retry_with_error_does_not_chain(options: PromptOptions) -> None:
    prompt = Prompt(APIFunction.from_signature("plus(x, y)"), [], options)
    retry = RetryPrompt(prompt, "body", "first error")
    assert RetryWithError().refine(retry, "body", TestOutcome.failed("second error")) == []


# ── FunctionBodyIncluder ─────────────────────────────────────────


def test_function_body_includer_adds_body(options: PromptOptions) -> None:
    fun = APIFunction.from_signature(
        "plus(x, y)", implementation="function plus(x, y) {\n    return String(x) + String(y);\n}"
    )
    prompt = Prompt(fun, [], options)

    refined = FunctionBodyIncluder().refine(prompt, "", TestOutcome.passed())

    assert len(refined) == 1
    assert refined[0].options.include_function_body
    assert "This function is defined as follows:" in refined[0].assemble()


def test_function_body_includer_noop_without_body(options: PromptOptions) -> None:
    prompt = Prompt(_add_rule(), [], options)
    assert FunctionBodyIncluder().refine(prompt, "", TestOutcome.passed()) == []


def test_function_body_includer_noop_when_already_included(options: PromptOptions) -> None:
    fun = APIFunction.from_signature("plus(x, y)", implementation="function plus() {}")
    prompt = Prompt(fun, [], replace(options, include_function_body=True))
    assert FunctionBodyIncluder().refine(prompt, "", TestOutcome.passed()) == []


# ── Termination ──────────────────────────────────────────────────


def test_refinement_exhausts(options: PromptOptions) -> None:
    """Repeatedly refining every prompt eventually yields no new prompts."""
    fun = _add_rule(doc_comment="doc", implementation="function addRule() {}")
    worklist = [Prompt(fun, SNIPPETS, options)]
    seen: list[Prompt] = []
    outcome = TestOutcome.failed("boom")

    while worklist:
        prompt = worklist.pop()
        if prompt in seen:
            continue
        seen.append(prompt)
        for refiner in default_refiners():
            worklist.extend(refiner.refine(prompt, "body", outcome))

    plain = [p for p in seen if not isinstance(p, RetryPrompt)]
    retries = [p for p in seen if isinstance(p, RetryPrompt)]
    assert len(plain) == 8
    assert len(retries) == 8
