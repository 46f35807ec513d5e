"""Prompt refiners: derive new prompts from a prompt and the test it produced."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import TYPE_CHECKING

from testpilot.models.report import TestStatus
from testpilot.prompting.prompt import Prompt, RetryPrompt

if TYPE_CHECKING:
    from testpilot.models.report import TestOutcome


class PromptRefiner(ABC):
    """Suggests refined prompts based on a prompt, a completion and its outcome."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name used in provenance records."""

    @abstractmethod
    def refine(self, prompt: Prompt, completion: str, outcome: TestOutcome) -> list[Prompt]:
        """Return refined prompts derived from *prompt* (possibly none)."""


class SnippetIncluder(PromptRefiner):
    """Include usage snippets when they exist and are not yet included."""

    @property
    def name(self) -> str:
        return "SnippetIncluder"

    def refine(self, prompt: Prompt, completion: str, outcome: TestOutcome) -> list[Prompt]:
        if prompt.options.include_snippets or not prompt.usage_snippets:
            return []
        return [
            Prompt(
                prompt.fun,
                prompt.usage_snippets,
                replace(prompt.options, include_snippets=True),
            )
        ]


class RetryWithError(PromptRefiner):
    """Show the model a failing test together with its error message."""

    @property
    def name(self) -> str:
        return "RetryWithError"

    def refine(self, prompt: Prompt, completion: str, outcome: TestOutcome) -> list[Prompt]:
        # Retries are not chained.
        if isinstance(prompt, RetryPrompt) or outcome.status != TestStatus.FAILED:
            return []
        return [RetryPrompt(prompt, completion, outcome.error or "")]


class DocCommentIncluder(PromptRefiner):
    """Include the function's doc comment when it has one."""

    @property
    def name(self) -> str:
        return "DocCommentIncluder"

    def refine(self, prompt: Prompt, completion: str, outcome: TestOutcome) -> list[Prompt]:
        if prompt.options.include_doc_comment or not prompt.function_has_doc_comment():
            return []
        return [
            Prompt(
                prompt.fun,
                prompt.usage_snippets,
                replace(prompt.options, include_doc_comment=True),
            )
        ]


class FunctionBodyIncluder(PromptRefiner):
    """Include the function's implementation when it is known."""

    @property
    def name(self) -> str:
        return "FunctionBodyIncluder"

    def refine(self, prompt: Prompt, completion: str, outcome: TestOutcome) -> list[Prompt]:
        if prompt.options.include_function_body or not prompt.fun.descriptor.implementation:
            return []
        return [
            Prompt(
                prompt.fun,
                prompt.usage_snippets,
                replace(prompt.options, include_function_body=True),
            )
        ]


def default_refiners() -> list[PromptRefiner]:
    """The refiners applied by the generator, in application order."""
    return [
        SnippetIncluder(),
        RetryWithError(),
        DocCommentIncluder(),
        FunctionBodyIncluder(),
    ]
