"""Prompt construction, refinement and completion parsing."""

from testpilot.prompting.extraction import extract_tests_from_completion
from testpilot.prompting.prompt import (
    Prompt,
    PromptOptions,
    PromptProvenance,
    RetryPrompt,
    default_prompt_options,
    normalize_prompt_text,
)
from testpilot.prompting.refiners import (
    DocCommentIncluder,
    FunctionBodyIncluder,
    PromptRefiner,
    RetryWithError,
    SnippetIncluder,
    default_refiners,
)
from testpilot.prompting.templates import TemplateError, check_template, render_template

__all__ = [
    "DocCommentIncluder",
    "FunctionBodyIncluder",
    "Prompt",
    "PromptOptions",
    "PromptProvenance",
    "PromptRefiner",
    "RetryPrompt",
    "RetryWithError",
    "SnippetIncluder",
    "TemplateError",
    "check_template",
    "default_prompt_options",
    "default_refiners",
    "extract_tests_from_completion",
    "normalize_prompt_text",
    "render_template",
]
