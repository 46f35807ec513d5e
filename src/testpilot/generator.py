"""Test generator: drives the search over prompt variants for each function.

For every sampling temperature the generator keeps a stack of prompts to
explore, seeded with the base prompt. Each popped prompt is assembled,
skipped if an identical text was already queried in this run, and sent to
the model. Every candidate test extracted from the completions is completed,
validated and handed to the refiners, whose suggestions are pushed back onto
the stack. A passing test ends the run for that temperature.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from testpilot.config import ConfigurationError
from testpilot.models.report import TestOutcome, TestStatus
from testpilot.prompting.extraction import extract_tests_from_completion
from testpilot.prompting.prompt import Prompt, PromptProvenance, default_prompt_options
from testpilot.prompting.refiners import default_refiners
from testpilot.prompting.templates import TemplateError, check_template

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from testpilot.collector import TestResultCollector
    from testpilot.llm.engine import CompletionModel
    from testpilot.models.api_function import APIFunction
    from testpilot.models.report import TestInfo
    from testpilot.prompting.refiners import PromptRefiner
    from testpilot.snippets import SnippetMap
    from testpilot.validation.base import TestValidator

logger = logging.getLogger(__name__)


class TestGenerator:
    """Generates and validates tests for API functions.

    Args:
        temperatures: Sampling temperatures, each explored in its own run.
        snippet_map: Usage snippets by function name.
        model: Source of completions.
        validator: Runs candidate tests.
        collector: Receives every test, outcome and queried prompt.
        template_file_name: Template for regular prompts.
        retry_template_file_name: Template for retry prompts.
        refiners: Refinement strategies, in application order.

    Raises:
        ConfigurationError: If no temperature is given or a template file is missing.
    """

    def __init__(  # noqa: PLR0913
        self,
        temperatures: Sequence[float],
        snippet_map: SnippetMap,
        model: CompletionModel,
        validator: TestValidator,
        collector: TestResultCollector,
        template_file_name: str,
        retry_template_file_name: str,
        refiners: list[PromptRefiner] | None = None,
    ) -> None:
        if not temperatures:
            raise ConfigurationError("At least one sampling temperature is required")
        check_template(template_file_name, kind="prompt")
        check_template(retry_template_file_name, kind="retry")

        self._temperatures = list(temperatures)
        self._snippet_map = snippet_map
        self._model = model
        self._validator = validator
        self._collector = collector
        self._template_file_name = str(template_file_name)
        self._retry_template_file_name = str(retry_template_file_name)
        self._refiners = refiners if refiners is not None else default_refiners()
        # Completed test source -> event set when its running validation finishes.
        self._validations: dict[str, asyncio.Event] = {}

    @property
    def collector(self) -> TestResultCollector:
        return self._collector

    # ── Generation ────────────────────────────────────────────────

    async def generate_and_validate_tests(self, fun: APIFunction) -> None:
        """Run the refinement search for *fun* at every configured temperature.

        Raises:
            TemplateError: If a prompt template cannot be rendered.
        """
        for temperature in self._temperatures:
            logger.info("Generating tests for %s (temperature %s)", fun.access_path, temperature)
            try:
                found = await self._generate_at_temperature(fun, temperature)
            except TemplateError as exc:
                logger.error("Aborting test generation for %s: %s", fun.access_path, exc)
                raise
            if not found:
                logger.info(
                    "No passing test for %s at temperature %s", fun.access_path, temperature
                )

    async def _generate_at_temperature(self, fun: APIFunction, temperature: float) -> bool:
        """Explore prompts for *fun* until one yields a passing test; return whether one did."""
        snippets = self._snippet_map(fun.function_name) or []
        options = replace(
            default_prompt_options(),
            template_file_name=self._template_file_name,
            retry_template_file_name=self._retry_template_file_name,
        )
        worklist: list[Prompt] = [Prompt(fun, snippets, options)]
        generated: dict[str, Prompt] = {}
        found_passing = False

        while worklist and not found_passing:
            prompt = worklist.pop()

            text = prompt.assemble()
            previous = generated.get(text)
            if previous is not None:
                previous.with_provenance(*prompt.provenance)
                logger.debug("Prompt %d duplicates prompt %d, skipping", prompt.id, previous.id)
                continue
            generated[text] = prompt

            logger.debug("Querying model with prompt %d (%r)", prompt.id, prompt)
            try:
                raw_completions = await self._model.completions(text, temperature)
            except Exception as exc:
                logger.warning("Model query for prompt %d failed: %s", prompt.id, exc)
                raw_completions = set()
            if not raw_completions:
                logger.debug("No completions for prompt %d", prompt.id)

            for raw_completion in raw_completions:
                for test in extract_tests_from_completion(raw_completion):
                    test_info = await self.validate_completion(prompt, test, temperature)
                    if found_passing:
                        continue
                    if test_info.outcome.status == TestStatus.PASSED:
                        found_passing = True
                        logger.info(
                            "Found passing test %s for %s", test_info.test_name, fun.access_path
                        )
                        continue
                    self._refine_prompts(prompt, test, test_info, worklist)

            self._collector.record_prompt_info(prompt, temperature, raw_completions, text=text)

        return found_passing

    async def validate_completion(
        self, prompt: Prompt, completion: str, temperature: float
    ) -> TestInfo:
        """Complete *completion* into a test, validate it and record the result.

        A test already recorded for an earlier prompt is not validated again;
        if that validation is still running in a concurrent search, its
        outcome is awaited.
        """
        test_source = prompt.complete_test(completion)
        test_info = self._collector.record_test_info(
            test_source if test_source is not None else completion,
            prompt,
            prompt.fun.access_path,
        )
        if len(test_info.prompts) > 1:
            in_flight = self._validations.get(test_info.test_source)
            if in_flight is not None:
                await in_flight.wait()
            logger.debug("%s already validated", test_info.test_name)
            return test_info

        done = asyncio.Event()
        self._validations[test_info.test_source] = done
        try:
            if completion == "":
                outcome = TestOutcome.failed("Empty test")
            elif test_source is None:
                outcome = TestOutcome.failed("Invalid syntax")
            else:
                outcome = await self._validator.validate_test(
                    test_info.test_name, test_info.test_source
                )
            self._collector.record_test_result(test_info, temperature, outcome)
        finally:
            done.set()
            del self._validations[test_info.test_source]
        return test_info

    def _refine_prompts(
        self,
        prompt: Prompt,
        completion: str,
        test_info: TestInfo,
        worklist: list[Prompt],
    ) -> None:
        for refiner in self._refiners:
            for refined in refiner.refine(prompt, completion, test_info.outcome):
                provenance = PromptProvenance(
                    original_prompt_id=prompt.id,
                    test_id=test_info.id,
                    refiner=refiner.name,
                )
                worklist.append(refined.with_provenance(provenance))

    async def generate_all(self, functions: Iterable[APIFunction], parallelism: int = 1) -> None:
        """Generate tests for all *functions*, at most *parallelism* at a time.

        A function whose run fails is logged and does not stop the others.
        """
        semaphore = asyncio.Semaphore(max(parallelism, 1))
        funs = list(functions)

        async def _generate_one(fun: APIFunction) -> None:
            async with semaphore:
                await self.generate_and_validate_tests(fun)

        outcomes = await asyncio.gather(
            *(_generate_one(fun) for fun in funs), return_exceptions=True
        )
        for fun, outcome in zip(funs, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Test generation for %s failed: %s", fun.access_path, outcome)
