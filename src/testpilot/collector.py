"""Test result collector: bookkeeping for generated tests, outcomes and prompts.

The collector is the only state shared between generation runs, so all
mutations happen under a lock.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from testpilot.models.report import TestInfo, TestStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from testpilot.models.report import TestOutcome
    from testpilot.prompting.prompt import Prompt

logger = logging.getLogger(__name__)

REPORT_FILE_NAME = "report.json"


@dataclass
class PromptInfo:
    """A prompt that was sent to the model, with what came back."""

    prompt: Prompt
    """The prompt that was queried."""

    temperature: float
    """Sampling temperature of the query."""

    completions: list[str] = field(default_factory=list)
    """Raw completions returned by the model."""

    text: str = ""
    """Assembled prompt text as sent to the model."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        options = self.prompt.options
        return {
            "id": self.prompt.id,
            "kind": type(self.prompt).__name__,
            "api": self.prompt.fun.access_path,
            "temperature": self.temperature,
            "options": {
                "includeSnippets": options.include_snippets,
                "includeDocComment": options.include_doc_comment,
                "includeFunctionBody": options.include_function_body,
            },
            "provenance": [record.to_dict() for record in self.prompt.provenance],
            "nrCompletions": len(self.completions),
            "file": f"prompt_{self.prompt.id}.md",
        }

    def to_markdown(self) -> str:
        """Render the prompt and its completions for human inspection."""
        lines = [
            f"# Prompt {self.prompt.id} ({self.prompt.fun.access_path})",
            "",
            f"- temperature: {self.temperature}",
        ]
        lines.extend(
            f"- derived from prompt {record.original_prompt_id} via {record.refiner} "
            f"(test {record.test_id})"
            for record in self.prompt.provenance
        )
        lines += ["", "## Prompt", "", "````", self.text, "````"]
        for index, completion in enumerate(self.completions, start=1):
            lines += ["", f"## Completion {index}", "", "````", completion, "````"]
        return "\n".join(lines) + "\n"


class TestResultCollector:
    """Records every distinct generated test, its outcome and the prompts queried.

    Tests are keyed by their source text: recording the same source again
    returns the existing ``TestInfo`` with the new prompt appended.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tests: dict[str, TestInfo] = {}
        self._prompt_infos: list[PromptInfo] = []
        self._temperatures: dict[int, float] = {}
        self._test_ids = itertools.count()
        self._started_at = datetime.now(UTC)

    # ── Recording ─────────────────────────────────────────────────

    def record_test_info(self, test_source: str, prompt: Prompt, api: str) -> TestInfo:
        """Record that *prompt* produced *test_source* for the function *api*."""
        with self._lock:
            test_info = self._tests.get(test_source)
            if test_info is None:
                test_id = next(self._test_ids)
                test_info = TestInfo(
                    id=test_id,
                    test_name=f"test_{test_id}.js",
                    test_source=test_source,
                    api=api,
                )
                self._tests[test_source] = test_info
                logger.debug("Recorded new test %s for %s", test_info.test_name, api)
            test_info.prompts.append(prompt)
            return test_info

    def record_test_result(
        self, test_info: TestInfo, temperature: float, outcome: TestOutcome
    ) -> None:
        """Store the validation *outcome* of *test_info*, generated at *temperature*."""
        with self._lock:
            test_info.outcome = outcome
            self._temperatures[test_info.id] = temperature
        logger.debug(
            "%s (temperature %s): %s", test_info.test_name, temperature, outcome.status.value
        )

    def record_prompt_info(
        self,
        prompt: Prompt,
        temperature: float,
        completions: Iterable[str],
        *,
        text: str | None = None,
    ) -> None:
        """Record that *prompt* was queried at *temperature* and what it returned.

        *text* is the assembled prompt; it is assembled here when omitted.
        """
        info = PromptInfo(
            prompt=prompt,
            temperature=temperature,
            completions=list(completions),
            text=text if text is not None else prompt.assemble(),
        )
        with self._lock:
            self._prompt_infos.append(info)

    # ── Queries ───────────────────────────────────────────────────

    @property
    def tests(self) -> list[TestInfo]:
        """All distinct tests, in the order they were first recorded."""
        with self._lock:
            return list(self._tests.values())

    @property
    def prompts(self) -> list[PromptInfo]:
        """All queried prompts, in query order."""
        with self._lock:
            return list(self._prompt_infos)

    def stats(self) -> dict[str, int]:
        """Counts of tests by outcome, plus the number of prompts."""
        tests = self.tests
        counts = {status: 0 for status in TestStatus}
        for test in tests:
            counts[test.outcome.status] += 1
        return {
            "nrTests": len(tests),
            "nrPasses": counts[TestStatus.PASSED],
            "nrFailures": counts[TestStatus.FAILED],
            "nrPending": counts[TestStatus.PENDING],
            "nrOther": counts[TestStatus.OTHER],
            "nrPrompts": len(self.prompts),
        }

    # ── Reporting ─────────────────────────────────────────────────

    def build_report(self) -> dict[str, Any]:
        """Build the JSON report structure."""
        return {
            "metadata": {
                "startedAt": self._started_at.isoformat(),
                "finishedAt": datetime.now(UTC).isoformat(),
            },
            "stats": self.stats(),
            "tests": [self._test_entry(test) for test in self.tests],
            "prompts": [info.to_dict() for info in self.prompts],
        }

    def _test_entry(self, test: TestInfo) -> dict[str, Any]:
        entry = test.to_dict()
        with self._lock:
            temperature = self._temperatures.get(test.id)
        if temperature is not None:
            entry["temperature"] = temperature
        return entry

    def write_report(self, output_dir: str | Path) -> Path:
        """Write ``report.json``, every test and every prompt below *output_dir*.

        Returns:
            The path to the generated ``report.json``.
        """
        out = Path(output_dir)
        tests_dir = out / "tests"
        prompts_dir = out / "prompts"
        tests_dir.mkdir(parents=True, exist_ok=True)
        prompts_dir.mkdir(parents=True, exist_ok=True)

        for test in self.tests:
            (tests_dir / test.test_name).write_text(test.test_source, encoding="utf-8")
        for info in self.prompts:
            (prompts_dir / f"prompt_{info.prompt.id}.md").write_text(
                info.to_markdown(), encoding="utf-8"
            )

        report_path = out / REPORT_FILE_NAME
        report_path.write_text(
            json.dumps(self.build_report(), indent=2, ensure_ascii=False, default=str),
            encoding="utf-8",
        )
        logger.info("Report written to %s", report_path)
        return report_path
