"""Mocha validator: runs each generated test with Mocha's JSON reporter.

Tests are written into a scratch directory and executed from the package
directory so that ``npx`` finds the locally installed mocha. ``NODE_PATH``
is extended so that ``require('<package>')`` resolves to the package under
test.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from testpilot.models.report import TestOutcome
from testpilot.parsing.treesitter import syntax_errors
from testpilot.validation.base import TestValidator

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────

_DEFAULT_TIMEOUT = 30.0

_DEFAULT_COMMAND = ("npx", "mocha")

_JS_LANGUAGE = "javascript"

_MAX_OTHER_MESSAGE = 500


# ── Validator ────────────────────────────────────────────────────


class MochaValidator(TestValidator):
    """Validates generated tests against an installed npm package."""

    def __init__(
        self,
        package_path: str | Path,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        mocha_command: Sequence[str] = _DEFAULT_COMMAND,
    ) -> None:
        self._package_path = Path(package_path).resolve()
        self._timeout = timeout
        self._mocha_command = list(mocha_command)

    @property
    def package_path(self) -> Path:
        return self._package_path

    async def validate_test(self, test_name: str, test_source: str) -> TestOutcome:
        errors = syntax_errors(test_source, _JS_LANGUAGE)
        if errors:
            logger.debug("%s has syntax errors: %s", test_name, errors)
            return TestOutcome.failed("\n".join(errors))

        with tempfile.TemporaryDirectory(prefix="testpilot-") as scratch:
            test_file = Path(scratch) / test_name
            test_file.write_text(test_source, encoding="utf-8")
            return await self._run_mocha(test_file)

    # ── Execution ─────────────────────────────────────────────────

    def _node_env(self) -> dict[str, str]:
        """Environment in which the package and its dependencies are resolvable."""
        env = dict(os.environ)
        paths = [str(self._package_path.parent), str(self._package_path / "node_modules")]
        if env.get("NODE_PATH"):
            paths.append(env["NODE_PATH"])
        env["NODE_PATH"] = os.pathsep.join(paths)
        return env

    async def _run_mocha(self, test_file: Path) -> TestOutcome:
        cmd = [*self._mocha_command, "--reporter", "json", str(test_file)]
        logger.debug("Running %s", " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self._package_path),
                env=self._node_env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error("%s not found; is Node.js installed?", self._mocha_command[0])
            return TestOutcome.other(f"{self._mocha_command[0]} not found")

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(),
                timeout=self._timeout,
            )
        except TimeoutError:
            logger.warning("Mocha run of %s timed out after %.1fs", test_file.name, self._timeout)
            try:
                proc.kill()
                await proc.wait()
            except ProcessLookupError:
                pass
            return TestOutcome.failed(f"Test timed out after {self._timeout:g}s")

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return parse_mocha_json(stdout, stderr)


# ── Report parsing ───────────────────────────────────────────────


def parse_mocha_json(stdout: str, stderr: str = "") -> TestOutcome:
    """Map Mocha JSON reporter output to a ``TestOutcome``.

    Mocha's JSON reporter outputs:
    ``{ stats: {...}, tests: [...], pending: [...], failures: [...], passes: [...] }``
    """
    json_obj = _extract_json_object(stdout)
    if json_obj is None:
        logger.debug("Could not extract JSON from Mocha output")
        message = (stderr or stdout).strip()[-_MAX_OTHER_MESSAGE:]
        return TestOutcome.other(message or None)

    failures = _as_list(json_obj.get("failures"))
    passes = _as_list(json_obj.get("passes"))
    pending = _as_list(json_obj.get("pending"))

    if failures:
        return TestOutcome.failed(_failure_message(failures[0]))
    if passes:
        return TestOutcome.passed()
    if pending:
        return TestOutcome.pending()
    return TestOutcome.other("No tests were run")


def _failure_message(failure: object) -> str:
    test: dict[str, object] = failure if isinstance(failure, dict) else {}
    err = test.get("err", {})
    err_dict: dict[str, object] = err if isinstance(err, dict) else {}
    return str(err_dict.get("message") or "Test failed")


def _as_list(value: object) -> list[object]:
    return value if isinstance(value, list) else []


def _extract_json_object(text: str) -> dict[str, object] | None:
    """Find and parse the first JSON object in *text*."""
    start = text.find("{")
    if start == -1:
        return None

    end = text.rfind("}")
    if end == -1 or end < start:
        return None

    try:
        obj = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None

    if isinstance(obj, dict):
        return obj
    return None
