"""TestValidator: abstract interface for running a generated test."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from testpilot.models.report import TestOutcome


class TestValidator(ABC):
    """Runs a single generated test and reports its outcome."""

    @abstractmethod
    async def validate_test(self, test_name: str, test_source: str) -> TestOutcome:
        """Run *test_source* (saved as *test_name*) and return its outcome.

        Failures of the test itself are reported as outcomes, never raised.
        """
