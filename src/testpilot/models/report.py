"""Outcome and bookkeeping records for generated tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from testpilot.prompting.prompt import Prompt


class TestStatus(Enum):
    """Outcome of validating a single generated test."""

    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    OTHER = "other"


@dataclass(frozen=True)
class TestOutcome:
    """Status of a generated test plus the error message for failures."""

    status: TestStatus
    error: str | None = None

    @classmethod
    def passed(cls) -> TestOutcome:
        return cls(TestStatus.PASSED)

    @classmethod
    def failed(cls, message: str) -> TestOutcome:
        return cls(TestStatus.FAILED, message)

    @classmethod
    def pending(cls) -> TestOutcome:
        return cls(TestStatus.PENDING)

    @classmethod
    def other(cls, message: str | None = None) -> TestOutcome:
        return cls(TestStatus.OTHER, message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status.value}
        if self.error is not None:
            data["err"] = self.error
        return data


@dataclass
class TestInfo:
    """A distinct generated test and every prompt that produced it."""

    id: int
    """Sequential identifier, unique within a collector."""

    test_name: str
    """File name the test is stored under (``test_<id>.js``)."""

    test_source: str
    """Completed test source (or the raw completion if it could not be completed)."""

    api: str
    """Access path of the function under test."""

    prompts: list[Prompt] = field(default_factory=list)
    """Prompts whose completions contained this test, in discovery order."""

    outcome: TestOutcome = field(default_factory=TestOutcome.pending)
    """Latest validation outcome."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        return {
            "id": self.id,
            "testName": self.test_name,
            "api": self.api,
            "promptIds": [prompt.id for prompt in self.prompts],
            **self.outcome.to_dict(),
        }
