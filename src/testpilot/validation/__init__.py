"""Running generated tests."""

from testpilot.validation.base import TestValidator
from testpilot.validation.mocha_validator import MochaValidator, parse_mocha_json

__all__ = ["MochaValidator", "TestValidator", "parse_mocha_json"]
