"""Data models shared across testpilot."""

from testpilot.models.api_function import (
    APIFunction,
    FunctionDescriptor,
    load_api_functions,
    sanitize_package_name,
)
from testpilot.models.report import TestInfo, TestOutcome, TestStatus

__all__ = [
    "APIFunction",
    "FunctionDescriptor",
    "TestInfo",
    "TestOutcome",
    "TestStatus",
    "load_api_functions",
    "sanitize_package_name",
]
