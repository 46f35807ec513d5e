"""Configuration parsing from ``.testpilot.yml``."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".testpilot.yml"

TEMPLATES_DIR = Path(__file__).parent / "templates"
DEFAULT_TEMPLATE = TEMPLATES_DIR / "template.jinja"
DEFAULT_RETRY_TEMPLATE = TEMPLATES_DIR / "retry-template.jinja"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_MAX_TEMPERATURE = 2.0


class ConfigurationError(Exception):
    """Raised when testpilot is set up incorrectly (missing model, templates, ...)."""


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


@dataclass
class LLMConfig:
    """Chat model configuration."""

    model: str = ""
    """LiteLLM model identifier (e.g. ``gpt-4o-mini``, ``ollama/codellama``)."""

    api_key: str = ""
    """API key for the provider (supports ``${ENV_VAR}`` expansion)."""

    base_url: str = ""
    """Custom completion endpoint (proxies, self-hosted models)."""

    auth_headers: dict[str, str] = field(default_factory=dict)
    """Extra HTTP headers sent with every request."""

    max_tokens: int = 500
    """Maximum number of tokens per completion."""

    num_completions: int = 1
    """Number of completions requested per prompt."""

    max_retries: int = 3
    """Maximum number of retry attempts on transient failures."""

    requests_per_minute: int = 60
    """Rate limit: maximum requests per minute."""


@dataclass
class GenerationConfig:
    """Settings for the prompt refinement loop."""

    temperatures: list[float] = field(default_factory=lambda: [0.0])
    """Sampling temperatures, each explored in its own run."""

    template: str = str(DEFAULT_TEMPLATE)
    """Template used to assemble prompts."""

    retry_template: str = str(DEFAULT_RETRY_TEMPLATE)
    """Template used to assemble retry prompts after a failing test."""

    snippets: str = ""
    """Optional YAML/JSON file mapping function names to usage snippets."""

    parallelism: int = 1
    """Number of functions processed concurrently."""


@dataclass
class ValidationConfig:
    """Settings for running generated tests."""

    timeout: float = 30.0
    """Seconds a single mocha run may take."""

    mocha_command: list[str] = field(default_factory=lambda: ["npx", "mocha"])
    """Command used to invoke mocha."""


@dataclass
class TestPilotConfig:
    """Complete configuration from ``.testpilot.yml``."""

    root: str
    """Directory the configuration was loaded from."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed YAML for debugging."""


def load_config(root: str | Path) -> TestPilotConfig:
    """Load and parse ``.testpilot.yml`` from *root*.

    Missing sections fall back to defaults and to the ``TESTPILOT_LLM_*``
    environment variables.

    Raises:
        ConfigurationError: If a value cannot be interpreted.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILE_NAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        try:
            parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {config_file}: {exc}") from exc
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)

    try:
        return TestPilotConfig(
            root=str(root_path),
            llm=_parse_llm_config(_section(raw, "llm")),
            generation=_parse_generation_config(_section(raw, "generation"), root_path),
            validation=_parse_validation_config(_section(raw, "validation")),
            raw=raw,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration in {config_file}: {exc}") from exc


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


def _parse_llm_config(raw: dict[str, Any]) -> LLMConfig:
    auth_headers = raw.get("auth_headers", os.environ.get("TESTPILOT_LLM_AUTH_HEADERS", ""))
    return LLMConfig(
        model=str(raw.get("model", os.environ.get("TESTPILOT_LLM_MODEL", ""))),
        api_key=str(raw.get("api_key", os.environ.get("TESTPILOT_LLM_API_KEY", ""))),
        base_url=str(raw.get("base_url", os.environ.get("TESTPILOT_LLM_API_ENDPOINT", ""))),
        auth_headers=parse_auth_headers(auth_headers),
        max_tokens=int(raw.get("max_tokens", 500)),
        num_completions=int(raw.get("num_completions", 1)),
        max_retries=int(raw.get("max_retries", 3)),
        requests_per_minute=int(raw.get("requests_per_minute", 60)),
    )


def _parse_generation_config(raw: dict[str, Any], root: Path) -> GenerationConfig:
    defaults = GenerationConfig()
    return GenerationConfig(
        temperatures=parse_temperatures(raw.get("temperatures", defaults.temperatures)),
        template=_resolve_path(raw.get("template"), root) or defaults.template,
        retry_template=_resolve_path(raw.get("retry_template"), root) or defaults.retry_template,
        snippets=_resolve_path(raw.get("snippets"), root),
        parallelism=int(raw.get("parallelism", 1)),
    )


def _parse_validation_config(raw: dict[str, Any]) -> ValidationConfig:
    command = raw.get("mocha_command", ["npx", "mocha"])
    if isinstance(command, str):
        command = command.split()
    return ValidationConfig(
        timeout=float(raw.get("timeout", 30.0)),
        mocha_command=[str(part) for part in command],
    )


def _resolve_path(value: Any, root: Path) -> str:
    if not value:
        return ""
    path = Path(str(value))
    return str(path if path.is_absolute() else root / path)


def parse_temperatures(value: Any) -> list[float]:
    """Accept a list, a single number, or a whitespace/comma separated string."""
    if isinstance(value, (int, float)):
        return [float(value)]
    if isinstance(value, str):
        return [float(part) for part in value.replace(",", " ").split()]
    if isinstance(value, list):
        return [float(item) for item in value]
    raise ValueError(f"temperatures must be a list of numbers (got: {value!r})")


def parse_auth_headers(value: Any) -> dict[str, str]:
    """Parse auth headers given either as a mapping or as a JSON object string."""
    if not value:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"auth headers must be a JSON object: {exc}") from exc
    if not isinstance(value, dict):
        raise ValueError("auth headers must be a JSON object")
    return {str(key): str(val) for key, val in value.items()}


def validate_config(config: TestPilotConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []

    if not config.llm.model:
        errors.append(
            "llm.model is required (set it in .testpilot.yml or TESTPILOT_LLM_MODEL)"
        )
    if config.llm.max_tokens < 1:
        errors.append(f"llm.max_tokens must be positive (got: {config.llm.max_tokens})")
    if config.llm.num_completions < 1:
        errors.append(
            f"llm.num_completions must be positive (got: {config.llm.num_completions})"
        )

    generation = config.generation
    if not generation.temperatures:
        errors.append("generation.temperatures must not be empty")
    for temperature in generation.temperatures:
        if temperature < 0 or temperature > _MAX_TEMPERATURE:
            errors.append(
                f"generation.temperatures should be between 0 and {_MAX_TEMPERATURE} "
                f"(got: {temperature})"
            )
    if generation.parallelism < 1:
        errors.append(f"generation.parallelism must be >= 1 (got: {generation.parallelism})")
    for key, path in (
        ("generation.template", generation.template),
        ("generation.retry_template", generation.retry_template),
    ):
        if not Path(path).is_file():
            errors.append(f"{key} does not exist: {path}")
    if generation.snippets and not Path(generation.snippets).is_file():
        errors.append(f"generation.snippets does not exist: {generation.snippets}")

    if config.validation.timeout <= 0:
        errors.append(f"validation.timeout must be positive (got: {config.validation.timeout})")
    if not config.validation.mocha_command:
        errors.append("validation.mocha_command must not be empty")

    return errors
