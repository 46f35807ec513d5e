"""Tests for config.py: .testpilot.yml parsing and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from testpilot.config import (
    CONFIG_FILE_NAME,
    DEFAULT_RETRY_TEMPLATE,
    DEFAULT_TEMPLATE,
    ConfigurationError,
    GenerationConfig,
    LLMConfig,
    TestPilotConfig,
    _resolve_env_vars,
    load_config,
    parse_auth_headers,
    parse_temperatures,
    validate_config,
)


def _write_config(root: Path, data: dict[str, Any]) -> None:
    (root / CONFIG_FILE_NAME).write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in (
        "TESTPILOT_LLM_MODEL",
        "TESTPILOT_LLM_API_KEY",
        "TESTPILOT_LLM_API_ENDPOINT",
        "TESTPILOT_LLM_AUTH_HEADERS",
    ):
        monkeypatch.delenv(var, raising=False)


# ── Loading ──────────────────────────────────────────────────────


def test_defaults_without_config_file(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert config.root == str(tmp_path.resolve())
    assert config.llm.model == ""
    assert config.llm.max_tokens == 500
    assert config.llm.num_completions == 1
    assert config.generation.temperatures == [0.0]
    assert config.generation.template == str(DEFAULT_TEMPLATE)
    assert config.generation.retry_template == str(DEFAULT_RETRY_TEMPLATE)
    assert config.generation.snippets == ""
    assert config.validation.timeout == 30.0
    assert config.validation.mocha_command == ["npx", "mocha"]


def test_full_config(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        {
            "llm": {
                "model": "gpt-4o-mini",
                "api_key": "sk-test",
                "max_tokens": 300,
                "num_completions": 5,
                "auth_headers": {"X-Token": "abc"},
            },
            "generation": {
                "temperatures": [0.0, 0.5],
                "template": "prompts/template.jinja",
                "snippets": "snippets.yml",
                "parallelism": 4,
            },
            "validation": {"timeout": 10, "mocha_command": "node_modules/.bin/mocha"},
        },
    )

    config = load_config(tmp_path)

    assert config.llm.model == "gpt-4o-mini"
    assert config.llm.api_key == "sk-test"
    assert config.llm.max_tokens == 300
    assert config.llm.num_completions == 5
    assert config.llm.auth_headers == {"X-Token": "abc"}
    assert config.generation.temperatures == [0.0, 0.5]
    assert config.generation.template == str(tmp_path.resolve() / "prompts" / "template.jinja")
    assert config.generation.retry_template == str(DEFAULT_RETRY_TEMPLATE)
    assert config.generation.snippets == str(tmp_path.resolve() / "snippets.yml")
    assert config.generation.parallelism == 4
    assert config.validation.timeout == 10.0
    assert config.validation.mocha_command == ["node_modules/.bin/mocha"]


def test_environment_variable_fallbacks(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TESTPILOT_LLM_MODEL", "ollama/codellama")
    monkeypatch.setenv("TESTPILOT_LLM_API_ENDPOINT", "http://localhost:11434")
    monkeypatch.setenv("TESTPILOT_LLM_AUTH_HEADERS", '{"Authorization": "Bearer t"}')

    config = load_config(tmp_path)

    assert config.llm.model == "ollama/codellama"
    assert config.llm.base_url == "http://localhost:11434"
    assert config.llm.auth_headers == {"Authorization": "Bearer t"}


def test_file_overrides_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TESTPILOT_LLM_MODEL", "from-env")
    _write_config(tmp_path, {"llm": {"model": "from-file"}})

    assert load_config(tmp_path).llm.model == "from-file"


def test_env_var_placeholders_are_resolved(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("MY_KEY", "sk-secret")
    _write_config(tmp_path, {"llm": {"model": "gpt-4o", "api_key": "${MY_KEY}"}})

    assert load_config(tmp_path).llm.api_key == "sk-secret"


def test_unset_env_var_resolves_to_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    assert _resolve_env_vars("key=${NOT_SET_ANYWHERE}") == "key="


def test_invalid_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILE_NAME).write_text("llm: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Cannot parse"):
        load_config(tmp_path)


def test_invalid_value_raises(tmp_path: Path) -> None:
    _write_config(tmp_path, {"llm": {"max_tokens": "many"}})
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        load_config(tmp_path)


def test_non_mapping_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILE_NAME).write_text("- just\n- a list\n", encoding="utf-8")
    assert load_config(tmp_path).generation.temperatures == [0.0]


# ── Value parsing ────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0.5, [0.5]),
        (1, [1.0]),
        ("0.0 0.5", [0.0, 0.5]),
        ("0.0,0.5, 1.0", [0.0, 0.5, 1.0]),
        ([0, "0.7"], [0.0, 0.7]),
    ],
)
def test_parse_temperatures(value: object, expected: list[float]) -> None:
    assert parse_temperatures(value) == expected


def test_parse_temperatures_rejects_mapping() -> None:
    with pytest.raises(ValueError, match="temperatures"):
        parse_temperatures({"t": 1})


def test_parse_auth_headers() -> None:
    assert parse_auth_headers("") == {}
    assert parse_auth_headers('{"X-Key": 1}') == {"X-Key": "1"}
    assert parse_auth_headers({"X-Key": "v"}) == {"X-Key": "v"}


@pytest.mark.parametrize("value", ["not json", "[1, 2]"])
def test_parse_auth_headers_rejects_non_objects(value: str) -> None:
    with pytest.raises(ValueError, match="JSON object"):
        parse_auth_headers(value)


# ── Validation ───────────────────────────────────────────────────


def _valid_config() -> TestPilotConfig:
    return TestPilotConfig(root=".", llm=LLMConfig(model="gpt-4o-mini"))


def test_valid_config_has_no_errors() -> None:
    assert validate_config(_valid_config()) == []


def test_missing_model_is_reported() -> None:
    config = _valid_config()
    config.llm.model = ""
    assert any("llm.model is required" in error for error in validate_config(config))


def test_out_of_range_values_are_reported(tmp_path: Path) -> None:
    config = _valid_config()
    config.llm.num_completions = 0
    config.generation = GenerationConfig(
        temperatures=[-0.1, 0.5, 3.0],
        template=str(tmp_path / "missing.jinja"),
        snippets=str(tmp_path / "missing.yml"),
        parallelism=0,
    )
    config.validation.timeout = 0

    errors = validate_config(config)

    assert any("num_completions" in error for error in errors)
    assert sum("generation.temperatures" in error for error in errors) == 2
    assert any("generation.template does not exist" in error for error in errors)
    assert any("generation.snippets does not exist" in error for error in errors)
    assert any("parallelism" in error for error in errors)
    assert any("validation.timeout" in error for error in errors)


def test_empty_temperatures_are_reported() -> None:
    config = _valid_config()
    config.generation.temperatures = []
    assert "generation.temperatures must not be empty" in validate_config(config)
