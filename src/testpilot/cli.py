"""testpilot CLI: top-level command group."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console

from testpilot import __version__
from testpilot.collector import TestResultCollector
from testpilot.config import (
    DEFAULT_RETRY_TEMPLATE,
    DEFAULT_TEMPLATE,
    ConfigurationError,
    TestPilotConfig,
    load_config,
    validate_config,
)
from testpilot.generator import TestGenerator
from testpilot.llm.chat_model import create_model
from testpilot.models.api_function import APIFunction, load_api_functions
from testpilot.prompting.prompt import Prompt, PromptOptions
from testpilot.prompting.templates import TemplateError
from testpilot.reporter import reporter
from testpilot.snippets import empty_snippet_map, load_snippet_map
from testpilot.validation.mocha_validator import MochaValidator

logger = logging.getLogger(__name__)
console = Console()

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_MIN_MASKED_VALUE_LENGTH = 8

_SENSITIVE_KEYS = {"api_key", "auth_headers"}


def _setup_logging(*, verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=_LOG_FORMAT)


def _config_to_dict(config: TestPilotConfig) -> dict[str, Any]:
    """Convert the configuration to a dictionary for display."""
    result = asdict(config)
    result.pop("raw", None)
    return result


def _mask_sensitive_values(config_dict: dict[str, Any]) -> dict[str, Any]:
    """Recursively mask API keys and auth headers in a configuration dict."""
    result = copy.deepcopy(config_dict)

    def _mask(value: Any) -> Any:
        if isinstance(value, str) and value:
            if len(value) > _MIN_MASKED_VALUE_LENGTH:
                return f"{value[:4]}...{value[-4:]}"
            return "***"
        if isinstance(value, dict):
            return {key: _mask(item) for key, item in value.items()}
        return value

    def _mask_dict(data: dict[str, Any]) -> None:
        for key, value in data.items():
            if key in _SENSITIVE_KEYS:
                data[key] = _mask(value)
            elif isinstance(value, dict):
                _mask_dict(value)

    _mask_dict(result)
    return result


def _load_config_or_abort(path: str) -> TestPilotConfig:
    try:
        return load_config(path)
    except ConfigurationError as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e


@click.group()
@click.version_option(version=__version__, prog_name="testpilot")
def cli() -> None:
    """testpilot: LLM-driven unit test generation for npm packages."""


# ── generate ─────────────────────────────────────────────────────


@cli.command()
@click.argument(
    "package_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
)
@click.option(
    "--api",
    "api_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML/JSON list of the functions to test.",
)
@click.option(
    "--snippets",
    "snippets_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML/JSON mapping of function names to usage snippets.",
)
@click.option(
    "--output",
    "output_dir",
    default="testpilot-report",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory for the report, tests and prompts.",
)
@click.option(
    "-t",
    "--temperature",
    "temperatures",
    multiple=True,
    type=float,
    help="Sampling temperature (repeatable). Overrides the configuration.",
)
@click.option("--model", default=None, help="LiteLLM model identifier.")
@click.option(
    "--template",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Prompt template file.",
)
@click.option(
    "--retry-template",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Retry prompt template file.",
)
@click.option(
    "--parallelism",
    default=None,
    type=click.IntRange(min=1),
    help="Number of functions processed concurrently.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def generate(  # noqa: PLR0913
    package_path: str,
    api_file: str,
    snippets_file: str | None,
    output_dir: str,
    temperatures: tuple[float, ...],
    model: str | None,
    template: str | None,
    retry_template: str | None,
    parallelism: int | None,
    *,
    verbose: bool,
) -> None:
    """Generate and validate tests for the functions of an npm package.

    PACKAGE_PATH is the directory of the installed package; generated tests
    are run against it with mocha.

    Example:
      testpilot generate node_modules/zip-a-folder --api api.yml -t 0.0 -t 0.5
    """
    _setup_logging(verbose=verbose)
    config = _load_config_or_abort(package_path)

    generation = config.generation
    if model:
        config.llm.model = model
    if temperatures:
        generation.temperatures = list(temperatures)
    if template:
        generation.template = template
    if retry_template:
        generation.retry_template = retry_template
    if snippets_file:
        generation.snippets = snippets_file
    if parallelism:
        generation.parallelism = parallelism

    try:
        functions = load_api_functions(api_file)
        snippet_map = (
            load_snippet_map(generation.snippets) if generation.snippets else empty_snippet_map
        )
    except (OSError, ValueError, yaml.YAMLError) as e:
        reporter.print_error(f"Failed to load inputs: {e}")
        raise click.Abort from e

    collector = TestResultCollector()
    try:
        generator = TestGenerator(
            temperatures=generation.temperatures,
            snippet_map=snippet_map,
            model=create_model(config.llm),
            validator=MochaValidator(
                package_path,
                timeout=config.validation.timeout,
                mocha_command=config.validation.mocha_command,
            ),
            collector=collector,
            template_file_name=generation.template,
            retry_template_file_name=generation.retry_template,
        )
    except ConfigurationError as e:
        reporter.print_error(str(e))
        raise click.Abort from e

    reporter.print_header(f"Generating tests for {len(functions)} function(s)")
    reporter.print_info(
        f"Model {config.llm.model}, temperatures "
        + ", ".join(str(t) for t in generation.temperatures)
    )
    asyncio.run(generator.generate_all(functions, generation.parallelism))

    report_path = collector.write_report(output_dir)
    stats = collector.stats()
    reporter.print_generation_summary(stats)
    if stats["nrPasses"] == 0:
        reporter.print_warning("No passing tests were generated")
    reporter.print_success(f"Report written to {report_path}")


# ── prompt ───────────────────────────────────────────────────────


@cli.command("prompt")
@click.argument("signature")
@click.option("--doc-comment", default=None, help="Doc comment to include.")
@click.option(
    "--function-body",
    "function_body_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="File holding the function implementation to include.",
)
@click.option("--snippet", "snippets", multiple=True, help="Usage snippet to include (repeatable).")
@click.option(
    "--template",
    default=str(DEFAULT_TEMPLATE),
    type=click.Path(exists=True, dir_okay=False),
    help="Prompt template file.",
)
def prompt_command(
    signature: str,
    doc_comment: str | None,
    function_body_file: str | None,
    snippets: tuple[str, ...],
    template: str,
) -> None:
    """Print the prompt that would be sent for one function.

    Example:
      testpilot prompt "plus(x, y)" --function-body plus.js
    """
    implementation = (
        Path(function_body_file).read_text(encoding="utf-8") if function_body_file else ""
    )
    try:
        fun = APIFunction.from_signature(
            signature, implementation=implementation, doc_comment=doc_comment
        )
    except ValueError as e:
        reporter.print_error(str(e))
        raise click.Abort from e

    options = PromptOptions(
        include_snippets=bool(snippets),
        include_doc_comment=doc_comment is not None,
        include_function_body=bool(implementation),
        template_file_name=template,
        retry_template_file_name=str(DEFAULT_RETRY_TEMPLATE),
    )
    try:
        text = Prompt(fun, snippets, options).assemble()
    except TemplateError as e:
        reporter.print_error(str(e))
        raise click.Abort from e
    click.echo(text)


# ── config ───────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Inspect `.testpilot.yml` configuration."""


@config_group.command("show")
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
@click.option("--json-output", "as_json", is_flag=True, help="Output as JSON instead of YAML.")
def config_show(path: str, *, as_json: bool) -> None:
    """Display the resolved configuration with masked credentials."""
    config = _load_config_or_abort(path)
    config_dict = _mask_sensitive_values(_config_to_dict(config))

    if as_json:
        click.echo(json.dumps(config_dict, indent=2))
    else:
        console.print()
        console.print("[bold cyan]Configuration:[/bold cyan]")
        console.print()
        click.echo(yaml.safe_dump(config_dict, sort_keys=False, default_flow_style=False))


@config_group.command("validate")
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
def config_validate(path: str) -> None:
    """Check `.testpilot.yml` for missing or invalid values."""
    config = _load_config_or_abort(path)
    errors = validate_config(config)

    if not errors:
        reporter.print_success("Configuration is valid!")
        return

    reporter.print_error(f"Found {len(errors)} configuration error(s):")
    console.print()
    for idx, error in enumerate(errors, start=1):
        console.print(f"  {idx}. [red]{error}[/red]")
    console.print()
    raise click.Abort


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
