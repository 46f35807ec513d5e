"""Template store: renders the prompt template files with Jinja2.

Templates are re-read on every render so that edits between runs are never
served from a stale cache.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jinja2

from testpilot.config import ConfigurationError

_ENV = jinja2.Environment(
    autoescape=False,
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=False,
)


class TemplateError(ConfigurationError):
    """Raised when a prompt template is missing, unreadable or malformed."""


def check_template(template_file: str | Path | None, *, kind: str = "prompt") -> Path:
    """Return *template_file* as a ``Path`` after checking that it exists.

    Raises:
        TemplateError: If no template is configured or the file does not exist.
    """
    if not template_file:
        raise TemplateError(f"No {kind} template configured")
    path = Path(template_file)
    if not path.is_file():
        raise TemplateError(f"{kind.capitalize()} template not found: {path}")
    return path


def render_template(template_file: str | Path | None, **fields: Any) -> str:
    """Render the template stored in *template_file* with *fields*.

    Raises:
        TemplateError: If the template cannot be read, parsed or rendered.
    """
    path = check_template(template_file)
    try:
        source = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateError(f"Cannot read template {path}: {exc}") from exc

    try:
        return _ENV.from_string(source).render(**fields)
    except jinja2.TemplateError as exc:
        raise TemplateError(f"Cannot render template {path}: {exc}") from exc
