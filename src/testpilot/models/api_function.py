"""Description of a library function that tests are generated for."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

_SIGNATURE_RE = re.compile(r"^(?P<path>[^\s()]+)(?P<params>\(.*\))(?P<is_async>\s+async)?\s*$")
_NON_IDENTIFIER_RE = re.compile(r"[^\w$]")


def sanitize_package_name(package_name: str) -> str:
    """Turn an npm package name into a valid JavaScript identifier.

    ``zip-a-folder`` becomes ``zip_a_folder``.
    """
    return _NON_IDENTIFIER_RE.sub("_", package_name)


@dataclass(frozen=True)
class FunctionDescriptor:
    """What is known about a function besides its name."""

    signature: str
    """Parameter list, with an `` async`` suffix for async functions."""

    is_async: bool = False
    """Whether the function returns a promise."""

    implementation: str = ""
    """Source text of the function, empty when unavailable."""

    doc_comment: str | None = None
    """Raw doc comment, ``None`` when the function has none."""


@dataclass(frozen=True)
class APIFunction:
    """A function exported by the package under test."""

    access_path: str
    """Dotted path from the package to the function (``plural.addRule``)."""

    descriptor: FunctionDescriptor
    """Signature, implementation and documentation of the function."""

    package_name: str
    """Name of the npm package the function belongs to."""

    @property
    def signature(self) -> str:
        """Access path followed by the parameter list."""
        return self.access_path + self.descriptor.signature

    @property
    def function_name(self) -> str:
        """Last segment of the access path."""
        return self.access_path.rsplit(".", 1)[-1]

    @classmethod
    def from_signature(
        cls,
        signature: str,
        implementation: str = "",
        doc_comment: str | None = None,
    ) -> APIFunction:
        """Build an ``APIFunction`` from a signature such as ``plus(x, y)``.

        The package name is the first segment of the access path, so
        ``zip-a-folder.ZipAFolder.tar(src, dst) async`` belongs to
        ``zip-a-folder``.

        Raises:
            ValueError: If *signature* is not of the form ``path(params)[ async]``.
        """
        match = _SIGNATURE_RE.match(signature.strip())
        if match is None:
            raise ValueError(f"Malformed function signature: {signature!r}")

        access_path = match.group("path")
        is_async = match.group("is_async") is not None
        params = match.group("params") + (" async" if is_async else "")
        return cls(
            access_path=access_path,
            descriptor=FunctionDescriptor(
                signature=params,
                is_async=is_async,
                implementation=implementation,
                doc_comment=doc_comment,
            ),
            package_name=access_path.split(".", 1)[0],
        )


def load_api_functions(path: str | Path) -> list[APIFunction]:
    """Load the functions to test from a YAML or JSON listing.

    Each entry is either a signature string or a mapping with a
    ``signature`` key and optional ``implementation`` and ``docComment``
    (or ``doc_comment``) keys.

    Raises:
        ValueError: If the file is not a list or an entry is malformed.
    """
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"API listing {path} must contain a list of functions")

    functions: list[APIFunction] = []
    for entry in raw:
        functions.append(_parse_entry(entry))
    return functions


def _parse_entry(entry: Any) -> APIFunction:
    if isinstance(entry, str):
        return APIFunction.from_signature(entry)
    if not isinstance(entry, dict) or "signature" not in entry:
        raise ValueError(f"Invalid API listing entry: {entry!r}")

    doc_comment = entry.get("docComment", entry.get("doc_comment"))
    return APIFunction.from_signature(
        str(entry["signature"]),
        implementation=str(entry.get("implementation") or ""),
        doc_comment=str(doc_comment) if doc_comment is not None else None,
    )
