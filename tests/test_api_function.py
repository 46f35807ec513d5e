"""Tests for API function descriptions (models/api_function.py)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from testpilot.models.api_function import (
    APIFunction,
    load_api_functions,
    sanitize_package_name,
)

if TYPE_CHECKING:
    from pathlib import Path


def test_sanitize_package_name() -> None:
    assert sanitize_package_name("zip-a-folder") == "zip_a_folder"
    assert sanitize_package_name("@scope/pkg.js") == "_scope_pkg_js"
    assert sanitize_package_name("$jquery_ok") == "$jquery_ok"


def test_from_signature() -> None:
    fun = APIFunction.from_signature("plural.addRule(match, result)")

    assert fun.access_path == "plural.addRule"
    assert fun.package_name == "plural"
    assert fun.function_name == "addRule"
    assert fun.signature == "plural.addRule(match, result)"
    assert not fun.descriptor.is_async
    assert fun.descriptor.implementation == ""
    assert fun.descriptor.doc_comment is None


def test_from_async_signature() -> None:
    fun = APIFunction.from_signature("zip-a-folder.ZipAFolder.tar(srcFolder, tarFilePath) async")

    assert fun.package_name == "zip-a-folder"
    assert fun.function_name == "tar"
    assert fun.descriptor.is_async
    assert fun.signature == "zip-a-folder.ZipAFolder.tar(srcFolder, tarFilePath) async"


@pytest.mark.parametrize("signature", ["", "plus", "plus x, y", "(x, y)"])
def test_malformed_signature(signature: str) -> None:
    with pytest.raises(ValueError, match="Malformed function signature"):
        APIFunction.from_signature(signature)


def test_load_api_functions(tmp_path: Path) -> None:
    listing = tmp_path / "api.yml"
    listing.write_text(
        "- plus(x, y)\n"
        "- signature: plural.addRule(match, result)\n"
        "  docComment: '* Adds a rule.'\n"
        "  implementation: 'function addRule(match, result) {}'\n",
        encoding="utf-8",
    )

    functions = load_api_functions(listing)

    assert [fun.access_path for fun in functions] == ["plus", "plural.addRule"]
    assert functions[1].descriptor.doc_comment == "* Adds a rule."
    assert functions[1].descriptor.implementation == "function addRule(match, result) {}"


def test_load_api_functions_from_json(tmp_path: Path) -> None:
    listing = tmp_path / "api.json"
    listing.write_text('[{"signature": "plus(x, y)", "doc_comment": "adds"}]', encoding="utf-8")

    (fun,) = load_api_functions(listing)

    assert fun.descriptor.doc_comment == "adds"


def test_load_empty_listing(tmp_path: Path) -> None:
    listing = tmp_path / "api.yml"
    listing.write_text("", encoding="utf-8")
    assert load_api_functions(listing) == []


@pytest.mark.parametrize("content", ["plus: 1\n", "- {name: plus}\n", "- 42\n"])
def test_load_rejects_invalid_listing(tmp_path: Path, content: str) -> None:
    listing = tmp_path / "api.yml"
    listing.write_text(content, encoding="utf-8")
    with pytest.raises(ValueError):
        load_api_functions(listing)
