"""Unit tests for package version resolution."""

from __future__ import annotations

import importlib.metadata
import importlib.util
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import pytest

import preservica_client


def test_dunder_version_matches_package_metadata_or_fallback() -> None:
    try:
        expected = version("preservica-client")
    except PackageNotFoundError:
        expected = "0.0.0+unknown"

    assert preservica_client.__version__ == expected


def test_missing_package_metadata_emits_warning(monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise_package_not_found(_name: str) -> str:
        raise PackageNotFoundError

    monkeypatch.setattr(importlib.metadata, "version", _raise_package_not_found)

    init_path = Path(__file__).resolve().parents[2] / "src" / "preservica_client" / "__init__.py"
    spec = importlib.util.spec_from_file_location("preservica_client_version_test", init_path)
    assert spec is not None
    assert spec.loader is not None

    module = importlib.util.module_from_spec(spec)
    with pytest.warns(RuntimeWarning, match="Package metadata for 'preservica-client' not found"):
        spec.loader.exec_module(module)

    assert module.__version__ == "0.0.0+unknown"


async def test_user_agent_carries_version() -> None:
    from preservica_client.client import build_http_client
    from preservica_client.config import HttpSettings

    async with build_http_client(HttpSettings()) as client:
        assert client.headers["User-Agent"] == f"preservica-client/{preservica_client.__version__}"
