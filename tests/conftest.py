"""Pytest configuration for repository test runs."""

import json
import sys
from pathlib import Path

import pytest


def pytest_sessionstart() -> None:
    """Add src directory to sys.path for test imports."""
    project_root = Path(__file__).resolve().parent.parent
    src_path = project_root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


@pytest.fixture
def make_dataset(tmp_path):
    """Write a manifest and its domain files under tmp_path/repo."""

    def _make(cache_domains: list[dict], files: dict[str, str]) -> Path:
        root = tmp_path / "repo"
        root.mkdir(exist_ok=True)
        (root / "cache_domains.json").write_text(
            json.dumps({"cache_domains": cache_domains}), encoding="utf-8"
        )
        for name, content in files.items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _make
