"""Shared pytest configuration for sft_screenshot tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add scripts/ to sys.path so tests can import the tool script directly.
_SCRIPTS_ROOT = str(Path(__file__).resolve().parent.parent / "scripts")
if _SCRIPTS_ROOT not in sys.path:
    sys.path.insert(0, _SCRIPTS_ROOT)

import sft_screenshot  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_log(tmp_path, monkeypatch):
    """Keep the TSV log out of the source tree."""
    monkeypatch.setattr(sft_screenshot, "_LOG", tmp_path / "sft_screenshot_log.tsv")


@pytest.fixture
def shot_dir(tmp_path, monkeypatch):
    """Screenshots land in a per-test directory."""
    target = tmp_path / "shots"
    monkeypatch.setitem(sft_screenshot.CONFIG, "screenshot_dir", str(target))
    return target
