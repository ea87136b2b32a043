"""Tests for the osascript / Quartz facility adapters and the command runner."""

from __future__ import annotations

import sys

import pytest

from fakes import FakeRunner
from sft_screenshot import (
    CONFIG,
    EnumerationFailed,
    ExternalCallTimeout,
    SystemEventsEnumerator,
    _match_window,
    _parse_pairs,
    _run_cmd,
)


def test_parse_pairs_skips_malformed_lines():
    out = "Figma|||Design A\ngarbage line\n|||orphan title\nMail|||\nTerminal|||a|||b"
    assert _parse_pairs(out) == [
        ("Figma", "Design A"),
        ("Mail", ""),
        ("Terminal", "a|||b"),
    ]


def test_match_window_owner_case_insensitive_title_exact():
    windows = [
        {"kCGWindowOwnerName": "Figma", "kCGWindowName": "design a", "kCGWindowNumber": 1, "kCGWindowLayer": 0},
        {"kCGWindowOwnerName": "Figma", "kCGWindowName": "Design A", "kCGWindowNumber": 2, "kCGWindowLayer": 0},
    ]
    assert _match_window(windows, "FIGMA", "Design A") == 2
    assert _match_window(windows, "Figma", "DESIGN A") is None
    assert _match_window(windows, "Mail", "Design A") is None


def test_match_window_prefers_layer_zero():
    windows = [
        {"kCGWindowOwnerName": "Slack", "kCGWindowName": "Huddle", "kCGWindowNumber": 5, "kCGWindowLayer": 3},
        {"kCGWindowOwnerName": "Slack", "kCGWindowName": "Huddle", "kCGWindowNumber": 6, "kCGWindowLayer": 0},
    ]
    assert _match_window(windows, "Slack", "Huddle") == 6


def test_match_window_untitled():
    windows = [{"kCGWindowOwnerName": "Preview", "kCGWindowNumber": 9, "kCGWindowLayer": 0}]
    assert _match_window(windows, "Preview", "") == 9


@pytest.mark.asyncio
async def test_enumerate_parses_osascript_output():
    runner = FakeRunner(stdout="Figma|||Design A\nMail|||Inbox", write=False)

    pairs = await SystemEventsEnumerator(runner=runner).enumerate()

    assert pairs == [("Figma", "Design A"), ("Mail", "Inbox")]
    assert runner.calls[0][:2] == (CONFIG["osascript"], "-e")


@pytest.mark.asyncio
async def test_enumerate_failure_mentions_permissions():
    runner = FakeRunner(code=1, stderr="not allowed assistive access", write=False)

    with pytest.raises(EnumerationFailed, match="Accessibility"):
        await SystemEventsEnumerator(runner=runner).enumerate()


@pytest.mark.asyncio
async def test_first_window_passes_app_as_argv():
    runner = FakeRunner(stdout="Figma|||Design A", write=False)

    found = await SystemEventsEnumerator(runner=runner).first_window("figma")

    assert found == ("Figma", "Design A")
    assert runner.calls[0][-1] == "figma"


@pytest.mark.asyncio
async def test_first_window_sentinel_is_none():
    runner = FakeRunner(stdout=CONFIG["not_found"], write=False)
    assert await SystemEventsEnumerator(runner=runner).first_window("Nope") is None


@pytest.mark.asyncio
async def test_run_cmd_captures_output():
    code, out, err = await _run_cmd(sys.executable, "-c", "print('hi')", timeout_s=10)
    assert (code, out, err) == (0, "hi", "")


@pytest.mark.asyncio
async def test_run_cmd_missing_binary():
    code, _, err = await _run_cmd("/nonexistent/screencapture", timeout_s=1)
    assert code == 127
    assert "not found" in err


@pytest.mark.asyncio
async def test_run_cmd_timeout_kills_process():
    with pytest.raises(ExternalCallTimeout) as exc:
        await _run_cmd(sys.executable, "-c", "import time; time.sleep(30)", timeout_s=0.2)

    assert exc.value.timeout_s == 0.2
