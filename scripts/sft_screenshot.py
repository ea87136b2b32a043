#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "fastmcp",
#     "pyobjc-framework-Quartz>=11.0",
# ]
# ///
"""Window-aware screenshots for AI agents: list, resolve, capture.

Four tools for screen/window capture on macOS:
  take_screenshot     — capture a display, an app's first window, or a named window
  list_windows        — enumerate capturable windows grouped by app
  clear_window_cache  — forget every cached (app, title) -> window id mapping
  window_cache_stats  — inspect the window id cache

Window names are resolved to CGWindowIDs through System Events (titles) and
CoreGraphics (ids). Resolved ids are cached for a short TTL so repeated
captures of the same window skip the expensive enumeration.

Usage:
    sft_screenshot.py list
    sft_screenshot.py list --refresh
    sft_screenshot.py take
    sft_screenshot.py take --display 2 --filename desk
    sft_screenshot.py take --app Figma
    sft_screenshot.py take --app Mail --title Inbox --no-shadow
    sft_screenshot.py mcp-stdio
"""

import argparse
import asyncio
import json
import os
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

# =============================================================================
# LOGGING
# =============================================================================
_LEVELS = {"TRACE": 5, "DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "FATAL": 50}
_THRESHOLD = _LEVELS.get(os.environ.get("SFB_LOG_LEVEL", "INFO"), 20)
_LOG_DIR = os.environ.get("SFB_LOG_DIR", "")
_SCRIPT = Path(__file__).stem
_LOG = (
    Path(_LOG_DIR) / f"{_SCRIPT}_log.tsv"
    if _LOG_DIR
    else Path(__file__).parent / f"{_SCRIPT}_log.tsv"
)
_HEADER = "#timestamp\tscript\tlevel\tevent\tmessage\tdetail\tmetrics\ttrace\n"


def _log(
    level: str,
    event: str,
    msg: str,
    *,
    detail: str = "",
    metrics: str = "",
    trace: str = "",
):
    """Append TSV log line. Logging never crashes the main flow."""
    if _LEVELS.get(level, 20) < _THRESHOLD:
        return
    try:
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        write_header = not _LOG.exists()
        with open(_LOG, "a") as f:
            if write_header:
                f.write(_HEADER)
            f.write(
                f"{ts}\t{_SCRIPT}\t{level}\t{event}\t{msg}\t{detail}\t{metrics}\t{trace}\n"
            )
    except Exception:
        pass


# =============================================================================
# CONFIGURATION
# =============================================================================
EXPOSED = ["take_screenshot", "list_windows", "clear_window_cache", "window_cache_stats"]

CONFIG = {
    "version": "1.0.0",
    "cache_ttl_seconds": float(os.environ.get("SFB_SCREENSHOT_CACHE_TTL", "30")),
    "external_timeout_seconds": float(os.environ.get("SFB_SCREENSHOT_TIMEOUT", "15")),
    "screenshot_dir": os.environ.get("SFB_SCREENSHOT_DIR", ""),  # empty = ./screenshots
    "probe_cached_first_window": True,  # verify a cached first-window id is still open
    "osascript": "/usr/bin/osascript",
    "screencapture": "/usr/sbin/screencapture",
    "delimiter": "|||",
    "not_found": "NOT_FOUND",
}

_PERMISSION_HINT = (
    "Grant Accessibility and Screen Recording permission to the host app in "
    "System Settings > Privacy & Security."
)

# One "app|||title" line per window of every foreground process.
_ENUMERATE_SCRIPT = f"""
set out to ""
tell application "System Events"
    repeat with p in (every application process whose background only is false)
        set appName to name of p
        repeat with w in (every window of p)
            set t to name of w
            if t is missing value then set t to ""
            set out to out & appName & "{CONFIG['delimiter']}" & t & linefeed
        end repeat
    end repeat
end tell
return out
"""

# App name arrives as argv so it never needs quoting. "is" compares case-insensitively.
_FIRST_WINDOW_SCRIPT = f"""
on run argv
    set wanted to item 1 of argv
    tell application "System Events"
        set matches to (every application process whose name is wanted)
        if (count of matches) is 0 then return "{CONFIG['not_found']}"
        set p to item 1 of matches
        if (count of windows of p) is 0 then return "{CONFIG['not_found']}"
        set t to name of window 1 of p
        if t is missing value then set t to ""
        return (name of p) & "{CONFIG['delimiter']}" & t
    end tell
end run
"""


# =============================================================================
# ERRORS
# =============================================================================

class ScreenshotError(Exception):
    """Failure that is rendered back to the caller as a text message."""


class WindowNotFound(ScreenshotError):
    def __init__(self, app_name: str, window_title: str):
        self.app_name = app_name
        self.window_title = window_title
        super().__init__(
            f"No window titled '{window_title}' found for '{app_name}'. "
            "Run list_windows to see capturable windows."
        )


class NoWindowsForApp(ScreenshotError):
    def __init__(self, app_name: str):
        self.app_name = app_name
        super().__init__(
            f"No open windows found for '{app_name}'. "
            "Check the app is running, or run list_windows to see capturable windows."
        )


class CaptureFailed(ScreenshotError):
    pass


class EnumerationFailed(ScreenshotError):
    pass


class ExternalCallTimeout(ScreenshotError):
    def __init__(self, what: str, timeout_s: float):
        self.what = what
        self.timeout_s = timeout_s
        super().__init__(f"{what} did not finish within {timeout_s:g}s")


# =============================================================================
# DATA MODEL
# =============================================================================

@dataclass(frozen=True)
class WindowRecord:
    app_name: str
    window_title: str
    window_handle: int


@dataclass(frozen=True)
class CacheEntry:
    record: WindowRecord
    cached_at: float


@dataclass
class ApplicationWindowGroup:
    """One app and its windows as (title, handle) pairs, in enumeration order."""

    app_name: str
    windows: list[tuple[str, int]] = field(default_factory=list)


@dataclass(frozen=True)
class CaptureTarget:
    """Fullscreen on `display`, or the window `window_handle` when set."""

    display: int = 1
    window_handle: int | None = None
    include_shadow: bool = True

    @property
    def kind(self) -> str:
        return "screen" if self.window_handle is None else "window"

    def describe(self) -> str:
        if self.window_handle is None:
            return f"display {self.display}"
        shadow = "with shadow" if self.include_shadow else "without shadow"
        return f"window {self.window_handle} ({shadow})"


Runner = Callable[..., Awaitable[tuple[int, str, str]]]


# =============================================================================
# EXTERNAL CALLS — every OS call is bounded by external_timeout_seconds
# =============================================================================

async def _run_cmd(*args: str, timeout_s: float | None = None) -> tuple[int, str, str]:
    """Run an external command. Returns (returncode, stdout, stderr)."""
    if timeout_s is None:
        timeout_s = CONFIG["external_timeout_seconds"]
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return 127, "", f"{args[0]} not found"

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        name = Path(args[0]).name
        _log("WARN", "external_timeout", f"{name} killed after {timeout_s:g}s")
        raise ExternalCallTimeout(name, timeout_s) from None

    return (
        proc.returncode,
        stdout.decode("utf-8", "replace").strip(),
        stderr.decode("utf-8", "replace").strip(),
    )


async def _in_thread(fn: Callable, *args, what: str, timeout_s: float | None = None):
    """Run a blocking call in a worker thread under the external-call timeout."""
    if timeout_s is None:
        timeout_s = CONFIG["external_timeout_seconds"]
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout_s)
    except asyncio.TimeoutError:
        _log("WARN", "external_timeout", f"{what} abandoned after {timeout_s:g}s")
        raise ExternalCallTimeout(what, timeout_s) from None


def _parse_pairs(output: str) -> list[tuple[str, str]]:
    """Split 'app|||title' lines. Lines without the delimiter or an app are skipped."""
    delim = CONFIG["delimiter"]
    pairs = []
    for line in output.splitlines():
        if delim not in line:
            continue
        app, title = line.split(delim, 1)
        app = app.strip()
        if not app:
            continue
        pairs.append((app, title))
    return pairs


class SystemEventsEnumerator:
    """Accessibility enumeration via System Events (osascript)."""

    def __init__(self, runner: Runner | None = None):
        self._runner = runner or _run_cmd

    async def _osascript(self, script: str, *argv: str) -> str:
        code, out, err = await self._runner(CONFIG["osascript"], "-e", script, *argv)
        if code != 0:
            raise EnumerationFailed(
                f"System Events query failed ({err or f'exit {code}'}). {_PERMISSION_HINT}"
            )
        return out

    async def enumerate(self) -> list[tuple[str, str]]:
        """All (app, title) pairs for foreground processes, in System Events order."""
        return _parse_pairs(await self._osascript(_ENUMERATE_SCRIPT))

    async def first_window(self, app_name: str) -> tuple[str, str] | None:
        """(canonical app name, first window title), or None if the app has no windows."""
        out = await self._osascript(_FIRST_WINDOW_SCRIPT, app_name)
        if not out or out == CONFIG["not_found"]:
            return None
        pairs = _parse_pairs(out)
        return pairs[0] if pairs else None


def _match_window(windows, app_name: str, window_title: str) -> int | None:
    """Pick the CGWindowID for (app, title) from CGWindowListCopyWindowInfo rows.

    Owner matches case-insensitively, title exactly. Layer 0 (normal app
    windows) wins over panels and overlays with the same title.
    """
    needle = app_name.lower()
    candidates = []
    for w in windows:
        owner = w.get("kCGWindowOwnerName", "") or ""
        if owner.lower() != needle:
            continue
        if (w.get("kCGWindowName", "") or "") != window_title:
            continue
        candidates.append(w)
    if not candidates:
        return None
    candidates.sort(key=lambda w: w.get("kCGWindowLayer", 0) != 0)
    return int(candidates[0]["kCGWindowNumber"])


class QuartzHandleLookup:
    """Handle lookup via CGWindowListCopyWindowInfo."""

    def _find(self, app_name: str, window_title: str) -> int | None:
        from Quartz import (
            CGWindowListCopyWindowInfo,
            kCGNullWindowID,
            kCGWindowListExcludeDesktopElements,
            kCGWindowListOptionOnScreenOnly,
        )

        raw = CGWindowListCopyWindowInfo(
            kCGWindowListOptionOnScreenOnly | kCGWindowListExcludeDesktopElements,
            kCGNullWindowID,
        )
        return _match_window(raw or [], app_name, window_title)

    def _alive(self, handle: int) -> bool:
        from Quartz import CGWindowListCopyWindowInfo, kCGWindowListOptionIncludingWindow

        raw = CGWindowListCopyWindowInfo(kCGWindowListOptionIncludingWindow, handle)
        return any(int(w.get("kCGWindowNumber", 0)) == handle for w in raw or [])

    async def lookup(self, app_name: str, window_title: str) -> int:
        handle = await _in_thread(
            self._find, app_name, window_title, what="CGWindowListCopyWindowInfo"
        )
        if handle is None:
            raise WindowNotFound(app_name, window_title)
        return handle

    async def exists(self, handle: int) -> bool:
        return await _in_thread(self._alive, handle, what="CGWindowListCopyWindowInfo")


# =============================================================================
# WINDOW CACHE
# =============================================================================

class WindowCache:
    """Process-lifetime (app, title) -> window id map with TTL expiry.

    Keys match exactly (case-sensitive). Expired entries are dropped lazily
    when looked up. Nothing here raises; absence is a normal outcome.
    """

    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = CONFIG["cache_ttl_seconds"] if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, app_name: str, window_title: str) -> int | None:
        key = (app_name, window_title)
        entry = self._entries.get(key)
        if entry is None:
            return None
        age = self.clock() - entry.cached_at
        if age > self.ttl_seconds:
            del self._entries[key]
            _log("DEBUG", "cache_expire", f"{app_name} / {window_title}", metrics=f"age_s={age:.1f}")
            return None
        return entry.record.window_handle

    def store(self, app_name: str, window_title: str, handle: int) -> None:
        record = WindowRecord(app_name, window_title, handle)
        self._entries[(app_name, window_title)] = CacheEntry(record, self.clock())

    def evict(self, app_name: str, window_title: str) -> bool:
        return self._entries.pop((app_name, window_title), None) is not None

    def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        _log("INFO", "cache_clear", f"Cleared {removed} entries")
        return removed

    def stats(self) -> dict:
        return {
            "size": len(self._entries),
            "ttl_seconds": self.ttl_seconds,
            "entries": list(self._entries.values()),
        }


# =============================================================================
# WINDOW RESOLVER
# =============================================================================

class WindowResolver:
    """Turns app names and window titles into window ids, trusting the cache within its TTL.

    Enumeration walks every process and is expensive; a handle lookup is one
    call per (app, title). Both are only made on a cache miss, or when the
    caller forces a refresh.
    """

    def __init__(self, cache: WindowCache, enumerator, lookup, *, probe_first_window: bool | None = None):
        self.cache = cache
        self.enumerator = enumerator
        self.lookup = lookup
        if probe_first_window is None:
            probe_first_window = CONFIG["probe_cached_first_window"]
        self.probe_first_window = probe_first_window

    async def list_all(self, force_refresh: bool = False) -> list[ApplicationWindowGroup]:
        t0 = time.monotonic()
        pairs = await self.enumerator.enumerate()

        groups: dict[str, ApplicationWindowGroup] = {}
        hits = dropped = 0
        # Lookups stay sequential; WindowCache.store is not safe for concurrent callers.
        for app, title in pairs:
            handle = None if force_refresh else self.cache.lookup(app, title)
            if handle is None:
                try:
                    handle = await self.lookup.lookup(app, title)
                except (WindowNotFound, ExternalCallTimeout) as e:
                    dropped += 1
                    self.cache.evict(app, title)
                    _log("DEBUG", "list_drop", f"{app} / {title}", detail=str(e))
                    continue
                self.cache.store(app, title, handle)
            else:
                hits += 1
            groups.setdefault(app, ApplicationWindowGroup(app)).windows.append((title, handle))

        result = [groups[app] for app in sorted(groups)]
        elapsed_ms = int((time.monotonic() - t0) * 1000)
        _log(
            "INFO", "list", f"Resolved {len(pairs) - dropped}/{len(pairs)} windows in {len(result)} apps",
            detail=f"force_refresh={force_refresh}",
            metrics=f"elapsed_ms={elapsed_ms} cache_hits={hits} dropped={dropped}",
        )
        return result

    async def resolve_named_window(self, app_name: str, window_title: str) -> int:
        handle = self.cache.lookup(app_name, window_title)
        if handle is not None:
            _log("DEBUG", "cache_hit", f"{app_name} / {window_title} -> {handle}")
            return handle
        _log("DEBUG", "cache_miss", f"{app_name} / {window_title}")
        handle = await self.lookup.lookup(app_name, window_title)
        self.cache.store(app_name, window_title, handle)
        _log("INFO", "resolve", f"{app_name} / {window_title} -> {handle}")
        return handle

    async def resolve_first_window_of_app(self, app_name: str) -> int:
        needle = app_name.lower()
        for entry in self.cache.stats()["entries"]:
            rec = entry.record
            if rec.app_name.lower() != needle:
                continue
            handle = self.cache.lookup(rec.app_name, rec.window_title)
            if handle is None:
                continue
            if self.probe_first_window and not await self._still_open(handle):
                self.cache.evict(rec.app_name, rec.window_title)
                _log("INFO", "cache_stale", f"{rec.app_name} / {rec.window_title} -> {handle} closed")
                continue
            _log("DEBUG", "cache_hit", f"first window of {app_name} -> {handle}")
            return handle

        _log("DEBUG", "cache_miss", f"first window of {app_name}")
        found = await self.enumerator.first_window(app_name)
        if found is None:
            raise NoWindowsForApp(app_name)
        canonical, title = found
        try:
            handle = await self.lookup.lookup(canonical, title)
        except WindowNotFound:
            raise NoWindowsForApp(app_name) from None
        self.cache.store(canonical, title, handle)
        _log("INFO", "resolve", f"first window of {app_name}: {canonical} / {title} -> {handle}")
        return handle

    async def _still_open(self, handle: int) -> bool:
        exists = getattr(self.lookup, "exists", None)
        if exists is None:
            return True
        try:
            return await exists(handle)
        except ExternalCallTimeout:
            # Can't tell; let the capture itself fail if the window is gone.
            return True


# =============================================================================
# CAPTURE
# =============================================================================

class CaptureInvoker:
    """Runs screencapture for a target and checks a file actually landed.

    screencapture exits 0 without writing anything when Screen Recording
    permission is missing, so the exit code alone is not trusted.
    """

    def __init__(self, runner: Runner | None = None):
        self._runner = runner or _run_cmd

    def build_args(self, target: CaptureTarget, destination: Path) -> list[str]:
        args = [CONFIG["screencapture"], "-x"]
        if target.window_handle is None:
            args += ["-D", str(target.display)]
        else:
            args += ["-l", str(target.window_handle)]
            if not target.include_shadow:
                args.append("-o")
        args.append(str(destination))
        return args

    async def capture(self, target: CaptureTarget, destination) -> Path:
        destination = Path(destination)
        destination.unlink(missing_ok=True)

        t0 = time.monotonic()
        code, _, err = await self._runner(*self.build_args(target, destination))
        elapsed_ms = int((time.monotonic() - t0) * 1000)

        if code != 0:
            destination.unlink(missing_ok=True)
            raise CaptureFailed(f"screencapture failed for {target.describe()}: {err or f'exit {code}'}")
        if not destination.exists() or destination.stat().st_size == 0:
            destination.unlink(missing_ok=True)
            raise CaptureFailed(
                f"screencapture wrote no image for {target.describe()}. {_PERMISSION_HINT}"
            )

        _log(
            "INFO", "capture", f"Captured {target.describe()}",
            detail=f"path={destination}",
            metrics=f"elapsed_ms={elapsed_ms} bytes={destination.stat().st_size}",
        )
        return destination


# =============================================================================
# CORE FUNCTIONS — _impl pattern, shared by CLI and MCP
# =============================================================================

def _build_services() -> tuple[WindowResolver, CaptureInvoker]:
    """Wire the default macOS facilities around one fresh cache."""
    resolver = WindowResolver(WindowCache(), SystemEventsEnumerator(), QuartzHandleLookup())
    return resolver, CaptureInvoker()


def _screenshot_dir() -> Path:
    configured = CONFIG["screenshot_dir"]
    return Path(configured).expanduser() if configured else Path.cwd() / "screenshots"


def _screenshot_path(filename: str | None) -> Path:
    """Destination PNG path; defaults to a millisecond timestamp name."""
    name = Path(filename).name if filename else ""
    if name.lower().endswith(".png"):
        name = name[:-4]
    if not name:
        name = f"screenshot_{int(time.time() * 1000)}"
    directory = _screenshot_dir()
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"{name}.png"


async def _take_screenshot_impl(
    resolver: WindowResolver,
    invoker: CaptureInvoker,
    filename: str | None = None,
    display: int = 1,
    app_name: str | None = None,
    window_title: str | None = None,
    include_shadow: bool = True,
) -> tuple[dict, dict]:
    """Resolve the target, capture it, and describe the written file."""
    t0 = time.monotonic()
    app_name = (app_name or "").strip() or None
    window_title = window_title or None

    if window_title and not app_name:
        raise ScreenshotError("window_title needs app_name as well.")

    handle = None
    if app_name and window_title:
        handle = await resolver.resolve_named_window(app_name, window_title)
    elif app_name:
        handle = await resolver.resolve_first_window_of_app(app_name)

    target = CaptureTarget(display=display, window_handle=handle, include_shadow=include_shadow)
    path = await invoker.capture(target, _screenshot_path(filename))

    elapsed_ms = int((time.monotonic() - t0) * 1000)
    result = {
        "path": str(path),
        "target": target.kind,
        "description": target.describe(),
        "display": display if handle is None else None,
        "app": app_name,
        "window": window_title,
        "window_id": handle,
        "bytes": path.stat().st_size,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    _log(
        "INFO", "take_screenshot", f"Saved {target.describe()} to {path}",
        detail=f"app={app_name} title={window_title}", metrics=f"elapsed_ms={elapsed_ms}",
    )
    return result, {"elapsed_ms": elapsed_ms}


async def _take_screenshot_response(resolver: WindowResolver, invoker: CaptureInvoker, **kwargs) -> list:
    """Tool output for take_screenshot: saved-path text + PNG image, or an error text."""
    from fastmcp.utilities.types import Image

    try:
        result, _ = await _take_screenshot_impl(resolver, invoker, **kwargs)
        # Image(path=...) would defer the read past this handler.
        image = Image(data=Path(result["path"]).read_bytes(), format="png")
    except Exception as e:
        _log("ERROR", "take_screenshot", str(e), detail=json.dumps(kwargs, default=str))
        return [f"Error taking screenshot: {e}"]

    return [
        f"Screenshot saved to: {result['path']} ({result['description']})",
        image,
    ]


async def _list_windows_impl(resolver: WindowResolver, force_refresh: bool = False) -> tuple[dict, dict]:
    """Grouped window listing. Enumeration failure degrades to an empty result."""
    t0 = time.monotonic()
    error = ""
    try:
        groups = await resolver.list_all(force_refresh=force_refresh)
    except (EnumerationFailed, ExternalCallTimeout) as e:
        _log("ERROR", "list", str(e))
        groups, error = [], str(e)

    elapsed_ms = int((time.monotonic() - t0) * 1000)
    result = {
        "apps": [
            {"app": g.app_name, "windows": [{"title": t, "id": h} for t, h in g.windows]}
            for g in groups
        ],
        "window_count": sum(len(g.windows) for g in groups),
    }
    if error:
        result["error"] = error
    return result, {"elapsed_ms": elapsed_ms, "apps": len(groups), "force_refresh": force_refresh}


def _format_window_list(result: dict) -> str:
    if not result["apps"]:
        reason = f" ({result['error']})" if result.get("error") else ""
        return f"No capturable windows found{reason}. {_PERMISSION_HINT}"
    lines = [f"Found {result['window_count']} windows in {len(result['apps'])} apps:", ""]
    for app in result["apps"]:
        lines.append(app["app"])
        for w in app["windows"]:
            lines.append(f'  - "{w["title"]}" (id: {w["id"]})')
    return "\n".join(lines)


def _clear_cache_impl(cache: WindowCache) -> tuple[dict, dict]:
    removed = cache.clear()
    return {"removed": removed}, {"size": len(cache)}


def _cache_stats_impl(cache: WindowCache) -> tuple[dict, dict]:
    stats = cache.stats()
    now = cache.clock()
    entries = [
        {
            "app": e.record.app_name,
            "title": e.record.window_title,
            "id": e.record.window_handle,
            "age_seconds": round(now - e.cached_at, 1),
        }
        for e in stats["entries"]
    ]
    return (
        {"size": stats["size"], "ttl_seconds": stats["ttl_seconds"], "entries": entries},
        {"size": stats["size"]},
    )


# =============================================================================
# CLI INTERFACE
# =============================================================================


def main():
    parser = argparse.ArgumentParser(
        description="Window-aware screenshots for AI agents: list, resolve, capture.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Targets:
  take                      -- full screen of display 1
  take --display 2          -- full screen of another display
  take --app NAME           -- first window of an app (case-insensitive)
  take --app NAME --title T -- exact window title of an app

Screenshots land in ./screenshots unless SFB_SCREENSHOT_DIR is set.
""",
    )
    parser.add_argument("-V", "--version", action="version", version=f"sft_screenshot {CONFIG['version']}")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    # list
    p_list = sub.add_parser("list", help="List capturable windows grouped by app")
    p_list.add_argument("--refresh", "-r", action="store_true", help="Ignore cached window ids")
    p_list.add_argument("--json", action="store_true", help="JSON output")

    # take
    p_take = sub.add_parser("take", help="Capture a display or window")
    p_take.add_argument("--filename", "-f", default="", help="Name without extension (default: timestamp)")
    p_take.add_argument("--display", "-d", type=int, default=1, help="Display number for full-screen capture")
    p_take.add_argument("--app", "-a", default="", help="App name (case-insensitive)")
    p_take.add_argument("--title", "-t", default="", help="Exact window title (needs --app)")
    p_take.add_argument("--no-shadow", action="store_true", help="Omit the window shadow")

    # MCP server
    sub.add_parser("mcp-stdio", help="Run as MCP server (stdio transport)")

    args = parser.parse_args()

    try:
        if args.command == "mcp-stdio":
            _run_mcp()
            return

        elif args.command == "list":
            resolver, _ = _build_services()
            result, metrics = asyncio.run(_list_windows_impl(resolver, args.refresh))
            if args.json:
                print(json.dumps({"result": result, "metrics": metrics}, indent=2))
            else:
                print(_format_window_list(result))

        elif args.command == "take":
            resolver, invoker = _build_services()
            result, metrics = asyncio.run(
                _take_screenshot_impl(
                    resolver,
                    invoker,
                    filename=args.filename or None,
                    display=args.display,
                    app_name=args.app or None,
                    window_title=args.title or None,
                    include_shadow=not args.no_shadow,
                )
            )
            print(json.dumps({"result": result, "metrics": metrics}, indent=2))

        else:
            parser.print_help()
            sys.exit(1)

    except Exception as e:
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        _log("ERROR", args.command or "unknown", str(e), detail=type(e).__name__)
        sys.exit(1)


# =============================================================================
# FASTMCP SERVER
# =============================================================================

def _run_mcp():
    """Start FastMCP server with all tools. The window cache lives for the process."""
    from fastmcp import FastMCP

    resolver, invoker = _build_services()
    mcp = FastMCP("screenshot")

    @mcp.tool()
    async def take_screenshot(
        filename: str = "",
        display: int = 1,
        app_name: str = "",
        window_title: str = "",
        include_shadow: bool = True,
    ):
        """Take a screenshot and save it to the screenshots folder.

        With no target, captures a whole display. With app_name, captures that
        app's first window; add window_title to pick an exact window.

        Args:
            filename: Name without extension (default: screenshot_<timestamp>).
            display: Display number for full-screen capture (default: 1).
            app_name: App to capture, case-insensitive (e.g. "Figma").
            window_title: Exact window title within app_name.
            include_shadow: Keep the window drop shadow (window captures only).

        Returns:
            Saved path as text plus the PNG image.
        """
        return await _take_screenshot_response(
            resolver,
            invoker,
            filename=filename or None,
            display=display,
            app_name=app_name or None,
            window_title=window_title or None,
            include_shadow=include_shadow,
        )

    @mcp.tool()
    async def list_windows(force_refresh: bool = False) -> str:
        """List capturable windows grouped by app, with their window ids.

        Args:
            force_refresh: Re-resolve every window id instead of trusting the cache.

        Returns:
            One line per app followed by its window titles.
        """
        try:
            result, _ = await _list_windows_impl(resolver, force_refresh)
        except Exception as e:
            _log("ERROR", "list_windows", str(e), detail=type(e).__name__)
            return f"Error listing windows: {e}"
        return _format_window_list(result)

    @mcp.tool()
    def clear_window_cache() -> str:
        """Forget all cached window ids. Use after windows were closed or reopened."""
        result, _ = _clear_cache_impl(resolver.cache)
        return f"Cleared {result['removed']} cached window entries."

    @mcp.tool()
    def window_cache_stats() -> str:
        """Show cached window ids and their age.

        Returns:
            JSON with size, ttl_seconds and entries.
        """
        result, metrics = _cache_stats_impl(resolver.cache)
        return json.dumps({"result": result, "metrics": metrics})

    print("screenshot MCP server running (stdio transport)", file=sys.stderr)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
