"""Test doubles for the OS facilities, with call-count spies."""

from __future__ import annotations

from pathlib import Path

from sft_screenshot import EnumerationFailed, WindowNotFound


class ManualClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEnumerator:
    def __init__(self, pairs=None, first=None, fail: bool = False):
        self.pairs = list(pairs or [])
        self.first = dict(first or {})
        self.fail = fail
        self.enumerate_calls = 0
        self.first_window_calls: list[str] = []

    async def enumerate(self):
        self.enumerate_calls += 1
        if self.fail:
            raise EnumerationFailed("System Events unreachable")
        return list(self.pairs)

    async def first_window(self, app_name):
        self.first_window_calls.append(app_name)
        for app, pair in self.first.items():
            if app.lower() == app_name.lower():
                return pair
        return None


class FakeLookup:
    """Resolves from a {(app, title): handle} table; anything else is WindowNotFound."""

    def __init__(self, handles=None, alive=None):
        self.handles = dict(handles or {})
        self.alive = alive  # None = every handle exists
        self.calls: list[tuple[str, str]] = []
        self.exists_calls: list[int] = []

    async def lookup(self, app_name, window_title):
        self.calls.append((app_name, window_title))
        try:
            return self.handles[(app_name, window_title)]
        except KeyError:
            raise WindowNotFound(app_name, window_title) from None

    async def exists(self, handle):
        self.exists_calls.append(handle)
        return True if self.alive is None else handle in self.alive


class FakeRunner:
    """Stands in for _run_cmd. Optionally writes PNG bytes to the last argument."""

    PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16

    def __init__(self, code: int = 0, stdout: str = "", stderr: str = "", write: bool = True):
        self.code = code
        self.stdout = stdout
        self.stderr = stderr
        self.write = write
        self.calls: list[tuple[str, ...]] = []

    async def __call__(self, *args, timeout_s=None):
        self.calls.append(args)
        if self.write and self.code == 0:
            Path(args[-1]).write_bytes(self.PNG)
        return self.code, self.stdout, self.stderr
