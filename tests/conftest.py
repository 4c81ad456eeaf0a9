"""
Pytest configuration and shared fixtures.
"""

import asyncio
from typing import Optional

import pytest

from drive_mounter.config import Settings
from drive_mounter.dependencies import get_settings, reset_singletons


@pytest.fixture(autouse=True)
def clean_singletons():
    """Reset dependency singletons before and after each test."""
    reset_singletons()
    get_settings.cache_clear()
    yield
    reset_singletons()
    get_settings.cache_clear()


class FakeStream:
    def __init__(self, lines=()):
        self._lines = [line.encode() if isinstance(line, str) else line for line in lines]

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._lines:
            raise StopAsyncIteration
        return self._lines.pop(0) + b"\n"

    async def read(self):
        data = b"\n".join(self._lines)
        self._lines = []
        return data


class FakeProcess:
    """Mount process that runs until killed, or exits when exit() is called."""

    def __init__(self, pid: int = 4242, returncode: Optional[int] = None, stderr_lines=()):
        self.pid = pid
        self.returncode = returncode
        self.stderr = FakeStream(stderr_lines)
        self.kill_calls = 0
        self._exited = asyncio.Event()
        if returncode is not None:
            self._exited.set()

    def kill(self):
        self.kill_calls += 1
        self.exit(-9)

    def exit(self, code: int = 1):
        if self.returncode is None:
            self.returncode = code
        self._exited.set()

    async def wait(self):
        await self._exited.wait()
        return self.returncode


class StuckProcess(FakeProcess):
    """Ignores kill: wait() never returns."""

    def kill(self):
        self.kill_calls += 1


@pytest.fixture
def make_process():
    """Factory for fake mount process handles."""
    return FakeProcess


@pytest.fixture
def make_stuck_process():
    return StuckProcess


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with zero grace periods and all data under tmp_path."""
    return Settings(
        data_directory=str(tmp_path / "data"),
        log_file_path=str(tmp_path / "logs" / "drive_mounter.log"),
        mount_initial_grace_seconds=0,
        mount_ready_grace_seconds=0,
        unmount_grace_seconds=0.05,
        shutdown_timeout_seconds=0.5,
    )
