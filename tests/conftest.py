"""
Shared fixtures for the credential store tests.

Every test gets its own store root under tmp_path; nothing touches ~/.crab.
"""

from __future__ import annotations

import datetime

import pytest

from crab.config import default_paths

UTC = datetime.timezone.utc


class FrozenClock:
    """Controllable replacement for crab.entry.utc_now."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + datetime.timedelta(**kwargs)
        return self.now


@pytest.fixture
def paths(tmp_path):
    return default_paths(tmp_path / "crab-home")


@pytest.fixture
def db_path(paths):
    return paths.database


@pytest.fixture
def clock(monkeypatch):
    """Freeze time at 2026-10-18 12:00:00 UTC for every module that reads it."""
    frozen = FrozenClock(datetime.datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC))
    for target in ("crab.entry.utc_now", "crab.storage.utc_now", "crab.backup.utc_now"):
        monkeypatch.setattr(target, frozen)
    return frozen


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("CRAB_HOME", raising=False)
