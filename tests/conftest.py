"""
Shared fixtures for Deadlinewatch tests.
"""

from datetime import datetime, timedelta

import pytest


class FakeClock:
    """Manually advanced clock injected wherever components take ``clock=``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock frozen on Wednesday 2026-10-14 10:00."""
    return FakeClock(datetime(2026, 10, 14, 10, 0, 0))


@pytest.fixture
def isolated_cwd(tmp_path, monkeypatch):
    """Run in an empty directory so no stray config file is picked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path
