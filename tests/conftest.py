"""Shared fixtures: a fixed clock, a fresh profile and a seeded random source."""

import random
from datetime import datetime, timedelta

import pytest

from exam_progression.models.profile import ProfileState

# Wednesday; the week starts on Monday 2026-03-02
NOW = datetime(2026, 3, 4, 10, 0, 0)


class FakeClock:
    def __init__(self, start: datetime = NOW):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def profile(now):
    return ProfileState.new(now)


@pytest.fixture
def rng():
    return random.Random(7)
