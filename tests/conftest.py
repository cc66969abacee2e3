from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

import pytest

from dbmon.core.models import ProbeOutcome, Status, Target

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(ms: int) -> datetime:
    return T0 + timedelta(milliseconds=ms)


def make_target(name: str = "primary", engine: str = "postgres", **overrides) -> Target:
    data = {
        "name": name,
        "type": engine,
        "host": "db.internal",
        "port": 5432,
        "database": "app",
        "username": "monitor",
        "password": "secret",
    }
    data.update(overrides)
    return Target.model_validate(data)


UP = ProbeOutcome(status=Status.UP, elapsed_ms=12)
DOWN = ProbeOutcome(status=Status.DOWN, elapsed_ms=5000, error="connection refused")
UNKNOWN = ProbeOutcome(status=Status.UNKNOWN, elapsed_ms=0, error="Unsupported database type: oracle")


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProber:
    """Returns pre-baked outcomes per target name, one per call."""

    def __init__(self, script: dict[str, Iterable[ProbeOutcome]], clock: FakeClock | None = None, cost: float = 0.0):
        self._script = {name: list(outcomes) for name, outcomes in script.items()}
        self._clock = clock
        self._cost = cost
        self.calls: list[str] = []

    async def probe(self, target: Target) -> ProbeOutcome:
        self.calls.append(target.name)
        if self._clock is not None and self._cost:
            self._clock.advance(self._cost)
        return self._script[target.name].pop(0)


@pytest.fixture
def target() -> Target:
    return make_target()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
