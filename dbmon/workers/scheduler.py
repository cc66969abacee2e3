from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol, Sequence

from dbmon.alerts.base import AlertEvent, AlertSender
from dbmon.core.config import CYCLE_INTERVAL_MS
from dbmon.core.models import CycleResult, ProbeOutcome, Status, Target, TargetState
from dbmon.services.availability import Transition, apply_outcome, classify, open_interval
from dbmon.services.status_history import SessionLog, SessionRecorder

logger = logging.getLogger(__name__)

CycleCallback = Callable[[Sequence[CycleResult], datetime], None]
Waiter = Callable[[asyncio.Event, float], Awaitable[None]]


class Probe(Protocol):
    async def probe(self, target: Target) -> ProbeOutcome:  # pragma: no cover - interface
        ...


async def wait_or_stop(stop: asyncio.Event, delay: float) -> None:
    if delay <= 0:
        # still yield so signal handlers and alert tasks get a turn
        await asyncio.sleep(0)
        return
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass


class PollingScheduler:
    """Probes every target once per cycle on a fixed cadence.

    Each cycle fans the probes out concurrently and waits for all of them.
    Target state and the session log are then updated serially, in target
    order, so nothing here needs a lock. The next cycle starts
    ``max(0, interval - elapsed)`` after the previous one finished: cycles never
    overlap and a slow cycle is followed immediately rather than skipped.
    """

    def __init__(
        self,
        targets: Sequence[Target],
        prober: Probe,
        recorder: SessionRecorder | None = None,
        on_cycle: CycleCallback | None = None,
        alerts: AlertSender | None = None,
        interval_ms: int = CYCLE_INTERVAL_MS,
        clock: Callable[[], float] | None = None,
        wall_clock: Callable[[], datetime] | None = None,
        waiter: Waiter | None = None,
    ) -> None:
        names = [target.name for target in targets]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate target names: {', '.join(duplicates)}")

        self._targets = tuple(targets)
        self._prober = prober
        self._recorder = recorder or SessionRecorder()
        self._on_cycle = on_cycle
        self._alerts = alerts
        self._interval = interval_ms / 1000
        self._clock = clock or time.monotonic
        self._wall_clock = wall_clock or (lambda: datetime.now(timezone.utc))
        self._wait = waiter or wait_or_stop
        self._alert_tasks: set[asyncio.Task[None]] = set()

        self.states: dict[str, TargetState] = {name: TargetState() for name in names}
        self.cycles_completed = 0
        self.next_cycle_at: float | None = None

    @property
    def targets(self) -> tuple[Target, ...]:
        return self._targets

    @property
    def log(self) -> SessionLog:
        return self._recorder.log

    async def run(self, stop: asyncio.Event) -> None:
        logger.info("monitoring %d target(s)", len(self._targets), extra={"targets": len(self._targets)})

        while not stop.is_set():
            cycle_start = self._clock()
            await self.run_cycle()
            elapsed = self._clock() - cycle_start

            delay = max(0.0, self._interval - elapsed)
            self.next_cycle_at = cycle_start + elapsed + delay
            await self._wait(stop, delay)

        self.next_cycle_at = None
        logger.info("monitoring stopped after %d cycle(s)", self.cycles_completed)

    async def run_cycle(self) -> list[CycleResult]:
        outcomes = await asyncio.gather(*(self._probe(target) for target in self._targets))
        now = self._wall_clock()

        results: list[CycleResult] = []
        for target, outcome in zip(self._targets, outcomes):
            previous = self.states[target.name]
            transition = classify(previous, outcome.status)
            state = apply_outcome(previous, outcome, now)
            self.states[target.name] = state
            self._recorder.record(target, outcome, state, now)

            if transition is not Transition.NONE:
                self._on_transition(target, previous, state, outcome, transition, now)
            results.append(CycleResult(target=target, outcome=outcome, state=state))

        self.cycles_completed += 1
        if self._on_cycle is not None:
            try:
                self._on_cycle(results, now)
            except Exception:
                logger.exception("cycle callback failed")
        return results

    async def drain_alerts(self) -> None:
        if self._alert_tasks:
            await asyncio.gather(*self._alert_tasks)

    async def _probe(self, target: Target) -> ProbeOutcome:
        started = self._clock()
        try:
            return await self._prober.probe(target)
        except Exception as exc:
            logger.exception("probe failed", extra={"target": target.name})
            return ProbeOutcome(
                status=Status.DOWN,
                elapsed_ms=max(0, int((self._clock() - started) * 1000)),
                error=str(exc) or exc.__class__.__name__,
            )

    def _on_transition(
        self,
        target: Target,
        previous: TargetState,
        state: TargetState,
        outcome: ProbeOutcome,
        transition: Transition,
        now: datetime,
    ) -> None:
        if transition is Transition.WENT_DOWN:
            interval = open_interval(state)
            logger.warning("%s is DOWN: %s", target.name, outcome.error, extra={"target": target.name})
        else:
            interval = state.intervals[-1]
            logger.info("%s recovered", target.name, extra={"target": target.name})

        if self._alerts is None or interval is None:
            return

        event = AlertEvent(
            target_name=target.name,
            engine=target.engine,
            address=target.address,
            status=outcome.status,
            previous_status=previous.current_status,
            checked_at=now,
            started_at=interval.start,
            ended_at=interval.end,
            error=outcome.error,
        )
        task = asyncio.create_task(_send_alert(self._alerts, event))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)


async def _send_alert(sender: AlertSender, event: AlertEvent) -> None:
    try:
        await sender.send(event)
    except Exception:
        logger.exception("alert delivery failed", extra={"target": event.target_name})
