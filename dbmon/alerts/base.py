from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from dbmon.core.models import Status


@dataclass(frozen=True)
class AlertEvent:
    target_name: str
    engine: str
    address: str
    status: Status
    previous_status: Status | None
    checked_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None


class AlertSender(Protocol):
    async def send(self, event: AlertEvent) -> None:  # pragma: no cover - interface
        ...

    async def aclose(self) -> None:  # pragma: no cover - interface
        ...
