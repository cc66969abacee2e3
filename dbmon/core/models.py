from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Status(str, enum.Enum):
    UP = "UP"
    DOWN = "DOWN"
    UNKNOWN = "UNKNOWN"


class Target(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    engine: str = Field(..., alias="type", min_length=1)
    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    database: str = ""
    username: str = ""
    password: SecretStr = SecretStr("")
    require_ssl: bool = Field(default=False, alias="requireSSL")
    disabled: bool = False

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ProbeOutcome:
    status: Status
    elapsed_ms: int
    error: str | None = None


@dataclass(frozen=True)
class DowntimeInterval:
    start: datetime
    end: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end is None


@dataclass(frozen=True)
class TargetState:
    """Availability of one target. A fresh value is produced by every transition."""

    current_status: Status | None = None
    intervals: tuple[DowntimeInterval, ...] = ()


@dataclass(frozen=True)
class SessionEntry:
    timestamp: datetime
    target_name: str
    engine: str
    status: Status
    elapsed_ms: int
    error: str | None
    downtime_snapshot: tuple[DowntimeInterval, ...]


@dataclass(frozen=True)
class CycleResult:
    target: Target
    outcome: ProbeOutcome
    state: TargetState
