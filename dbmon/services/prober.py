from __future__ import annotations

import asyncio
import enum
import logging
import ssl
import time
from typing import Any, Callable

from sqlalchemy import URL, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from dbmon.core.config import PROBE_TIMEOUT_MS
from dbmon.core.models import ProbeOutcome, Status, Target

logger = logging.getLogger(__name__)

EngineFactory = Callable[[URL, dict[str, Any]], AsyncEngine]

MSSQL_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


class EngineFamily(str, enum.Enum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MSSQL = "mssql"


_ALIASES: dict[str, EngineFamily] = {
    "postgres": EngineFamily.POSTGRESQL,
    "postgresql": EngineFamily.POSTGRESQL,
    "mariadb": EngineFamily.MYSQL,
    "mysql": EngineFamily.MYSQL,
    "sqlserver": EngineFamily.MSSQL,
    "mssql": EngineFamily.MSSQL,
}

_DRIVERS: dict[EngineFamily, str] = {
    EngineFamily.POSTGRESQL: "postgresql+asyncpg",
    EngineFamily.MYSQL: "mysql+aiomysql",
    EngineFamily.MSSQL: "mssql+aioodbc",
}


def resolve_family(engine: str) -> EngineFamily | None:
    return _ALIASES.get(engine.strip().lower())


def build_url(target: Target, family: EngineFamily) -> URL:
    query: dict[str, str] = {}
    if family is EngineFamily.MSSQL:
        flag = "yes" if target.require_ssl else "no"
        query = {
            "driver": MSSQL_ODBC_DRIVER,
            "Encrypt": flag,
            "TrustServerCertificate": flag,
        }
    return URL.create(
        _DRIVERS[family],
        username=target.username or None,
        password=target.password.get_secret_value() or None,
        host=target.host,
        port=target.port,
        database=target.database or None,
        query=query,
    )


def build_connect_args(target: Target, family: EngineFamily, timeout_sec: float) -> dict[str, Any]:
    if family is EngineFamily.POSTGRESQL:
        return {
            "timeout": timeout_sec,
            "command_timeout": timeout_sec,
            "ssl": "require" if target.require_ssl else "disable",
        }
    if family is EngineFamily.MYSQL:
        args: dict[str, Any] = {"connect_timeout": timeout_sec}
        if target.require_ssl:
            args["ssl"] = _unverified_ssl_context()
        return args
    return {"timeout": int(timeout_sec)}


def _unverified_ssl_context() -> ssl.SSLContext:
    # encryption only, the server certificate is not checked
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _default_engine_factory(url: URL, connect_args: dict[str, Any]) -> AsyncEngine:
    return create_async_engine(url, poolclass=NullPool, connect_args=connect_args)


class Prober:
    """Runs one connect / ``SELECT 1`` / release cycle against a target.

    ``probe`` never raises: driver errors, authentication failures and timeouts
    come back as a DOWN outcome, an unrecognised engine kind as UNKNOWN.
    """

    def __init__(
        self,
        engine_factory: EngineFactory | None = None,
        timeout_ms: int = PROBE_TIMEOUT_MS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._engine_factory = engine_factory or _default_engine_factory
        self._timeout_ms = timeout_ms
        self._clock = clock or time.perf_counter

    @property
    def timeout_sec(self) -> float:
        return self._timeout_ms / 1000

    async def probe(self, target: Target) -> ProbeOutcome:
        family = resolve_family(target.engine)
        if family is None:
            return ProbeOutcome(
                status=Status.UNKNOWN,
                elapsed_ms=0,
                error=f"Unsupported database type: {target.engine}",
            )

        started = self._clock()
        try:
            engine = self._engine_factory(
                build_url(target, family),
                build_connect_args(target, family, self.timeout_sec),
            )
            try:
                await self._select_one(engine)
            finally:
                await engine.dispose()
        except Exception as exc:
            return ProbeOutcome(
                status=Status.DOWN,
                elapsed_ms=self._elapsed_ms(started),
                error=_normalize_error(exc, self._timeout_ms),
            )

        return ProbeOutcome(status=Status.UP, elapsed_ms=self._elapsed_ms(started), error=None)

    async def _select_one(self, engine: AsyncEngine) -> None:
        conn = await asyncio.wait_for(engine.connect().start(), timeout=self.timeout_sec)
        try:
            await asyncio.wait_for(conn.execute(text("SELECT 1")), timeout=self.timeout_sec)
        finally:
            await _release(conn)

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock() - started) * 1000))


async def _release(conn: AsyncConnection) -> None:
    try:
        await conn.close()
    except Exception as exc:
        # close errors do not change the outcome
        logger.debug("connection close failed: %s", exc)


def _normalize_error(exc: BaseException, timeout_ms: int) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return f"timeout after {timeout_ms} ms"
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        message = str(exc.orig)
    else:
        message = str(exc)
    return message.strip() or exc.__class__.__name__
