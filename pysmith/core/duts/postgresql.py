"""
PostgreSQL DUT

Executes statements on a single autocommit psycopg2 session and classifies
server errors by SQLSTATE.
"""

from __future__ import annotations

import logging
from typing import Optional

try:
    import psycopg2
    import psycopg2.errors
    PSYCOPG2_AVAILABLE = True
except ImportError:
    psycopg2 = None
    PSYCOPG2_AVAILABLE = False

from pysmith.core.duts.base import Dut, DutConfig
from pysmith.core.duts.registry import DutRegistry
from pysmith.core.errors import (
    BrokenSession, EngineError, StatementFailure, SyntaxFailure, TimeoutFailure,
)

logger = logging.getLogger(__name__)

# connection_exception (08xxx) and admin/crash shutdown (57P0x)
BROKEN_SQLSTATE_PREFIXES = ('08', '57P')
SYNTAX_SQLSTATE = '42601'


def classify_error(exc: Exception, connection_closed: bool = False) -> EngineError:
    """Map a psycopg2 exception onto the failure taxonomy."""
    code = getattr(exc, 'pgcode', None)
    message = str(exc).strip() or type(exc).__name__

    if isinstance(exc, psycopg2.errors.QueryCanceled) and not connection_closed:
        return TimeoutFailure(message, code=code)
    if connection_closed or (code and code.startswith(BROKEN_SQLSTATE_PREFIXES)):
        return BrokenSession(message, code=code)
    if code is None and isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return BrokenSession(message, code=code)
    if code == SYNTAX_SQLSTATE or isinstance(exc, psycopg2.errors.SyntaxError):
        return SyntaxFailure(message, code=code)
    return StatementFailure(message, code=code)


class PostgreSQLDut(Dut):
    """PostgreSQL target engine.

    Example:
        dut = PostgreSQLDut(dsn="postgresql://localhost:5432/testdb")
        with dut:
            dut.execute("SELECT 1")
    """

    name = "postgresql"
    description = "Standard PostgreSQL database"

    def __init__(self, config: Optional[DutConfig] = None, **kwargs):
        super().__init__(config, **kwargs)
        if not PSYCOPG2_AVAILABLE:
            raise RuntimeError("psycopg2 is required for PostgreSQLDut")
        self._conn = None

    @property
    def connected(self) -> bool:
        return self._conn is not None and not self._conn.closed

    def connect(self) -> None:
        """Open an autocommit session with the configured statement timeout."""
        if self.connected:
            return
        conn = None
        try:
            conn = psycopg2.connect(self.config.get_dsn())
            conn.autocommit = True
            with conn.cursor() as cur:
                if self.config.statement_timeout:
                    cur.execute(f"SET statement_timeout = {int(self.config.statement_timeout)}")
                cur.execute("SET client_min_messages = 'ERROR'")
                cur.execute("SET application_name = %s", (self.config.application_name,))
        except psycopg2.Error as exc:
            if conn is not None:
                conn.close()
            self._conn = None
            raise BrokenSession(f"cannot connect: {exc}".strip()) from exc
        self._conn = conn
        logger.info("Connected to %s", self.description)

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except psycopg2.Error as exc:
                logger.debug("Error while closing session: %s", exc)
            self._conn = None

    def _run(self, sql: str) -> None:
        if not self.connected:
            raise BrokenSession("not connected")
        try:
            with self._conn.cursor() as cur:
                cur.execute(sql)
        except psycopg2.Error as exc:
            raise classify_error(exc, bool(self._conn.closed)) from exc


# Register the DUT
DutRegistry.register(PostgreSQLDut)
