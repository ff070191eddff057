"""
SQLite DUT

Runs statements through the standard library ``sqlite3`` module. The statement
timeout is enforced with a progress handler that interrupts long statements.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Optional

from pysmith.core.duts.base import Dut, DutConfig
from pysmith.core.duts.registry import DutRegistry
from pysmith.core.errors import (
    BrokenSession, EngineError, StatementFailure, SyntaxFailure, TimeoutFailure,
)

logger = logging.getLogger(__name__)

_BROKEN_MARKERS = ('malformed', 'disk i/o error', 'not a database', 'closed database', 'out of memory')
_SYNTAX_MARKERS = ('syntax error', 'incomplete input', 'unrecognized token')

# VM instructions between progress handler calls
PROGRESS_STEPS = 1000


def classify_error(exc: sqlite3.Error) -> EngineError:
    """Map a sqlite3 exception onto the failure taxonomy."""
    message = str(exc).strip() or type(exc).__name__
    code = getattr(exc, 'sqlite_errorname', None)
    lowered = message.lower()

    if any(marker in lowered for marker in _BROKEN_MARKERS):
        return BrokenSession(message, code=code)
    if 'interrupted' in lowered:
        return TimeoutFailure(message, code=code)
    if any(marker in lowered for marker in _SYNTAX_MARKERS):
        return SyntaxFailure(message, code=code)
    return StatementFailure(message, code=code)


class SQLiteDut(Dut):
    """SQLite target engine. ``dsn`` is a file path or ``file:`` URI.

    Example:
        dut = SQLiteDut(dsn="/tmp/fuzz.db")
    """

    name = "sqlite"
    description = "SQLite database file"

    def __init__(self, config: Optional[DutConfig] = None, **kwargs):
        super().__init__(config, **kwargs)
        self._conn: Optional[sqlite3.Connection] = None
        self._deadline: Optional[float] = None

    @property
    def path(self) -> str:
        return self.config.dsn or ":memory:"

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def _check_deadline(self) -> int:
        if self._deadline is not None and time.monotonic() > self._deadline:
            return 1
        return 0

    def connect(self) -> None:
        if self.connected:
            return
        try:
            conn = sqlite3.connect(self.path, uri=self.path.startswith('file:'), isolation_level=None)
        except sqlite3.Error as exc:
            raise BrokenSession(f"cannot open {self.path}: {exc}") from exc
        if self.config.statement_timeout:
            conn.set_progress_handler(self._check_deadline, PROGRESS_STEPS)
        self._conn = conn
        logger.info("Opened SQLite database %s", self.path)

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error as exc:
                logger.debug("Error while closing database: %s", exc)
            self._conn = None

    def _run(self, sql: str) -> None:
        if not self.connected:
            raise BrokenSession("not connected")
        if self.config.statement_timeout:
            self._deadline = time.monotonic() + self.config.statement_timeout / 1000.0
        try:
            cursor = self._conn.execute(sql)
            cursor.fetchall()
        except sqlite3.Error as exc:
            raise classify_error(exc) from exc
        finally:
            self._deadline = None


# Register the DUT
DutRegistry.register(SQLiteDut)
