"""
Base DUT (Device Under Test) Interface

Defines the abstract interface every target engine implements. A DUT executes
one rendered statement at a time and reports rejections as ``EngineError``
subclasses: ``StatementFailure`` when the session survives, ``BrokenSession``
when it must be recreated.
"""

from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from pysmith.core.errors import EngineError

logger = logging.getLogger(__name__)

_STRING_LITERAL_RE = re.compile(r"'(?:''|[^'])*'")
_NUMERIC_LITERAL_RE = re.compile(r"\b\d+(?:\.\d+)?\b")

# Caps on per-run bookkeeping
MAX_SHAPES = 1000
MAX_ERROR_BUCKETS = 100
OTHER_ERRORS = "(other errors)"


def query_shape(query: str) -> str:
    """Normalize query by replacing literals with placeholders."""
    q = query.strip()
    q = _STRING_LITERAL_RE.sub("'?'", q)
    q = _NUMERIC_LITERAL_RE.sub('?', q)
    q = " ".join(q.split())
    return q


@dataclass
class DutConfig:
    """Connection settings for a target engine."""

    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    username: Optional[str] = None
    password: Optional[str] = None
    dsn: Optional[str] = None  # Full DSN (or SQLite path) overrides individual settings

    statement_timeout: int = 1000  # milliseconds, 0 disables
    application_name: str = "pysmith"

    def get_dsn(self) -> str:
        """Connection string: ``dsn`` verbatim, else a postgresql:// URL from the parts."""
        if self.dsn:
            return self.dsn
        auth = ""
        if self.username:
            auth = self.username
            if self.password:
                auth += f":{self.password}"
            auth += "@"
        return f"postgresql://{auth}{self.host}:{self.port}/{self.database}"


@dataclass
class Outcome:
    """Result of a successful execution."""

    sql: str
    elapsed: float  # seconds


@dataclass
class ExecutionStats:
    """Statistics collected during a run.

    ``shapes`` and ``errors`` are capped at ``max_shapes`` and
    ``max_error_buckets``; errors past the cap are counted under
    ``OTHER_ERRORS``.
    """

    total: int = 0
    success: int = 0
    failed: int = 0
    syntax_errors: int = 0
    timeouts: int = 0
    broken_sessions: int = 0
    execution_time: float = 0.0

    symbols: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    errors: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    shapes: Set[str] = field(default_factory=set)
    start_time: float = field(default_factory=time.time)
    max_shapes: int = MAX_SHAPES
    max_error_buckets: int = MAX_ERROR_BUCKETS

    def _track_shape(self, sql: str) -> None:
        if len(self.shapes) < self.max_shapes:
            self.shapes.add(query_shape(sql))

    def _track_error(self, key: str) -> None:
        if key in self.errors or len(self.errors) < self.max_error_buckets:
            self.errors[key] += 1
        else:
            self.errors[OTHER_ERRORS] += 1

    def record_success(self, outcome: Outcome) -> None:
        self.total += 1
        self.success += 1
        self.symbols['.'] += 1
        self.execution_time += outcome.elapsed
        self._track_shape(outcome.sql)

    def record_error(self, error: EngineError) -> None:
        self.total += 1
        self.failed += 1
        self.symbols[error.symbol] += 1
        self.execution_time += error.elapsed
        if error.symbol == 'S':
            self.syntax_errors += 1
        elif error.symbol == 't':
            self.timeouts += 1
        elif error.symbol == 'C':
            self.broken_sessions += 1
        self._track_error(_error_key(error))
        if error.sql:
            self._track_shape(error.sql)

    def elapsed(self) -> float:
        return time.time() - self.start_time

    def qps(self) -> float:
        """Statements per second since the stats were created."""
        seconds = self.elapsed()
        return self.total / seconds if seconds > 0 else 0.0

    def summary(self) -> str:
        """Multi-line report: totals, failure buckets and the most frequent errors."""
        symbols = " ".join(f"{sym}={n}" for sym, n in sorted(self.symbols.items()))
        shapes = f"{len(self.shapes):,}"
        if len(self.shapes) >= self.max_shapes:
            shapes += "+"
        lines = [
            f"{self.total:,} statements in {self.elapsed():.2f}s ({self.qps():.1f} per second)",
            f"  ok: {self.success:,}  failed: {self.failed:,}  [{symbols}]",
            f"  syntax errors: {self.syntax_errors:,}  timeouts: {self.timeouts:,}  "
            f"broken sessions: {self.broken_sessions:,}",
            f"  distinct statement shapes: {shapes}",
        ]
        if self.errors:
            lines.append("  most frequent errors:")
            worst = sorted(self.errors.items(), key=lambda kv: kv[1], reverse=True)[:5]
            lines.extend(f"    {count:>7,}  {key}" for key, count in worst)
        return "\n".join(lines)


def _error_key(error: EngineError) -> str:
    first_line = error.message.splitlines()[0] if error.message else ""
    return f"{error.kind}: {query_shape(first_line)[:80]}"


class Dut(ABC):
    """Abstract base class for target engines.

    To implement a custom DUT, subclass this and implement:
    - connect(): Establish the session, raising BrokenSession if impossible
    - close(): Tear the session down
    - _run(sql): Execute one statement, raising EngineError subclasses

    ``execute()`` wraps ``_run()`` with timing and is what callers use.
    """

    # Class-level metadata
    name: str = "base"
    description: str = "Abstract base DUT"

    def __init__(self, config: Optional[DutConfig] = None, **kwargs):
        """Initialize with config or keyword arguments."""
        if config:
            self.config = config
        else:
            self.config = DutConfig(**kwargs)

    @abstractmethod
    def connect(self) -> None:
        """Establish the session."""

    @abstractmethod
    def close(self) -> None:
        """Close the session."""

    @abstractmethod
    def _run(self, sql: str) -> None:
        """Execute ``sql`` and raise a classified EngineError on rejection."""

    @property
    def connected(self) -> bool:
        return False

    def reconnect(self) -> None:
        """Tear down and re-establish the session."""
        self.close()
        self.connect()

    def execute(self, sql: str) -> Outcome:
        """Execute a single statement and time it.

        Raises:
            StatementFailure: the statement was rejected, the session is fine.
            BrokenSession: the session is unusable.
        """
        start = time.perf_counter()
        try:
            self._run(sql)
        except EngineError as exc:
            exc.elapsed = time.perf_counter() - start
            exc.sql = sql
            raise
        return Outcome(sql=sql, elapsed=time.perf_counter() - start)

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False
