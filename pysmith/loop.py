"""
Run Loop

Owns the generate -> render -> execute -> classify cycle. Statement failures
are reported and the loop carries on; a broken session sends the loop to the
recreating state, where it waits a fixed backoff and re-establishes the session
for as long as it takes.
"""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, TextIO

from pysmith.core.duts.base import Dut
from pysmith.core.errors import BrokenSession, SchemaLoadError, StatementFailure
from pysmith.core.observers import ObserverSet
from pysmith.core.schema import Schema
from pysmith.grammar.base import DEFAULT_MAX_DEPTH
from pysmith.grammar.factory import DEFAULT_WEIGHTS, StatementFactory

logger = logging.getLogger(__name__)

__all__ = ["RunState", "RunConfig", "RunStats", "RunLoop"]


class RunState(Enum):
    IDLE = "idle"
    GENERATING = "generating"
    EXECUTING = "executing"
    CLASSIFYING = "classifying"
    RECREATING = "recreating"
    STOPPED = "stopped"


@dataclass
class RunConfig:
    """Settings for one run against one target."""

    target: Optional[str] = None
    dut: str = "postgresql"
    seed: Optional[int] = None
    max_statements: Optional[int] = None
    dry_run: bool = False
    backoff: float = 1.0  # seconds
    max_depth: int = DEFAULT_MAX_DEPTH
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    reload_schema: bool = False
    statement_timeout: int = 1000  # milliseconds
    progress_interval: int = 10000

    def __post_init__(self):
        if self.max_statements is not None and self.max_statements < 0:
            raise ValueError("max_statements must be >= 0")
        if self.backoff < 0:
            raise ValueError("backoff must be >= 0")


@dataclass
class RunStats:
    generated: int = 0
    executed: int = 0
    failed: int = 0
    broken_sessions: int = 0
    recoveries: int = 0
    stop_reason: str = ""


class RunLoop:
    """Drives one target engine.

    Example:
        loop = RunLoop(factory, dut, observers, RunConfig(max_statements=100))
        stats = loop.run()
    """

    def __init__(self, factory: StatementFactory, dut: Optional[Dut] = None,
                 observers: Optional[ObserverSet] = None, config: Optional[RunConfig] = None,
                 schema_loader: Optional[Callable[[], Schema]] = None,
                 output: Optional[TextIO] = None):
        self.factory = factory
        self.dut = dut
        self.observers = observers if observers is not None else ObserverSet()
        self.config = config or RunConfig()
        self.schema_loader = schema_loader
        self.output = output or sys.stdout
        self.state = RunState.IDLE
        self.stats = RunStats()
        self._stop = threading.Event()
        self._shutdown_hooks: List[Callable[[], None]] = []
        if dut is None and not self.config.dry_run:
            raise ValueError("a DUT is required unless running in dry-run mode")

    def stop(self) -> None:
        """Request a cooperative stop; honoured between statements and during backoff."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def add_shutdown_hook(self, hook: Callable[[], None]) -> None:
        """Register ``hook`` to run on every termination path."""
        self._shutdown_hooks.append(hook)

    def _ceiling_reached(self) -> bool:
        limit = self.config.max_statements
        return limit is not None and self.stats.generated >= limit

    def _should_stop(self) -> bool:
        if self._ceiling_reached():
            self.stats.stop_reason = "ceiling"
            return True
        if self._stop.is_set():
            self.stats.stop_reason = "stopped"
            return True
        return False

    def run(self) -> RunStats:
        """Run until the ceiling is reached or a stop is requested."""
        try:
            if self.config.dry_run:
                self._render_only()
            else:
                self._execute_loop()
        except KeyboardInterrupt:
            logger.warning("Interrupted by user")
            self.stats.stop_reason = "interrupted"
        finally:
            self._shutdown()
        return self.stats

    def _generate(self):
        self.state = RunState.GENERATING
        statement = self.factory.build()
        self.stats.generated += 1
        self.observers.generated(statement)
        return statement

    def _render_only(self) -> None:
        while not self._should_stop():
            statement = self._generate()
            self.output.write(statement.render() + ";\n")
        self.output.flush()

    def _execute_loop(self) -> None:
        pending: Optional[BrokenSession] = None
        try:
            self.dut.connect()
        except BrokenSession as exc:
            pending = exc

        while True:
            if pending is not None:
                if not self._recreate(pending):
                    return
                pending = None
            try:
                self._session()
                return
            except BrokenSession as exc:
                pending = exc

    def _session(self) -> None:
        """Inner loop; returns on ceiling or stop, raises BrokenSession."""
        while not self._should_stop():
            statement = self._generate()
            sql = statement.render()
            if self._stop.is_set():
                self.stats.stop_reason = "stopped"
                return

            self.state = RunState.EXECUTING
            try:
                outcome = self.dut.execute(sql)
            except StatementFailure as exc:
                self.state = RunState.CLASSIFYING
                self.stats.failed += 1
                self.observers.error(statement, exc)
                continue
            except BrokenSession as exc:
                self.state = RunState.CLASSIFYING
                self.stats.failed += 1
                self.stats.broken_sessions += 1
                self.observers.error(statement, exc)
                raise

            self.state = RunState.CLASSIFYING
            self.stats.executed += 1
            self.observers.executed(statement, outcome)

    def _recreate(self, cause: BrokenSession) -> bool:
        """Wait out the backoff and reconnect; False when stopped meanwhile."""
        self.state = RunState.RECREATING
        logger.warning("Session broken (%s); reconnecting in %.1fs", cause, self.config.backoff)
        while True:
            if self._stop.wait(self.config.backoff):
                self.stats.stop_reason = "stopped"
                return False
            try:
                self.dut.reconnect()
            except BrokenSession as exc:
                logger.warning("Reconnect failed (%s); retrying in %.1fs", exc, self.config.backoff)
                continue
            break

        self.stats.recoveries += 1
        logger.info("Session recreated (recovery #%d)", self.stats.recoveries)
        if self.config.reload_schema:
            self._reload_schema()
        return True

    def _reload_schema(self) -> None:
        if self.schema_loader is None:
            return
        try:
            self.factory.set_schema(self.schema_loader())
        except SchemaLoadError as exc:
            logger.warning("Schema reload failed, keeping previous schema: %s", exc)

    def _shutdown(self) -> None:
        self.state = RunState.STOPPED
        try:
            self.observers.shutdown()
            for hook in self._shutdown_hooks:
                try:
                    hook()
                except Exception as exc:
                    logger.warning("Shutdown hook %s failed: %s",
                                   getattr(hook, '__name__', repr(hook)), exc)
        finally:
            if self.dut is not None:
                self.dut.close()
        logger.info(
            "Run finished (%s): %d generated, %d executed, %d failed, %d recoveries",
            self.stats.stop_reason or "done", self.stats.generated, self.stats.executed,
            self.stats.failed, self.stats.recoveries,
        )
