"""
Observers notified at the AST lifecycle events: generated, executed, error.

``ObserverSet`` owns the fan-out. A failing observer is logged and counted but
never stops the other observers or the run.
"""

from __future__ import annotations

import logging
import os
import socket
import sys
import time
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, TextIO, Type

from graphviz import Digraph

from pysmith import __version__
from pysmith.core.duts.base import ExecutionStats, Outcome
from pysmith.core.errors import EngineError, LogSinkError, StatementFailure

try:
    import psycopg2
except ImportError:
    psycopg2 = None

logger = logging.getLogger(__name__)

__all__ = [
    "Observer",
    "ObserverSet",
    "ProgressObserver",
    "QueryLogObserver",
    "AstDumpObserver",
    "DatabaseLogObserver",
    "ImpedanceObserver",
]


class Observer:
    """Base observer. Every hook is a no-op by default."""

    def on_generated(self, ast) -> None:
        pass

    def on_executed(self, ast, outcome: Optional[Outcome] = None) -> None:
        pass

    def on_error(self, ast, error: EngineError) -> None:
        pass

    def report(self) -> None:
        """Emit a final report. Called once on shutdown."""

    def close(self) -> None:
        """Release resources. Called once on shutdown, after ``report``."""


class ObserverSet:
    """Fans lifecycle events out to independent observers."""

    def __init__(self, observers: Iterable[Observer] = ()):
        self._observers: List[Observer] = list(observers)
        self.failures: Dict[str, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._observers)

    def __iter__(self):
        return iter(self._observers)

    def add(self, observer: Observer) -> Observer:
        self._observers.append(observer)
        return observer

    def generated(self, ast) -> None:
        self._notify('on_generated', ast)

    def executed(self, ast, outcome: Optional[Outcome] = None) -> None:
        self._notify('on_executed', ast, outcome)

    def error(self, ast, error: EngineError) -> None:
        self._notify('on_error', ast, error)

    def shutdown(self) -> None:
        """Final report and close on every observer."""
        self._notify('report')
        self._notify('close')

    def _notify(self, hook: str, *args) -> None:
        for observer in self._observers:
            try:
                getattr(observer, hook)(*args)
            except Exception as exc:
                name = type(observer).__name__
                self.failures[name] += 1
                logger.warning("Observer %s failed in %s: %s", name, hook, exc)


class ProgressObserver(Observer):
    """Progress symbols, periodic summaries and a final report."""

    def __init__(self, stream: Optional[TextIO] = None, progress_interval: int = 10000,
                 line_width: int = 80):
        self.stream = stream or sys.stdout
        self.progress_interval = progress_interval
        self.line_width = line_width
        self.stats = ExecutionStats()
        self._chars_on_line = 0

    def _emit(self, symbol: str) -> None:
        self.stream.write(symbol)
        self._chars_on_line += 1
        if self._chars_on_line % self.line_width == 0:
            self.stream.write('\n')
            self._chars_on_line = 0
        self.stream.flush()
        if self.progress_interval and self.stats.total % self.progress_interval == 0:
            self.report()

    def on_executed(self, ast, outcome: Optional[Outcome] = None) -> None:
        self.stats.record_success(outcome or Outcome(sql=ast.render(), elapsed=0.0))
        self._emit('.')

    def on_error(self, ast, error: EngineError) -> None:
        self.stats.record_error(error)
        self._emit(error.symbol)

    def report(self) -> None:
        if self._chars_on_line > 0:
            self.stream.write("\n")
            self._chars_on_line = 0
        self.stream.write(f"\n[{time.strftime('%H:%M:%S')}] {self.stats.summary()}\n")
        self.stream.write("-" * self.line_width + "\n")
        self.stream.flush()


class QueryLogObserver(Observer):
    """Query logs for post-mortem analysis.

    - ``allqueries.log``: every generated statement
    - ``ssquery.current``: the statement about to run, overwritten each time
    - ``ssquery.log``: executed statements, each preceded by its timing
    """

    def __init__(self, directory: str = "."):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)
        self._all = open(os.path.join(directory, "allqueries.log"), "a", encoding="utf-8")
        self._executed = open(os.path.join(directory, "ssquery.log"), "a", encoding="utf-8")
        self._current_path = os.path.join(directory, "ssquery.current")

    def on_generated(self, ast) -> None:
        sql = ast.render()
        self._all.write(sql + ";\n")
        self._all.flush()
        with open(self._current_path, "w", encoding="utf-8") as f:
            f.write(sql + ";\n")

    def on_executed(self, ast, outcome: Optional[Outcome] = None) -> None:
        elapsed = outcome.elapsed if outcome else 0.0
        self._executed.write(f"-- TIMING {elapsed:.6f} seconds\n")
        self._executed.write(ast.render() + ";\n")
        self._executed.flush()

    def close(self) -> None:
        self._all.close()
        self._executed.close()


class AstDumpObserver(Observer):
    """Writes every generated AST as a Graphviz digraph."""

    def __init__(self, directory: str = "."):
        self.directory = directory
        self.count = 0
        os.makedirs(directory, exist_ok=True)

    @staticmethod
    def to_graph(ast) -> Digraph:
        g = Digraph("ast")
        g.attr("node", shape="box", fontname="Helvetica")
        ids = {}
        for node in ast.walk():
            ids[id(node)] = f"n{len(ids)}"
            g.node(ids[id(node)], f"{node.label()}\\ndepth {node.depth}")
        for node in ast.walk():
            for child in node.children():
                g.edge(ids[id(node)], ids[id(child)])
        return g

    @classmethod
    def to_dot(cls, ast) -> str:
        return cls.to_graph(ast).source

    def on_generated(self, ast) -> None:
        self.to_graph(ast).save(f"ast-{self.count:06d}.dot", directory=self.directory)
        self.count += 1


class DatabaseLogObserver(Observer):
    """Persists failures and periodic generation statistics to PostgreSQL.

    One ``instance`` row is written per run; ``error`` rows reference it and
    ``stat`` rows track the shape of generated statements every
    ``stat_interval`` statements.
    """

    DDL = (
        """CREATE TABLE IF NOT EXISTS instance (
            id bigserial PRIMARY KEY, version text, target text, hostname text,
            seed text, t timestamptz DEFAULT now())""",
        """CREATE TABLE IF NOT EXISTS error (
            id bigint REFERENCES instance (id), msg text, query text, sqlstate text,
            kind text, t timestamptz DEFAULT now())""",
        """CREATE TABLE IF NOT EXISTS stat (
            id bigint REFERENCES instance (id), generated bigint, level float,
            nodes float, t timestamptz DEFAULT now())""",
    )

    def __init__(self, dsn: str, target: Optional[str] = None, seed: Optional[int] = None,
                 stat_interval: int = 1000):
        if not psycopg2:
            raise LogSinkError("psycopg2 not installed, cannot log to a database")
        self.stat_interval = stat_interval
        self.generated = 0
        self._depth_total = 0
        self._nodes_total = 0
        try:
            self._conn = psycopg2.connect(dsn)
        except psycopg2.Error as e:
            raise LogSinkError(f"cannot open error log: {e}") from e
        self._conn.autocommit = True
        try:
            with self._conn.cursor() as cur:
                cur.execute("SET application_name = 'pysmith::log'")
                for statement in self.DDL:
                    cur.execute(statement)
                cur.execute(
                    "INSERT INTO instance (version, target, hostname, seed) "
                    "VALUES (%s, %s, %s, %s) RETURNING id",
                    (__version__, target, socket.gethostname(), str(seed)),
                )
                self.instance_id = cur.fetchone()[0]
        except psycopg2.Error as e:
            self._conn.close()
            raise LogSinkError(f"cannot register run in error log: {e}") from e
        logger.info("Logging errors as instance %s", self.instance_id)

    def on_generated(self, ast) -> None:
        self.generated += 1
        nodes = list(ast.walk())
        self._nodes_total += len(nodes)
        self._depth_total += max(node.depth for node in nodes)
        if self.stat_interval and self.generated % self.stat_interval == 0:
            self._write_stat()

    def on_error(self, ast, error: EngineError) -> None:
        with self._conn.cursor() as cur:
            cur.execute(
                "INSERT INTO error (id, msg, query, sqlstate, kind) VALUES (%s, %s, %s, %s, %s)",
                (self.instance_id, error.message, error.sql or ast.render(), error.code, error.kind),
            )

    def _write_stat(self) -> None:
        if not self.generated:
            return
        with self._conn.cursor() as cur:
            cur.execute(
                "INSERT INTO stat (id, generated, level, nodes) VALUES (%s, %s, %s, %s)",
                (self.instance_id, self.generated, self._depth_total / self.generated,
                 self._nodes_total / self.generated),
            )

    def report(self) -> None:
        self._write_stat()

    def close(self) -> None:
        self._conn.close()


class ImpedanceObserver(Observer):
    """Tracks how often each production kind appears in failing statements.

    ``matched`` is the veto used by the grammar: a kind is dropped once it has
    been part of at least ``min_failures`` failed statements and its success
    rate is at or below ``min_success_rate``.
    """

    def __init__(self, min_failures: int = 100, min_success_rate: float = 0.02):
        self.min_failures = min_failures
        self.min_success_rate = min_success_rate
        self.ok: Dict[Type, int] = defaultdict(int)
        self.bad: Dict[Type, int] = defaultdict(int)

    @staticmethod
    def _kinds(ast) -> set:
        return {type(node) for node in ast.walk()}

    def on_executed(self, ast, outcome: Optional[Outcome] = None) -> None:
        for kind in self._kinds(ast):
            self.ok[kind] += 1

    def on_error(self, ast, error: EngineError) -> None:
        # Broken sessions are what we are hunting for, never veto them
        if not isinstance(error, StatementFailure):
            return
        for kind in self._kinds(ast):
            self.bad[kind] += 1

    def matched(self, kind: Type) -> bool:
        failures = self.bad.get(kind, 0)
        if failures < self.min_failures:
            return True
        successes = self.ok.get(kind, 0)
        return successes / (successes + failures) > self.min_success_rate

    def report(self) -> None:
        vetoed = sorted(k.__name__ for k in self.bad if not self.matched(k))
        if vetoed:
            logger.info("Impedance mismatch, productions disabled: %s", ", ".join(vetoed))
        worst = sorted(self.bad.items(), key=lambda kv: kv[1], reverse=True)[:5]
        for kind, failures in worst:
            logger.debug("Impedance %s: %d ok, %d failed", kind.__name__, self.ok.get(kind, 0), failures)
