"""Tests for the run loop: execution, recovery and termination."""

import io
import threading
import time

import pytest

from pysmith.core.duts.base import Dut
from pysmith.core.duts.sqlite import SQLiteDut
from pysmith.core.errors import BrokenSession, SchemaLoadError, StatementFailure, SyntaxFailure
from pysmith.core.introspection import load_schema
from pysmith.core.observers import Observer, ObserverSet
from pysmith.core.schema import Schema, Table
from pysmith.grammar.factory import StatementFactory
from pysmith.loop import RunConfig, RunLoop, RunState


class ScriptedDut(Dut):
    """In-process double: fails on the listed call numbers."""

    name = "scripted"

    def __init__(self, broken_on=(), failing_on=(), refuse_connects=0, **kwargs):
        super().__init__(**kwargs)
        self.broken_on = set(broken_on)
        self.failing_on = set(failing_on)
        self.refuse_connects = refuse_connects
        self.calls = 0
        self.connects = 0
        self.closes = 0
        self.connect_times = []
        self.connect_states = []
        self.loop = None
        self._open = False

    @property
    def connected(self):
        return self._open

    def connect(self):
        self.connects += 1
        self.connect_times.append(time.monotonic())
        if self.loop is not None:
            self.connect_states.append(self.loop.state)
        if self.refuse_connects:
            self.refuse_connects -= 1
            raise BrokenSession("connection refused")
        self._open = True

    def close(self):
        self.closes += 1
        self._open = False

    def _run(self, sql):
        if not self._open:
            raise BrokenSession("not connected")
        self.calls += 1
        if self.calls in self.broken_on:
            self._open = False
            raise BrokenSession("server closed the connection unexpectedly")
        if self.calls in self.failing_on:
            raise SyntaxFailure("syntax error at or near")


class Counter(Observer):
    def __init__(self):
        self.generated = 0
        self.executed = 0
        self.errors = []

    def on_generated(self, ast):
        self.generated += 1

    def on_executed(self, ast, outcome=None):
        self.executed += 1

    def on_error(self, ast, error):
        self.errors.append(error)


@pytest.fixture
def factory(schema):
    return StatementFactory(schema, seed=17, max_depth=3)


def make_loop(factory, dut, **config):
    counter = Counter()
    loop = RunLoop(factory, dut, ObserverSet([counter]), RunConfig(**config))
    dut.loop = loop
    return loop, counter


class TestRunConfig:

    def test_defaults(self):
        config = RunConfig()
        assert config.backoff == 1.0
        assert config.max_statements is None
        assert set(config.weights) == {'select', 'with', 'insert', 'update', 'delete'}

    @pytest.mark.parametrize("kwargs", [{'max_statements': -1}, {'backoff': -0.5}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RunConfig(**kwargs)

    def test_dut_required_unless_dry_run(self, factory):
        with pytest.raises(ValueError):
            RunLoop(factory, None, config=RunConfig())
        RunLoop(factory, None, config=RunConfig(dry_run=True), output=io.StringIO())


class TestExecution:

    def test_ceiling_is_exact(self, factory):
        dut = ScriptedDut()
        loop, counter = make_loop(factory, dut, max_statements=5)
        stats = loop.run()
        assert dut.calls == 5
        assert stats.executed == 5
        assert stats.generated == 5
        assert stats.stop_reason == "ceiling"
        assert counter.executed == 5
        assert loop.state is RunState.STOPPED
        assert not dut.connected

    def test_zero_ceiling(self, factory):
        dut = ScriptedDut()
        loop, _ = make_loop(factory, dut, max_statements=0)
        assert loop.run().executed == 0
        assert dut.calls == 0

    def test_statement_failures_do_not_stop_the_run(self, factory):
        dut = ScriptedDut(failing_on={2, 3})
        loop, counter = make_loop(factory, dut, max_statements=6)
        stats = loop.run()
        assert stats.failed == 2
        assert stats.executed == 4
        assert stats.recoveries == 0
        assert dut.connects == 1
        assert all(isinstance(e, StatementFailure) for e in counter.errors)
        assert all(e.sql for e in counter.errors)


class TestRecovery:

    def test_broken_session_is_recreated(self, factory):
        dut = ScriptedDut(broken_on={3})
        loop, counter = make_loop(factory, dut, max_statements=10, backoff=0.05)
        stats = loop.run()

        assert stats.broken_sessions == 1
        assert stats.recoveries == 1
        assert stats.generated == 10
        assert stats.executed == 9
        assert stats.failed == 1
        assert isinstance(counter.errors[0], BrokenSession)
        assert dut.connect_states == [RunState.IDLE, RunState.RECREATING]
        assert dut.connect_times[1] - dut.connect_times[0] >= 0.045

    def test_executions_resume_after_recovery(self, factory):
        dut = ScriptedDut(broken_on={2, 4})
        loop, _ = make_loop(factory, dut, max_statements=8, backoff=0.01)
        stats = loop.run()
        assert stats.recoveries == 2
        assert dut.calls == 8
        assert stats.executed == 6

    def test_reconnect_retries_until_success(self, factory):
        dut = ScriptedDut(refuse_connects=3)
        loop, _ = make_loop(factory, dut, max_statements=2, backoff=0.01)
        stats = loop.run()
        assert dut.connects == 4
        assert stats.recoveries == 1
        assert stats.executed == 2

    def test_stop_during_backoff(self, factory):
        dut = ScriptedDut(refuse_connects=10 ** 6)
        loop, _ = make_loop(factory, dut, backoff=0.02)
        timer = threading.Timer(0.2, loop.stop)
        timer.start()
        try:
            stats = loop.run()
        finally:
            timer.cancel()
        assert stats.stop_reason == "stopped"
        assert stats.generated == 0
        assert loop.stopping

    def test_schema_reload_after_recovery(self, factory, schema):
        reloaded = Schema([Table.from_list('fresh', [{'name': 'v', 'type': 'text'}])])
        dut = ScriptedDut(broken_on={1})
        loop = RunLoop(factory, dut, config=RunConfig(max_statements=2, backoff=0.0, reload_schema=True),
                       schema_loader=lambda: reloaded)
        loop.run()
        assert factory.schema is reloaded

    def test_failed_reload_keeps_schema(self, factory, schema):
        def broken_loader():
            raise SchemaLoadError("catalog unavailable")

        dut = ScriptedDut(broken_on={1})
        loop = RunLoop(factory, dut, config=RunConfig(max_statements=3, backoff=0.0, reload_schema=True),
                       schema_loader=broken_loader)
        stats = loop.run()
        assert factory.schema is schema
        assert stats.executed == 2


class TestTermination:

    def test_stop_from_another_thread(self, factory):
        dut = ScriptedDut()
        loop, _ = make_loop(factory, dut)
        timer = threading.Timer(0.1, loop.stop)
        timer.start()
        stats = loop.run()
        assert stats.stop_reason == "stopped"
        assert stats.executed > 0
        assert dut.closes >= 1

    def test_shutdown_hooks_run(self, factory):
        calls = []
        dut = ScriptedDut()
        loop, _ = make_loop(factory, dut, max_statements=1)
        loop.add_shutdown_hook(lambda: calls.append('hook'))
        loop.run()
        assert calls == ['hook']

    def test_failing_hook_does_not_skip_the_rest(self, factory, caplog):
        def exploding():
            raise RuntimeError("hook boom")

        calls = []
        dut = ScriptedDut()
        loop, _ = make_loop(factory, dut, max_statements=2)
        loop.add_shutdown_hook(exploding)
        loop.add_shutdown_hook(lambda: calls.append('second'))
        stats = loop.run()
        assert calls == ['second']
        assert not dut.connected
        assert stats.stop_reason == "ceiling"
        assert "hook boom" in caplog.text

    def test_keyboard_interrupt(self, factory):
        class Interrupting(ScriptedDut):
            def _run(self, sql):
                raise KeyboardInterrupt

        calls = []
        dut = Interrupting()
        loop, _ = make_loop(factory, dut)
        loop.add_shutdown_hook(lambda: calls.append('hook'))
        stats = loop.run()
        assert stats.stop_reason == "interrupted"
        assert calls == ['hook']
        assert not dut.connected


class TestDryRun:

    def test_prints_statements(self, factory):
        out = io.StringIO()
        loop = RunLoop(factory, None, config=RunConfig(dry_run=True, max_statements=7), output=out)
        stats = loop.run()
        text = out.getvalue()
        assert text.count(";\n") == 7
        assert stats.generated == 7
        assert stats.executed == 0


class TestAgainstSQLite:

    def test_generated_statements_resolve(self, sqlite_db):
        schema = load_schema(sqlite_db, 'sqlite')
        factory = StatementFactory(schema, seed=2024, max_depth=4)
        counter = Counter()
        dut = SQLiteDut(dsn=sqlite_db)
        loop = RunLoop(factory, dut, ObserverSet([counter]), RunConfig(max_statements=300))
        stats = loop.run()

        assert stats.generated == 300
        assert stats.executed + stats.failed == 300
        assert stats.executed > 0
        assert stats.broken_sessions == 0
        for error in counter.errors:
            if 'RETURNING' in error.sql:
                continue
            assert 'no such column' not in error.message, error.sql
            assert 'no such table' not in error.message, error.sql
