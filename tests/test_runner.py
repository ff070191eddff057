"""Tests for the PySmith CLI runner."""

import os

import pytest
from unittest.mock import patch

from pysmith import __version__
from pysmith.core.errors import LogSinkError, SchemaLoadError
from pysmith.runner import _get_run_config, _resolve_target, build_parser, main


class TestCliParser:
    """Test CLI argument parsing."""

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.dut == 'postgresql'
        assert args.max_queries is None
        assert args.backoff == 1.0
        assert args.statement_timeout == 1000
        assert not args.dry_run

    def test_generation_flags(self):
        args = build_parser().parse_args([
            '--seed', '123', '--max-depth', '3', '--max-queries', '50', '--dry-run',
        ])
        assert args.seed == 123
        assert args.max_depth == 3
        assert args.max_queries == 50
        assert args.dry_run is True

    def test_unknown_dut_rejected(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['--dut', 'oracle'])
        capsys.readouterr()

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['--version'])
        assert __version__ in capsys.readouterr().out


class TestRunConfig:

    def test_sqlite_flag_selects_engine(self):
        args = build_parser().parse_args(['--sqlite', '/tmp/x.db'])
        assert _resolve_target(args) == ('sqlite', '/tmp/x.db')

    def test_monetdb_flag_selects_engine(self):
        args = build_parser().parse_args(['--monetdb', 'monetdb://localhost/demo'])
        assert _resolve_target(args) == ('monetdb', 'monetdb://localhost/demo')

    def test_target_from_environment(self, monkeypatch):
        monkeypatch.setenv('PYSMITH_TARGET', 'postgresql://env/db')
        args = build_parser().parse_args(['--dut', 'ysql'])
        assert _resolve_target(args) == ('ysql', 'postgresql://env/db')

    def test_explicit_target_wins(self, monkeypatch):
        monkeypatch.setenv('PYSMITH_TARGET', 'postgresql://env/db')
        args = build_parser().parse_args(['--target', 'postgresql://cli/db'])
        assert _resolve_target(args)[1] == 'postgresql://cli/db'

    def test_seed_defaults_to_pid(self):
        config = _get_run_config(build_parser().parse_args(['--target', 'x']))
        assert config.seed == os.getpid()

    def test_flags_reach_config(self):
        args = build_parser().parse_args([
            '--target', 'x', '--seed', '9', '--backoff', '0.5', '--reload-schema',
            '--statement-timeout', '200',
        ])
        config = _get_run_config(args)
        assert config.seed == 9
        assert config.backoff == 0.5
        assert config.reload_schema
        assert config.statement_timeout == 200


class TestMain:

    def test_list_duts(self, capsys):
        assert main(['--list-duts']) == 0
        out = capsys.readouterr().out
        assert '- postgresql:' in out
        assert '- sqlite:' in out

    def test_missing_target(self, monkeypatch):
        monkeypatch.delenv('PYSMITH_TARGET', raising=False)
        assert main([]) == 2

    def test_negative_limits_are_usage_errors(self):
        assert main(['--target', 'x', '--max-depth', '-1']) == 2
        assert main(['--target', 'x', '--max-queries', '-5']) == 2

    @patch('pysmith.runner.DatabaseLogObserver', side_effect=LogSinkError("connection refused"))
    def test_error_log_unavailable(self, _mock_log, sqlite_db):
        assert main(['--sqlite', sqlite_db, '--max-queries', '1', '--log-to', 'postgresql://nowhere/log']) == 1

    @patch('pysmith.runner.DatabaseLogObserver')
    def test_error_log_receives_run(self, mock_log, sqlite_db):
        assert main(['--sqlite', sqlite_db, '--max-queries', '3', '--seed', '2',
                     '--log-to', 'postgresql://localhost/log']) == 0
        mock_log.assert_called_once_with('postgresql://localhost/log', target=sqlite_db, seed=2)

    @patch('pysmith.runner.load_schema', side_effect=SchemaLoadError("no usable tables"))
    def test_schema_load_failure(self, _mock_load):
        assert main(['--target', 'postgresql://localhost/none']) == 1

    def test_dry_run_prints_statements(self, sqlite_db, capsys):
        assert main(['--sqlite', sqlite_db, '--dry-run', '--max-queries', '5', '--seed', '1']) == 0
        out = capsys.readouterr().out
        assert out.count(';\n') == 5

    def test_dry_run_is_reproducible(self, sqlite_db, capsys):
        main(['--sqlite', sqlite_db, '--dry-run', '--max-queries', '10', '--seed', '77'])
        first = capsys.readouterr().out
        main(['--sqlite', sqlite_db, '--dry-run', '--max-queries', '10', '--seed', '77'])
        assert capsys.readouterr().out == first

    def test_run_against_sqlite_with_logs(self, sqlite_db, tmp_path):
        log_dir = str(tmp_path / 'logs')
        assert main(['--sqlite', sqlite_db, '--max-queries', '20', '--seed', '3',
                     '--log-dir', log_dir, '--dump-all-graphs']) == 0
        with open(os.path.join(log_dir, 'allqueries.log')) as f:
            assert f.read().count(';\n') == 20
        assert os.path.exists(os.path.join(log_dir, 'ssquery.current'))
        assert len([n for n in os.listdir(log_dir) if n.endswith('.dot')]) == 20
