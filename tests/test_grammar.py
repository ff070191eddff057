"""Tests for the production framework and expression productions."""

import random

import pytest

from pysmith.core.errors import NoCandidateError
from pysmith.core.schema import Schema, Table
from pysmith.core.scope import Scope
from pysmith.core.types import LITERAL_TYPES, SqlType
from pysmith.grammar.base import (
    BuildContext, Production, attempt, choose, quote_ident, quote_qualified,
)
from pysmith.grammar.expressions import (
    BoolExpr, ColumnRef, Comparison, Const, FunctionCall, ScalarSubquery, TruthValue,
    WindowFunction, build_bool_expr, build_value_expr,
)


class Failing(Production):
    """Alternative that can never be completed."""

    weight = 100.0
    calls = 0

    @classmethod
    def build(cls, scope, ctx, depth, **kwargs):
        cls.calls += 1
        scope.bind(scope.new_alias('dangling'), scope.schema.tables[0])
        raise NoCandidateError("never")

    def render(self):
        return ""


class Deep(Production):
    recursive = True
    weight = 4.0

    def render(self):
        return ""


@pytest.fixture(autouse=True)
def reset_failing():
    Failing.calls = 0


@pytest.fixture
def bound(schema):
    """A statement-level frame with ``users`` bound as ``u``."""
    top = Scope.fill_from(schema)
    with top.enter(fresh_aliases=True) as s:
        s.bind('u', schema.get_table('users'))
        yield s


class TestQuoting:

    def test_plain_identifier(self):
        assert quote_ident('users') == 'users'

    @pytest.mark.parametrize("name,expected", [
        ('select', '"select"'),
        ('Mixed Case', '"Mixed Case"'),
        ('a"b', '"a""b"'),
        ('1abc', '"1abc"'),
    ])
    def test_quoted_identifier(self, name, expected):
        assert quote_ident(name) == expected

    def test_qualified(self):
        assert quote_qualified('t', 'public') == 'public.t'
        assert quote_qualified('t') == 't'


class TestBuildContext:

    def test_negative_depth_rejected(self):
        with pytest.raises(ValueError):
            BuildContext(max_depth=-1)

    def test_recursive_weight_halves_with_depth(self):
        ctx = BuildContext(max_depth=5)
        assert ctx.weight(Deep, 0) == 4.0
        assert ctx.weight(Deep, 2) == 1.0
        assert ctx.weight(Deep, 5) == 0.0

    def test_terminal_weight_is_constant(self):
        ctx = BuildContext(max_depth=1)
        assert ctx.weight(Const, 0) == ctx.weight(Const, 10) == Const.weight

    def test_impedance_veto(self):
        ctx = BuildContext(impedance=lambda kind: kind is not Deep)
        assert ctx.allowed(Const)
        assert not ctx.allowed(Deep)


class TestAttemptAndChoose:

    def test_attempt_rolls_back_bindings(self, bound):
        before = dict(bound.bindings)
        assert attempt(Failing.build, bound, BuildContext(), 0) is None
        assert bound.bindings == before

    def test_choose_backtracks_to_next_alternative(self, bound):
        for seed in range(20):
            ctx = BuildContext(rng=random.Random(seed))
            node = choose(ctx, bound, (Failing, Const), 0,
                          fallback=lambda: pytest.fail("fallback not expected"),
                          sql_type=SqlType.NUMERIC)
            assert isinstance(node, Const)
        assert Failing.calls >= 15
        assert not any(a.startswith("dangling") for a in bound.bindings)

    def test_choose_uses_fallback_when_all_fail(self, bound):
        ctx = BuildContext(rng=random.Random(0))
        marker = TruthValue(0, True)
        assert choose(ctx, bound, (Failing,), 0, fallback=lambda: marker) is marker

    def test_choose_skips_vetoed_kinds(self, bound):
        ctx = BuildContext(rng=random.Random(0), impedance=lambda kind: kind is not Failing)
        node = choose(ctx, bound, (Failing, Const), 0, fallback=lambda: None,
                      sql_type=SqlType.TEXT)
        assert isinstance(node, Const)
        assert Failing.calls == 0

    def test_only_terminals_at_max_depth(self, bound):
        for seed in range(50):
            ctx = BuildContext(rng=random.Random(seed), max_depth=3)
            node = build_value_expr(ctx, bound, 3)
            assert isinstance(node, (Const, ColumnRef)), type(node)
            assert not isinstance(build_bool_expr(ctx, bound, 3), (Comparison,))


class TestValueExpressions:

    @pytest.mark.parametrize("sql_type", LITERAL_TYPES)
    def test_requested_type_is_produced(self, bound, sql_type):
        for seed in range(40):
            ctx = BuildContext(rng=random.Random(seed), max_depth=4)
            expr = build_value_expr(ctx, bound, 0, sql_type)
            assert expr.sql_type is sql_type

    def test_column_refs_are_visible(self, bound):
        for seed in range(40):
            ctx = BuildContext(rng=random.Random(seed), max_depth=4)
            expr = build_value_expr(ctx, bound, 0)
            for node in expr.walk():
                if isinstance(node, ColumnRef) and node.alias == 'u':
                    assert bound.schema.get_table('users').get_column(node.column.name)

    def test_comparison_operands_share_type(self, bound):
        for seed in range(60):
            ctx = BuildContext(rng=random.Random(seed), max_depth=3)
            cmp = Comparison.build(bound, ctx, 0)
            assert cmp.lhs.sql_type is cmp.rhs.sql_type
            if cmp.lhs.sql_type is SqlType.BOOLEAN:
                assert cmp.op in Comparison.EQUALITY

    def test_fallback_without_matching_columns(self):
        numbers = Schema([Table.from_list('n', [{'name': 'x', 'type': 'int'}])])
        top = Scope.fill_from(numbers)
        with top.enter() as s:
            s.bind('ref_0', numbers.get_table('n'))
            for seed in range(30):
                ctx = BuildContext(rng=random.Random(seed), max_depth=2)
                expr = build_value_expr(ctx, s, 0, SqlType.TEXT)
                assert expr.sql_type is SqlType.TEXT
                assert not isinstance(expr, (ColumnRef, FunctionCall))

    def test_function_call_requires_routine(self, bound):
        ctx = BuildContext(rng=random.Random(0))
        with pytest.raises(NoCandidateError):
            FunctionCall.build(bound, ctx, 0, sql_type=SqlType.DATETIME)

    def test_window_function_only_in_select_items(self, bound):
        for seed in range(40):
            ctx = BuildContext(rng=random.Random(seed), max_depth=4)
            expr = build_value_expr(ctx, bound, 0)
            assert not isinstance(expr, WindowFunction)

    def test_scalar_subquery_leaves_scope_untouched(self, bound):
        before = list(bound.bindings)
        ctx = BuildContext(rng=random.Random(5), max_depth=3)
        sub = ScalarSubquery.build(bound, ctx, 0, sql_type=SqlType.NUMERIC)
        assert sub.sql_type is SqlType.NUMERIC
        assert sub.query.limit == 1
        assert list(bound.bindings) == before
        assert sub.render().startswith('(SELECT ')


class TestRendering:

    def test_negative_constant_is_parenthesized(self):
        assert Const(0, SqlType.NUMERIC, '-5').render() == '(-5)'
        assert Const(0, SqlType.NUMERIC, '5').render() == '5'

    def test_column_ref_quotes_identifiers(self, schema):
        col = schema.get_table('users').get_column('name')
        assert ColumnRef(0, 'Odd Alias', col).render() == '"Odd Alias".name'

    def test_boolean_expressions_are_parenthesized(self, bound):
        for seed in range(40):
            ctx = BuildContext(rng=random.Random(seed), max_depth=3)
            expr = build_bool_expr(ctx, bound, 0)
            assert isinstance(expr, BoolExpr)
            sql = expr.render()
            assert sql in ('TRUE', 'FALSE') or (sql.startswith('(') and sql.endswith(')'))

    def test_render_is_pure(self, bound):
        ctx = BuildContext(rng=random.Random(11), max_depth=4)
        expr = build_value_expr(ctx, bound, 0)
        assert expr.render() == expr.render() == str(expr)
