"""
Value and boolean expression productions.
"""

from typing import List, Optional

from pysmith.core.errors import NoCandidateError
from pysmith.core.schema import Column, Routine, RoutineKind
from pysmith.core.scope import Scope
from pysmith.core.types import LITERAL_TYPES, ORDERABLE_TYPES, SqlType
from pysmith.grammar.base import BuildContext, Production, choose, quote_ident, quote_qualified

__all__ = [
    "ValueExpr", "Const", "ColumnRef", "FunctionCall", "BinaryArithmetic", "Concat",
    "CaseExpr", "Coalesce", "ScalarSubquery", "WindowSpec", "WindowFunction",
    "BoolExpr", "TruthValue", "Comparison", "NullPredicate", "BoolTerm", "NotExpr",
    "BetweenPredicate", "InPredicate", "LikePredicate", "ExistsPredicate",
    "build_value_expr", "build_bool_expr",
]


def _pick_type(ctx: BuildContext, sql_type: Optional[SqlType], choices=LITERAL_TYPES) -> SqlType:
    return sql_type if sql_type is not None else ctx.rng.choice(choices)


class ValueExpr(Production):
    role = "value_expression"
    sql_type: SqlType = SqlType.UNKNOWN


# -------------------------- Terminals --------------------------

class Const(ValueExpr):
    """A typed literal. Always constructible."""

    weight = 2.0

    def __init__(self, depth: int, sql_type: SqlType, text: str):
        super().__init__(depth)
        self.sql_type = sql_type
        self.text = text

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int,
              sql_type: Optional[SqlType] = None) -> "Const":
        t = _pick_type(ctx, sql_type)
        return cls(depth, t, ctx.values.generate(t))

    def render(self) -> str:
        if self.text.startswith('-'):
            return f"({self.text})"
        return self.text


class ColumnRef(ValueExpr):
    weight = 3.0

    def __init__(self, depth: int, alias: str, column: Column):
        super().__init__(depth)
        self.alias = alias
        self.column = column
        self.sql_type = column.sql_type

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int,
              sql_type: Optional[SqlType] = None) -> "ColumnRef":
        alias, column = scope.resolve_column(sql_type, rng=ctx.rng)
        return cls(depth, alias, column)

    def render(self) -> str:
        return f"{quote_ident(self.alias)}.{quote_ident(self.column.name)}"


# -------------------------- Composite values --------------------------

class FunctionCall(ValueExpr):
    recursive = True

    def __init__(self, depth: int, routine: Routine, args: List[ValueExpr]):
        super().__init__(depth)
        self.routine = routine
        self.args = args
        self.sql_type = routine.return_type

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int,
              sql_type: Optional[SqlType] = None) -> "FunctionCall":
        routines = scope.schema.routines_returning(sql_type, RoutineKind.SCALAR)
        if not routines:
            raise NoCandidateError(f"no scalar routine returns {sql_type}")
        routine = ctx.rng.choice(routines)
        args = [build_value_expr(ctx, scope, depth + 1, t) for t in routine.arg_types]
        return cls(depth, routine, args)

    def children(self):
        return list(self.args)

    def render(self) -> str:
        args = ", ".join(a.render() for a in self.args)
        return f"{quote_qualified(self.routine.name, self.routine.schema)}({args})"


class BinaryArithmetic(ValueExpr):
    recursive = True
    OPERATORS = ('+', '-', '*')

    def __init__(self, depth: int, op: str, lhs: ValueExpr, rhs: ValueExpr):
        super().__init__(depth)
        self.op = op
        self.lhs = lhs
        self.rhs = rhs
        self.sql_type = SqlType.NUMERIC

    @classmethod
    def supports(cls, sql_type) -> bool:
        return sql_type in (None, SqlType.NUMERIC)

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        lhs = build_value_expr(ctx, scope, depth + 1, SqlType.NUMERIC)
        rhs = build_value_expr(ctx, scope, depth + 1, SqlType.NUMERIC)
        return cls(depth, ctx.rng.choice(cls.OPERATORS), lhs, rhs)

    def children(self):
        return [self.lhs, self.rhs]

    def render(self) -> str:
        return f"({self.lhs.render()} {self.op} {self.rhs.render()})"


class Concat(ValueExpr):
    recursive = True

    def __init__(self, depth: int, lhs: ValueExpr, rhs: ValueExpr):
        super().__init__(depth)
        self.lhs = lhs
        self.rhs = rhs
        self.sql_type = SqlType.TEXT

    @classmethod
    def supports(cls, sql_type) -> bool:
        return sql_type in (None, SqlType.TEXT)

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        lhs = build_value_expr(ctx, scope, depth + 1, SqlType.TEXT)
        rhs = build_value_expr(ctx, scope, depth + 1, SqlType.TEXT)
        return cls(depth, lhs, rhs)

    def children(self):
        return [self.lhs, self.rhs]

    def render(self) -> str:
        return f"({self.lhs.render()} || {self.rhs.render()})"


class CaseExpr(ValueExpr):
    recursive = True

    def __init__(self, depth: int, condition: "BoolExpr", then: ValueExpr, otherwise: ValueExpr):
        super().__init__(depth)
        self.condition = condition
        self.then = then
        self.otherwise = otherwise
        self.sql_type = then.sql_type

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        t = _pick_type(ctx, sql_type)
        condition = build_bool_expr(ctx, scope, depth + 1)
        then = build_value_expr(ctx, scope, depth + 1, t)
        otherwise = build_value_expr(ctx, scope, depth + 1, t)
        return cls(depth, condition, then, otherwise)

    def children(self):
        return [self.condition, self.then, self.otherwise]

    def render(self) -> str:
        return (f"CASE WHEN {self.condition.render()} THEN {self.then.render()} "
                f"ELSE {self.otherwise.render()} END")


class Coalesce(ValueExpr):
    recursive = True

    def __init__(self, depth: int, args: List[ValueExpr]):
        super().__init__(depth)
        self.args = args
        self.sql_type = args[0].sql_type

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        t = _pick_type(ctx, sql_type)
        args = [build_value_expr(ctx, scope, depth + 1, t) for _ in range(ctx.rng.randint(2, 3))]
        return cls(depth, args)

    def children(self):
        return list(self.args)

    def render(self) -> str:
        return "COALESCE(" + ", ".join(a.render() for a in self.args) + ")"


class ScalarSubquery(ValueExpr):
    """Correlated single-row subquery."""

    recursive = True
    weight = 0.5

    def __init__(self, depth: int, query):
        super().__init__(depth)
        self.query = query
        self.sql_type = query.select_list[0].sql_type

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        from pysmith.grammar.statements import QuerySpec
        t = _pick_type(ctx, sql_type)
        query = QuerySpec.build(scope, ctx, depth + 1, select_types=[t], limit=1)
        return cls(depth, query)

    def children(self):
        return [self.query]

    def render(self) -> str:
        return f"({self.query.render()})"


class WindowSpec(Production):
    role = "window_spec"

    def __init__(self, depth: int, partition_by: List[ValueExpr], order_by: List[ValueExpr]):
        super().__init__(depth)
        self.partition_by = partition_by
        self.order_by = order_by

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "WindowSpec":
        partition_by: List[ValueExpr] = []
        order_by: List[ValueExpr] = []
        if scope.candidates(local=True):
            if ctx.coin(0.6):
                partition_by.append(ColumnRef.build(scope, ctx, depth + 1))
            if ctx.coin(0.7):
                for _ in range(ctx.rng.randint(1, 2)):
                    order_by.append(ColumnRef.build(scope, ctx, depth + 1))
        return cls(depth, partition_by, order_by)

    def children(self):
        return self.partition_by + self.order_by

    def render(self) -> str:
        parts = []
        if self.partition_by:
            parts.append("PARTITION BY " + ", ".join(e.render() for e in self.partition_by))
        if self.order_by:
            parts.append("ORDER BY " + ", ".join(e.render() for e in self.order_by))
        return "(" + " ".join(parts) + ")"


class WindowFunction(ValueExpr):
    """Aggregate or window routine with an OVER clause. Only valid in select lists."""

    recursive = True

    def __init__(self, depth: int, routine: Routine, args: List[ValueExpr], window: WindowSpec):
        super().__init__(depth)
        self.routine = routine
        self.args = args
        self.window = window
        self.sql_type = routine.return_type

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        routines = (scope.schema.routines_returning(sql_type, RoutineKind.WINDOW)
                    + scope.schema.routines_returning(sql_type, RoutineKind.AGGREGATE))
        if not routines:
            raise NoCandidateError(f"no window routine returns {sql_type}")
        routine = ctx.rng.choice(routines)
        args = [build_value_expr(ctx, scope, depth + 1, t) for t in routine.arg_types]
        window = WindowSpec.build(scope, ctx, depth + 1)
        return cls(depth, routine, args, window)

    def children(self):
        return self.args + [self.window]

    def render(self) -> str:
        args = ", ".join(a.render() for a in self.args)
        name = quote_qualified(self.routine.name, self.routine.schema)
        return f"{name}({args}) OVER {self.window.render()}"


# -------------------------- Boolean expressions --------------------------

class BoolExpr(ValueExpr):
    role = "boolean_expression"
    sql_type = SqlType.BOOLEAN
    recursive = True

    @classmethod
    def supports(cls, sql_type) -> bool:
        return sql_type in (None, SqlType.BOOLEAN)


class TruthValue(BoolExpr):
    recursive = False

    def __init__(self, depth: int, value: bool):
        super().__init__(depth)
        self.value = value

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        return cls(depth, ctx.coin(0.5))

    def render(self) -> str:
        return "TRUE" if self.value else "FALSE"


class Comparison(BoolExpr):
    weight = 3.0
    OPERATORS = ('=', '<>', '<', '<=', '>', '>=')
    EQUALITY = ('=', '<>')

    def __init__(self, depth: int, op: str, lhs: ValueExpr, rhs: ValueExpr):
        super().__init__(depth)
        self.op = op
        self.lhs = lhs
        self.rhs = rhs

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        operand_type = ctx.rng.choice(ORDERABLE_TYPES + (SqlType.BOOLEAN,))
        lhs = build_value_expr(ctx, scope, depth + 1, operand_type)
        rhs = build_value_expr(ctx, scope, depth + 1, lhs.sql_type)
        ops = cls.EQUALITY if lhs.sql_type is SqlType.BOOLEAN else cls.OPERATORS
        return cls(depth, ctx.rng.choice(ops), lhs, rhs)

    def children(self):
        return [self.lhs, self.rhs]

    def render(self) -> str:
        return f"({self.lhs.render()} {self.op} {self.rhs.render()})"


class NullPredicate(BoolExpr):
    def __init__(self, depth: int, operand: ValueExpr, negated: bool):
        super().__init__(depth)
        self.operand = operand
        self.negated = negated

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        return cls(depth, build_value_expr(ctx, scope, depth + 1), ctx.coin(0.5))

    def children(self):
        return [self.operand]

    def render(self) -> str:
        test = "IS NOT NULL" if self.negated else "IS NULL"
        return f"({self.operand.render()} {test})"


class BoolTerm(BoolExpr):
    weight = 2.0

    def __init__(self, depth: int, op: str, lhs: BoolExpr, rhs: BoolExpr):
        super().__init__(depth)
        self.op = op
        self.lhs = lhs
        self.rhs = rhs

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        lhs = build_bool_expr(ctx, scope, depth + 1)
        rhs = build_bool_expr(ctx, scope, depth + 1)
        return cls(depth, ctx.rng.choice(('AND', 'OR')), lhs, rhs)

    def children(self):
        return [self.lhs, self.rhs]

    def render(self) -> str:
        return f"({self.lhs.render()} {self.op} {self.rhs.render()})"


class NotExpr(BoolExpr):
    weight = 0.5

    def __init__(self, depth: int, operand: BoolExpr):
        super().__init__(depth)
        self.operand = operand

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        return cls(depth, build_bool_expr(ctx, scope, depth + 1))

    def children(self):
        return [self.operand]

    def render(self) -> str:
        return f"(NOT {self.operand.render()})"


class BetweenPredicate(BoolExpr):
    weight = 0.5

    def __init__(self, depth: int, operand: ValueExpr, low: ValueExpr, high: ValueExpr, negated: bool):
        super().__init__(depth)
        self.operand = operand
        self.low = low
        self.high = high
        self.negated = negated

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        t = ctx.rng.choice(ORDERABLE_TYPES)
        operand = build_value_expr(ctx, scope, depth + 1, t)
        low = build_value_expr(ctx, scope, depth + 1, t)
        high = build_value_expr(ctx, scope, depth + 1, t)
        return cls(depth, operand, low, high, ctx.coin(0.2))

    def children(self):
        return [self.operand, self.low, self.high]

    def render(self) -> str:
        kw = "NOT BETWEEN" if self.negated else "BETWEEN"
        return f"({self.operand.render()} {kw} {self.low.render()} AND {self.high.render()})"


class InPredicate(BoolExpr):
    weight = 0.5

    def __init__(self, depth: int, operand: ValueExpr, items: List[ValueExpr], negated: bool):
        super().__init__(depth)
        self.operand = operand
        self.items = items
        self.negated = negated

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        t = ctx.rng.choice(LITERAL_TYPES)
        operand = build_value_expr(ctx, scope, depth + 1, t)
        items = [build_value_expr(ctx, scope, depth + 1, t) for _ in range(ctx.rng.randint(1, 4))]
        return cls(depth, operand, items, ctx.coin(0.3))

    def children(self):
        return [self.operand] + self.items

    def render(self) -> str:
        kw = "NOT IN" if self.negated else "IN"
        return f"({self.operand.render()} {kw} (" + ", ".join(i.render() for i in self.items) + "))"


class LikePredicate(BoolExpr):
    weight = 0.5

    def __init__(self, depth: int, operand: ValueExpr, pattern: ValueExpr, negated: bool):
        super().__init__(depth)
        self.operand = operand
        self.pattern = pattern
        self.negated = negated

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        operand = build_value_expr(ctx, scope, depth + 1, SqlType.TEXT)
        pattern = build_value_expr(ctx, scope, depth + 1, SqlType.TEXT)
        return cls(depth, operand, pattern, ctx.coin(0.3))

    def children(self):
        return [self.operand, self.pattern]

    def render(self) -> str:
        kw = "NOT LIKE" if self.negated else "LIKE"
        return f"({self.operand.render()} {kw} {self.pattern.render()})"


class ExistsPredicate(BoolExpr):
    weight = 0.5

    def __init__(self, depth: int, query):
        super().__init__(depth)
        self.query = query

    @classmethod
    def build(cls, scope, ctx, depth, sql_type=None):
        from pysmith.grammar.statements import QuerySpec
        return cls(depth, QuerySpec.build(scope, ctx, depth + 1))

    def children(self):
        return [self.query]

    def render(self) -> str:
        return f"(EXISTS ({self.query.render()}))"


# -------------------------- Role builders --------------------------

BOOL_ALTERNATIVES = (
    TruthValue, Comparison, NullPredicate, BoolTerm, NotExpr,
    BetweenPredicate, InPredicate, LikePredicate, ExistsPredicate,
)

VALUE_ALTERNATIVES = (
    Const, ColumnRef, FunctionCall, BinaryArithmetic, Concat, CaseExpr, Coalesce,
    ScalarSubquery, Comparison, NullPredicate, BoolTerm, NotExpr,
    BetweenPredicate, InPredicate, LikePredicate, ExistsPredicate,
)

SELECT_ITEM_ALTERNATIVES = VALUE_ALTERNATIVES + (WindowFunction,)


def build_value_expr(ctx: BuildContext, scope: Scope, depth: int,
                     sql_type: Optional[SqlType] = None, allow_window: bool = False) -> ValueExpr:
    """Build a value expression, degrading to a typed literal."""
    alternatives = SELECT_ITEM_ALTERNATIVES if allow_window else VALUE_ALTERNATIVES
    return choose(
        ctx, scope, alternatives, depth,
        fallback=lambda: Const.build(scope, ctx, depth, sql_type),
        sql_type=sql_type,
    )


def build_bool_expr(ctx: BuildContext, scope: Scope, depth: int) -> BoolExpr:
    """Build a boolean expression, degrading to TRUE/FALSE."""
    return choose(
        ctx, scope, BOOL_ALTERNATIVES, depth,
        fallback=lambda: TruthValue.build(scope, ctx, depth),
    )
