"""
Top-level statement productions.
"""

from typing import List, Optional, Sequence, Tuple

from pysmith.core.errors import NoCandidateError
from pysmith.core.schema import Column, Relation, Table
from pysmith.core.scope import Scope
from pysmith.core.types import SqlType
from pysmith.grammar.base import BuildContext, Production, quote_ident, quote_qualified
from pysmith.grammar.expressions import BoolExpr, ValueExpr, build_bool_expr, build_value_expr
from pysmith.grammar.relations import TableRef, build_table_ref

__all__ = ["Statement", "QuerySpec", "WithQuery", "InsertStmt", "UpdateStmt", "DeleteStmt"]


class Statement(Production):
    role = "statement"
    recursive = True


class QuerySpec(Statement):
    """SELECT [DISTINCT] ... FROM ... [WHERE ...] [LIMIT n]"""

    weight = 2.0

    def __init__(self, depth: int, select_list: List[ValueExpr], from_item: TableRef,
                 where: Optional[BoolExpr] = None, distinct: bool = False,
                 limit: Optional[int] = None):
        super().__init__(depth)
        self.select_list = select_list
        self.from_item = from_item
        self.where = where
        self.distinct = distinct
        self.limit = limit

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int,
              select_types: Optional[Sequence[Optional[SqlType]]] = None,
              limit: Optional[int] = None, correlated: bool = True) -> "QuerySpec":
        with scope.enter(correlated=correlated) as qs:
            from_item = build_table_ref(ctx, qs, depth + 1)
            where = build_bool_expr(ctx, qs, depth + 1) if ctx.coin(0.7) else None
            if select_types is None:
                select_list = [
                    build_value_expr(ctx, qs, depth + 1, allow_window=True)
                    for _ in range(ctx.rng.randint(1, 4))
                ]
            else:
                select_list = [build_value_expr(ctx, qs, depth + 1, t) for t in select_types]
            distinct = select_types is None and ctx.coin(0.1)
            if limit is None and ctx.coin(0.3):
                limit = ctx.rng.randint(1, 100)
        return cls(depth, select_list, from_item, where, distinct, limit)

    def column_names(self) -> List[str]:
        return [f"c{i}" for i in range(len(self.select_list))]

    def as_relation(self, name: str) -> Relation:
        """Relation exposed when this query is used as a derived table or CTE."""
        return Relation(name, tuple(
            Column(col, expr.sql_type, table=name)
            for col, expr in zip(self.column_names(), self.select_list)
        ))

    def children(self):
        nodes: List[Production] = list(self.select_list) + [self.from_item]
        if self.where is not None:
            nodes.append(self.where)
        return nodes

    def render(self) -> str:
        items = ", ".join(
            f"{expr.render()} AS {name}" for expr, name in zip(self.select_list, self.column_names())
        )
        sql = "SELECT DISTINCT " if self.distinct else "SELECT "
        sql += f"{items} FROM {self.from_item.render()}"
        if self.where is not None:
            sql += f" WHERE {self.where.render()}"
        if self.limit is not None:
            sql += f" LIMIT {self.limit}"
        return sql


class WithQuery(Statement):
    """WITH cte AS (...) [, ...] SELECT ..."""

    def __init__(self, depth: int, ctes: List[Tuple[str, QuerySpec]], body: QuerySpec):
        super().__init__(depth)
        self.ctes = ctes
        self.body = body

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "WithQuery":
        ctes: List[Tuple[str, QuerySpec]] = []
        with scope.enter() as ws:
            for _ in range(ctx.rng.randint(1, 2)):
                query = QuerySpec.build(ws, ctx, depth + 1, correlated=False)
                name = ws.new_alias("cte")
                ws.add_cte(name, query.as_relation(name))
                ctes.append((name, query))
            body = QuerySpec.build(ws, ctx, depth + 1)
        return cls(depth, ctes, body)

    def children(self):
        return [q for _, q in self.ctes] + [self.body]

    def render(self) -> str:
        defs = ", ".join(f"{quote_ident(name)} AS ({query.render()})" for name, query in self.ctes)
        return f"WITH {defs} {self.body.render()}"


class Returning(Production):
    role = "returning_clause"

    def __init__(self, depth: int, items: List[ValueExpr]):
        super().__init__(depth)
        self.items = items

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "Returning":
        items = [build_value_expr(ctx, scope, depth + 1) for _ in range(ctx.rng.randint(1, 3))]
        return cls(depth, items)

    def children(self):
        return list(self.items)

    def render(self) -> str:
        return "RETURNING " + ", ".join(f"{e.render()} AS c{i}" for i, e in enumerate(self.items))


def _table_name(table: Table) -> str:
    return quote_qualified(table.name, table.schema)


class InsertStmt(Statement):
    """INSERT INTO t (cols) VALUES (...) or INSERT INTO t DEFAULT VALUES."""

    def __init__(self, depth: int, table: Table, columns: List[Column], values: List[ValueExpr]):
        super().__init__(depth)
        self.table = table
        self.columns = columns
        self.values = values

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "InsertStmt":
        tables = [t for t in scope.schema.insertable_tables if t.columns]
        if not tables:
            raise NoCandidateError("no insertable table")
        table = ctx.rng.choice(tables)
        if ctx.coin(0.05):
            return cls(depth, table, [], [])
        columns = [c for c in table.columns if c.is_primary_key or ctx.coin(0.7)]
        if not columns:
            columns = [ctx.rng.choice(table.columns)]
        with scope.enter() as vs:
            values = [build_value_expr(ctx, vs, depth + 1, c.sql_type) for c in columns]
        return cls(depth, table, columns, values)

    def children(self):
        return list(self.values)

    def render(self) -> str:
        if not self.columns:
            return f"INSERT INTO {_table_name(self.table)} DEFAULT VALUES"
        cols = ", ".join(quote_ident(c.name) for c in self.columns)
        vals = ", ".join(v.render() for v in self.values)
        return f"INSERT INTO {_table_name(self.table)} ({cols}) VALUES ({vals})"


class UpdateStmt(Statement):
    """UPDATE t SET c = e [, ...] [WHERE ...] [RETURNING ...]"""

    def __init__(self, depth: int, table: Table, assignments: List[Tuple[Column, ValueExpr]],
                 where: Optional[BoolExpr] = None, returning: Optional[Returning] = None):
        super().__init__(depth)
        self.table = table
        self.assignments = assignments
        self.where = where
        self.returning = returning

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "UpdateStmt":
        tables = [t for t in scope.schema.updatable_tables if t.columns]
        if not tables:
            raise NoCandidateError("no updatable table")
        table = ctx.rng.choice(tables)
        with scope.enter() as us:
            us.bind(table.name, table)
            targets = ctx.rng.sample(list(table.columns), ctx.rng.randint(1, len(table.columns)))
            assignments = [(c, build_value_expr(ctx, us, depth + 1, c.sql_type)) for c in targets]
            where = build_bool_expr(ctx, us, depth + 1) if ctx.coin(0.8) else None
            returning = Returning.build(us, ctx, depth + 1) if ctx.coin(0.1) else None
        return cls(depth, table, assignments, where, returning)

    def children(self):
        nodes: List[Production] = [e for _, e in self.assignments]
        if self.where is not None:
            nodes.append(self.where)
        if self.returning is not None:
            nodes.append(self.returning)
        return nodes

    def render(self) -> str:
        sets = ", ".join(f"{quote_ident(c.name)} = {e.render()}" for c, e in self.assignments)
        sql = f"UPDATE {_table_name(self.table)} SET {sets}"
        if self.where is not None:
            sql += f" WHERE {self.where.render()}"
        if self.returning is not None:
            sql += f" {self.returning.render()}"
        return sql


class DeleteStmt(Statement):
    """DELETE FROM t [WHERE ...] [RETURNING ...]"""

    def __init__(self, depth: int, table: Table, where: Optional[BoolExpr] = None,
                 returning: Optional[Returning] = None):
        super().__init__(depth)
        self.table = table
        self.where = where
        self.returning = returning

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "DeleteStmt":
        tables = scope.schema.updatable_tables
        if not tables:
            raise NoCandidateError("no table to delete from")
        table = ctx.rng.choice(tables)
        with scope.enter() as ds:
            ds.bind(table.name, table)
            where = build_bool_expr(ctx, ds, depth + 1) if ctx.coin(0.9) else None
            returning = Returning.build(ds, ctx, depth + 1) if ctx.coin(0.1) else None
        return cls(depth, table, where, returning)

    def children(self):
        nodes: List[Production] = []
        if self.where is not None:
            nodes.append(self.where)
        if self.returning is not None:
            nodes.append(self.returning)
        return nodes

    def render(self) -> str:
        sql = f"DELETE FROM {_table_name(self.table)}"
        if self.where is not None:
            sql += f" WHERE {self.where.render()}"
        if self.returning is not None:
            sql += f" {self.returning.render()}"
        return sql
