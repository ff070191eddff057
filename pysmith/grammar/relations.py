"""
Table reference productions for FROM clauses.

Building a table reference binds its alias into the current scope frame.
"""

from typing import List, Optional

from pysmith.core.errors import NoCandidateError
from pysmith.core.schema import Relation, Table
from pysmith.core.scope import Scope
from pysmith.grammar.base import BuildContext, Production, choose, quote_ident, quote_qualified
from pysmith.grammar.expressions import BoolExpr, build_bool_expr

__all__ = ["TableRef", "TableOrQueryName", "DerivedTable", "JoinedTable", "build_table_ref"]


class TableRef(Production):
    role = "table_reference"

    def aliases(self) -> List[str]:
        return []


class TableOrQueryName(TableRef):
    """A base table or CTE name under a fresh alias."""

    weight = 3.0

    def __init__(self, depth: int, relation: Relation, alias: str):
        super().__init__(depth)
        self.relation = relation
        self.alias = alias

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "TableOrQueryName":
        ctes = [r for r in scope.available_relations() if not isinstance(r, Table)]
        tables = scope.base_tables()
        if ctes and (not tables or ctx.coin(0.6)):
            relation = ctx.rng.choice(ctes)
        elif tables:
            relation = ctx.rng.choice(tables)
        else:
            raise NoCandidateError("no relation available for FROM")
        alias = scope.new_alias("ref")
        scope.bind(alias, relation)
        return cls(depth, relation, alias)

    def aliases(self) -> List[str]:
        return [self.alias]

    def render(self) -> str:
        schema = self.relation.schema if isinstance(self.relation, Table) else None
        return f"{quote_qualified(self.relation.name, schema)} AS {quote_ident(self.alias)}"


class DerivedTable(TableRef):
    """Uncorrelated subquery in FROM."""

    recursive = True

    def __init__(self, depth: int, query, alias: str):
        super().__init__(depth)
        self.query = query
        self.alias = alias

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "DerivedTable":
        from pysmith.grammar.statements import QuerySpec
        query = QuerySpec.build(scope, ctx, depth + 1, correlated=False)
        alias = scope.new_alias("subq")
        scope.bind(alias, query.as_relation(alias))
        return cls(depth, query, alias)

    def children(self):
        return [self.query]

    def aliases(self) -> List[str]:
        return [self.alias]

    def render(self) -> str:
        return f"({self.query.render()}) AS {quote_ident(self.alias)}"


class JoinedTable(TableRef):
    recursive = True
    JOIN_TYPES = ('INNER', 'LEFT', 'CROSS')

    def __init__(self, depth: int, join_type: str, lhs: TableRef, rhs: TableRef,
                 condition: Optional[BoolExpr]):
        super().__init__(depth)
        self.join_type = join_type
        self.lhs = lhs
        self.rhs = rhs
        self.condition = condition

    @classmethod
    def build(cls, scope: Scope, ctx: BuildContext, depth: int) -> "JoinedTable":
        lhs = build_table_ref(ctx, scope, depth + 1)
        # The right side is never itself a join, so no parentheses are needed
        rhs = choose(
            ctx, scope, (TableOrQueryName, DerivedTable), depth + 1,
            fallback=lambda: TableOrQueryName.build(scope, ctx, depth + 1),
        )
        join_type = ctx.rng.choice(cls.JOIN_TYPES)
        condition = None
        if join_type != 'CROSS':
            condition = build_bool_expr(ctx, scope, depth + 1)
        return cls(depth, join_type, lhs, rhs, condition)

    def children(self):
        nodes = [self.lhs, self.rhs]
        if self.condition is not None:
            nodes.append(self.condition)
        return nodes

    def aliases(self) -> List[str]:
        return self.lhs.aliases() + self.rhs.aliases()

    def render(self) -> str:
        if self.condition is None:
            return f"{self.lhs.render()} CROSS JOIN {self.rhs.render()}"
        return f"{self.lhs.render()} {self.join_type} JOIN {self.rhs.render()} ON {self.condition.render()}"


TABLE_REF_ALTERNATIVES = (TableOrQueryName, DerivedTable, JoinedTable)


def build_table_ref(ctx: BuildContext, scope: Scope, depth: int) -> TableRef:
    return choose(
        ctx, scope, TABLE_REF_ALTERNATIVES, depth,
        fallback=lambda: TableOrQueryName.build(scope, ctx, depth),
    )
