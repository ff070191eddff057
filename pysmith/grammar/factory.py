"""
Statement Factory - the entry point of the production grammar.
"""

import logging
import random
from typing import Dict, Mapping, Optional, Type

from pysmith.core.errors import SchemaLoadError
from pysmith.core.schema import Schema
from pysmith.core.scope import Scope
from pysmith.grammar.base import DEFAULT_MAX_DEPTH, BuildContext, attempt
from pysmith.grammar.statements import (
    DeleteStmt, InsertStmt, QuerySpec, Statement, UpdateStmt, WithQuery,
)

logger = logging.getLogger(__name__)

STATEMENT_KINDS: Dict[str, Type[Statement]] = {
    'select': QuerySpec,
    'with': WithQuery,
    'insert': InsertStmt,
    'update': UpdateStmt,
    'delete': DeleteStmt,
}

DEFAULT_WEIGHTS: Dict[str, float] = {name: 1.0 for name in STATEMENT_KINDS}


def statement_factory(scope: Scope, ctx: BuildContext,
                      weights: Optional[Mapping[str, float]] = None) -> Statement:
    """Build one top-level statement.

    Kinds are picked by ``weights`` (uniform by default). A kind that cannot be
    built against this schema is dropped; a plain SELECT is the last resort.
    """
    weights = DEFAULT_WEIGHTS if weights is None else weights
    unknown = set(weights) - set(STATEMENT_KINDS)
    if unknown:
        raise ValueError(f"Unknown statement kinds: {', '.join(sorted(unknown))}")

    with scope.enter(fresh_aliases=True) as stmt_scope:
        pool = [
            (STATEMENT_KINDS[name], w) for name, w in weights.items()
            if w > 0 and ctx.allowed(STATEMENT_KINDS[name])
        ]
        while pool:
            kinds, ws = zip(*pool)
            kind = ctx.rng.choices(kinds, weights=ws)[0]
            stmt = attempt(kind.build, stmt_scope, ctx, 0)
            if stmt is not None:
                return stmt
            pool = [(k, w) for k, w in pool if k is not kind]
        return QuerySpec.build(stmt_scope, ctx, 0)


class StatementFactory:
    """Owns the scope and build context for a stream of statements.

    Example:
        factory = StatementFactory(schema, seed=42)
        sql = factory.build().render()
    """

    def __init__(self, schema: Schema, seed: Optional[int] = None,
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 weights: Optional[Mapping[str, float]] = None,
                 impedance=None):
        self.seed = seed
        self.weights = dict(weights) if weights else dict(DEFAULT_WEIGHTS)
        self.ctx = BuildContext(rng=random.Random(seed), max_depth=max_depth, impedance=impedance)
        self.set_schema(schema)

    def set_schema(self, schema: Schema) -> None:
        """Swap in a (re)loaded schema for subsequent statements."""
        if not schema.tables:
            raise SchemaLoadError("schema has no tables to generate statements against")
        self.schema = schema
        self.scope = Scope.fill_from(schema)
        logger.debug("Statement factory using %r", schema)

    def build(self) -> Statement:
        return statement_factory(self.scope, self.ctx, self.weights)

    def generate(self, count: int):
        """Yield ``count`` rendered statements."""
        for _ in range(count):
            yield self.build().render()
