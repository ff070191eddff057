"""
Production Framework

Every AST node kind is a ``Production`` subclass that knows how to build itself
at random from a ``Scope`` and how to render itself back to SQL. Alternatives for
a grammar role are picked by depth-weighted random choice; an alternative that
cannot be completed is dropped and another one is tried.
"""

import logging
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Iterator, List, Optional, Sequence, Type

from pysmith.core.errors import NoCandidateError
from pysmith.core.scope import Scope
from pysmith.core.valgen import ValueGenerator

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 5

_SIMPLE_IDENT_RE = re.compile(r'^[a-z_][a-z0-9_]*$')

RESERVED_WORDS = frozenset({
    'all', 'and', 'any', 'as', 'asc', 'between', 'by', 'case', 'cast', 'check',
    'collate', 'column', 'constraint', 'create', 'cross', 'default', 'delete',
    'desc', 'distinct', 'do', 'else', 'end', 'except', 'exists', 'false', 'fetch',
    'for', 'foreign', 'from', 'full', 'grant', 'group', 'having', 'in', 'index',
    'inner', 'insert', 'intersect', 'into', 'is', 'join', 'key', 'left', 'like',
    'limit', 'natural', 'not', 'null', 'offset', 'on', 'or', 'order', 'outer',
    'over', 'primary', 'references', 'right', 'select', 'set', 'table', 'then',
    'to', 'true', 'union', 'unique', 'update', 'user', 'using', 'values', 'when',
    'where', 'window', 'with',
})


def quote_ident(name: str) -> str:
    """Quote an identifier unless it is a plain lower-case, non-reserved word."""
    if _SIMPLE_IDENT_RE.match(name) and name not in RESERVED_WORDS:
        return name
    return '"' + name.replace('"', '""') + '"'


def quote_qualified(name: str, schema: Optional[str] = None) -> str:
    if schema:
        return f"{quote_ident(schema)}.{quote_ident(name)}"
    return quote_ident(name)


@dataclass
class BuildContext:
    """Shared state for building one or more statements.

    Holds the RNG, the recursion budget and the optional impedance filter that
    vetoes production kinds known to fail.
    """
    rng: random.Random = field(default_factory=random.Random)
    max_depth: int = DEFAULT_MAX_DEPTH
    impedance: Optional[Callable[[Type["Production"]], bool]] = None
    values: Optional[ValueGenerator] = None

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        if self.values is None:
            self.values = ValueGenerator(self.rng)

    def coin(self, probability: float) -> bool:
        return self.rng.random() < probability

    def allowed(self, kind: Type["Production"]) -> bool:
        if self.impedance is None:
            return True
        return self.impedance(kind)

    def weight(self, kind: Type["Production"], depth: int) -> float:
        """Selection weight of ``kind`` at ``depth``.

        Recursive kinds halve in weight with every level and drop out once the
        depth budget is spent; terminals keep their base weight.
        """
        if not kind.recursive:
            return kind.weight
        if depth >= self.max_depth:
            return 0.0
        return kind.weight * (0.5 ** depth)


class Production(ABC):
    """Base class for all AST nodes."""

    role: ClassVar[str] = "production"
    recursive: ClassVar[bool] = False
    weight: ClassVar[float] = 1.0

    def __init__(self, depth: int):
        self.depth = depth

    @classmethod
    def supports(cls, sql_type) -> bool:
        """Whether this kind can produce a value of ``sql_type``."""
        return True

    @abstractmethod
    def render(self) -> str:
        """Exact SQL text of this subtree."""

    def children(self) -> List["Production"]:
        return []

    def walk(self) -> Iterator["Production"]:
        yield self
        for child in self.children():
            yield from child.walk()

    def label(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} depth={self.depth}>"


def attempt(builder: Callable[..., Production], scope: Scope, *args: Any, **kwargs: Any) -> Optional[Production]:
    """Run one construction attempt.

    Returns None when the attempt hit ``NoCandidateError``; bindings it added to
    ``scope`` are rolled back so the next alternative starts clean.
    """
    bound = set(scope.bindings)
    ctes = set(scope.ctes)
    try:
        return builder(scope, *args, **kwargs)
    except NoCandidateError as exc:
        for alias in [a for a in scope.bindings if a not in bound]:
            del scope.bindings[alias]
        for name in [c for c in scope.ctes if c not in ctes]:
            del scope.ctes[name]
        logger.debug("Backtracking from %s: %s", getattr(builder, '__qualname__', builder), exc)
        return None


def choose(ctx: BuildContext, scope: Scope, alternatives: Sequence[Type[Production]],
           depth: int, fallback: Callable[[], Production], sql_type=None,
           **kwargs: Any) -> Production:
    """Build one of ``alternatives``, backtracking over the ones that fail.

    When every eligible alternative fails, ``fallback`` builds a node that
    cannot fail.
    """
    pool = []
    for kind in alternatives:
        if not kind.supports(sql_type) or not ctx.allowed(kind):
            continue
        w = ctx.weight(kind, depth)
        if w > 0:
            pool.append((kind, w))

    while pool:
        kinds, weights = zip(*pool)
        kind = ctx.rng.choices(kinds, weights=weights)[0]
        if sql_type is None:
            node = attempt(kind.build, scope, ctx, depth, **kwargs)
        else:
            node = attempt(kind.build, scope, ctx, depth, sql_type=sql_type, **kwargs)
        if node is not None:
            return node
        pool = [(k, w) for k, w in pool if k is not kind]

    return fallback()
