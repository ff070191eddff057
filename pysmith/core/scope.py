"""
Binding scopes for AST construction.

A scope frame maps aliases to relations. Frames are chained to their parent so
correlated expressions can see enclosing bindings; a child frame is only
reachable while its ``enter()`` block is active.
"""
import itertools
import random
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from pysmith.core.errors import NoCandidateError
from pysmith.core.schema import Column, Relation, Schema, Table
from pysmith.core.types import SqlType

__all__ = ["Scope"]


class Scope:
    """Stack-structured binding context layered on a ``Schema``."""

    def __init__(self, schema: Schema, parent: Optional["Scope"] = None,
                 correlated: bool = True, alias_counter: Optional[Iterator[int]] = None):
        self.schema = schema
        self.parent = parent
        self.correlated = correlated
        self.bindings: Dict[str, Relation] = {}
        self.ctes: Dict[str, Relation] = {}
        self.tables: List[Table] = []
        self._active = True
        if alias_counter is not None:
            self._alias_counter = alias_counter
        elif parent is not None:
            self._alias_counter = parent._alias_counter
        else:
            self._alias_counter = itertools.count()

    @classmethod
    def fill_from(cls, schema: Schema) -> "Scope":
        """Top-level scope seeded with every base table of ``schema``."""
        scope = cls(schema)
        scope.tables = list(schema.tables)
        return scope

    def __repr__(self) -> str:
        return f"Scope(depth={self.level}, bindings={list(self.bindings)})"

    @property
    def level(self) -> int:
        return 0 if self.parent is None else self.parent.level + 1

    @property
    def active(self) -> bool:
        return self._active

    @contextmanager
    def enter(self, correlated: bool = True, fresh_aliases: bool = False) -> Iterator["Scope"]:
        """Open a nested frame for the duration of the block.

        With ``correlated=False`` the child does not see enclosing bindings
        (derived tables in FROM). ``fresh_aliases`` restarts alias numbering,
        used once per statement.
        """
        child = Scope(
            self.schema, parent=self, correlated=correlated,
            alias_counter=itertools.count() if fresh_aliases else None,
        )
        try:
            yield child
        finally:
            child.bindings.clear()
            child.ctes.clear()
            child._active = False

    def new_alias(self, prefix: str = "ref") -> str:
        return f"{prefix}_{next(self._alias_counter)}"

    def bind(self, alias: str, relation: Relation) -> None:
        """Make ``relation`` visible as ``alias`` in this frame."""
        if not self._active:
            raise RuntimeError("cannot bind into a released scope")
        if alias in self.bindings:
            raise ValueError(f"alias '{alias}' already bound in this scope")
        self.bindings[alias] = relation

    def add_cte(self, name: str, relation: Relation) -> None:
        if name in self.ctes:
            raise ValueError(f"CTE '{name}' already defined in this scope")
        self.ctes[name] = relation

    def _chain(self) -> Iterator["Scope"]:
        frame: Optional[Scope] = self
        while frame is not None:
            yield frame
            if not frame.correlated:
                return
            frame = frame.parent

    def visible_bindings(self) -> List[Tuple[str, Relation]]:
        """Aliases visible from here, innermost frame first."""
        seen = set()
        out: List[Tuple[str, Relation]] = []
        for frame in self._chain():
            for alias, rel in frame.bindings.items():
                if alias not in seen:
                    seen.add(alias)
                    out.append((alias, rel))
        return out

    def local_bindings(self) -> List[Tuple[str, Relation]]:
        return list(self.bindings.items())

    def available_relations(self) -> List[Relation]:
        """Relations a FROM clause may name: CTEs in reach plus base tables."""
        out: List[Relation] = []
        frame: Optional[Scope] = self
        while frame is not None:
            out.extend(frame.ctes.values())
            frame = frame.parent
        out.extend(self.base_tables())
        return out

    def base_tables(self) -> List[Table]:
        frame: Optional[Scope] = self
        while frame is not None:
            if frame.tables:
                return list(frame.tables)
            frame = frame.parent
        return list(self.schema.tables)

    def candidates(self, sql_type: Optional[SqlType] = None,
                   alias: Optional[str] = None, local: bool = False) -> List[Tuple[str, Column]]:
        bindings = self.local_bindings() if local else self.visible_bindings()
        out: List[Tuple[str, Column]] = []
        for name, rel in bindings:
            if alias is not None and name != alias:
                continue
            for col in rel.columns_of_type(sql_type):
                out.append((name, col))
        return out

    def resolve_column(self, sql_type: Optional[SqlType] = None, alias: Optional[str] = None,
                       rng: Optional[random.Random] = None,
                       local: bool = False) -> Tuple[str, Column]:
        """Pick a visible ``(alias, column)`` of the requested type.

        Raises:
            NoCandidateError: if no visible column matches.
        """
        found = self.candidates(sql_type, alias, local)
        if not found:
            wanted = sql_type.value if sql_type else "any"
            where = f" under alias '{alias}'" if alias else ""
            raise NoCandidateError(f"no visible column of type {wanted}{where}")
        return rng.choice(found) if rng else found[0]
