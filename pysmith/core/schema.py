"""
Schema Metadata Definitions for PySmith.

The schema is built once per run and never mutated afterwards, so it can be
shared between generators.
"""
import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from pysmith.core.types import SqlType, classify

__all__ = [
    "Column",
    "Relation",
    "Table",
    "RoutineKind",
    "Routine",
    "Schema",
    "builtin_routines",
]


@dataclass(frozen=True)
class Column:
    """Column metadata. ``table`` names the owning relation."""
    name: str
    sql_type: SqlType
    table: Optional[str] = None
    data_type: str = ""
    is_nullable: bool = True
    is_primary_key: bool = False


@dataclass(frozen=True)
class Relation:
    """Anything that can be bound in a scope: base tables, CTEs, derived tables."""
    name: str
    columns: Tuple[Column, ...] = ()

    def columns_of_type(self, sql_type: Optional[SqlType] = None) -> List[Column]:
        if sql_type is None:
            return list(self.columns)
        return [c for c in self.columns if c.sql_type is sql_type]

    def get_column(self, name: str) -> Optional[Column]:
        for c in self.columns:
            if c.name == name:
                return c
        return None


@dataclass(frozen=True)
class Table(Relation):
    """Base table or view."""
    schema: Optional[str] = None
    is_insertable: bool = True
    is_updatable: bool = True
    is_view: bool = False
    has_primary_key: bool = False

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    @classmethod
    def from_list(cls, name: str, columns_list: List[Dict], **kwargs) -> "Table":
        """Factory to create from a simple list-of-dicts format."""
        cols = []
        for c in columns_list:
            ctype = c.get('data_type') or c.get('type') or 'text'
            cols.append(Column(
                name=c['name'],
                sql_type=c.get('sql_type') or classify(ctype),
                table=name,
                data_type=ctype,
                is_nullable=c.get('is_nullable', True),
                is_primary_key=c.get('is_primary_key', False),
            ))
        kwargs.setdefault('has_primary_key', any(c.is_primary_key for c in cols))
        return cls(name=name, columns=tuple(cols), **kwargs)


class RoutineKind(Enum):
    SCALAR = "scalar"
    AGGREGATE = "aggregate"
    WINDOW = "window"


@dataclass(frozen=True)
class Routine:
    """A typed callable: scalar function, aggregate or window function."""
    name: str
    arg_types: Tuple[SqlType, ...]
    return_type: SqlType
    kind: RoutineKind = RoutineKind.SCALAR
    schema: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name


def builtin_routines() -> List[Routine]:
    """Routines every supported engine ships, for catalogs that cannot list them."""
    n, t = SqlType.NUMERIC, SqlType.TEXT
    scalar, agg, win = RoutineKind.SCALAR, RoutineKind.AGGREGATE, RoutineKind.WINDOW
    return [
        Routine('abs', (n,), n, scalar),
        Routine('round', (n,), n, scalar),
        Routine('length', (t,), n, scalar),
        Routine('lower', (t,), t, scalar),
        Routine('upper', (t,), t, scalar),
        Routine('trim', (t,), t, scalar),
        Routine('replace', (t, t, t), t, scalar),
        Routine('substr', (t, n, n), t, scalar),
        Routine('count', (n,), n, agg),
        Routine('sum', (n,), n, agg),
        Routine('avg', (n,), n, agg),
        Routine('min', (n,), n, agg),
        Routine('max', (n,), n, agg),
        Routine('min', (t,), t, agg),
        Routine('max', (t,), t, agg),
        Routine('row_number', (), n, win),
        Routine('rank', (), n, win),
        Routine('dense_rank', (), n, win),
        Routine('percent_rank', (), n, win),
        Routine('cume_dist', (), n, win),
    ]


class Schema:
    """Read-only description of the target database."""

    def __init__(self, tables: Iterable[Table], routines: Iterable[Routine] = (),
                 name: str = "schema"):
        self.name = name
        # Keyed by qualified name; same-named tables may live in different schemas
        self._tables: Dict[str, Table] = {}
        for table in tables:
            self._tables[table.qualified_name] = table
        self._routines: Tuple[Routine, ...] = tuple(routines)

    def __repr__(self) -> str:
        return f"Schema({self.name!r}, tables={len(self._tables)}, routines={len(self._routines)})"

    @property
    def tables(self) -> List[Table]:
        return list(self._tables.values())

    @property
    def routines(self) -> List[Routine]:
        return list(self._routines)

    def get_table(self, name: str) -> Optional[Table]:
        """Look up by qualified name, falling back to the first table called ``name``."""
        if name in self._tables:
            return self._tables[name]
        for table in self._tables.values():
            if table.name == name:
                return table
        return None

    @property
    def insertable_tables(self) -> List[Table]:
        return [t for t in self._tables.values() if t.is_insertable and not t.is_view]

    @property
    def updatable_tables(self) -> List[Table]:
        return [t for t in self._tables.values() if t.is_updatable and not t.is_view]

    def columns_of_type(self, sql_type: Optional[SqlType] = None) -> List[Column]:
        out: List[Column] = []
        for table in self._tables.values():
            out.extend(table.columns_of_type(sql_type))
        return out

    def lookup_column_of_type(self, sql_type: Optional[SqlType],
                              rng: Optional[random.Random] = None) -> Optional[Column]:
        """Any column of the given type; random when an RNG is supplied."""
        candidates = self.columns_of_type(sql_type)
        if not candidates:
            return None
        return rng.choice(candidates) if rng else candidates[0]

    def routines_returning(self, sql_type: Optional[SqlType],
                           kind: Optional[RoutineKind] = RoutineKind.SCALAR) -> List[Routine]:
        return [
            r for r in self._routines
            if (sql_type is None or r.return_type is sql_type)
            and (kind is None or r.kind is kind)
        ]

    def lookup_routine_returning(self, sql_type: Optional[SqlType],
                                 kind: Optional[RoutineKind] = RoutineKind.SCALAR,
                                 rng: Optional[random.Random] = None) -> Optional[Routine]:
        candidates = self.routines_returning(sql_type, kind)
        if not candidates:
            return None
        return rng.choice(candidates) if rng else candidates[0]
