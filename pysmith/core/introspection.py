"""
Database Introspection Logic.

Schema providers turn a connection descriptor into a ``Schema``. Anything short
of one table with at least one column is a ``SchemaLoadError``.
"""
import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple, Type
from urllib.parse import quote

from pysmith.core.duts.monetdb import connect_kwargs
from pysmith.core.errors import SchemaLoadError
from pysmith.core.schema import Column, Routine, RoutineKind, Schema, Table, builtin_routines
from pysmith.core.types import SqlType, classify, classify_affinity

try:
    import psycopg2
except ImportError:
    psycopg2 = None

try:
    import pymonetdb
except ImportError:
    pymonetdb = None

logger = logging.getLogger(__name__)

__all__ = [
    "SchemaProvider",
    "PostgreSQLSchemaProvider",
    "SQLiteSchemaProvider",
    "MonetDBSchemaProvider",
    "SCHEMA_PROVIDERS",
    "load_schema",
]

# Routines that would sabotage the session they run in
ROUTINE_DENYLIST_PREFIXES = ('pg_', 'lo_', '_')

PROKIND_MAP = {
    'f': RoutineKind.SCALAR,
    'a': RoutineKind.AGGREGATE,
    'w': RoutineKind.WINDOW,
}

# sys.tables.type
MONETDB_TABLE = 0
MONETDB_VIEW = 1


class SchemaProvider(ABC):
    """Handles database introspection to populate schema metadata."""

    def __init__(self, dsn: str):
        self.dsn = dsn

    @abstractmethod
    def introspect(self) -> Schema:
        """Connect to the database and return its schema."""

    def _validate(self, schema: Schema) -> Schema:
        usable = [t for t in schema.tables if t.columns]
        if not usable:
            raise SchemaLoadError(f"no usable tables found at {self.dsn}")
        if len(usable) != len(schema.tables):
            logger.info("Ignoring %d tables without columns", len(schema.tables) - len(usable))
            schema = Schema(usable, schema.routines, name=schema.name)
        logger.info("Loaded %d tables and %d routines", len(usable), len(schema.routines))
        return schema


class PostgreSQLSchemaProvider(SchemaProvider):
    """Reads tables, columns and routines from the PostgreSQL catalogs."""

    def introspect(self) -> Schema:
        if not psycopg2:
            raise SchemaLoadError("psycopg2 not installed, cannot introspect PostgreSQL")

        conn = None
        try:
            conn = psycopg2.connect(self.dsn)
            cur = conn.cursor()
            tables = []
            for table_schema, table_name, table_type, insertable in self._fetch_tables_info(cur):
                columns_data = self._fetch_columns_info(cur, table_schema, table_name)
                tables.append(self._build_table_metadata(
                    table_schema, table_name, table_type, insertable, columns_data
                ))
            routines = self._build_routines(self._fetch_routines_info(cur))
        except psycopg2.Error as e:
            raise SchemaLoadError(f"Schema introspection failed: {e}") from e
        finally:
            if conn:
                conn.close()

        return self._validate(Schema(tables, routines, name=self.dsn))

    def _fetch_tables_info(self, cur) -> List[Tuple[str, str, str, str]]:
        """Fetch table names, kinds and insertability."""
        cur.execute("""
            SELECT t.table_schema, t.table_name, t.table_type, t.is_insertable_into
            FROM information_schema.tables t
            WHERE t.table_schema NOT IN ('pg_catalog', 'information_schema')
            AND t.table_schema NOT LIKE 'pg_toast%'
            ORDER BY t.table_schema, t.table_name
        """)
        return cur.fetchall()

    def _fetch_columns_info(self, cur, table_schema: str, table_name: str) -> List[Tuple]:
        """Fetch column metadata for a specific table."""
        cur.execute("""
            SELECT
                c.column_name, c.data_type, c.is_nullable, (pk.column_name IS NOT NULL) AS is_pk
            FROM information_schema.columns c
            LEFT JOIN (
                SELECT kcu.column_name FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                    ON tc.constraint_name = kcu.constraint_name
                    AND tc.table_schema = kcu.table_schema
                WHERE tc.table_schema = %s AND tc.table_name = %s AND tc.constraint_type = 'PRIMARY KEY'
            ) pk ON c.column_name = pk.column_name
            WHERE c.table_schema = %s AND c.table_name = %s
            ORDER BY c.ordinal_position
        """, (table_schema, table_name, table_schema, table_name))
        return cur.fetchall()

    def _fetch_routines_info(self, cur) -> List[Tuple]:
        """Fetch non-set-returning catalog routines with up to three arguments."""
        cur.execute("""
            SELECT n.nspname, p.proname, p.prokind,
                   format_type(p.prorettype, NULL),
                   ARRAY(SELECT format_type(a, NULL) FROM unnest(p.proargtypes) AS a)
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            WHERE n.nspname = 'pg_catalog'
            AND NOT p.proretset
            AND p.prokind IN ('f', 'a', 'w')
            AND p.pronargs <= 3
        """)
        return cur.fetchall()

    def _build_table_metadata(self, table_schema: str, table_name: str, table_type: str,
                              insertable: str, columns_data: List[Tuple]) -> Table:
        """Construct Table from raw column data."""
        cols = []
        for c_name, c_type, c_null, c_pk in columns_data:
            cols.append(Column(
                name=c_name,
                sql_type=classify(c_type),
                table=table_name,
                data_type=c_type,
                is_nullable=(c_null == 'YES'),
                is_primary_key=bool(c_pk),
            ))
        is_view = table_type == 'VIEW'
        can_write = insertable == 'YES'
        return Table(
            name=table_name,
            columns=tuple(cols),
            schema=table_schema,
            is_insertable=can_write,
            is_updatable=can_write,
            is_view=is_view,
            has_primary_key=any(c.is_primary_key for c in cols),
        )

    def _build_routines(self, rows: List[Tuple]) -> List[Routine]:
        routines = []
        for nspname, proname, prokind, rettype, argtypes in rows:
            if proname.startswith(ROUTINE_DENYLIST_PREFIXES):
                continue
            ret = classify(rettype)
            args = tuple(classify(a) for a in argtypes)
            # Polymorphic and exotic signatures cannot be typed safely
            if ret is SqlType.UNKNOWN or SqlType.UNKNOWN in args:
                continue
            routines.append(Routine(proname, args, ret, PROKIND_MAP[prokind], schema=nspname))
        return routines


class SQLiteSchemaProvider(SchemaProvider):
    """Reads tables from ``sqlite_master``; routines are the built-in set."""

    def introspect(self) -> Schema:
        conn = None
        try:
            conn = sqlite3.connect(self._read_only_uri(), uri=True)
            rows = conn.execute(
                "SELECT name, type FROM sqlite_master "
                "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' ORDER BY name"
            ).fetchall()
            tables = [
                self._build_table_metadata(name, kind, self._fetch_columns_info(conn, name))
                for name, kind in rows
            ]
        except sqlite3.Error as e:
            raise SchemaLoadError(f"Schema introspection failed: {e}") from e
        finally:
            if conn:
                conn.close()

        return self._validate(Schema(tables, builtin_routines(), name=self.dsn))

    def _read_only_uri(self) -> str:
        if self.dsn.startswith('file:'):
            return self.dsn
        return f"file:{quote(self.dsn)}?mode=ro"

    def _fetch_columns_info(self, conn: sqlite3.Connection, table_name: str) -> List[Tuple]:
        quoted = '"' + table_name.replace('"', '""') + '"'
        return conn.execute(f"PRAGMA table_info({quoted})").fetchall()

    def _build_table_metadata(self, table_name: str, kind: str, columns_data: List[Tuple]) -> Table:
        cols = []
        for _cid, c_name, c_type, c_notnull, _default, c_pk in columns_data:
            cols.append(Column(
                name=c_name,
                sql_type=classify_affinity(c_type),
                table=table_name,
                data_type=c_type or '',
                is_nullable=not c_notnull,
                is_primary_key=bool(c_pk),
            ))
        is_view = kind == 'view'
        return Table(
            name=table_name,
            columns=tuple(cols),
            is_insertable=not is_view,
            is_updatable=not is_view,
            is_view=is_view,
            has_primary_key=any(c.is_primary_key for c in cols),
        )


class MonetDBSchemaProvider(SchemaProvider):
    """Reads user tables and columns from MonetDB's ``sys`` catalog."""

    def introspect(self) -> Schema:
        if not pymonetdb:
            raise SchemaLoadError("pymonetdb not installed, cannot introspect MonetDB")

        conn = None
        try:
            conn = pymonetdb.connect(**connect_kwargs(self.dsn))
            cur = conn.cursor()
            tables = []
            for table_id, table_schema, table_name, table_type in self._fetch_tables_info(cur):
                columns_data = self._fetch_columns_info(cur, table_id)
                tables.append(self._build_table_metadata(
                    table_schema, table_name, table_type, columns_data
                ))
        except (pymonetdb.Error, OSError) as e:
            raise SchemaLoadError(f"Schema introspection failed: {e}") from e
        finally:
            if conn:
                conn.close()

        return self._validate(Schema(tables, builtin_routines(), name=self.dsn))

    def _fetch_tables_info(self, cur) -> List[Tuple]:
        cur.execute("""
            SELECT t.id, s.name, t.name, t.type
            FROM sys.tables t
            JOIN sys.schemas s ON s.id = t.schema_id
            WHERE NOT t.system AND t.temporary = 0
            ORDER BY s.name, t.name
        """)
        return cur.fetchall()

    def _fetch_columns_info(self, cur, table_id: int) -> List[Tuple]:
        """Columns in declaration order, with their primary key membership."""
        cur.execute("""
            SELECT c.name, c.type, c."null", pk.name IS NOT NULL
            FROM sys.columns c
            LEFT JOIN (
                SELECT o.name FROM sys.keys k
                JOIN sys.objects o ON o.id = k.id
                WHERE k.table_id = %(tid)s AND k.type = 0
            ) pk ON pk.name = c.name
            WHERE c.table_id = %(tid)s
            ORDER BY c.number
        """, {'tid': table_id})
        return cur.fetchall()

    def _build_table_metadata(self, table_schema: str, table_name: str, table_type: int,
                              columns_data: List[Tuple]) -> Table:
        cols = [
            Column(
                name=c_name,
                sql_type=classify(c_type),
                table=table_name,
                data_type=c_type,
                is_nullable=bool(c_null),
                is_primary_key=bool(c_pk),
            )
            for c_name, c_type, c_null, c_pk in columns_data
        ]
        is_view = table_type == MONETDB_VIEW
        can_write = table_type == MONETDB_TABLE
        return Table(
            name=table_name,
            columns=tuple(cols),
            schema=table_schema,
            is_insertable=can_write,
            is_updatable=can_write,
            is_view=is_view,
            has_primary_key=any(c.is_primary_key for c in cols),
        )


SCHEMA_PROVIDERS: Dict[str, Type[SchemaProvider]] = {
    'postgresql': PostgreSQLSchemaProvider,
    'ysql': PostgreSQLSchemaProvider,
    'sqlite': SQLiteSchemaProvider,
    'monetdb': MonetDBSchemaProvider,
}


def load_schema(dsn: Optional[str], engine: str = 'postgresql') -> Schema:
    """Introspect ``dsn`` with the provider registered for ``engine``.

    Raises:
        SchemaLoadError: if the engine is unknown or no usable table exists.
    """
    if not dsn:
        raise SchemaLoadError("no connection descriptor given")
    provider_class = SCHEMA_PROVIDERS.get(engine)
    if provider_class is None:
        available = ", ".join(sorted(SCHEMA_PROVIDERS))
        raise SchemaLoadError(f"No schema provider for '{engine}'. Available: {available}")
    logger.info("Introspecting schema from %s...", dsn)
    return provider_class(dsn).introspect()
