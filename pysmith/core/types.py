"""
Centralized SQL Type Definitions and Classifications.

Engine type names are folded into the closed set of ``SqlType`` categories the
generator reasons about.
"""

from enum import Enum
from typing import Set


class SqlType(Enum):
    NUMERIC = "numeric"
    TEXT = "text"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    BINARY = "binary"
    UNKNOWN = "unknown"


# Base Categories
NUMERIC_TYPES: Set[str] = {
    'integer', 'int', 'int2', 'int4', 'int8', 'smallint', 'bigint', 'tinyint',
    'mediumint', 'hugeint', 'serial', 'bigserial', 'decimal', 'numeric', 'real',
    'double precision', 'double', 'float', 'float4', 'float8', 'money',
}

STRING_TYPES: Set[str] = {
    'character varying', 'varchar', 'character', 'char', 'text', 'name', 'bpchar',
    'clob', 'nvarchar', 'nchar', 'string',
}

DATETIME_TYPES: Set[str] = {
    'timestamp', 'timestamp without time zone', 'timestamptz', 'timestamp with time zone',
    'date', 'time', 'time without time zone', 'timetz', 'time with time zone', 'datetime',
}

BOOLEAN_TYPES: Set[str] = {'boolean', 'bool'}

BINARY_TYPES: Set[str] = {'bytea', 'blob', 'binary', 'varbinary'}

# Types the engine can compare with ordering operators
ORDERABLE_TYPES = (SqlType.NUMERIC, SqlType.TEXT, SqlType.DATETIME)

# Types a typed literal can be produced for, in preference order
LITERAL_TYPES = (SqlType.NUMERIC, SqlType.TEXT, SqlType.BOOLEAN, SqlType.DATETIME)


def _base(dtype: str) -> str:
    return dtype.lower().split('(')[0].strip()


def is_numeric(dtype: str) -> bool:
    """Check if a data type is numeric (handles parameterized types like NUMERIC(10,2))."""
    return _base(dtype) in NUMERIC_TYPES


def is_string(dtype: str) -> bool:
    return _base(dtype) in STRING_TYPES


def is_datetime(dtype: str) -> bool:
    d = _base(dtype)
    return d in DATETIME_TYPES or 'timestamp' in d or d.startswith(('date', 'time'))


def is_boolean(dtype: str) -> bool:
    return _base(dtype) in BOOLEAN_TYPES


def is_binary(dtype: str) -> bool:
    return _base(dtype) in BINARY_TYPES


def classify(dtype: str) -> SqlType:
    """Map an engine type name onto a ``SqlType`` category."""
    if not dtype:
        return SqlType.UNKNOWN
    if is_boolean(dtype):
        return SqlType.BOOLEAN
    if is_numeric(dtype):
        return SqlType.NUMERIC
    if is_string(dtype):
        return SqlType.TEXT
    if is_binary(dtype):
        return SqlType.BINARY
    if is_datetime(dtype):
        return SqlType.DATETIME
    return SqlType.UNKNOWN


def classify_affinity(declared: str) -> SqlType:
    """Classify a SQLite declared column type using its affinity rules."""
    d = (declared or '').lower()
    if not d:
        return SqlType.UNKNOWN
    exact = classify(d)
    if exact is not SqlType.UNKNOWN:
        return exact
    if 'int' in d:
        return SqlType.NUMERIC
    if 'char' in d or 'clob' in d or 'text' in d:
        return SqlType.TEXT
    if 'blob' in d:
        return SqlType.BINARY
    if 'real' in d or 'floa' in d or 'doub' in d:
        return SqlType.NUMERIC
    return SqlType.UNKNOWN


def is_compatible(actual: SqlType, required) -> bool:
    """Whether a value of ``actual`` type may fill a slot requiring ``required``.

    ``required`` of None accepts anything.
    """
    return required is None or actual is required
