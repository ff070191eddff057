"""
PySmith Pluggable DUT Layer

Uniform execution interface over heterogeneous target engines. Users can add
engines by subclassing ``Dut`` and registering the class.

Example usage:
    from pysmith.core.duts import DutRegistry

    dut = DutRegistry.get("postgresql", dsn="postgresql://localhost:5432/testdb")
    with dut:
        outcome = dut.execute("SELECT 1")

Supported DUTs:
    - postgresql: Standard PostgreSQL
    - ysql: YugabyteDB YSQL (PostgreSQL-compatible)
    - sqlite: SQLite database files
    - monetdb: MonetDB over MAPI
"""

from pysmith.core.duts.base import Dut, DutConfig, ExecutionStats, Outcome, query_shape
from pysmith.core.duts.registry import DutRegistry, register_dut
from pysmith.core.duts.postgresql import PostgreSQLDut
from pysmith.core.duts.ysql import YSQLDut
from pysmith.core.duts.sqlite import SQLiteDut
from pysmith.core.duts.monetdb import MonetDBDut

__all__ = [
    "Dut",
    "DutConfig",
    "ExecutionStats",
    "Outcome",
    "query_shape",
    "DutRegistry",
    "register_dut",
    "PostgreSQLDut",
    "YSQLDut",
    "SQLiteDut",
    "MonetDBDut",
]
