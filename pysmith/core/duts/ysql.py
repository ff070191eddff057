"""
YugabyteDB YSQL DUT

YugabyteDB's PostgreSQL-compatible API, with YSQL connection defaults.
"""

from __future__ import annotations

from typing import Optional

from pysmith.core.duts.base import DutConfig
from pysmith.core.duts.postgresql import PostgreSQLDut
from pysmith.core.duts.registry import DutRegistry


class YSQLDut(PostgreSQLDut):
    """YugabyteDB YSQL target engine.

    Inherits all functionality from PostgreSQLDut with YSQL-specific
    defaults (port 5433 instead of 5432).

    Example:
        dut = YSQLDut(host="localhost", port=5433, database="yugabyte")
    """

    name = "ysql"
    description = "YugabyteDB YSQL (PostgreSQL-compatible API)"

    def __init__(self, config: Optional[DutConfig] = None, **kwargs):
        # Default to YSQL port if not specified
        if config is None and 'port' not in kwargs and 'dsn' not in kwargs:
            kwargs.setdefault('port', 5433)
            kwargs.setdefault('database', 'yugabyte')
            kwargs.setdefault('username', 'yugabyte')
            kwargs.setdefault('password', 'yugabyte')

        super().__init__(config, **kwargs)


# Register the DUT
DutRegistry.register(YSQLDut)
