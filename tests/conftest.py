"""Test configuration to ensure the local package is importable.

Adds the repository root to sys.path so `import pysmith` works when running tests
without installing the package, and provides shared schema fixtures.
"""

import os
import sqlite3
import sys

import pytest

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from pysmith.core.schema import Schema, Table, builtin_routines  # noqa: E402

SQLITE_DDL = [
    "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email VARCHAR(50), "
    "active BOOLEAN, created TIMESTAMP, score REAL)",
    "CREATE TABLE orders (id INTEGER PRIMARY KEY, user_id INTEGER, amount NUMERIC(10,2), "
    "note TEXT, placed DATE)",
    "CREATE TABLE \"Mixed Case\" (\"Key\" INTEGER, \"select\" TEXT)",
    "CREATE VIEW active_users AS SELECT id, name FROM users WHERE active",
]

SQLITE_ROWS = [
    "INSERT INTO users VALUES (1, 'ann', 'ann@example.com', 1, '2024-01-01 10:00:00', 1.5)",
    "INSERT INTO users VALUES (2, 'bob', NULL, 0, '2024-02-01 11:00:00', 2.5)",
    "INSERT INTO orders VALUES (1, 1, 10.50, 'first', '2024-01-02')",
    "INSERT INTO orders VALUES (2, 2, 99.99, NULL, '2024-02-03')",
    "INSERT INTO \"Mixed Case\" VALUES (1, 'x')",
]


def make_schema() -> Schema:
    users = Table.from_list('users', [
        {'name': 'id', 'type': 'integer', 'is_primary_key': True},
        {'name': 'name', 'type': 'text'},
        {'name': 'email', 'type': 'varchar(50)'},
        {'name': 'active', 'type': 'boolean'},
        {'name': 'created', 'type': 'timestamp'},
        {'name': 'avatar', 'type': 'bytea'},
        {'name': 'profile', 'type': 'jsonb'},
    ])
    orders = Table.from_list('orders', [
        {'name': 'id', 'type': 'integer', 'is_primary_key': True},
        {'name': 'user_id', 'type': 'integer'},
        {'name': 'amount', 'type': 'numeric(10,2)'},
        {'name': 'note', 'type': 'text'},
    ])
    report = Table.from_list('order_report', [
        {'name': 'user_id', 'type': 'integer'},
        {'name': 'total', 'type': 'numeric'},
    ], is_view=True, is_insertable=False, is_updatable=False)
    return Schema([users, orders, report], builtin_routines(), name='test')


@pytest.fixture
def schema():
    return make_schema()


@pytest.fixture
def sqlite_db(tmp_path):
    """Path to a populated SQLite database file."""
    path = str(tmp_path / "fuzz.db")
    conn = sqlite3.connect(path)
    try:
        for stmt in SQLITE_DDL + SQLITE_ROWS:
            conn.execute(stmt)
        conn.commit()
    finally:
        conn.close()
    return path
