"""
Pytest configuration and shared fixtures
"""

import sqlite3
from typing import List, Optional

import pytest

from tableview.core.channel import MessageChannel
from tableview.core.data_access import ColumnInfo, DataAccess, QueryResult
from tableview.core.exceptions import ExecutionError
from tableview.core.view_state import ViewIdentifier, ViewStateStore


class SqliteDataAccess(DataAccess):
    """In-memory data access that runs the generated SQL against sqlite."""

    def __init__(self):
        self.conn = sqlite3.connect(":memory:")
        self.queries: List[str] = []
        self.fail_with: Optional[str] = None

    async def execute(self, query: str) -> QueryResult:
        self.queries.append(query)
        if self.fail_with:
            raise ExecutionError(self.fail_with, query=query)
        try:
            cursor = self.conn.execute(query)
        except sqlite3.Error as e:
            raise ExecutionError(str(e), query=query)
        if cursor.description is None:
            self.conn.commit()
            return QueryResult()
        columns = [d[0] for d in cursor.description]
        rows = [dict(zip(columns, values)) for values in cursor.fetchall()]
        return QueryResult(columns=columns, rows=rows)

    async def describe(self, database: str, table: str) -> List[ColumnInfo]:
        cursor = self.conn.execute(f"PRAGMA table_info({table})")
        return [ColumnInfo(name=row[1], primary_key=row[5] > 0) for row in cursor.fetchall()]

    def data_queries(self) -> List[str]:
        """Executed queries other than row counts."""
        return [q for q in self.queries if not q.startswith("SELECT COUNT(*)")]


@pytest.fixture
def users_db():
    """25 users; every fifth user has no email"""
    db = SqliteDataAccess()
    db.conn.execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, age INTEGER, email TEXT)"
    )
    db.conn.executemany(
        "INSERT INTO users (id, name, age, email) VALUES (?, ?, ?, ?)",
        [
            (i, f"user{i:02d}", 20 + i, None if i % 5 == 0 else f"user{i:02d}@example.com")
            for i in range(1, 26)
        ],
    )
    db.conn.execute("CREATE TABLE empty_table (x TEXT, y TEXT)")
    db.conn.commit()
    return db


@pytest.fixture
def view_id():
    return ViewIdentifier("local", "main", "users")


@pytest.fixture
def store():
    return ViewStateStore(default_page_size=10)


@pytest.fixture
def sample_rows():
    """Sample page as the host would push it"""
    return [
        {"id": 1, "name": "Alice", "age": 30, "joined": "2023-01-05"},
        {"id": 2, "name": "bob", "age": None, "joined": "2022-11-30"},
        {"id": 3, "name": "Charlie", "age": 25, "joined": None},
    ]


@pytest.fixture
def channel():
    return MessageChannel("test")
