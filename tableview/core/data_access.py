"""Data-access collaborator: executes queries and describes tables."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .exceptions import ExecutionError

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """One complete result set.

    Every row carries exactly ``columns`` as keys, in the same order.
    """
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: Optional[int] = None

    def __post_init__(self):
        self.rows = [{col: row.get(col) for col in self.columns} for row in self.rows]
        if self.row_count is None:
            self.row_count = len(self.rows)


@dataclass
class ColumnInfo:
    """A table column as reported by ``describe``."""
    name: str
    primary_key: bool = False


class DataAccess(ABC):
    """Interface the host uses to reach a database."""

    @abstractmethod
    async def execute(self, query: str) -> QueryResult:
        """Run ``query`` and return the complete result.

        Raises:
            ExecutionError: the query was rejected or the connection failed
        """

    @abstractmethod
    async def describe(self, database: str, table: str) -> List[ColumnInfo]:
        """Return the table's columns in ordinal order."""

    async def close(self) -> None:
        """Release any connections held."""


@dataclass
class DatabaseConfig:
    """Configuration for a single PostgreSQL connection."""
    name: str
    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    username: str = ""
    password: str = ""
    ssl_mode: str = "prefer"
    connection_timeout: int = 5
    pool_size: int = 5
    min_pool_size: int = 1

    def get_dsn(self) -> str:
        """Build PostgreSQL connection DSN."""
        params = [
            f"host={self.host}",
            f"port={self.port}",
            f"dbname={self.database}",
            f"user={self.username}",
            f"password={self.password}",
            f"sslmode={self.ssl_mode}",
            f"connect_timeout={self.connection_timeout}",
        ]
        return " ".join(params)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseConfig":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


DESCRIBE_QUERY = """
    SELECT c.column_name,
           EXISTS (
               SELECT 1
               FROM information_schema.table_constraints tc
               JOIN information_schema.key_column_usage kcu
                 ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
               WHERE tc.constraint_type = 'PRIMARY KEY'
                 AND tc.table_schema = c.table_schema
                 AND tc.table_name = c.table_name
                 AND kcu.column_name = c.column_name
           ) AS is_primary_key
    FROM information_schema.columns c
    WHERE c.table_catalog = %s AND c.table_schema = %s AND c.table_name = %s
    ORDER BY c.ordinal_position
"""


class PostgresDataAccess(DataAccess):
    """Data access over a psycopg connection pool, opened on first use."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.pool: Optional[AsyncConnectionPool] = None

    async def _get_pool(self) -> AsyncConnectionPool:
        if self.pool is None:
            pool = AsyncConnectionPool(
                self.config.get_dsn(),
                min_size=self.config.min_pool_size,
                max_size=self.config.pool_size,
                timeout=self.config.connection_timeout,
                kwargs={"row_factory": dict_row},
                open=False,
            )
            try:
                await pool.open(wait=True, timeout=self.config.connection_timeout)
            except Exception as e:
                logger.error(f"Failed to connect to {self.config.name}: {e}")
                raise ExecutionError(f"Failed to connect to {self.config.name}: {e}")
            self.pool = pool
            logger.info(f"Connected to database: {self.config.name}")
        return self.pool

    async def _run(self, query: str, params: Optional[tuple] = None) -> QueryResult:
        pool = await self._get_pool()
        try:
            async with pool.connection() as conn:
                async with conn.cursor() as cursor:
                    # Without params psycopg sends the text as is, so literal % survives
                    await cursor.execute(query, params or None)
                    if not cursor.description:
                        return QueryResult()
                    columns = [desc.name for desc in cursor.description]
                    rows = await cursor.fetchall()
                    return QueryResult(columns=columns, rows=rows)
        except Exception as e:
            logger.error(f"Query execution failed: {e}")
            raise ExecutionError(str(e), query=query)

    async def execute(self, query: str) -> QueryResult:
        logger.info(f"[{self.config.name}] {query}")
        return await self._run(query)

    async def describe(self, database: str, table: str) -> List[ColumnInfo]:
        schema, _, name = table.rpartition(".")
        result = await self._run(DESCRIBE_QUERY, (database, schema or "public", name))
        return [
            ColumnInfo(name=row["column_name"], primary_key=bool(row["is_primary_key"]))
            for row in result.rows
        ]

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info(f"Disconnected from database: {self.config.name}")
