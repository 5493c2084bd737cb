"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.
Includes mock mode with in-memory storage for local development.

Using the repository pattern means most code never touches this module
directly - it goes through the repositories, which handle the translation
between domain models and database rows.
"""

import base64
import json
import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional, Protocol

from .tables import (
    COUNTER_COLUMNS,
    SKILL_PROGRESS_COLUMNS,
    SKILL_PROGRESS_TABLE,
    STUDENT_BADGES_TABLE,
    STUDENT_COUNTERS_TABLE,
)

logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "SWIMSCHOOL"
    schema: str = "PROGRESS"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _load_private_key(key_bytes: bytes):
    """
    Convert a PEM private key into the DER bytes Snowflake expects.

    Snowflake requires the private key as a bytes object, not a file path.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        key_bytes,
        password=None,  # No password on the key
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _read_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _load_private_key(key_file.read())
    if config.private_key_base64:
        return _load_private_key(base64.b64decode(config.private_key_base64))
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If a private key (file or base64) is set, uses key-pair auth
    - Otherwise, uses password auth

    Usage:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            # do work
            conn.commit()
    """
    import snowflake.connector

    conn = None
    try:
        connect_params = {
            'account': config.account,
            'user': config.user,
            'database': config.database,
            'schema': config.schema,
            'warehouse': config.warehouse,
            'role': config.role,
            'client_session_keep_alive': True,
        }

        private_key = _read_private_key(config)
        if private_key:
            logger.info("Using key-pair authentication for Snowflake")
            connect_params['private_key'] = private_key
        elif config.password:
            logger.info("Using password authentication for Snowflake")
            connect_params['password'] = config.password
        else:
            raise SnowflakeConnectionError(
                "Either password or a private key must be provided"
            )

        conn = snowflake.connector.connect(**connect_params)

        logger.debug(
            "Established Snowflake connection",
            extra={
                "account": config.account,
                "database": config.database,
                "schema": config.schema,
            }
        )

    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}") from e

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support the progress
    repositories without a real database. Queries are recognised by
    statement type and table name; parameters are read positionally in the
    order the repositories send them.
    """

    def __init__(self, storage: dict, lock: threading.RLock) -> None:
        self._storage = storage
        self._lock = lock
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        logger.debug(
            "Mock cursor execute",
            extra={"query": query.strip()[:100], "params": params}
        )

        query_upper = " ".join(query.upper().split())
        params = tuple(params or ())

        self._results = []
        self._rowcount = 0

        # One statement at a time, like a single-threaded warehouse
        with self._lock:
            if query_upper.startswith('MERGE INTO'):
                self._handle_merge(query_upper, params)
            elif query_upper.startswith('SELECT'):
                self._handle_select(query_upper, params)
            elif query_upper.startswith('UPDATE'):
                self._handle_update(query_upper, params)
            elif query_upper.startswith('DELETE FROM'):
                self._handle_delete(query_upper, params)
            else:
                logger.debug("Mock cursor ignoring statement", extra={"query": query_upper[:60]})

        return self

    @staticmethod
    def _targets(query: str, table: str) -> bool:
        return f" {table.upper()} " in f" {query} "

    def _handle_merge(self, query: str, params: tuple) -> None:
        if self._targets(query, SKILL_PROGRESS_TABLE):
            tenant_id, student_id, skill_id, level, notes, assessed_at = params
            key = (tenant_id, student_id, skill_id)
            existing = self._storage[SKILL_PROGRESS_TABLE].get(key)
            self._storage[SKILL_PROGRESS_TABLE][key] = {
                'student_id': student_id,
                'skill_id': skill_id,
                'current_level': level,
                'attempts': existing['attempts'] + 1 if existing else 1,
                'last_assessed': assessed_at,
                'coach_notes': notes,
            }
            self._rowcount = 1

        elif self._targets(query, STUDENT_COUNTERS_TABLE):
            tenant_id, student_id = params[0], params[1]
            key = (tenant_id, student_id)
            table = self._storage[STUDENT_COUNTERS_TABLE]

            if key not in table:
                table[key] = {
                    column: ('{}' if column == 'stroke_levels' else 0)
                    for column in COUNTER_COLUMNS
                }
                self._rowcount = 1

        elif self._targets(query, STUDENT_BADGES_TABLE):
            tenant_id, student_id, badge_id, earned_at = params
            key = (tenant_id, student_id, badge_id)
            if key not in self._storage[STUDENT_BADGES_TABLE]:
                self._storage[STUDENT_BADGES_TABLE][key] = {'earned_at': earned_at}
                self._rowcount = 1

    def _handle_select(self, query: str, params: tuple) -> None:
        if self._targets(query, SKILL_PROGRESS_TABLE):
            tenant_id, student_id = params[0], params[1]
            skill_id = params[2] if len(params) > 2 else None
            rows = [
                row for (t, s, k), row in self._storage[SKILL_PROGRESS_TABLE].items()
                if t == tenant_id and s == student_id and (skill_id is None or k == skill_id)
            ]
            rows.sort(key=lambda row: row['skill_id'])
            self._results = [
                tuple(row[column] for column in SKILL_PROGRESS_COLUMNS) for row in rows
            ]

        elif self._targets(query, STUDENT_COUNTERS_TABLE):
            row = self._storage[STUDENT_COUNTERS_TABLE].get((params[0], params[1]))
            self._results = [tuple(row[column] for column in COUNTER_COLUMNS)] if row else []

        elif self._targets(query, STUDENT_BADGES_TABLE):
            tenant_id, student_id = params[0], params[1]
            earned = [
                (row['earned_at'], badge_id)
                for (t, s, badge_id), row in self._storage[STUDENT_BADGES_TABLE].items()
                if t == tenant_id and s == student_id
            ]
            self._results = [(badge_id,) for _, badge_id in sorted(earned, key=lambda e: e[0])]

        elif query.startswith('SELECT 1'):
            self._results = [(1,)]

    def _handle_update(self, query: str, params: tuple) -> None:
        # Only the partial counters update: `col = %s` assignments, then
        # one OBJECT_INSERT pair per stroke, then updated_at.
        if not self._targets(query, STUDENT_COUNTERS_TABLE):
            return

        set_clause = query.split(' SET ', 1)[1].rsplit(' WHERE ', 1)[0]
        columns = [column.lower() for column in re.findall(r"(\w+) = %S", set_clause)]
        stroke_count = set_clause.count('OBJECT_INSERT(')

        key = (params[-2], params[-1])
        row = self._storage[STUDENT_COUNTERS_TABLE].get(key)
        if row is None:
            return

        # updated_at is the last plain assignment; the mock doesn't keep it
        field_columns = columns[:-1]
        values = list(params[:len(field_columns)])
        pairs = params[len(field_columns):len(field_columns) + 2 * stroke_count]

        row.update(zip(field_columns, values))
        if stroke_count:
            levels = json.loads(row['stroke_levels'] or '{}')
            levels.update(zip(pairs[0::2], pairs[1::2]))
            row['stroke_levels'] = json.dumps(levels)

        self._rowcount = 1

    def _handle_delete(self, query: str, params: tuple) -> None:
        tenant_id, student_id = params[0], params[1]
        for table_name in (SKILL_PROGRESS_TABLE, STUDENT_COUNTERS_TABLE, STUDENT_BADGES_TABLE):
            if self._targets(query, table_name):
                table = self._storage[table_name]
                doomed = [key for key in table if key[0] == tenant_id and key[1] == student_id]
                for key in doomed:
                    del table[key]
                self._rowcount = len(doomed)
                return

    def fetchone(self):
        """Fetch one row from results."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return list(self._results)

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass

    @property
    def rowcount(self) -> int:
        """Return number of rows affected."""
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores data in memory, keyed the same way as the real tables'
    primary keys. Not suitable for production, but fine for:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {primary_key_tuple: row_dict}}
        self._storage: dict[str, dict[tuple, dict]] = {
            SKILL_PROGRESS_TABLE: {},
            STUDENT_COUNTERS_TABLE: {},
            STUDENT_BADGES_TABLE: {},
        }
        self._lock = threading.RLock()

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self._storage, self._lock)

    def commit(self) -> None:
        """Commit transaction (no-op for mock, always auto-commits)."""
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        """Rollback transaction (no-op for mock)."""
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Close connection (no-op for mock)."""
        logger.debug("Mock connection close")

    def _row_count(self, table_name: str) -> int:
        """Number of stored rows in a table (for test assertions)."""
        return len(self._storage[table_name])

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        for table in self._storage.values():
            table.clear()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Create Snowflake connection based on configuration.

    Factory function that returns either a real or mock connection
    depending on mock_mode flag.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return a fresh mock connection

    Yields:
        SnowflakeConnection implementation (real or mock)
    """
    if mock_mode:
        conn = MockSnowflakeConnection()
        try:
            yield conn
        finally:
            conn.close()
    else:
        if config is None:
            raise ValueError("config is required when not in mock mode")

        with get_snowflake_connection(config) as conn:
            yield conn


def ping(connection: SnowflakeConnection) -> None:
    """Run a trivial query; raises if the connection is unusable."""
    cursor = connection.cursor()
    try:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    finally:
        cursor.close()
