"""
Database connection management for SQL Server

Every call opens its own engine connection and closes it when done; there is
no pooling and no connection is shared between pipeline stages.
"""

from typing import Optional, List, Dict, Any
from urllib.parse import quote_plus

import pyodbc
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from sqlinsight.models.connection_profile import ConnectionProfile
from sqlinsight.core.constants import (
    ODBC_DRIVER_PREFERENCES,
    SHOWPLAN_ROOT_MARKER,
    PlanMode,
)
from sqlinsight.core.logger import get_logger
from sqlinsight.core.exceptions import (
    ConnectionError,
    PlanGenerationError,
    QueryExecutionError,
    QueryTimeoutError,
)
from sqlinsight.database.batch_splitter import split_batches

logger = get_logger('database.connection')

PLAN_MODE_STATEMENTS = {
    PlanMode.ESTIMATED: ("SET SHOWPLAN_XML ON", "SET SHOWPLAN_XML OFF"),
    PlanMode.ACTUAL: ("SET STATISTICS XML ON", "SET STATISTICS XML OFF"),
}


def get_available_odbc_drivers() -> List[str]:
    """Get list of available SQL Server ODBC drivers"""
    try:
        return [d for d in pyodbc.drivers() if 'SQL Server' in d]
    except pyodbc.Error as e:
        logger.error(f"Failed to get ODBC drivers: {e}")
        return []


def get_best_odbc_driver() -> Optional[str]:
    """Get the best available ODBC driver"""
    available = get_available_odbc_drivers()

    for preferred in ODBC_DRIVER_PREFERENCES:
        if preferred in available:
            return preferred

    return available[0] if available else None


def _is_timeout(error: Exception) -> bool:
    text_ = str(error).lower()
    return "timeout" in text_ or "hyt00" in text_


class DatabaseConnection:
    """
    SQL Server connection wrapper

    Handles query execution and execution plan capture for one profile.
    """

    def __init__(self, profile: ConnectionProfile, echo_sql: bool = False):
        self.profile = profile
        self._echo_sql = echo_sql
        self._engine: Optional[Engine] = None

    def _build_connection_string(self) -> str:
        driver = self.profile.driver or get_best_odbc_driver()
        if not driver:
            raise ConnectionError(
                "No SQL Server ODBC driver found",
                server=self.profile.server,
                database=self.profile.database,
            )
        return self.profile.build_connection_string(driver)

    def _get_engine(self) -> Engine:
        if self._engine is None:
            connection_string = self._build_connection_string()
            self._engine = create_engine(
                f"mssql+pyodbc:///?odbc_connect={quote_plus(connection_string)}",
                poolclass=NullPool,
                echo=self._echo_sql,
            )
        return self._engine

    def _connect_raw(self, timeout: int):
        """Open a DBAPI connection with the given query timeout (0 = none)"""
        try:
            raw = self._get_engine().raw_connection()
        except (pyodbc.Error, SQLAlchemyError) as e:
            message = f"Connection to {self.profile.display_name} failed: {e}"
            logger.error(message)
            raise ConnectionError(message, server=self.profile.server,
                                  database=self.profile.database) from e
        raw.dbapi_connection.timeout = max(0, int(timeout or 0))
        return raw

    def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Execute a read-only SQL query and return its rows

        Args:
            query: SQL query string with :named parameters
            params: Query parameters
            timeout: Query timeout in seconds (defaults to profile query_timeout)

        Returns:
            List of dictionaries with column names as keys

        Raises:
            ConnectionError: If the connection cannot be opened
            QueryExecutionError: If query fails
            QueryTimeoutError: If query times out
        """
        timeout = self.profile.query_timeout if timeout is None else timeout

        try:
            engine = self._get_engine()
            with engine.connect() as conn:
                conn.connection.dbapi_connection.timeout = max(0, int(timeout))
                result = conn.execute(text(query), params or {})
                if not result.returns_rows:
                    return []
                columns = list(result.keys())
                return [dict(zip(columns, row)) for row in result.fetchall()]
        except ConnectionError:
            raise
        except (pyodbc.Error, SQLAlchemyError) as e:
            if _is_timeout(e):
                raise QueryTimeoutError(f"Query timed out after {timeout}s", query=query) from e
            raise QueryExecutionError(f"Query failed: {e}", query=query) from e

    def capture_plan_fragments(
        self,
        sql_text: str,
        mode: PlanMode = PlanMode.ESTIMATED,
        object_name: Optional[str] = None,
    ) -> List[str]:
        """
        Run a script under a plan capture mode and collect Showplan fragments

        Estimated mode only compiles. Actual mode executes every statement;
        the work is rolled back afterwards unless the script commits itself.

        Returns:
            Showplan XML fragments in statement order

        Raises:
            PlanGenerationError: If a batch fails to compile or execute
        """
        enable, disable = PLAN_MODE_STATEMENTS[PlanMode(mode)]
        batches = split_batches(sql_text)
        fragments: List[str] = []

        raw = self._connect_raw(self.profile.plan_timeout)
        try:
            cursor = raw.cursor()
            cursor.execute(enable)
            for number, batch in enumerate(batches, start=1):
                try:
                    cursor.execute(batch)
                    fragments.extend(self._drain_plan_rows(cursor))
                except pyodbc.Error as e:
                    raise PlanGenerationError(
                        f"Batch {number} of {len(batches)} failed under {PlanMode(mode).value} plan capture: {e}",
                        object_name=object_name,
                        batch=number,
                    ) from e
            cursor.execute(disable)
            cursor.close()
        except pyodbc.Error as e:
            raise PlanGenerationError(
                f"Plan capture failed: {e}", object_name=object_name
            ) from e
        finally:
            try:
                raw.rollback()
            except pyodbc.Error as e:
                logger.debug(f"Rollback after plan capture failed: {e}")
            raw.close()

        logger.debug(f"Captured {len(fragments)} plan fragment(s) from {len(batches)} batch(es)")
        return fragments

    @staticmethod
    def _drain_plan_rows(cursor) -> List[str]:
        """Read every result set of the current batch, keeping Showplan cells"""
        fragments: List[str] = []
        while True:
            if cursor.description:
                for row in cursor.fetchall():
                    for value in row:
                        if isinstance(value, str) and value.lstrip().startswith(SHOWPLAN_ROOT_MARKER):
                            fragments.append(value)
            if not cursor.nextset():
                break
        return fragments

    def dispose(self) -> None:
        """Release the engine"""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()
        return False
