"""
Database module - SQL Server connection, plan capture and metadata queries

DatabaseConnection lives in sqlinsight.database.connection and is imported
from there directly; it pulls in pyodbc, which needs the system ODBC manager.
"""

from sqlinsight.database.batch_splitter import split_batches
from sqlinsight.database.version_detector import VersionDetector, SQLServerVersion
from sqlinsight.database.queries import SchemaQueries

__all__ = [
    "split_batches",
    "VersionDetector",
    "SQLServerVersion",
    "SchemaQueries",
]
