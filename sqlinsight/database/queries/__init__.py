"""
SQL query catalogs
"""

from sqlinsight.database.queries.schema_queries import SchemaQueries

__all__ = ["SchemaQueries"]
