"""
Schema collector - column and index metadata for referenced objects

Column metadata comes from sys.dm_exec_describe_first_result_set over a
zero-row projection of the object. When that fails (missing permission, a
view the engine refuses to describe, ...) the catalog views are used instead.
Index metadata is read separately; an index failure never blocks columns.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlinsight.core.constants import RESERVED_DATABASES
from sqlinsight.core.exceptions import DatabaseError, SchemaCollectionError
from sqlinsight.core.logger import get_logger
from sqlinsight.database.queries.schema_queries import SchemaQueries
from sqlinsight.models.analysis_models import (
    ColumnInfo,
    IndexInfo,
    ObjectReference,
    SchemaDocument,
    TableSchema,
    quote_identifier,
)

logger = get_logger('analysis.schema_collector')

_TYPE_SUFFIX = re.compile(r"\s*\(.*\)\s*$")


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _split_columns(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in str(value).split(',') if part.strip())


class SchemaCollector:
    """
    Collects a SchemaDocument for a list of object references

    Args:
        connection: object with execute_query(query, params) returning a list
            of dict rows (DatabaseConnection in production)
    """

    def __init__(self, connection):
        self.connection = connection

    @staticmethod
    def is_reserved(reference: ObjectReference) -> bool:
        return reference.database.lower() in RESERVED_DATABASES

    def collect(self, references: Iterable[ObjectReference]) -> SchemaDocument:
        """Collect metadata for every reference; per-object failures degrade"""
        tables: List[TableSchema] = []
        for reference in references:
            if self.is_reserved(reference):
                logger.debug(f"Skipping reserved database object {reference}")
                continue
            tables.append(self.collect_object(reference))

        document = SchemaDocument(tables)
        logger.info(
            f"Collected schema for {document.resolved_count}/{len(document)} object(s)"
        )
        return document

    def collect_object(self, reference: ObjectReference) -> TableSchema:
        """Columns and indexes for one object; never raises for engine errors"""
        error: Optional[str] = None
        try:
            columns = self.collect_columns(reference)
        except SchemaCollectionError as e:
            logger.error(f"Schema collection failed for {reference}: {e}")
            columns = ()
            error = e.message

        try:
            indexes = self.collect_indexes(reference)
        except DatabaseError as e:
            logger.warning(f"Index metadata unavailable for {reference}: {e}")
            indexes = ()

        return TableSchema(reference=reference, columns=columns, indexes=indexes, error=error)

    def collect_columns(self, reference: ObjectReference) -> Tuple[ColumnInfo, ...]:
        """
        Raises:
            SchemaCollectionError: If both the describe and catalog strategies fail
        """
        try:
            return self._describe_columns(reference)
        except (DatabaseError, SchemaCollectionError) as e:
            logger.info(f"Describe strategy failed for {reference}, using catalog fallback: {e}")

        try:
            columns = self._catalog_columns(reference)
        except DatabaseError as e:
            raise SchemaCollectionError(
                f"Column metadata query failed: {e.message}", object_name=str(reference)
            ) from e
        if not columns:
            raise SchemaCollectionError(
                "Object not found or no visible columns", object_name=str(reference)
            )
        return columns

    def _describe_columns(self, reference: ObjectReference) -> Tuple[ColumnInfo, ...]:
        projection = f"SELECT TOP (0) * FROM {reference.full_name}"
        rows = self.connection.execute_query(
            SchemaQueries.DESCRIBE_COLUMNS, {"projection": projection}
        )
        if not rows:
            raise SchemaCollectionError("Describe returned no columns", object_name=str(reference))
        for row in rows:
            if row.get('error_number') is not None:
                raise SchemaCollectionError(
                    f"Describe error {row.get('error_number')}: {row.get('error_message') or ''}".strip(),
                    object_name=str(reference),
                )
        return tuple(self._column_from_row(row, strip_type_suffix=True) for row in rows)

    def _catalog_columns(self, reference: ObjectReference) -> Tuple[ColumnInfo, ...]:
        rows = self.connection.execute_query(
            SchemaQueries.catalog_columns(quote_identifier(reference.database)),
            {"full_name": reference.full_name},
        )
        return tuple(self._column_from_row(row) for row in rows or [])

    @staticmethod
    def _column_from_row(row: Dict[str, Any], strip_type_suffix: bool = False) -> ColumnInfo:
        type_name = str(row.get('type_name') or '')
        if strip_type_suffix:
            # nvarchar(50) -> nvarchar; length/precision/scale are separate fields
            type_name = _TYPE_SUFFIX.sub('', type_name)
        return ColumnInfo(
            name=str(row.get('column_name') or ''),
            type_name=type_name,
            max_length=_to_int(row.get('max_length')),
            precision=_to_int(row.get('precision')),
            scale=_to_int(row.get('scale')),
            is_nullable=bool(row.get('is_nullable')),
        )

    def collect_indexes(self, reference: ObjectReference) -> Tuple[IndexInfo, ...]:
        """
        Raises:
            DatabaseError: If the index query fails
        """
        rows = self.connection.execute_query(
            SchemaQueries.indexes(quote_identifier(reference.database)),
            {"full_name": reference.full_name},
        )
        return tuple(
            IndexInfo(
                name=str(row.get('index_name') or ''),
                index_type=str(row.get('index_type') or ''),
                key_columns=_split_columns(row.get('key_columns')),
                included_columns=_split_columns(row.get('included_columns')),
            )
            for row in rows or []
        )
