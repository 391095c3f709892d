"""
Schema metadata queries - column and index metadata for referenced objects

All queries are read-only. Database names cannot be parameterized, so the
caller passes an already bracket-quoted database identifier.
"""


class SchemaQueries:
    """SQL queries used by the schema collector"""

    # Primary column strategy: let the engine describe a zero-row projection.
    # :projection is e.g. N'SELECT TOP (0) * FROM [Shop].[Sales].[Orders]'
    DESCRIBE_COLUMNS = """
    SELECT
        CAST(name AS NVARCHAR(128)) AS column_name,
        CAST(system_type_name AS NVARCHAR(256)) AS type_name,
        CAST(max_length AS INT) AS max_length,
        CAST([precision] AS INT) AS [precision],
        CAST([scale] AS INT) AS [scale],
        CAST(is_nullable AS INT) AS is_nullable,
        error_number,
        CAST(error_message AS NVARCHAR(4000)) AS error_message
    FROM sys.dm_exec_describe_first_result_set(:projection, NULL, 0)
    WHERE is_hidden = 0 OR error_number IS NOT NULL
    ORDER BY column_ordinal
    """

    # Fallback column strategy: catalog join keyed by object id
    CATALOG_COLUMNS = """
    SELECT
        CAST(c.name AS NVARCHAR(128)) AS column_name,
        CAST(t.name AS NVARCHAR(128)) AS type_name,
        CAST(c.max_length AS INT) AS max_length,
        CAST(c.[precision] AS INT) AS [precision],
        CAST(c.[scale] AS INT) AS [scale],
        CAST(c.is_nullable AS INT) AS is_nullable
    FROM {database}.sys.columns AS c
    INNER JOIN {database}.sys.types AS t
        ON t.user_type_id = c.user_type_id
    WHERE c.object_id = OBJECT_ID(:full_name)
    ORDER BY c.column_id
    """

    # Index metadata with ordered key and included columns
    INDEXES = """
    SELECT
        CAST(i.name AS NVARCHAR(128)) AS index_name,
        CAST(i.type_desc AS NVARCHAR(60)) AS index_type,
        STUFF((
            SELECT N', ' + c.name
            FROM {database}.sys.index_columns AS ic
            INNER JOIN {database}.sys.columns AS c
                ON c.object_id = ic.object_id AND c.column_id = ic.column_id
            WHERE ic.object_id = i.object_id
              AND ic.index_id = i.index_id
              AND ic.is_included_column = 0
              AND ic.key_ordinal > 0
            ORDER BY ic.key_ordinal
            FOR XML PATH(''), TYPE
        ).value('.', 'NVARCHAR(MAX)'), 1, 2, N'') AS key_columns,
        STUFF((
            SELECT N', ' + c.name
            FROM {database}.sys.index_columns AS ic
            INNER JOIN {database}.sys.columns AS c
                ON c.object_id = ic.object_id AND c.column_id = ic.column_id
            WHERE ic.object_id = i.object_id
              AND ic.index_id = i.index_id
              AND ic.is_included_column = 1
            ORDER BY ic.index_column_id
            FOR XML PATH(''), TYPE
        ).value('.', 'NVARCHAR(MAX)'), 1, 2, N'') AS included_columns
    FROM {database}.sys.indexes AS i
    WHERE i.object_id = OBJECT_ID(:full_name)
      AND i.index_id > 0
      AND i.is_hypothetical = 0
    ORDER BY i.index_id
    """

    @classmethod
    def catalog_columns(cls, database: str) -> str:
        return cls.CATALOG_COLUMNS.format(database=database)

    @classmethod
    def indexes(cls, database: str) -> str:
        return cls.INDEXES.format(database=database)
