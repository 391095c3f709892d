"""Test doubles for the engine connection and Showplan fragments."""

from typing import Dict, Iterable, List, Optional, Tuple
from xml.sax.saxutils import quoteattr

from sqlinsight.core.constants import PlanMode, SHOWPLAN_NAMESPACE
from sqlinsight.core.exceptions import PlanGenerationError, QueryExecutionError
from sqlinsight.models.connection_profile import ConnectionProfile

# (database, schema, table, index) as the engine writes them, brackets included
PlanObject = Tuple[str, str, str, str]

# (name, system_type_name, max_length, precision, scale, is_nullable)
ColumnRow = Tuple[str, str, int, int, int, bool]

# (name, type_desc, key_columns, included_columns)
IndexRow = Tuple[str, str, str, Optional[str]]


def object_element(database: str, schema: str, table: str, index: str = "") -> str:
    attrs = []
    for name, value in (("Database", database), ("Schema", schema), ("Table", table), ("Index", index)):
        if value:
            attrs.append(f"{name}={quoteattr(value)}")
    return f"<Object {' '.join(attrs)} />"


def make_fragment(
    statement_text: str = "SELECT 1",
    objects: Iterable[PlanObject] = (),
    statement_id: int = 1,
    declaration: bool = True,
) -> str:
    """One Showplan document holding a single StmtSimple"""
    object_xml = "\n".join(
        f"""              <IndexScan Ordered="false">
                {object_element(*obj)}
              </IndexScan>"""
        for obj in objects
    )
    header = '<?xml version="1.0" encoding="utf-16"?>\n' if declaration else ""
    return f"""{header}<ShowPlanXML xmlns="{SHOWPLAN_NAMESPACE}" Version="1.564" Build="16.0.1000.6">
  <BatchSequence>
    <Batch>
      <Statements>
        <StmtSimple StatementText={quoteattr(statement_text)} StatementId="{statement_id}" StatementType="SELECT">
          <QueryPlan>
            <RelOp NodeId="0" PhysicalOp="Clustered Index Scan" LogicalOp="Clustered Index Scan">
{object_xml}
            </RelOp>
          </QueryPlan>
        </StmtSimple>
      </Statements>
    </Batch>
  </BatchSequence>
</ShowPlanXML>"""


ORDERS_COLUMNS: List[ColumnRow] = [
    ("OrderID", "int", 4, 10, 0, False),
    ("CustomerID", "int", 4, 10, 0, False),
    ("OrderDate", "datetime2(7)", 8, 27, 7, True),
]

ORDERS_INDEXES: List[IndexRow] = [
    ("PK_Orders", "CLUSTERED", "OrderID", None),
]

VERSION_ROW = {
    "MajorVersion": 16,
    "ProductVersion": "16.0.4135.4",
    "ProductLevel": "RTM",
    "Edition": "Developer Edition (64-bit)",
    "EngineEdition": 3,
    "FullVersion": "Microsoft SQL Server 2022 (RTM-CU12) - 16.0.4135.4 (X64)",
}


class FakeConnection:
    """
    In-memory stand-in for DatabaseConnection

    tables maps a bracket-quoted three-part name to its columns and indexes.
    """

    def __init__(
        self,
        tables: Optional[Dict[str, Dict[str, list]]] = None,
        fragments: Optional[List[str]] = None,
        fail_describe: Iterable[str] = (),
        describe_error_rows: Iterable[str] = (),
        fail_catalog: Iterable[str] = (),
        fail_indexes: Iterable[str] = (),
    ):
        self.profile = ConnectionProfile(server="fake-sql")
        self.tables = tables or {}
        self.fragments = fragments or []
        self.fail_describe = set(fail_describe)
        self.describe_error_rows = set(describe_error_rows)
        self.fail_catalog = set(fail_catalog)
        self.fail_indexes = set(fail_indexes)
        self.queries: List[Tuple[str, dict]] = []
        self.plan_calls: List[Tuple[str, PlanMode]] = []
        self.disposed = False

    @property
    def engine_calls(self) -> int:
        return len(self.queries) + len(self.plan_calls)

    def capture_plan_fragments(self, sql_text, mode=PlanMode.ESTIMATED, object_name=None):
        self.plan_calls.append((sql_text, mode))
        if "BROKEN" in sql_text:
            raise PlanGenerationError(
                "Batch 1 of 1 failed: Incorrect syntax near 'BROKEN'", object_name=object_name
            )
        return list(self.fragments)

    def execute_query(self, query, params=None, timeout=None):
        params = dict(params or {})
        self.queries.append((query, params))

        if "SERVERPROPERTY" in query:
            return [dict(VERSION_ROW)]

        if "dm_exec_describe_first_result_set" in query:
            full_name = params["projection"].replace("SELECT TOP (0) * FROM ", "")
            if full_name in self.fail_describe:
                raise QueryExecutionError("The SELECT permission was denied", query=query)
            table = self.tables.get(full_name)
            if table is None or full_name in self.describe_error_rows:
                return [{"column_name": None, "error_number": 208,
                         "error_message": f"Invalid object name '{full_name}'."}]
            return [
                {"column_name": name, "type_name": type_name, "max_length": length,
                 "precision": precision, "scale": scale, "is_nullable": int(nullable),
                 "error_number": None, "error_message": None}
                for name, type_name, length, precision, scale, nullable in table["columns"]
            ]

        full_name = params.get("full_name")
        if "sys.indexes" in query:
            if full_name in self.fail_indexes:
                raise QueryExecutionError("Index query failed", query=query)
            table = self.tables.get(full_name) or {}
            return [
                {"index_name": name, "index_type": type_desc,
                 "key_columns": keys, "included_columns": included}
                for name, type_desc, keys, included in table.get("indexes", [])
            ]

        if "sys.columns" in query:
            if full_name in self.fail_catalog:
                raise QueryExecutionError("Catalog query failed", query=query)
            table = self.tables.get(full_name) or {}
            return [
                {"column_name": name, "type_name": type_name.split("(")[0], "max_length": length,
                 "precision": precision, "scale": scale, "is_nullable": int(nullable)}
                for name, type_name, length, precision, scale, nullable in table.get("columns", [])
            ]

        raise AssertionError(f"Unexpected query: {query}")

    def dispose(self):
        self.disposed = True


ANNOTATED_TUNING = """```sql
/* ==== AI TUNING RECOMMENDATION ====
1. Problem: Clustered index scan on Sales.Orders reads every row
   Recommendation: Add a nonclustered index on CustomerID
   Example: CREATE INDEX IX_Orders_CustomerID ON Sales.Orders (CustomerID);
2. Problem: Implicit conversion on OrderDate
   Recommendation: Compare against a datetime2 parameter
*/
SELECT OrderID, OrderDate FROM Sales.Orders WHERE CustomerID = 42;
```"""
