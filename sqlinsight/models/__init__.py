"""
Data models
"""

from sqlinsight.models.connection_profile import ConnectionProfile
from sqlinsight.models.analysis_models import (
    ScriptInput,
    ExecutionPlanDocument,
    ObjectReference,
    ColumnInfo,
    IndexInfo,
    TableSchema,
    SchemaDocument,
    PromptTemplate,
    AnalysisContext,
    RecommendationBlock,
    AnalysisResult,
    ItemOutcome,
    BatchReport,
    quote_identifier,
)

__all__ = [
    "ConnectionProfile",
    "ScriptInput",
    "ExecutionPlanDocument",
    "ObjectReference",
    "ColumnInfo",
    "IndexInfo",
    "TableSchema",
    "SchemaDocument",
    "PromptTemplate",
    "AnalysisContext",
    "RecommendationBlock",
    "AnalysisResult",
    "ItemOutcome",
    "BatchReport",
    "quote_identifier",
]
