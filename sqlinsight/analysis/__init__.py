"""
Analysis module - plan merging, object extraction, schema collection and
recommendation parsing
"""

from sqlinsight.analysis.plan_parser import PlanDocument, StatementNode, ObjectNode
from sqlinsight.analysis.plan_merger import PlanMerger
from sqlinsight.analysis.object_extractor import ObjectReferenceExtractor
from sqlinsight.analysis.schema_collector import SchemaCollector
from sqlinsight.analysis.summary_builder import RecommendationParser, SummaryBuilder

__all__ = [
    "PlanDocument",
    "StatementNode",
    "ObjectNode",
    "PlanMerger",
    "ObjectReferenceExtractor",
    "SchemaCollector",
    "RecommendationParser",
    "SummaryBuilder",
]
