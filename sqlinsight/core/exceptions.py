"""
Custom exceptions for SQL Insight
"""

from typing import Optional, Any

from sqlinsight.core.constants import PipelineStage


class SQLInsightError(Exception):
    """Base exception for all application errors"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(SQLInsightError):
    """Configuration related errors"""
    pass


# =============================================================================
# Database Errors
# =============================================================================


class DatabaseError(SQLInsightError):
    """Base database error"""
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    def __init__(self, message: str, server: Optional[str] = None,
                 database: Optional[str] = None, **kwargs):
        details = {"server": server, "database": database, **kwargs}
        super().__init__(message, details)


class QueryExecutionError(DatabaseError):
    """Query execution failed"""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        details = {"query": query[:500] if query else None, **kwargs}
        super().__init__(message, details)


class QueryTimeoutError(QueryExecutionError):
    """Query execution timed out"""
    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(SQLInsightError):
    """
    Base error for per-item pipeline failures.

    Carries the stage that failed and, where relevant, the script or
    database object being processed.
    """

    stage: PipelineStage = PipelineStage.PLAN

    def __init__(
        self,
        message: str,
        object_name: Optional[str] = None,
        stage: Optional[PipelineStage] = None,
        **kwargs
    ):
        if stage is not None:
            self.stage = stage
        self.object_name = object_name
        details = {"stage": self.stage.value, "object": object_name, **kwargs}
        super().__init__(message, {k: v for k, v in details.items() if v is not None})


class PlanGenerationError(PipelineError):
    """Script failed to compile or execute under plan capture"""
    stage = PipelineStage.PLAN


class NoPlanFoundError(PlanGenerationError):
    """Engine returned no Showplan fragment for the script"""

    def __init__(self, object_name: Optional[str] = None, **kwargs):
        super().__init__(
            "No execution plan fragment found in engine output",
            object_name=object_name,
            **kwargs
        )


class PlanMergeError(PipelineError):
    """Plan fragments could not be merged structurally"""
    stage = PipelineStage.PLAN


class SchemaCollectionError(PipelineError):
    """Column or index metadata could not be read for one object"""
    stage = PipelineStage.SCHEMA


class EmptyContextError(PipelineError):
    """Nothing to analyze: no referenced objects or no resolvable schema"""
    stage = PipelineStage.SCHEMA


class InferenceError(PipelineError):
    """Inference service call failed or returned an unusable response"""
    stage = PipelineStage.INFER

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        raw_body: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, status_code=status_code, **kwargs)
        self.status_code = status_code
        self.raw_body = raw_body or ""


class BatchSetupError(SQLInsightError):
    """Batch output directory could not be created"""
    pass


class ScriptSourceError(SQLInsightError):
    """Script source path missing or unreadable"""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        details = {"path": path, **kwargs}
        super().__init__(message, {k: v for k, v in details.items() if v is not None})
