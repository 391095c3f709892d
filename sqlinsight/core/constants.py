"""
Application constants and enumerations
"""

from enum import Enum
from typing import Final

# =============================================================================
# Application Info
# =============================================================================

APP_NAME: Final[str] = "SQL Insight"
APP_VERSION: Final[str] = "1.0.0"

# =============================================================================
# File Paths
# =============================================================================

CONFIG_FILE: Final[str] = "settings.json"
LOG_FILE: Final[str] = "sqlinsight.log"

# Per-item artifacts inside a batch directory
PLAN_FILE: Final[str] = "execution_plan.sqlplan"
SCHEMA_FILE: Final[str] = "schema.txt"
PROMPT_FILE: Final[str] = "prompt.txt"
ANNOTATED_FILE: Final[str] = "annotated.sql"
SUMMARY_FILE: Final[str] = "summary.txt"
SYSTEM_PROMPT_FILE: Final[str] = "system_prompt.txt"
INFERENCE_ERROR_FILE: Final[str] = "inference_error.txt"
ITEM_LOG_FILE: Final[str] = "item.log"
BATCH_SUMMARY_FILE: Final[str] = "batch_summary.txt"

# =============================================================================
# Database Constants
# =============================================================================

DEFAULT_QUERY_TIMEOUT: Final[int] = 30  # seconds
DEFAULT_PLAN_TIMEOUT: Final[int] = 0  # 0 = no limit (large-table plans)
DEFAULT_PROBE_TIMEOUT: Final[int] = 5  # seconds
DEFAULT_CONNECTION_TIMEOUT: Final[int] = 15  # seconds

# ODBC Driver preferences (newest to oldest)
ODBC_DRIVER_PREFERENCES: Final[list[str]] = [
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "ODBC Driver 13 for SQL Server",
    "SQL Server Native Client 11.0",
    "SQL Server",
]

# Internal resource database, never queried for metadata
RESERVED_DATABASES: Final[frozenset[str]] = frozenset({"mssqlsystemresource"})

# Temp tables (#) and table variables (@)
TEMP_OBJECT_SIGILS: Final[tuple[str, ...]] = ("#", "@")

# =============================================================================
# Showplan
# =============================================================================

SHOWPLAN_NAMESPACE: Final[str] = "http://schemas.microsoft.com/sqlserver/2004/07/showplan"
SHOWPLAN_ROOT_MARKER: Final[str] = "<ShowPlanXML"
WRAP_ROOT_TAG: Final[str] = "ShowPlanCollection"

# =============================================================================
# AI/LLM Constants
# =============================================================================

DEFAULT_OLLAMA_HOST: Final[str] = "http://localhost:11434"
DEFAULT_MODEL: Final[str] = "codellama"
DEFAULT_TEMPERATURE: Final[float] = 0.1
DEFAULT_MAX_TOKENS: Final[int] = 8192
AI_RESPONSE_TIMEOUT: Final[int] = 300  # seconds

# Annotated-script comment block headers
TUNING_BLOCK_HEADER: Final[str] = "==== AI TUNING RECOMMENDATION ===="
REVIEW_BLOCK_HEADER: Final[str] = "==== AI CODE REVIEW ===="

# =============================================================================
# Enumerations
# =============================================================================


class AnalysisType(str, Enum):
    """Kind of analysis requested for a batch"""
    TUNING = "Tuning"
    CODE_REVIEW = "CodeReview"

    @property
    def needs_engine(self) -> bool:
        return self is AnalysisType.TUNING

    @classmethod
    def parse(cls, value: str) -> "AnalysisType":
        """Case-insensitive lookup; accepts "code_review" and "review" too"""
        key = value.strip().lower().replace("_", "").replace("-", "")
        aliases = {"tuning": cls.TUNING, "codereview": cls.CODE_REVIEW, "review": cls.CODE_REVIEW}
        if key not in aliases:
            raise ValueError(f"Unknown analysis type: {value}")
        return aliases[key]


class PlanMode(str, Enum):
    """Execution plan capture mode"""
    ESTIMATED = "Estimated"  # compile only
    ACTUAL = "Actual"  # executes and records runtime stats

    @classmethod
    def parse(cls, value: str) -> "PlanMode":
        for mode in cls:
            if mode.value.lower() == value.strip().lower():
                return mode
        raise ValueError(f"Unknown plan mode: {value}")

    @property
    def is_actual(self) -> bool:
        return self is PlanMode.ACTUAL


class AuthMethod(str, Enum):
    """Authentication methods"""
    SQL_SERVER = "sql_server"
    WINDOWS = "windows"


class PipelineStage(str, Enum):
    """Per-item pipeline stages, in execution order"""
    PLAN = "PLAN"
    EXTRACT = "EXTRACT"
    SCHEMA = "SCHEMA"
    PROMPT = "PROMPT"
    INFER = "INFER"
    SUMMARIZE = "SUMMARIZE"


class ItemStatus(str, Enum):
    """Outcome of one script in a batch"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# =============================================================================
# SQL Server Version Mapping
# =============================================================================

SQL_SERVER_VERSIONS: Final[dict[int, str]] = {
    17: "SQL Server 2025",
    16: "SQL Server 2022",
    15: "SQL Server 2019",
    14: "SQL Server 2017",
    13: "SQL Server 2016",
    12: "SQL Server 2014",
    11: "SQL Server 2012",
    10: "SQL Server 2008/2008 R2",
}
