"""
Services - script loading and batch orchestration
"""

from sqlinsight.services.script_loader import ScriptLoader, safe_base_name
from sqlinsight.services.batch_service import (
    BatchOrchestrator,
    RunOptions,
    RunContext,
    ItemContext,
)

__all__ = [
    "ScriptLoader",
    "safe_base_name",
    "BatchOrchestrator",
    "RunOptions",
    "RunContext",
    "ItemContext",
]
