"""
AI module - prompt assembly and the inference client
"""

from sqlinsight.ai.llm_client import (
    LLMProviderType,
    LLMConfig,
    InferenceClient,
    strip_code_fences,
)
from sqlinsight.ai.prompts import (
    SYSTEM_PROMPTS,
    PromptTemplateStore,
    PromptAssembler,
)

__all__ = [
    "LLMProviderType",
    "LLMConfig",
    "InferenceClient",
    "strip_code_fences",
    "SYSTEM_PROMPTS",
    "PromptTemplateStore",
    "PromptAssembler",
]
