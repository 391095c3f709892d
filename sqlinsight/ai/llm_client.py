"""
LLM client - single synchronous request/response per analysis

Supported providers:
- Ollama (local)
- OpenAI
- Anthropic (Claude)
- DeepSeek
- Azure OpenAI

No retry: a failed call is terminal for the item.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import httpx

from sqlinsight.core.exceptions import ConfigurationError, InferenceError
from sqlinsight.core.logger import get_logger

logger = get_logger('ai.llm_client')

_SINGLE_LINE_FENCE = re.compile(r"\A\s*```([^`\n]*?)```\s*\Z")
_LEADING_FENCE = re.compile(r"\A\s*```[^\n`]*\r?\n")
_TRAILING_FENCE = re.compile(r"(?:\r?\n|\A)[ \t]*```\s*\Z")


def strip_code_fences(text: Optional[str]) -> str:
    """
    Remove the markdown fence wrapping a response

    A closing fence is only removed together with an opening one. Text without
    an opening fence is returned unchanged and applying the function twice
    gives the same result.

    Example:
        >>> strip_code_fences("```sql\\nSELECT 1;\\n```")
        'SELECT 1;'
        >>> strip_code_fences("```SELECT 1;```")
        'SELECT 1;'
    """
    if not text:
        return text or ""

    cleaned = text
    while True:
        stripped = _strip_fence_once(cleaned)
        if stripped == cleaned:
            return cleaned
        cleaned = stripped


def _strip_fence_once(text: str) -> str:
    single = _SINGLE_LINE_FENCE.match(text)
    if single:
        return single.group(1).strip()

    leading = _LEADING_FENCE.match(text)
    if not leading:
        return text
    return _TRAILING_FENCE.sub("", text[leading.end():], count=1)


class LLMProviderType(Enum):
    """Supported LLM provider types"""
    OLLAMA = "ollama"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    AZURE_OPENAI = "azure_openai"
    DEEPSEEK = "deepseek"


@dataclass(frozen=True)
class LLMConfig:
    """LLM provider configuration"""
    provider_type: LLMProviderType
    model: str
    host: str = ""
    api_key: str = ""
    endpoint: str = ""
    deployment: str = ""
    temperature: float = 0.1
    max_tokens: int = 8192
    timeout: int = 300

    @classmethod
    def from_settings(cls, ai_settings) -> 'LLMConfig':
        """Build config from AISettings"""
        try:
            provider_type = LLMProviderType(ai_settings.provider.lower())
        except ValueError as e:
            raise ConfigurationError(f"Unknown LLM provider: {ai_settings.provider}") from e
        return cls(
            provider_type=provider_type,
            model=ai_settings.model,
            host=ai_settings.host,
            api_key=ai_settings.api_key,
            endpoint=ai_settings.endpoint,
            deployment=ai_settings.deployment,
            temperature=ai_settings.temperature,
            max_tokens=ai_settings.max_tokens,
            timeout=ai_settings.timeout,
        )


class BaseLLMProvider(ABC):
    """Builds the provider request and reads the generated text back"""

    def __init__(self, config: LLMConfig):
        self.config = config

    @property
    def name(self) -> str:
        return self.config.provider_type.value

    @abstractmethod
    def build_request(
        self, prompt: str, system_prompt: Optional[str], model: str
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, payload)"""

    @abstractmethod
    def extract_text(self, data: Dict[str, Any]) -> str:
        """Generated text from the decoded JSON body"""

    def extract_usage(self, data: Dict[str, Any]) -> Dict[str, Any]:
        usage = data.get("usage")
        return usage if isinstance(usage, dict) else {}

    @staticmethod
    def _chat_messages(prompt: str, system_prompt: Optional[str]) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages


class OllamaProvider(BaseLLMProvider):
    """Ollama local LLM provider"""

    def build_request(self, prompt, system_prompt, model):
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }
        if system_prompt:
            payload["system"] = system_prompt
        return f"{self.config.host}/api/generate", {}, payload

    def extract_text(self, data):
        return data["response"]

    def extract_usage(self, data):
        return {
            "prompt_tokens": data.get("prompt_eval_count"),
            "completion_tokens": data.get("eval_count"),
        }


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions API"""

    BASE_URL = "https://api.openai.com/v1"

    def _base_url(self) -> str:
        return self.config.endpoint or self.BASE_URL

    def build_request(self, prompt, system_prompt, model):
        payload = {
            "model": model,
            "messages": self._chat_messages(prompt, system_prompt),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        return f"{self._base_url()}/chat/completions", headers, payload

    def extract_text(self, data):
        return data["choices"][0]["message"]["content"]


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek API (OpenAI-compatible)"""

    BASE_URL = "https://api.deepseek.com/v1"


class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI deployment"""

    API_VERSION = "2024-02-01"

    def build_request(self, prompt, system_prompt, model):
        if not self.config.endpoint:
            raise ConfigurationError("Azure OpenAI requires an endpoint")
        deployment = self.config.deployment or model
        payload = {
            "messages": self._chat_messages(prompt, system_prompt),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        headers = {
            "api-key": self.config.api_key,
            "Content-Type": "application/json",
        }
        url = (
            f"{self.config.endpoint}/openai/deployments/{deployment}"
            f"/chat/completions?api-version={self.API_VERSION}"
        )
        return url, headers, payload


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Messages API"""

    BASE_URL = "https://api.anthropic.com/v1"

    def build_request(self, prompt, system_prompt, model):
        payload = {
            "model": model,
            "max_tokens": self.config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.config.temperature,
        }
        if system_prompt:
            payload["system"] = system_prompt
        headers = {
            "x-api-key": self.config.api_key,
            "Content-Type": "application/json",
            "anthropic-version": "2023-06-01",
        }
        return f"{self.config.endpoint or self.BASE_URL}/messages", headers, payload

    def extract_text(self, data):
        return "".join(
            block.get("text", "") for block in data["content"] if block.get("type", "text") == "text"
        )

    def extract_usage(self, data):
        usage = data.get("usage") or {}
        return {
            "prompt_tokens": usage.get("input_tokens"),
            "completion_tokens": usage.get("output_tokens"),
        }


PROVIDERS = {
    LLMProviderType.OLLAMA: OllamaProvider,
    LLMProviderType.OPENAI: OpenAIProvider,
    LLMProviderType.ANTHROPIC: AnthropicProvider,
    LLMProviderType.DEEPSEEK: DeepSeekProvider,
    LLMProviderType.AZURE_OPENAI: AzureOpenAIProvider,
}


def create_provider(config: LLMConfig) -> BaseLLMProvider:
    return PROVIDERS[config.provider_type](config)


class InferenceClient:
    """
    Synchronous inference client

    Usage:
        client = InferenceClient(LLMConfig.from_settings(settings.ai))
        text = client.generate(prompt, system_prompt, model="gpt-4o")
    """

    def __init__(self, config: LLMConfig, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self._transport = transport

    def _provider_for(self, model: Optional[str]) -> BaseLLMProvider:
        config = replace(self.config, model=model) if model else self.config
        return create_provider(config)

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        object_name: Optional[str] = None,
    ) -> str:
        """
        Send one prompt and return the normalized response text

        Raises:
            InferenceError: On transport failure, non-2xx status, or a body
                without the expected text field
        """
        provider = self._provider_for(model)
        model_name = provider.config.model
        url, headers, payload = provider.build_request(prompt, system_prompt, model_name)

        logger.info(f"Sending prompt to {provider.name} (model: {model_name}, {len(prompt):,} chars)")
        try:
            with httpx.Client(timeout=self.config.timeout, transport=self._transport) as client:
                response = client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise InferenceError(
                f"Request to {provider.name} failed: {e}", object_name=object_name
            ) from e

        raw_body = response.text
        if not response.is_success:
            raise InferenceError(
                f"{provider.name} returned HTTP {response.status_code}",
                status_code=response.status_code,
                raw_body=raw_body,
                object_name=object_name,
            )

        try:
            data = response.json()
            text = provider.extract_text(data)
        except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise InferenceError(
                f"Malformed {provider.name} response: {e.__class__.__name__}: {e}",
                status_code=response.status_code,
                raw_body=raw_body,
                object_name=object_name,
            ) from e

        if not isinstance(text, str) or not text.strip():
            raise InferenceError(
                f"{provider.name} returned an empty response",
                status_code=response.status_code,
                raw_body=raw_body,
                object_name=object_name,
            )

        self._log_token_usage(provider, model_name, provider.extract_usage(data))
        return strip_code_fences(text)

    @staticmethod
    def _log_token_usage(provider: BaseLLMProvider, model: str, usage: Dict[str, Any]) -> None:
        sent = usage.get("prompt_tokens")
        received = usage.get("completion_tokens")
        if sent is None and received is None:
            return
        logger.info(f"Token usage | provider={provider.name} | model={model} | sent={sent} | received={received}")
