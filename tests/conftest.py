"""Shared pytest fixtures for SQL Insight tests."""

import json

import httpx
import pytest

from sqlinsight.ai.llm_client import InferenceClient, LLMConfig, LLMProviderType
from sqlinsight.core.config import LoggingSettings, PipelineSettings, Settings
from tests.fakes import ANNOTATED_TUNING, ORDERS_COLUMNS, ORDERS_INDEXES, FakeConnection, make_fragment

ORDERS = ("[ShopDb]", "[Sales]", "[Orders]", "[PK_Orders]")
CUSTOMERS = ("[ShopDb]", "[Sales]", "[Customers]", "[PK_Customers]")


# =============================================================================
# PLAN FIXTURES
# =============================================================================

@pytest.fixture
def orders_fragment() -> str:
    return make_fragment("SELECT * FROM Sales.Orders", [ORDERS])


@pytest.fixture
def three_fragments() -> list:
    """Plan fragments of a three-statement script."""
    return [
        make_fragment("SELECT * FROM Sales.Orders", [ORDERS], statement_id=1),
        make_fragment("SELECT * FROM Sales.Customers", [CUSTOMERS], statement_id=2),
        make_fragment(
            "SELECT o.OrderID FROM Sales.Orders o JOIN Sales.Customers c ON c.ID = o.CustomerID",
            [ORDERS, CUSTOMERS],
            statement_id=3,
        ),
    ]


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def shop_tables() -> dict:
    return {
        "[ShopDb].[Sales].[Orders]": {"columns": ORDERS_COLUMNS, "indexes": ORDERS_INDEXES},
    }


@pytest.fixture
def fake_connection(shop_tables, orders_fragment) -> FakeConnection:
    return FakeConnection(tables=shop_tables, fragments=[orders_fragment])


# =============================================================================
# SETTINGS / AI FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        app_dir=tmp_path / "app",
        logging=LoggingSettings(file_enabled=False),
        pipeline=PipelineSettings(output_root=tmp_path / "out"),
    )


@pytest.fixture
def ollama_config() -> LLMConfig:
    return LLMConfig(
        provider_type=LLMProviderType.OLLAMA,
        model="codellama",
        host="http://ollama.test:11434",
        timeout=30,
    )


@pytest.fixture
def ollama_reply():
    """Factory for an httpx.MockTransport answering like Ollama's /api/generate."""
    def factory(text: str = ANNOTATED_TUNING, requests: list = None):
        def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(json.loads(request.content))
            return httpx.Response(200, json={"model": "codellama", "response": text, "done": True})
        return httpx.MockTransport(handler)
    return factory


@pytest.fixture
def inference_client(ollama_config, ollama_reply) -> InferenceClient:
    return InferenceClient(ollama_config, transport=ollama_reply())
