"""
Pytest configuration and shared fixtures.

This module provides fixtures for:
- Mocking the database pool
- Mocking the LLM provider behind the extraction client
- An in-memory wired SummaryMemoryService
- FastAPI test client
"""

import json
import os
from typing import AsyncGenerator, Dict, Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient, ASGITransport

# Set testing environment before importing app modules
os.environ["TESTING"] = "true"
os.environ["LOG_LEVEL"] = "ERROR"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("REDIS_URL", None)


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_pool():
    """Mock asyncpg pool that returns empty results."""
    mock = MagicMock()
    mock.fetch = AsyncMock(return_value=[])
    mock.fetchrow = AsyncMock(return_value=None)
    mock.fetchval = AsyncMock(return_value=None)
    mock.execute = AsyncMock(return_value="INSERT 0 1")
    return mock


# ─────────────────────────────────────────────────────────────────────────────
# AI Provider Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def oracle_payload() -> Dict[str, Any]:
    """Default structured reply from the extraction oracle."""
    return {
        "summary": "User plans a trip.",
        "key_points": ["trip planning"],
        "facts": {"destination": "Lisbon", "budget": 1200},
        "decisions": ["Fly on Friday"],
        "todos": ["Book hotel"],
        "goals": ["Plan a weekend trip"],
        "constraints": ["No red-eye flights"],
        "glossary": {"PTO": "Paid time off"},
    }


@pytest.fixture
def mock_provider(oracle_payload):
    """Mock LLM provider returning the oracle payload as JSON."""
    provider = MagicMock()
    provider.name = "mock"
    provider.default_model = "test-model"
    provider.is_configured = MagicMock(return_value=True)
    provider.call = AsyncMock(return_value={"thinking": "", "content": json.dumps(oracle_payload)})
    return provider


@pytest.fixture
def extraction_client(mock_provider):
    from threadmem.services.summary_memory.extractor import ExtractionClient
    return ExtractionClient(providers={"mock": mock_provider}, default_provider="mock")


@pytest.fixture
def template():
    from threadmem.services.summary_memory.data_models import ExtractionTemplate
    return ExtractionTemplate(instructions="Extract structured memory.", model="test-model", provider="mock")


@pytest.fixture
def template_source(template):
    source = MagicMock()
    source.get_active_template = AsyncMock(return_value=template)
    return source


# ─────────────────────────────────────────────────────────────────────────────
# Service Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def conversations():
    """Conversation store with a few user/assistant turns."""
    from threadmem.services.summary_memory.collaborators import InMemoryConversationStore
    return InMemoryConversationStore({
        "u1": "I want to go to Lisbon for the weekend with a budget of 1200.",
        "a1": "Great, let's fly on Friday. You should book a hotel.",
        "u2": "Actually the budget is 1500.",
        "a2": "Noted, the budget is now 1500.",
        "u3": "Any museums?",
        "a3": "Try the tile museum.",
    })


@pytest.fixture
def summary_store():
    from threadmem.services.summary_memory.store import InMemorySummaryStore
    return InMemorySummaryStore()


@pytest.fixture
def service(summary_store, extraction_client, conversations, template_source):
    from threadmem.services.summary_memory.collaborators import SettingsEnablementPolicy
    from threadmem.services.summary_memory.merger import SummaryMerger
    from threadmem.services.summary_memory.service import SummaryMemoryService
    return SummaryMemoryService(
        store=summary_store,
        extraction_client=extraction_client,
        conversations=conversations,
        templates=template_source,
        policy=SettingsEnablementPolicy(enabled=True, disabled_threads=["muted"]),
        merger=SummaryMerger(max_deltas=20),
        digest_max_chars=1500,
        save_attempts=3,
        digest_cache_ttl=0,
    )


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI Test Client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
async def app(service):
    """Create FastAPI app for testing, wired to the in-memory service."""
    # Import here to ensure env vars are set first
    from threadmem.main import app as fastapi_app
    from threadmem.services.summary_memory.service import set_summary_memory_service
    set_summary_memory_service(service)
    yield fastapi_app
    set_summary_memory_service(None)
    if hasattr(fastapi_app.state, "summary_worker"):
        del fastapi_app.state.summary_worker


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing API endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
