import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from ..gateway import Citation, MemoryAnswer
from ..main import create_app

TEST_QUESTION = "What is RAG?"
TEST_ANSWER = "RAG stands for Retrieval-Augmented Generation."


@pytest.fixture
def mock_gateway():
    """Fixture providing a memory gateway double with canned answers."""
    gateway = AsyncMock()
    gateway.import_document = AsyncMock(return_value="doc-123")
    gateway.is_document_ready = AsyncMock(return_value=True)
    gateway.ask = AsyncMock(return_value=MemoryAnswer(
        question=TEST_QUESTION,
        result=TEST_ANSWER,
        relevant_sources=[Citation(source_name="doc1.pdf", document_id="doc-1", relevance=0.87)]
    ))
    gateway.health = AsyncMock(return_value={"qdrant": "ok", "ollama": "ok"})
    return gateway


@pytest.fixture
def app(mock_gateway):
    """Fixture providing an app wired to the mock gateway."""
    app = create_app(gateway=mock_gateway)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)
