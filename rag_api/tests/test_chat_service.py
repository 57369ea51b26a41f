"""
Tests for the question answering service.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock

from ..chat_service import ChatService, unique_sources
from ..errors import GatewayError
from ..gateway import Citation, MemoryAnswer

TEST_QUESTION = "What is RAG?"


def make_answer(result="An answer.", sources=()):
    return MemoryAnswer(
        question=TEST_QUESTION,
        result=result,
        relevant_sources=[Citation(source_name=name) for name in sources]
    )


@pytest.fixture
def gateway():
    gateway = AsyncMock()
    gateway.ask = AsyncMock(return_value=make_answer())
    return gateway


@pytest.fixture
def service(gateway):
    return ChatService(gateway, min_relevance=0.0)


@pytest.mark.asyncio
@pytest.mark.parametrize("question", [None, "", "   ", "\t\n "])
async def test_blank_question_returns_empty_response(service, gateway, question):
    result = await service.ask_question(question)

    assert result.answer == ""
    assert result.sources == []
    gateway.ask.assert_not_awaited()


@pytest.mark.asyncio
async def test_question_is_forwarded_unchanged(service, gateway):
    question = "  What is RAG?  "

    await service.ask_question(question)

    gateway.ask.assert_awaited_once_with(question, min_relevance=0.0)


@pytest.mark.asyncio
async def test_min_relevance_is_passed_to_gateway(gateway):
    service = ChatService(gateway, min_relevance=0.6)

    await service.ask_question(TEST_QUESTION)

    gateway.ask.assert_awaited_once_with(TEST_QUESTION, min_relevance=0.6)


@pytest.mark.asyncio
async def test_answer_is_passed_through(service, gateway):
    gateway.ask.return_value = make_answer(
        "RAG stands for Retrieval-Augmented Generation.", ["doc1.pdf"]
    )

    result = await service.ask_question(TEST_QUESTION)

    assert result.answer == "RAG stands for Retrieval-Augmented Generation."
    assert result.sources == ["doc1.pdf"]


@pytest.mark.asyncio
async def test_sources_are_deduplicated_in_order(service, gateway):
    gateway.ask.return_value = make_answer(sources=["a.pdf", "b.pdf", "a.pdf"])

    result = await service.ask_question(TEST_QUESTION)

    assert result.sources == ["a.pdf", "b.pdf"]


@pytest.mark.asyncio
async def test_source_deduplication_is_case_sensitive(service, gateway):
    gateway.ask.return_value = make_answer(sources=["Doc.pdf", "doc.pdf", "Doc.pdf"])

    result = await service.ask_question(TEST_QUESTION)

    assert result.sources == ["Doc.pdf", "doc.pdf"]


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    GatewayError("index is empty"),
    asyncio.TimeoutError(),
    RuntimeError("connection reset"),
])
async def test_gateway_failure_returns_empty_response(service, gateway, error):
    gateway.ask.side_effect = error

    result = await service.ask_question(TEST_QUESTION)

    assert result.answer == ""
    assert result.sources == []
    gateway.ask.assert_awaited_once()


@pytest.mark.asyncio
async def test_malformed_gateway_result_returns_empty_response(service, gateway):
    gateway.ask.return_value = None

    result = await service.ask_question(TEST_QUESTION)

    assert result.answer == ""
    assert result.sources == []


@pytest.mark.asyncio
async def test_source_without_name_returns_empty_response(service, gateway):
    gateway.ask.return_value = MemoryAnswer(
        question=TEST_QUESTION,
        result="An answer.",
        relevant_sources=[Citation(source_name=None)]
    )

    result = await service.ask_question(TEST_QUESTION)

    assert result.answer == ""
    assert result.sources == []


@pytest.mark.asyncio
async def test_try_ask_tells_skipped_from_failed(service, gateway):
    skipped = await service.try_ask("   ")
    assert skipped.skipped
    assert skipped.error is None
    assert not skipped.ok

    error = GatewayError("ollama unreachable")
    gateway.ask.side_effect = error
    failed = await service.try_ask(TEST_QUESTION)
    assert not failed.skipped
    assert failed.error is error
    assert not failed.ok

    gateway.ask.side_effect = None
    answered = await service.try_ask(TEST_QUESTION)
    assert answered.ok
    assert answered.response.answer == "An answer."


def test_unique_sources():
    assert unique_sources([]) == []
    assert unique_sources(["x", "y", "x", "z", "y"]) == ["x", "y", "z"]
