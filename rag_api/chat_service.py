"""
Question answering on top of the memory gateway.

Backend failures are collapsed into the same empty response returned for a
blank question, so callers cannot tell them apart. The log can: blank
questions are logged at INFO, backend failures at ERROR with the cause.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from rag_api.config import settings
from rag_api.gateway import MemoryGateway
from rag_api.models import ChatResponse

logger = logging.getLogger(__name__)


@dataclass
class AnswerOutcome:
    response: ChatResponse
    error: Optional[Exception] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


def unique_sources(names: Iterable[str]) -> List[str]:
    """Drop repeated source names, keeping the first occurrence of each."""
    seen = set()
    result = []
    for name in names:
        if name not in seen:
            seen.add(name)
            result.append(name)
    return result


class ChatService:
    def __init__(self, gateway: MemoryGateway, min_relevance: Optional[float] = None):
        self.gateway = gateway
        self.min_relevance = settings.MIN_RELEVANCE if min_relevance is None else min_relevance

    async def ask_question(self, question: Optional[str]) -> ChatResponse:
        outcome = await self.try_ask(question)
        return outcome.response

    async def try_ask(self, question: Optional[str]) -> AnswerOutcome:
        if question is None or not question.strip():
            logger.info("Skipping blank question")
            return AnswerOutcome(response=ChatResponse.empty(), skipped=True)

        logger.info(f"Processing question: {question[:100]}")
        try:
            result = await self.gateway.ask(question, min_relevance=self.min_relevance)
            response = self._to_response(result)
        except Exception as e:
            logger.error(
                f"Question answering failed: {type(e).__name__}: {str(e)}",
                exc_info=True
            )
            return AnswerOutcome(response=ChatResponse.empty(), error=e)

        logger.info(f"Answered with {len(response.sources)} sources")
        return AnswerOutcome(response=response)

    @staticmethod
    def _to_response(result) -> ChatResponse:
        if result is None or not isinstance(result.result, str):
            raise ValueError("Gateway returned no answer")

        names = []
        for source in result.relevant_sources or []:
            name = getattr(source, "source_name", None)
            if not isinstance(name, str):
                raise ValueError(f"Gateway returned a source without a name: {source!r}")
            names.append(name)

        return ChatResponse(answer=result.result, sources=unique_sources(names))
