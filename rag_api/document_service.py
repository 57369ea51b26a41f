import asyncio
import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional

from rag_api.gateway import MemoryGateway

logger = logging.getLogger(__name__)


@dataclass
class IngestionOutcome:
    document_id: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DocumentService:
    """Validates uploaded documents and hands them to the memory gateway."""

    def __init__(self, gateway: MemoryGateway, readiness_delay: float = 0.0):
        self.gateway = gateway
        self.readiness_delay = readiness_delay

    async def ingest_document(self, stream: Optional[BinaryIO], file_name: Optional[str]) -> bool:
        """Import a document. Returns False on invalid input or any gateway failure."""
        outcome = await self.try_ingest(stream, file_name)
        return outcome.ok

    async def try_ingest(self, stream: Optional[BinaryIO], file_name: Optional[str]) -> IngestionOutcome:
        if not _is_readable(stream) or not file_name:
            logger.warning(f"Rejected document '{file_name}': missing stream or file name")
            return IngestionOutcome(error=ValueError("stream and file name are required"))

        try:
            document_id = await self.gateway.import_document(stream, file_name)
        except Exception as e:
            logger.error(f"Failed to ingest {file_name}: {type(e).__name__}: {str(e)}", exc_info=True)
            return IngestionOutcome(error=e)

        logger.info(f"Ingested {file_name} as document {document_id}")

        if self.readiness_delay > 0 and document_id is not None:
            await self._log_readiness(document_id, file_name)

        return IngestionOutcome(document_id=document_id)

    async def _log_readiness(self, document_id: str, file_name: str) -> None:
        await asyncio.sleep(self.readiness_delay)
        try:
            ready = await self.gateway.is_document_ready(document_id)
        except Exception as e:
            logger.warning(f"Readiness check for {file_name} failed: {str(e)}")
            return

        if ready:
            logger.info(f"Document {document_id} ({file_name}) is ready for search")
        else:
            logger.info(f"Document {document_id} ({file_name}) is not searchable yet")


def _is_readable(stream) -> bool:
    if stream is None:
        return False
    readable = getattr(stream, "readable", None)
    if readable is None:
        return hasattr(stream, "read")
    try:
        return bool(readable())
    except ValueError:
        # closed file
        return False
