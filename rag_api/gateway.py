"""
Memory gateway: the boundary between the API and the RAG backend.

The gateway owns everything that touches the backing services. Documents are
stored on disk, split and embedded into a Qdrant collection; questions are
answered by retrieving the most relevant chunks and asking an Ollama model to
answer from them. The API services only ever see the ``MemoryGateway``
interface and ``GatewayError``.
"""
import asyncio
import logging
import os
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Protocol

import aiofiles
import httpx
from langchain_core.prompts import PromptTemplate
from langchain_ollama import OllamaEmbeddings, OllamaLLM
from langchain_qdrant import QdrantVectorStore
from qdrant_client import QdrantClient
from qdrant_client.http import models

from rag_api.documents import DocumentProcessor
from rag_api.errors import DocumentTooLargeError, GatewayError, UnsupportedDocumentError

logger = logging.getLogger(__name__)

__all__ = [
    "Citation",
    "DocumentTooLargeError",
    "GatewayError",
    "MemoryAnswer",
    "MemoryGateway",
    "NOT_FOUND_ANSWER",
    "QdrantMemoryGateway",
    "UnsupportedDocumentError",
]

NOT_FOUND_ANSWER = "INFO NOT FOUND"

FACTS_PROMPT = """Facts:
{facts}
======
Using only the facts above, give a complete answer to the question.
Do not mention where the facts come from.
If the facts are not enough to answer, reply with '""" + NOT_FOUND_ANSWER + """'.
Question: {question}
Answer:"""


@dataclass
class Citation:
    """A document chunk that contributed to an answer."""
    source_name: str
    document_id: Optional[str] = None
    relevance: float = 0.0


@dataclass
class MemoryAnswer:
    question: str
    result: str
    relevant_sources: List[Citation] = field(default_factory=list)


class MemoryGateway(Protocol):
    """Capabilities the API needs from the RAG backend."""

    async def import_document(self, stream: BinaryIO, file_name: str) -> str:
        ...

    async def is_document_ready(self, document_id: str) -> bool:
        ...

    async def ask(self, question: str, min_relevance: float = 0.0) -> MemoryAnswer:
        ...

    async def health(self) -> Dict[str, str]:
        ...


def build_embeddings(provider: str, model_name: str, ollama_url: str):
    """Create the embedding model for the configured provider."""
    if provider == "ollama":
        return OllamaEmbeddings(model=model_name, base_url=ollama_url)
    if provider == "huggingface":
        from langchain_community.embeddings import HuggingFaceEmbeddings
        return HuggingFaceEmbeddings(model_name=model_name)
    raise ValueError(f"Unknown embedding provider: {provider}")


class QdrantMemoryGateway:
    def __init__(
        self,
        qdrant_url: str,
        ollama_url: str,
        collection_name: str = "rag_collection",
        llm_model: str = "llama3",
        embedding_model: str = "nomic-embed-text",
        embedding_provider: str = "ollama",
        storage_dir: str = "./data",
        qdrant_api_key: Optional[str] = None,
        max_document_size: int = 10 * 1024 * 1024,
        max_concurrent_requests: int = 4,
        timeout: float = 120.0,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        top_k: int = 5,
        client: Optional[QdrantClient] = None,
        embeddings=None,
        llm=None,
    ):
        """
        Initialize the gateway. No backend is contacted until the first call.

        Args:
            qdrant_url: URL of the Qdrant server
            ollama_url: URL of the Ollama server
            collection_name: Name of the Qdrant collection
            llm_model: Name of the Ollama model used to answer questions
            embedding_model: Name of the embedding model
            embedding_provider: ``ollama`` or ``huggingface``
            storage_dir: Directory where raw document bytes are kept
            qdrant_api_key: Optional Qdrant API key
            max_document_size: Largest accepted document, in bytes
            max_concurrent_requests: Backend operations allowed in flight at once
            timeout: Seconds allowed for answering a question
            chunk_size: Maximum size of each text chunk (in characters)
            chunk_overlap: Number of characters to overlap between chunks
            top_k: Number of chunks retrieved per question
            client, embeddings, llm: Prebuilt backend clients, mainly for tests
        """
        self.qdrant_url = qdrant_url
        self.ollama_url = ollama_url.rstrip("/")
        self.collection_name = collection_name
        self.llm_model = llm_model
        self.embedding_model = embedding_model
        self.storage_dir = Path(storage_dir)
        self.max_document_size = max_document_size
        self.timeout = timeout
        self.top_k = top_k

        self.client = client or QdrantClient(url=qdrant_url, api_key=qdrant_api_key or None)
        self.embeddings = embeddings or build_embeddings(embedding_provider, embedding_model, self.ollama_url)
        self.llm = llm or OllamaLLM(
            base_url=self.ollama_url,
            model=llm_model,
            temperature=0.1,
            num_ctx=4096,
        )
        self.prompt = PromptTemplate(template=FACTS_PROMPT, input_variables=["facts", "question"])
        self.chain = self.prompt | self.llm
        self.processor = DocumentProcessor(chunk_size=chunk_size, chunk_overlap=chunk_overlap)

        self._semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._store_lock = asyncio.Lock()
        self._store: Optional[QdrantVectorStore] = None

        logger.info(
            f"Memory gateway configured: qdrant={qdrant_url}, ollama={self.ollama_url}, "
            f"collection={collection_name}, model={llm_model}, embeddings={embedding_model}"
        )

    @classmethod
    def from_settings(cls, settings) -> "QdrantMemoryGateway":
        return cls(
            qdrant_url=settings.QDRANT_URL,
            ollama_url=settings.OLLAMA_URL,
            collection_name=settings.COLLECTION_NAME,
            llm_model=settings.OLLAMA_MODEL,
            embedding_model=settings.EMBEDDING_MODEL,
            embedding_provider=settings.EMBEDDING_PROVIDER,
            storage_dir=settings.STORAGE_DIR,
            qdrant_api_key=settings.QDRANT_API_KEY,
            max_document_size=settings.MAX_DOCUMENT_SIZE,
            max_concurrent_requests=settings.MAX_CONCURRENT_REQUESTS,
            timeout=settings.GATEWAY_TIMEOUT,
            chunk_size=settings.CHUNK_SIZE,
            chunk_overlap=settings.CHUNK_OVERLAP,
            top_k=settings.TOP_K,
        )

    async def import_document(self, stream: BinaryIO, file_name: str) -> str:
        """
        Store, split and index a document.

        Args:
            stream: Readable binary stream with the document content
            file_name: Name of the document, used as its source name

        Returns:
            Identifier of the imported document

        Raises:
            GatewayError: The document could not be stored or indexed
        """
        document_id = uuid.uuid4().hex
        loop = asyncio.get_event_loop()

        async with self._semaphore:
            content = await loop.run_in_executor(None, self._read_stream, stream, file_name)
            chunks = await loop.run_in_executor(
                None,
                lambda: self.processor.process(content, file_name, {"document_id": document_id})
            )

            await self._store_raw(document_id, file_name, content)
            try:
                store = await self._get_store(create=True)
                await store.aadd_documents(chunks)
            except GatewayError:
                self._remove_raw(document_id)
                raise
            except Exception as e:
                self._remove_raw(document_id)
                raise GatewayError(f"Failed to index {file_name}: {str(e)}") from e

        logger.info(f"Imported {file_name} as document {document_id} ({len(chunks)} chunks)")
        return document_id

    async def is_document_ready(self, document_id: str) -> bool:
        """Best-effort check that a document's chunks are searchable."""
        loop = asyncio.get_event_loop()
        try:
            result = await loop.run_in_executor(
                None,
                lambda: self.client.count(
                    collection_name=self.collection_name,
                    count_filter=models.Filter(
                        must=[
                            models.FieldCondition(
                                key="metadata.document_id",
                                match=models.MatchValue(value=document_id)
                            )
                        ]
                    ),
                    exact=True
                )
            )
        except Exception as e:
            logger.warning(f"Readiness check failed for document {document_id}: {str(e)}")
            return False
        return result.count > 0

    async def ask(self, question: str, min_relevance: float = 0.0) -> MemoryAnswer:
        """
        Answer a question from the indexed documents.

        Args:
            question: The user's question
            min_relevance: Minimum relevance score a chunk needs to be used

        Returns:
            The answer and the chunks it was drawn from, most relevant first

        Raises:
            GatewayError: The backend failed, timed out, or nothing has been indexed
        """
        try:
            return await asyncio.wait_for(self._ask(question, min_relevance), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise GatewayError(f"Answering timed out after {self.timeout} seconds") from e

    async def health(self) -> Dict[str, str]:
        services = {}
        loop = asyncio.get_event_loop()

        try:
            await loop.run_in_executor(None, self.client.get_collections)
            services["qdrant"] = "ok"
        except Exception as e:
            services["qdrant"] = f"error: {str(e)}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{self.ollama_url}/api/tags", timeout=5.0)
                response.raise_for_status()
            services["ollama"] = "ok"
        except Exception as e:
            services["ollama"] = f"error: {str(e)}"

        return services

    async def _ask(self, question: str, min_relevance: float) -> MemoryAnswer:
        async with self._semaphore:
            store = await self._get_store(create=False)

            search_kwargs = {}
            if min_relevance > 0:
                search_kwargs["score_threshold"] = min_relevance
            try:
                hits = await store.asimilarity_search_with_relevance_scores(
                    question, k=self.top_k, **search_kwargs
                )
            except Exception as e:
                raise GatewayError(f"Vector search failed: {str(e)}") from e

            logger.info(f"Found {len(hits)} relevant chunks in '{self.collection_name}'")
            if not hits:
                return MemoryAnswer(question=question, result=NOT_FOUND_ANSWER)

            facts = "\n\n".join(
                f"--- Source {i} ({doc.metadata.get('source', 'unknown')}) ---\n{doc.page_content}"
                for i, (doc, _) in enumerate(hits, 1)
            )
            try:
                answer = await self.chain.ainvoke({"facts": facts, "question": question})
            except Exception as e:
                raise GatewayError(f"Text generation failed: {str(e)}") from e

        citations = [
            Citation(
                source_name=doc.metadata.get("source", "unknown"),
                document_id=doc.metadata.get("document_id"),
                relevance=score
            )
            for doc, score in hits
        ]
        return MemoryAnswer(question=question, result=answer.strip(), relevant_sources=citations)

    def _read_stream(self, stream: BinaryIO, file_name: str) -> bytes:
        try:
            content = stream.read(self.max_document_size + 1)
        except Exception as e:
            raise GatewayError(f"Could not read {file_name}: {str(e)}") from e
        if len(content) > self.max_document_size:
            raise DocumentTooLargeError(file_name, self.max_document_size)
        return content

    async def _store_raw(self, document_id: str, file_name: str, content: bytes) -> None:
        target_dir = self.storage_dir / document_id
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target_dir / os.path.basename(file_name), "wb") as f:
                await f.write(content)
        except OSError as e:
            self._remove_raw(document_id)
            raise GatewayError(f"Could not store {file_name}: {str(e)}") from e

    def _remove_raw(self, document_id: str) -> None:
        shutil.rmtree(self.storage_dir / document_id, ignore_errors=True)

    async def _get_store(self, create: bool) -> QdrantVectorStore:
        """Return the vector store, creating the collection if allowed."""
        async with self._store_lock:
            if self._store is not None:
                return self._store

            loop = asyncio.get_event_loop()
            try:
                exists = await loop.run_in_executor(None, self.client.collection_exists, self.collection_name)
                if not exists:
                    if not create:
                        raise GatewayError(
                            f"Collection '{self.collection_name}' does not exist; no documents have been ingested"
                        )
                    await loop.run_in_executor(None, self._create_collection)

                self._store = await loop.run_in_executor(
                    None,
                    lambda: QdrantVectorStore(
                        client=self.client,
                        collection_name=self.collection_name,
                        embedding=self.embeddings,
                    )
                )
            except GatewayError:
                raise
            except Exception as e:
                raise GatewayError(f"Vector store unavailable: {str(e)}") from e

            return self._store

    def _create_collection(self) -> None:
        vector_size = len(self.embeddings.embed_query("dimension probe"))
        logger.info(f"Creating collection '{self.collection_name}' with vector size {vector_size}")
        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=models.VectorParams(
                size=vector_size,
                distance=models.Distance.COSINE
            )
        )
