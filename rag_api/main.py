import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rag_api.chat_service import ChatService
from rag_api.config import settings
from rag_api.document_service import DocumentService
from rag_api.gateway import MemoryGateway, QdrantMemoryGateway
from rag_api.models import ChatRequest, ChatResponse, DocumentUploadResponse, HealthResponse

# Setup logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# --------- Dependencies ---------
def get_gateway(request: Request) -> MemoryGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Memory gateway is not initialized"
        )
    return gateway


def get_chat_service(gateway: MemoryGateway = Depends(get_gateway)) -> ChatService:
    return ChatService(gateway)


def get_document_service(gateway: MemoryGateway = Depends(get_gateway)) -> DocumentService:
    return DocumentService(gateway, readiness_delay=settings.READINESS_CHECK_DELAY)


def _upload_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)
    return size


# --------- Endpoints ---------
router = APIRouter()


@router.post("/ask", response_model=ChatResponse, tags=["chat"])
@router.post("/api/chat", response_model=ChatResponse, tags=["chat"], include_in_schema=False)
async def ask_question(
    request: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Ask a question using RAG (Retrieval Augmented Generation).

    Returns the answer with the names of the documents it was drawn from.
    A backend failure yields an empty answer, not an error status.
    """
    if request.question is None or not request.question.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Question is required."
        )

    return await chat_service.ask_question(request.question)


@router.post("/upload", response_model=DocumentUploadResponse, tags=["documents"])
@router.post("/api/ingest", response_model=DocumentUploadResponse, tags=["documents"], include_in_schema=False)
async def upload_document(
    file: Optional[UploadFile] = File(None),
    document_service: DocumentService = Depends(get_document_service)
):
    """Upload a document and add it to the searchable memory."""
    if file is None or not file.filename or _upload_size(file) == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded."
        )

    logger.info(f"Received upload: {file.filename}")
    ingested = await document_service.ingest_document(file.file, file.filename)
    if not ingested:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error ingesting document."
        )

    return DocumentUploadResponse(message="Document ingested successfully.", file_name=file.filename)


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health(request: Request):
    """Report the state of the backing services."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        services = {"qdrant": "not initialized", "ollama": "not initialized"}
    else:
        services = await gateway.health()

    return HealthResponse(
        status="ok" if all(state == "ok" for state in services.values()) else "degraded",
        services=services,
        collection=settings.COLLECTION_NAME,
        model=settings.OLLAMA_MODEL,
        embedding_model=settings.EMBEDDING_MODEL
    )


# --------- App ---------
def create_app(gateway: Optional[MemoryGateway] = None) -> FastAPI:
    """Build the API. The gateway is created from settings at startup unless one is given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "gateway", None) is None:
            app.state.gateway = QdrantMemoryGateway.from_settings(settings)
        logger.info("RAG API started")
        yield
        logger.info("RAG API stopped")

    app = FastAPI(
        title="RAG API",
        description="Document ingestion and question answering over a RAG backend",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Rejected malformed request to {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())}
        )

    app.include_router(router)
    return app


app = create_app()
