import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Vector store
    QDRANT_URL: str = os.getenv("QDRANT_URL", "http://localhost:6333")
    QDRANT_API_KEY: str = os.getenv("QDRANT_API_KEY", "")
    COLLECTION_NAME: str = os.getenv("COLLECTION_NAME", "rag_collection")

    # LLM and embedding backend
    OLLAMA_URL: str = os.getenv("OLLAMA_URL", "http://localhost:11434")
    OLLAMA_MODEL: str = os.getenv("OLLAMA_MODEL", "llama3")
    EMBEDDING_PROVIDER: str = os.getenv("EMBEDDING_PROVIDER", "ollama")
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")

    # Raw document storage
    STORAGE_DIR: str = os.getenv("STORAGE_DIR", "./data")
    MAX_DOCUMENT_SIZE: int = int(os.getenv("MAX_DOCUMENT_SIZE", "10485760"))  # 10MB

    # Gateway limits
    MAX_CONCURRENT_REQUESTS: int = int(os.getenv("MAX_CONCURRENT_REQUESTS", "4"))
    GATEWAY_TIMEOUT: float = float(os.getenv("GATEWAY_TIMEOUT", "120"))

    # Retrieval
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "1000"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "200"))
    TOP_K: int = int(os.getenv("TOP_K", "5"))
    MIN_RELEVANCE: float = float(os.getenv("MIN_RELEVANCE", "0.0"))

    # Seconds to wait before probing a freshly imported document; 0 disables the probe
    READINESS_CHECK_DELAY: float = float(os.getenv("READINESS_CHECK_DELAY", "0"))

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
