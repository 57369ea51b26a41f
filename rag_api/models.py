"""
Request and response models for the RAG API.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    question: Optional[str] = Field(
        None,
        description="The question to ask. Required and must not be blank."
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"question": "What is RAG?"}
        }
    )


class ChatResponse(BaseModel):
    answer: str = Field("", description="The generated answer")
    sources: List[str] = Field(
        default_factory=list,
        description="Names of the documents the answer was drawn from, without duplicates"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "answer": "RAG stands for Retrieval-Augmented Generation.",
                "sources": ["doc1.pdf"]
            }
        }
    )

    @classmethod
    def empty(cls) -> "ChatResponse":
        return cls(answer="", sources=[])


class DocumentUploadResponse(BaseModel):
    message: str
    file_name: str = Field(..., alias="fileName")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "message": "Document ingested successfully.",
                "fileName": "example.pdf"
            }
        }
    )


class HealthResponse(BaseModel):
    status: str
    services: Dict[str, str]
    collection: str
    model: str
    embedding_model: str
