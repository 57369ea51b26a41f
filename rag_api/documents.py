"""
Document Processor Module

Turns uploaded documents into text chunks ready for embedding.
Supports PDF, DOCX, and plain text files.
"""
import io
import os
import re
import magic
import logging
from typing import Any, Dict, List, Optional

from docx import Document as DocxDocument
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter
from pypdf import PdfReader

from rag_api.errors import GatewayError, UnsupportedDocumentError

logger = logging.getLogger(__name__)


class DocumentProcessor:
    """Extracts text from uploaded documents and splits it into chunks."""

    # Supported file extensions and the extractor used for each
    SUPPORTED_EXTENSIONS = {
        # Text files
        '.txt': 'text',
        '.md': 'text',
        '.markdown': 'text',
        '.csv': 'text',
        '.json': 'text',

        # Document files
        '.pdf': 'pdf',
        '.docx': 'docx',
    }

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200):
        """Initialize the document processor.

        Args:
            chunk_size: Maximum size of each text chunk (in characters)
            chunk_overlap: Number of characters to overlap between chunks
        """
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            separators=["\n\n\n", "\n\n", "\n", ". ", "? ", "! ", " ", ""]
        )

    def process(self, content: bytes, file_name: str,
                metadata: Optional[Dict[str, Any]] = None) -> List[Document]:
        """Extract the text of a document and split it into chunks.

        Args:
            content: Raw bytes of the uploaded document
            file_name: Name of the uploaded document, used to detect its type
            metadata: Extra metadata copied onto every chunk

        Returns:
            List of chunks, each carrying ``source`` and ``chunk_id`` metadata

        Raises:
            UnsupportedDocumentError: The file type is not supported
            GatewayError: The document contains no extractable text
        """
        text = self.extract_text(content, file_name)
        if not text.strip():
            raise GatewayError(f"No content extracted from {file_name}")

        base_metadata = dict(metadata or {})
        base_metadata['source'] = file_name

        chunks = []
        for i, chunk_text in enumerate(self.splitter.split_text(text)):
            chunk_metadata = base_metadata.copy()
            chunk_metadata['chunk_id'] = i
            chunks.append(Document(page_content=chunk_text, metadata=chunk_metadata))

        logger.info(f"Split {file_name} into {len(chunks)} chunks")
        return chunks

    def extract_text(self, content: bytes, file_name: str) -> str:
        file_type = self.detect_file_type(file_name, content)

        if file_type == 'pdf':
            return self._extract_pdf_text(content, file_name)
        if file_type == 'docx':
            return self._extract_docx_text(content, file_name)
        return content.decode('utf-8', errors='ignore')

    def detect_file_type(self, file_name: str, content: bytes = b"") -> str:
        """Detect the type of a document from its extension, falling back to its MIME type."""
        file_ext = os.path.splitext(file_name)[1].lower()

        if file_ext in self.SUPPORTED_EXTENSIONS:
            return self.SUPPORTED_EXTENSIONS[file_ext]
        if file_ext:
            raise UnsupportedDocumentError(f"Unsupported file type: {file_name}")

        # No extension: sniff the content
        try:
            mime_type = magic.from_buffer(content, mime=True).lower()
        except Exception as e:
            raise UnsupportedDocumentError(f"Could not detect type of {file_name}: {str(e)}") from e

        if 'pdf' in mime_type:
            return 'pdf'
        elif 'wordprocessingml' in mime_type or 'officedocument.word' in mime_type:
            return 'docx'
        elif mime_type.startswith('text/'):
            return 'text'

        raise UnsupportedDocumentError(f"Unsupported file type: {file_name} ({mime_type})")

    def _extract_pdf_text(self, content: bytes, file_name: str) -> str:
        try:
            reader = PdfReader(io.BytesIO(content))
        except Exception as e:
            raise UnsupportedDocumentError(f"Could not read PDF {file_name}: {str(e)}") from e

        text_parts = []
        for page_num, page in enumerate(reader.pages, 1):
            try:
                page_text = page.extract_text()
            except Exception as page_error:
                logger.warning(f"Error processing page {page_num} of {file_name}: {str(page_error)}")
                continue

            if page_text:
                # Collapse whitespace, keep one block per page
                page_text = re.sub(r'\s+', ' ', page_text).strip()
                text_parts.append(f"[Page {page_num}]\n{page_text}")

        if not text_parts:
            logger.warning(f"No extractable text found in PDF: {file_name}")
            return ""

        return "\n\n".join(text_parts)

    def _extract_docx_text(self, content: bytes, file_name: str) -> str:
        try:
            doc = DocxDocument(io.BytesIO(content))
        except Exception as e:
            raise UnsupportedDocumentError(f"Could not read DOCX {file_name}: {str(e)}") from e

        text_parts = [para.text.strip() for para in doc.paragraphs if para.text.strip()]

        for table in doc.tables:
            for row in table.rows:
                text_parts.append(" | ".join(cell.text.strip() for cell in row.cells))

        if not text_parts:
            logger.warning(f"No extractable text found in DOCX: {file_name}")
            return ""

        return "\n\n".join(text_parts)
