"""Turn stored bytes plus a MIME type into plain text."""

import asyncio
import base64
import io
from abc import ABC, abstractmethod
from typing import Optional

import trafilatura
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.services.llm_service import LLMService
from knowledge_ingestion.services.storage_service import BlobStorage
from knowledge_ingestion.utils.errors import (
    ExternalServiceError,
    ExtractionFailedError,
    ExtractionFailureReason,
)
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("extraction_service")
settings = get_settings()

IMAGE_MIME_TYPES = frozenset(["image/jpeg", "image/png", "image/webp", "image/gif"])
PASSTHROUGH_MIME_TYPES = frozenset(["text/plain", "text/markdown", "text/csv"])

IMAGE_SYSTEM_PROMPT = (
    "You turn images into text. If the image shows a document, transcribe it. "
    "Otherwise describe it."
)
PDF_SYSTEM_PROMPT = "You transform PDF files into plain text. Output only the document text."
MARKDOWN_SYSTEM_PROMPT = "You transform content into markdown. Output only the converted content."


class ContentExtractor(ABC):
    """Collaborator that produces plain text for an ingestion job."""

    @abstractmethod
    async def extract(self, storage_handle: str, filename: str, mime_type: str) -> str:
        """
        Raises:
            ExtractionFailedError: With a reason of unsupported_type,
                upstream_timeout, payload_too_large, empty_content or upstream_error
        """


class ContentExtractionService(ContentExtractor):
    """
    Default extractor.

    - text/plain, text/markdown, text/csv: decoded as UTF-8
    - text/html: main content via trafilatura, LLM conversion as fallback
    - other text/*: LLM conversion to markdown
    - images: LLM transcription or description
    - application/pdf: PyPDF2 text layer, LLM fallback for scanned files
    """

    def __init__(self, storage: BlobStorage, llm: Optional[LLMService] = None):
        self._storage = storage
        self._llm = llm or LLMService()

    async def extract(self, storage_handle: str, filename: str, mime_type: str) -> str:
        mime = (mime_type or "").split(";", 1)[0].strip().lower()
        if not self._is_supported(mime):
            raise ExtractionFailedError(
                f"Unsupported MIME type: {mime_type}",
                reason=ExtractionFailureReason.UNSUPPORTED_TYPE,
                mime_type=mime_type,
            )

        data = await self._storage.get(storage_handle)
        if len(data) > settings.extraction.max_bytes:
            raise ExtractionFailedError(
                f"File is too large to extract ({len(data)} bytes)",
                reason=ExtractionFailureReason.PAYLOAD_TOO_LARGE,
                mime_type=mime,
                details={"size": len(data), "limit": settings.extraction.max_bytes},
            )

        logger.info(f"Extracting text: filename={filename}, mime_type={mime}, size={len(data)}")
        try:
            if mime in IMAGE_MIME_TYPES:
                text = await self._extract_image(data, mime)
            elif mime == "application/pdf":
                text = await self._extract_pdf(data, filename)
            elif mime in PASSTHROUGH_MIME_TYPES:
                text = data.decode("utf-8", errors="replace")
            elif mime == "text/html":
                text = await self._extract_html(data)
            else:
                text = await self._to_markdown(data.decode("utf-8", errors="replace"))
        except asyncio.TimeoutError as e:
            raise ExtractionFailedError(
                f"Extraction timed out for {filename}",
                reason=ExtractionFailureReason.UPSTREAM_TIMEOUT,
                mime_type=mime,
            ) from e
        except ExternalServiceError as e:
            raise ExtractionFailedError(
                f"Extraction service failed for {filename}: {e.message}",
                reason=ExtractionFailureReason.UPSTREAM_ERROR,
                mime_type=mime,
            ) from e

        if not text or not text.strip():
            raise ExtractionFailedError(
                f"No text could be extracted from {filename}",
                reason=ExtractionFailureReason.EMPTY_CONTENT,
                mime_type=mime,
            )
        return text

    @staticmethod
    def _is_supported(mime: str) -> bool:
        return mime in IMAGE_MIME_TYPES or mime == "application/pdf" or mime.startswith("text/")

    async def _extract_image(self, data: bytes, mime: str) -> str:
        data_url = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
        return await self._llm.complete(
            [
                {"role": "system", "content": IMAGE_SYSTEM_PROMPT},
                {"role": "user", "content": [{"type": "image_url", "image_url": {"url": data_url}}]},
            ],
            model=settings.llm.vision_model,
        )

    async def _extract_pdf(self, data: bytes, filename: str) -> str:
        text = await asyncio.to_thread(self._read_pdf_text_layer, data, filename)
        if text.strip():
            return text

        logger.info(f"PDF has no text layer, falling back to LLM: {filename}")
        file_data = f"data:application/pdf;base64,{base64.b64encode(data).decode('ascii')}"
        return await self._llm.complete(
            [
                {"role": "system", "content": PDF_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "file", "file": {"file_data": file_data, "filename": filename}},
                        {"type": "text", "text": "Extract the text from the PDF file."},
                    ],
                },
            ],
            model=settings.llm.vision_model,
        )

    @staticmethod
    def _read_pdf_text_layer(data: bytes, filename: str) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
        except PdfReadError as e:
            raise ExtractionFailedError(
                f"Could not read PDF {filename}: {e}",
                reason=ExtractionFailureReason.UPSTREAM_ERROR,
                mime_type="application/pdf",
            ) from e

        parts = []
        for page_num, page in enumerate(reader.pages, start=1):
            try:
                page_text = page.extract_text() or ""
            except Exception as page_error:
                logger.warning(f"Failed to extract text from page {page_num} in {filename}: {page_error}")
                continue
            if page_text.strip():
                parts.append(page_text)
        return "\n\n".join(parts)

    async def _extract_html(self, data: bytes) -> str:
        html = data.decode("utf-8", errors="replace")
        markdown = await asyncio.to_thread(
            trafilatura.extract, html, output_format="markdown", include_tables=True
        )
        if markdown and markdown.strip():
            return markdown
        return await self._to_markdown(html)

    async def _to_markdown(self, content: str) -> str:
        return await self._llm.complete(
            [
                {"role": "system", "content": MARKDOWN_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ]
        )
