"""Text chunking for ingestion.

Text is cut into character windows of a target size. Every window except the
last is pulled back to the last sentence terminator (". ") or newline when one
falls inside the trailing part of the window, so chunks rarely end
mid-sentence. Consecutive windows overlap by a fixed number of characters.
Output is a pure function of its inputs; chunk content hashes rely on that.
"""

from typing import List, Optional, Tuple

import tiktoken

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.models.chunk import TextChunk
from knowledge_ingestion.utils.errors import ChunkingError
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("chunking_service")
settings = get_settings()

_SENTENCE_BREAK = ". "
_LINE_BREAK = "\n"


def chunk_spans(
    text: str,
    target_size: int,
    overlap: int,
    boundary_window: float = 0.3,
) -> List[Tuple[int, int]]:
    """
    Compute the raw (start, end) window offsets used by `chunk_text`.

    The first window starts at 0, the last one ends at len(text), and each
    window starts no later than the previous one ended.
    """
    length = len(text)
    if length <= target_size:
        return [(0, length)]

    min_break = target_size * (1 - boundary_window)
    spans: List[Tuple[int, int]] = []
    start = 0
    while start < length:
        end = min(start + target_size, length)

        if end < length:
            window = text[start:end]
            last_period = window.rfind(_SENTENCE_BREAK)
            last_newline = window.rfind(_LINE_BREAK)
            last_break = max(last_period, last_newline)
            if last_break > min_break:
                # keep the terminator with the chunk it ends
                end = start + last_break + (len(_SENTENCE_BREAK) if last_period > last_newline else 1)

        spans.append((start, end))
        if end >= length:
            break
        start = max(end - overlap, start + 1)

    return spans


def chunk_text(
    text: str,
    target_size: int,
    overlap: int,
    boundary_window: float = 0.3,
) -> List[str]:
    """
    Split text into overlapping, boundary-aware chunks.

    Args:
        text: Extracted document text
        target_size: Window size in characters
        overlap: Characters shared by consecutive windows
        boundary_window: Trailing fraction of a window searched for a break

    Returns:
        Ordered, non-empty, whitespace-stripped chunks. Text no longer than
        `target_size` comes back unchanged as a single chunk.
    """
    if len(text) <= target_size:
        return [text]

    chunks = []
    for start, end in chunk_spans(text, target_size, overlap, boundary_window):
        piece = text[start:end].strip()
        if piece:
            chunks.append(piece)

    return chunks or [text]


class ChunkingService:
    """Chunk extracted text and annotate chunks with index and token count."""

    def __init__(self, encoding_name: Optional[str] = None):
        """
        Args:
            encoding_name: tiktoken encoding for token counts. Defaults to
                CHUNK_ENCODING_NAME; pass an empty string to skip counting.
        """
        name = settings.chunking.encoding_name if encoding_name is None else encoding_name
        self._encoding = tiktoken.get_encoding(name) if name else None

    def chunk(
        self,
        text: str,
        target_size: Optional[int] = None,
        overlap: Optional[int] = None,
        boundary_window: Optional[float] = None,
    ) -> List[TextChunk]:
        """
        Chunk text using configured defaults for any parameter left out.

        Raises:
            ChunkingError: If the text is empty or the parameters are invalid
        """
        if text is None or not text.strip():
            raise ChunkingError("Text is empty")

        target_size = target_size if target_size is not None else settings.chunking.size
        overlap = overlap if overlap is not None else settings.chunking.overlap
        boundary_window = (
            boundary_window if boundary_window is not None else settings.chunking.boundary_window
        )

        if target_size <= 0:
            raise ChunkingError("target_size must be > 0", details={"target_size": target_size})
        if overlap < 0:
            raise ChunkingError("overlap must be >= 0", details={"overlap": overlap})

        pieces = chunk_text(text, target_size, overlap, boundary_window)
        chunks = [
            TextChunk(chunk_index=i, text=piece, token_count=self._count_tokens(piece))
            for i, piece in enumerate(pieces)
        ]

        logger.info(
            f"Chunked text: characters={len(text)}, chunks={len(chunks)}, "
            f"target_size={target_size}, overlap={overlap}"
        )
        return chunks

    def _count_tokens(self, text: str) -> int:
        if self._encoding is None:
            return 0
        return len(self._encoding.encode(text))
