"""Answer synthesis over a classified search payload."""

from abc import ABC, abstractmethod
from typing import Optional

from knowledge_ingestion.models.retrieval import SearchPayload
from knowledge_ingestion.services.llm_service import LLMService
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("summarizer_service")

INTERPRETER_SYSTEM_PROMPT = """You answer customer questions using knowledge base search results.

Rules:
- Use only the information in the search results. Never invent facts.
- Keep the answer to 2-3 sentences, however much context you are given.
- Write one answer in your own words. Never copy a passage verbatim.
- When the results come from several documents, combine them into a single answer.
- If the results do not answer the question, say so and offer to connect the user with a person who can help."""


class Summarizer(ABC):
    """Turns a search payload into a short natural-language answer."""

    @abstractmethod
    async def summarize(self, query: str, payload: SearchPayload) -> str:
        ...


class LLMSummarizer(Summarizer):
    """Summarizer backed by a LiteLLM chat completion."""

    def __init__(self, llm: Optional[LLMService] = None, model: Optional[str] = None):
        self._llm = llm or LLMService()
        self._model = model

    async def summarize(self, query: str, payload: SearchPayload) -> str:
        sources = ", ".join(payload.document_names)
        user_content = (
            f'User asked: "{query}"\n\n'
            f"Found results in {sources}. Here is the context:\n\n{payload.context}\n\n"
            f"Instructions: {payload.instruction}"
        )
        logger.debug(f"Summarizing {len(payload.documents)} documents for query: {query[:80]}")
        return await self._llm.complete(
            [
                {"role": "system", "content": INTERPRETER_SYSTEM_PROMPT},
                {"role": "user", "content": user_content},
            ],
            model=self._model,
        )
