"""Retrieval gateway: classified, bounded context for the conversational agent."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.models.chunk import IndexEntry
from knowledge_ingestion.models.retrieval import (
    AgentAnswer,
    MatchedDocument,
    SearchOutcome,
    SearchPayload,
)
from knowledge_ingestion.services.document_index import DocumentIndex
from knowledge_ingestion.services.namespace_resolver import NamespaceResolver
from knowledge_ingestion.services.summarizer_service import Summarizer
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("retrieval_gateway")
settings = get_settings()

NO_RESULTS_INSTRUCTION = (
    "No information was found in the knowledge base. Tell the user you could not find "
    "an answer and offer to connect them with a person who can help."
)
SINGLE_INSTRUCTION = (
    "The context comes from one document. Answer in 2-3 sentences, "
    "however much context is supplied."
)
FEW_INSTRUCTION = (
    "The context comes from {count} documents: {names}. Synthesize one answer of "
    "2-3 sentences across them. Do not copy any single passage verbatim."
)
DISAMBIGUATION_INSTRUCTION = (
    "The question matches several documents: {names}. Do not answer yet. "
    "Ask the user which of these documents they mean."
)


def group_by_document(entries: List[IndexEntry]) -> List[MatchedDocument]:
    """Group ranked chunks by display name, keeping first-seen (best) rank order."""
    groups: Dict[str, MatchedDocument] = {}
    for entry in entries:
        name = entry.metadata.display_name
        doc = groups.get(name)
        if doc is None:
            doc = MatchedDocument(
                display_name=name,
                category=entry.metadata.category,
                best_score=entry.score,
            )
            groups[name] = doc
        if entry.text:
            doc.chunks.append(entry.text)
    return list(groups.values())


def build_context(documents: List[MatchedDocument]) -> str:
    if len(documents) == 1:
        return "\n\n".join(documents[0].chunks)
    sections = []
    for doc in documents:
        body = "\n\n".join(doc.chunks)
        sections.append(f"## {doc.display_name}\n\n{body}")
    return "\n\n".join(sections)


class RetrievalGateway:
    """
    Search one namespace and shape the result by distinct document count.

    The gateway never raises on a missing knowledge base or an index failure;
    both degrade to a `no_results` payload.
    """

    def __init__(
        self,
        resolver: NamespaceResolver,
        index: DocumentIndex,
        summarizer: Optional[Summarizer] = None,
    ):
        self._resolver = resolver
        self._index = index
        self._summarizer = summarizer

    async def search(
        self,
        query: str,
        tenant_id: str,
        knowledge_base_id: Optional[str] = None,
    ) -> SearchPayload:
        namespace = await self._resolver.resolve_for_retrieval(tenant_id, knowledge_base_id)
        if namespace is None:
            return self._empty(query)

        try:
            entries = await self._index.search(namespace, query, settings.retrieval.candidate_limit)
        except Exception as e:
            logger.warning(f"Search failed, returning no results: namespace={namespace} - {e}")
            return self._empty(query, namespace)

        documents = group_by_document(entries)
        logger.info(
            f"Search: namespace={namespace}, candidates={len(entries)}, documents={len(documents)}"
        )
        return self.classify(query, namespace, documents)

    @staticmethod
    def classify(query: str, namespace: Optional[str], documents: List[MatchedDocument]) -> SearchPayload:
        names = [d.display_name for d in documents]
        count = len(documents)

        if count == 0:
            return RetrievalGateway._empty(query, namespace)

        if count > settings.retrieval.many_threshold:
            shown = names[: settings.retrieval.max_disambiguation_names]
            return SearchPayload(
                outcome=SearchOutcome.DISAMBIGUATION,
                query=query,
                namespace=namespace,
                documents=[
                    MatchedDocument(display_name=d.display_name, category=d.category, best_score=d.best_score)
                    for d in documents[: len(shown)]
                ],
                document_names=shown,
                context="",
                instruction=DISAMBIGUATION_INSTRUCTION.format(names=", ".join(shown)),
            )

        if count == 1:
            instruction = SINGLE_INSTRUCTION
            outcome = SearchOutcome.SINGLE
        else:
            instruction = FEW_INSTRUCTION.format(count=count, names=", ".join(names))
            outcome = SearchOutcome.FEW

        return SearchPayload(
            outcome=outcome,
            query=query,
            namespace=namespace,
            documents=documents,
            document_names=names,
            context=build_context(documents),
            instruction=instruction,
        )

    async def answer(
        self,
        query: str,
        tenant_id: str,
        knowledge_base_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> AgentAnswer:
        """
        Search, then synthesize an answer for single/few payloads.

        A slow or failing summarizer yields `answer=None`, never an error.
        """
        payload = await self.search(query, tenant_id, knowledge_base_id)
        if not payload.is_answerable or self._summarizer is None:
            return AgentAnswer(payload=payload)

        limit = timeout or settings.retrieval.summarizer_timeout
        try:
            text = await asyncio.wait_for(self._summarizer.summarize(query, payload), timeout=limit)
        except asyncio.TimeoutError:
            logger.warning(f"Summarizer timed out after {limit}s, no answer available")
            return AgentAnswer(payload=payload)
        except Exception as e:
            logger.warning(f"Summarizer failed, no answer available: {e}")
            return AgentAnswer(payload=payload)

        return AgentAnswer(payload=payload, answer=text or None)

    @staticmethod
    def _empty(query: str, namespace: Optional[str] = None) -> SearchPayload:
        return SearchPayload(
            outcome=SearchOutcome.NO_RESULTS,
            query=query,
            namespace=namespace,
            instruction=NO_RESULTS_INSTRUCTION,
        )
