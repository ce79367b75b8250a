"""Tests for search classification and answer synthesis."""

from knowledge_ingestion.models.retrieval import MatchedDocument, SearchOutcome
from knowledge_ingestion.services.retrieval_gateway import (
    NO_RESULTS_INSTRUCTION,
    SINGLE_INSTRUCTION,
    RetrievalGateway,
    build_context,
)

from tests.conftest import OTHER_TENANT, TENANT, make_request

SENTENCE = "Refunds are processed by the billing team within five business days. "


async def _ingest(container, name, text, **kwargs):
    outcome = await container.ingestion.ingest(make_request(text, display_name=name, **kwargs))
    assert outcome.success


async def test_single_document_returns_full_context(container):
    await _ingest(container, "refunds.txt", SENTENCE * 60)

    payload = await container.retrieval.search("how long do refunds take", TENANT)

    assert payload.outcome == SearchOutcome.SINGLE
    assert payload.document_names == ["refunds.txt"]
    assert payload.instruction == SINGLE_INSTRUCTION
    # Every matched chunk of the document is in the context
    assert len(payload.documents[0].chunks) >= 2
    for chunk in payload.documents[0].chunks:
        assert chunk in payload.context


async def test_few_documents_are_grouped_by_source(container):
    await _ingest(container, "refunds.txt", "Refunds arrive within five days.")
    await _ingest(container, "returns.txt", "Returns and refunds need a receipt.")

    payload = await container.retrieval.search("refunds", TENANT)

    assert payload.outcome == SearchOutcome.FEW
    assert set(payload.document_names) == {"refunds.txt", "returns.txt"}
    assert "## refunds.txt" in payload.context
    assert "## returns.txt" in payload.context
    assert "2 documents" in payload.instruction


async def test_many_documents_ask_for_disambiguation(container, summarizer):
    for i in range(5):
        await _ingest(container, f"policy-{i}.txt", f"Refund policy number {i}.")

    payload = await container.retrieval.search("refund policy", TENANT)

    assert payload.outcome == SearchOutcome.DISAMBIGUATION
    assert len(payload.document_names) == 5
    assert payload.context == ""
    for name in payload.document_names:
        assert name in payload.instruction

    answer = await container.retrieval.answer("refund policy", TENANT)
    assert answer.answer is None
    assert summarizer.calls == []


def test_disambiguation_lists_at_most_five_names():
    documents = [MatchedDocument(display_name=f"doc-{i}.txt", chunks=["text"]) for i in range(8)]

    payload = RetrievalGateway.classify("query", TENANT, documents)

    assert payload.outcome == SearchOutcome.DISAMBIGUATION
    assert payload.document_names == [f"doc-{i}.txt" for i in range(5)]
    assert len(payload.documents) == 5
    assert all(d.chunks == [] for d in payload.documents)


def test_threshold_is_configurable(monkeypatch):
    from knowledge_ingestion.config import settings

    monkeypatch.setattr(settings.retrieval, "many_threshold", 1)
    documents = [MatchedDocument(display_name=n, chunks=["x"]) for n in ("a", "b")]

    assert RetrievalGateway.classify("q", TENANT, documents).outcome == SearchOutcome.DISAMBIGUATION


def test_single_document_context_has_no_headings():
    context = build_context([MatchedDocument(display_name="a.txt", chunks=["one", "two"])])
    assert context == "one\n\ntwo"


async def test_no_match_returns_no_results(container):
    await _ingest(container, "refunds.txt", "Refunds arrive within five days.")

    payload = await container.retrieval.search("parking", TENANT)

    assert payload.outcome == SearchOutcome.NO_RESULTS
    assert payload.instruction == NO_RESULTS_INSTRUCTION
    assert payload.documents == []


async def test_namespaces_are_isolated(container):
    kb = await container.knowledge_bases.create(TENANT, "Support")
    await _ingest(container, "kb-refunds.txt", "Refunds arrive within five days.", knowledge_base_id=kb.knowledge_base_id)
    await _ingest(container, "b-refunds.txt", "Refunds arrive within five days.", tenant_id=OTHER_TENANT)

    tenant_wide = await container.retrieval.search("refunds", TENANT)
    scoped = await container.retrieval.search("refunds", TENANT, kb.knowledge_base_id)
    other = await container.retrieval.search("refunds", OTHER_TENANT)

    assert tenant_wide.outcome == SearchOutcome.NO_RESULTS
    assert scoped.document_names == ["kb-refunds.txt"]
    assert other.document_names == ["b-refunds.txt"]


async def test_unknown_or_foreign_knowledge_base_degrades_to_no_results(container):
    kb = await container.knowledge_bases.create(OTHER_TENANT, "Theirs")
    await _ingest(container, "theirs.txt", "Refunds arrive.", tenant_id=OTHER_TENANT, knowledge_base_id=kb.knowledge_base_id)

    missing = await container.retrieval.search("refunds", TENANT, "kb_missing")
    foreign = await container.retrieval.search("refunds", TENANT, kb.knowledge_base_id)

    assert missing.outcome == SearchOutcome.NO_RESULTS
    assert missing.namespace is None
    assert foreign.outcome == SearchOutcome.NO_RESULTS


async def test_index_failure_degrades_to_no_results(container, index):
    await _ingest(container, "refunds.txt", "Refunds arrive within five days.")
    index.fail_search = True

    payload = await container.retrieval.search("refunds", TENANT)

    assert payload.outcome == SearchOutcome.NO_RESULTS
    assert payload.namespace == TENANT


async def test_answer_uses_summarizer(container, summarizer):
    await _ingest(container, "refunds.txt", "Refunds arrive within five days.")

    result = await container.retrieval.answer("refunds", TENANT)

    assert result.answer == summarizer.answer
    assert result.payload.outcome == SearchOutcome.SINGLE
    assert summarizer.calls == ["refunds"]


async def test_slow_summarizer_means_no_answer(container, summarizer):
    await _ingest(container, "refunds.txt", "Refunds arrive within five days.")
    summarizer.delay = 1.0

    result = await container.retrieval.answer("refunds", TENANT, timeout=0.01)

    assert result.answer is None
    assert result.payload.outcome == SearchOutcome.SINGLE


async def test_failing_summarizer_means_no_answer(container, summarizer):
    await _ingest(container, "refunds.txt", "Refunds arrive within five days.")
    summarizer.error = RuntimeError("model unavailable")

    result = await container.retrieval.answer("refunds", TENANT)

    assert result.answer is None


async def test_no_results_skip_the_summarizer(container, summarizer):
    result = await container.retrieval.answer("refunds", TENANT)

    assert result.payload.outcome == SearchOutcome.NO_RESULTS
    assert result.answer is None
    assert summarizer.calls == []
