"""Tests for file listings aggregated from index entries."""

from unittest.mock import AsyncMock

import pytest

from knowledge_ingestion.container import build_container
from knowledge_ingestion.services.scraper_service import WebScraper
from knowledge_ingestion.utils.errors import PermissionDeniedError

from tests.conftest import OTHER_TENANT, TENANT, RecordingDispatcher, make_request


async def test_ready_document_has_size_and_url(container, index):
    await container.ingestion.ingest(make_request("Refunds take five days.", category="billing"))
    handle = index.chunks(TENANT, "faq.txt")[0].metadata.storage_handle

    documents = await container.catalog.list_documents(TENANT)

    assert len(documents) == 1
    doc = documents[0]
    assert doc.display_name == "faq.txt"
    assert doc.status == "ready"
    assert doc.chunk_count == 1
    assert doc.size == "23 B"
    assert doc.url == f"https://blobs.test/{handle}"
    assert doc.category == "billing"
    assert doc.mime_type == "text/plain"


async def test_failed_document_reports_error(container, extractor):
    extractor.error = RuntimeError("extractor crashed")
    await container.ingestion.ingest(make_request("Refunds take five days."))

    [doc] = await container.catalog.list_documents(TENANT)

    assert doc.status == "error"
    assert doc.error_message == "extractor crashed"
    assert doc.chunk_count == 0
    assert doc.url is None


async def test_queued_document_is_processing(session_factory, index, storage, extractor, summarizer, chunker):
    container = build_container(
        session_factory=session_factory,
        index=index,
        storage=storage,
        extractor=extractor,
        dispatcher=RecordingDispatcher(),
        summarizer=summarizer,
        scraper=AsyncMock(spec=WebScraper),
        chunker=chunker,
    )
    await container.ingestion.submit(make_request("Refunds take five days."))

    [doc] = await container.catalog.list_documents(TENANT)

    assert doc.status == "processing"
    assert doc.url is None
    await container.close()


async def test_listing_is_sorted_and_filtered_by_category(container):
    await container.ingestion.ingest(make_request("Shipping rates.", display_name="shipping.txt", category="logistics"))
    await container.ingestion.ingest(make_request("Refunds.", display_name="Billing.txt", category="billing"))
    await container.ingestion.ingest(make_request("Returns.", display_name="returns.txt", category="billing"))

    everything = await container.catalog.list_documents(TENANT)
    billing = await container.catalog.list_documents(TENANT, category="billing")

    assert [d.display_name for d in everything] == ["Billing.txt", "returns.txt", "shipping.txt"]
    assert [d.display_name for d in billing] == ["Billing.txt", "returns.txt"]


async def test_large_document_is_one_listing_row(container):
    await container.ingestion.ingest(make_request("Refunds take five days. " * 400, display_name="guide.txt"))

    [doc] = await container.catalog.list_documents(TENANT)

    assert doc.display_name == "guide.txt"
    assert doc.chunk_count > 1


async def test_knowledge_base_listing_is_scoped(container):
    kb = await container.knowledge_bases.create(TENANT, "Support")
    await container.ingestion.ingest(make_request("Tenant-wide.", display_name="general.txt"))
    await container.ingestion.ingest(
        make_request("Scoped.", display_name="scoped.txt", knowledge_base_id=kb.knowledge_base_id)
    )

    scoped = await container.catalog.list_documents(TENANT, kb.knowledge_base_id)
    tenant_wide = await container.catalog.list_documents(TENANT)

    assert [d.display_name for d in scoped] == ["scoped.txt"]
    assert [d.display_name for d in tenant_wide] == ["general.txt"]


async def test_unknown_knowledge_base_lists_nothing(container):
    assert await container.catalog.list_documents(TENANT, "kb_missing") == []


async def test_empty_namespace_lists_nothing(container):
    assert await container.catalog.list_documents(TENANT) == []


async def test_foreign_knowledge_base_is_denied(container):
    kb = await container.knowledge_bases.create(OTHER_TENANT, "Theirs")

    with pytest.raises(PermissionDeniedError):
        await container.catalog.list_documents(TENANT, kb.knowledge_base_id)
