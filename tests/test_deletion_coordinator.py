"""Tests for paginated document deletion."""

import pytest

from knowledge_ingestion.models.chunk import ChunkStatus
from knowledge_ingestion.models.jobs import DeletionJob
from knowledge_ingestion.models.notification import NotificationType
from knowledge_ingestion.utils.errors import NotFoundError

from tests.conftest import TENANT, make_metadata, make_request

TARGET = "target.pdf"


async def _fill_namespace(index, target_positions, total=600, page_docs=119):
    """Write `total` entries; the target document sits at `target_positions`."""
    filler = 0
    for position in range(total):
        if position in target_positions:
            name = TARGET
            key = f"{TARGET} (part {sorted(target_positions).index(position) + 1}/{len(target_positions)})"
            handle = f"{TENANT}/target/{TARGET}"
        else:
            name = f"doc-{filler % page_docs}.txt"
            key = f"{name} (entry {filler})"
            handle = f"{TENANT}/{filler % page_docs}/{name}"
            filler += 1
        await index.add(
            TENANT,
            f"content {position} refund policy",
            key,
            make_metadata(name, storage_handle=handle, status=ChunkStatus.READY),
            f"hash-{position}",
        )


async def test_deletes_every_chunk_in_a_large_namespace(container, index, monkeypatch):
    from knowledge_ingestion.config import settings

    monkeypatch.setattr(settings.deletion, "page_size", 50)
    positions = {10, 60, 110, 160, 210}
    await _fill_namespace(index, positions)
    assert len({e.metadata.display_name for e in index.entries(TENANT)}) > 100

    deleted = await container.deletion.delete(TARGET, TENANT, tenant_id=TENANT)

    assert deleted == 5
    assert index.entries(TENANT, TARGET) == []
    assert len(index.entries(TENANT)) == 595
    results = await index.search(TENANT, "refund policy content", limit=1000)
    assert all(e.metadata.display_name != TARGET for e in results)
    # Five pages with matches, then three empty pages end the scan early
    assert index.list_calls == 8


async def test_scattered_chunks_are_all_found(container, index, monkeypatch):
    from knowledge_ingestion.config import settings

    monkeypatch.setattr(settings.deletion, "page_size", 50)
    positions = {0, 120, 240, 360, 480, 599}
    await _fill_namespace(index, positions)

    deleted = await container.deletion.delete(TARGET, TENANT, tenant_id=TENANT)

    assert deleted == 6
    assert index.entries(TENANT, TARGET) == []


async def test_chunks_past_the_early_stop_are_deleted(container, index, monkeypatch):
    from knowledge_ingestion.config import settings

    monkeypatch.setattr(settings.deletion, "page_size", 50)
    await _fill_namespace(index, {10, 300})

    deleted = await container.deletion.delete(TARGET, TENANT, tenant_id=TENANT)

    assert deleted == 2
    assert index.entries(TENANT, TARGET) == []
    results = await index.search(TENANT, "refund policy content", limit=1000)
    assert all(e.metadata.display_name != TARGET for e in results)
    # One page with a match, then three empty pages end the scan
    assert index.list_calls == 4


async def test_deletes_every_chunk_when_listing_follows_point_ids(container, index, monkeypatch):
    from knowledge_ingestion.config import settings

    monkeypatch.setattr(settings.deletion, "page_size", 100)
    index.order_by_id = True
    await _fill_namespace(index, {100, 101, 102, 103}, total=1000)

    deleted = await container.deletion.delete(TARGET, TENANT, tenant_id=TENANT)

    assert deleted == 4
    assert index.entries(TENANT, TARGET) == []
    assert len(index.entries(TENANT)) == 996


async def test_missing_document_is_a_silent_full_scan(container, index, monkeypatch):
    from knowledge_ingestion.config import settings

    monkeypatch.setattr(settings.deletion, "page_size", 50)
    await _fill_namespace(index, set())

    deleted = await container.deletion.delete("never-uploaded.txt", TENANT, tenant_id=TENANT)

    assert deleted == 0
    # No deletion yet, so the empty-page cutoff never applies
    assert index.list_calls == 12
    assert await container.notifications.list(TENANT) == []


async def test_missing_namespace_is_a_silent_no_op(container, index):
    deleted = await container.deletion.delete("faq.txt", "no-such-namespace", tenant_id=TENANT)

    assert deleted == 0
    assert index.list_calls == 0
    assert await container.notifications.list(TENANT) == []


async def test_deletion_removes_blobs_and_notifies(container, index, storage):
    await container.ingestion.ingest(make_request("Refunds take five days.", display_name="faq.txt"))
    handle = index.chunks(TENANT, "faq.txt")[0].metadata.storage_handle

    deleted = await container.deletion.delete("faq.txt", TENANT, tenant_id=TENANT)

    assert deleted == 1
    assert handle not in storage.blobs
    records = await container.notifications.list(TENANT)
    assert records[0].type == NotificationType.FILE_READY.value
    assert records[0].title == "✓ Deletion complete"
    changes = await container.file_changes.list_since(TENANT)
    assert changes[0].change_type == "delete"


async def test_second_deletion_is_silent(container):
    await container.ingestion.ingest(make_request("Refunds take five days."))
    await container.deletion.delete("faq.txt", TENANT, tenant_id=TENANT)
    before = len(await container.notifications.list(TENANT))

    assert await container.deletion.delete("faq.txt", TENANT, tenant_id=TENANT) == 0
    assert len(await container.notifications.list(TENANT)) == before


async def test_storage_cleanup_failure_does_not_fail_deletion(container, index, storage):
    await container.ingestion.ingest(make_request("Refunds take five days."))
    storage.fail_delete = True

    deleted = await container.deletion.delete(
        "faq.txt", TENANT, known_storage_handle="tenant-a/extra/faq.txt", tenant_id=TENANT
    )

    assert deleted == 1
    assert index.entries(TENANT, "faq.txt") == []
    records = await container.notifications.list(TENANT)
    assert records[0].title == "✓ Deletion complete"


async def test_failed_document_blobs_are_released(container, index, extractor, storage):
    extractor.error = RuntimeError("extractor crashed")
    await container.ingestion.ingest(make_request("Refunds take five days."))
    assert len(storage.blobs) == 1

    assert await container.deletion.delete("faq.txt", TENANT, tenant_id=TENANT) == 1
    assert storage.blobs == {}


async def test_scan_failure_notifies_tenant(container, index):
    await container.ingestion.ingest(make_request("Refunds take five days."))
    index.fail_list = True

    deleted = await container.deletion.delete("faq.txt", TENANT, tenant_id=TENANT)

    assert deleted == 0
    records = await container.notifications.list(TENANT)
    assert records[0].type == NotificationType.FILE_FAILED.value
    assert records[0].title == "File deletion failed"
    assert index.entries(TENANT, "faq.txt")


async def test_request_deletion_runs_in_background(container, index, storage):
    kb = await container.knowledge_bases.create(TENANT, "Support")
    await container.ingestion.ingest(
        make_request("Shipping is free.", knowledge_base_id=kb.knowledge_base_id)
    )

    ack = await container.deletion.request_deletion(TENANT, "faq.txt", kb.knowledge_base_id)
    assert ack.message == "Deleting"
    assert ack.namespace == kb.namespace

    await container.dispatcher.drain()

    assert index.entries(kb.namespace, "faq.txt") == []
    assert storage.blobs == {}
    changes = await container.file_changes.list_since(TENANT, knowledge_base_id=kb.knowledge_base_id)
    assert changes[0].change_type == "delete"


async def test_request_deletion_rejects_unknown_knowledge_base(container):
    with pytest.raises(NotFoundError):
        await container.deletion.request_deletion(TENANT, "faq.txt", "kb_missing")


async def test_run_uses_job_fields(container, index):
    await container.ingestion.ingest(make_request("Refunds take five days."))
    job = DeletionJob(tenant_id=TENANT, namespace=TENANT, display_name="faq.txt")

    assert await container.deletion.run(job) == 1
    assert index.entries(TENANT) == []
