"""Tests for notifications and file change events."""

import pytest

from knowledge_ingestion.models.notification import NotificationType
from knowledge_ingestion.services.file_change_service import FileChangeService
from knowledge_ingestion.services.notifications_service import (
    NotificationsService,
    failed_message,
    ready_message,
)
from knowledge_ingestion.utils.errors import NotFoundError, PermissionDeniedError

from tests.conftest import OTHER_TENANT, TENANT


@pytest.fixture
def notifications(session_factory):
    return NotificationsService(session_factory)


async def _create(notifications, tenant_id=TENANT, display_name="faq.txt", type=NotificationType.FILE_READY):
    title, message = ready_message(display_name)
    return await notifications.create(tenant_id, type, title, message, display_name=display_name)


async def test_create_and_list_newest_first(notifications):
    await _create(notifications, display_name="a.txt")
    await _create(notifications, display_name="b.txt")
    await _create(notifications, tenant_id=OTHER_TENANT)

    records = await notifications.list(TENANT)
    assert [r.display_name for r in records] == ["b.txt", "a.txt"]
    assert all(not r.read for r in records)
    assert await notifications.unread_count(TENANT) == 2


async def test_mark_as_read_and_mark_all(notifications):
    first = await _create(notifications, display_name="a.txt")
    await _create(notifications, display_name="b.txt")

    updated = await notifications.mark_as_read(TENANT, first.id)
    assert updated.read is True
    assert await notifications.unread_count(TENANT) == 1

    assert await notifications.mark_all_as_read(TENANT) == 1
    assert await notifications.unread_count(TENANT) == 0


async def test_tenant_cannot_touch_foreign_notifications(notifications):
    record = await _create(notifications)
    with pytest.raises(PermissionDeniedError):
        await notifications.mark_as_read(OTHER_TENANT, record.id)
    with pytest.raises(PermissionDeniedError):
        await notifications.delete(OTHER_TENANT, record.id)
    with pytest.raises(NotFoundError):
        await notifications.delete(TENANT, "missing")


async def test_delete_by_display_name_only_removes_that_document(notifications):
    await _create(notifications, display_name="faq.txt", type=NotificationType.FILE_PROCESSING)
    await _create(notifications, display_name="faq.txt", type=NotificationType.FILE_FAILED)
    await _create(notifications, display_name="other.txt")
    await _create(notifications, tenant_id=OTHER_TENANT, display_name="faq.txt")

    assert await notifications.delete_by_display_name(TENANT, "faq.txt") == 2
    assert [r.display_name for r in await notifications.list(TENANT)] == ["other.txt"]
    assert len(await notifications.list(OTHER_TENANT)) == 1


async def test_delete_all(notifications):
    await _create(notifications)
    await _create(notifications)
    assert await notifications.delete_all(TENANT) == 2
    assert await notifications.list(TENANT) == []


def test_message_templates():
    assert ready_message("faq.txt") == ("✓ File ready", '"faq.txt" is ready to use')
    title, message = failed_message("faq.txt", "Extraction timed out")
    assert title == "File processing failed"
    assert message.endswith("Extraction timed out")


async def test_file_changes_filtered_by_knowledge_base(session_factory):
    changes = FileChangeService(session_factory)
    await changes.record(TENANT, "update", "faq.txt")
    await changes.record(TENANT, "delete", "old.txt", knowledge_base_id="kb_1")
    await changes.record(OTHER_TENANT, "update", "theirs.txt")

    everything = await changes.list_since(TENANT)
    assert {e.display_name for e in everything} == {"faq.txt", "old.txt"}

    scoped = await changes.list_since(TENANT, knowledge_base_id="kb_1")
    assert [(e.change_type, e.display_name) for e in scoped] == [("delete", "old.txt")]
