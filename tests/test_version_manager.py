"""
Lifecycle manager against a temporary SQLite store: create, publish, revert, delete, compare,
pointer lookups, access/validation/limit errors, conflicts and timeouts.
Run: pytest tests/test_version_manager.py -v
"""
import asyncio
import json
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from version_engine.domain import Actor, ContentType, VersionScope, VersionType
from version_engine.errors import ErrorCode
from version_engine.models import ContentItem
from version_engine.schemas.version import HistoryOptions, VersionCreate, VersionFeedback
from version_engine.services import version_store
from version_engine.services.audit_service import AuditLogger
from version_engine.services.diff_engine import INITIAL_VERSION


async def _create(versions, actor, scope, **fields):
    result = await versions.create_version(VersionCreate(**fields), actor, scope)
    assert result.success, result.error
    return result.data


async def _history(versions, scope):
    result = await versions.get_version_history(scope, HistoryOptions(order_direction="asc"))
    assert result.success
    return result.data


@pytest.mark.asyncio
async def test_first_version_is_number_one_with_initial_marker(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="Hello", body="<p>First</p>")
    assert v1.version_number == 1
    assert v1.changed_fields == [INITIAL_VERSION]
    assert v1.version_type == VersionType.DRAFT
    assert v1.is_current_published is False
    assert v1.content_hash


@pytest.mark.asyncio
async def test_second_version_records_only_title_change(versions, actor, scope) -> None:
    await _create(versions, actor, scope, title="Hello", body="<p>First</p>")
    v2 = await _create(versions, actor, scope, title="Hello world")
    assert v2.version_number == 2
    assert v2.changed_fields == ["title"]
    # Omitted fields carry over from the previous version.
    assert v2.body == "<p>First</p>"


@pytest.mark.asyncio
async def test_publish_moves_current_published_pointer(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="One")
    assert (await versions.publish_version(v1.id, actor)).success
    v2 = await _create(versions, actor, scope, title="Two")
    result = await versions.publish_version(v2.id, actor)

    assert result.success
    assert result.data.is_current_published is True
    assert result.data.version_type == VersionType.PUBLISHED
    assert result.data.published_by == actor.actor_id
    assert result.data.published_at is not None

    old = (await versions.get_version(v1.id)).data
    assert old.is_current_published is False
    published = (await versions.get_published_version(scope)).data
    assert published.id == v2.id


@pytest.mark.asyncio
async def test_publish_syncs_live_content_item(versions, actor, scope, session_factory) -> None:
    v1 = await _create(versions, actor, scope, title="Live title", body="Live body")
    await versions.publish_version(v1.id, actor)

    async with session_factory() as db:
        r = await db.execute(
            select(ContentItem).where(
                ContentItem.tenant_id == scope.tenant_id,
                ContentItem.content_id == scope.content_id,
            )
        )
        item = r.scalar_one()
    assert item.title == "Live title"
    assert item.body == "Live body"
    assert item.published_version_id == v1.id
    assert item.published_version_number == 1


@pytest.mark.asyncio
async def test_publish_is_idempotent_for_current_version(versions, actor, scope) -> None:
    published_events = []
    versions.events.on_published(lambda event, payload: published_events.append(payload))
    v1 = await _create(versions, actor, scope, title="One")
    first = await versions.publish_version(v1.id, actor)
    second = await versions.publish_version(v1.id, actor)
    assert first.success and second.success
    assert second.data.id == v1.id
    assert second.data.is_current_published is True
    assert len(published_events) == 1


@pytest.mark.asyncio
async def test_publish_unknown_version_is_not_found(versions, actor) -> None:
    result = await versions.publish_version(uuid.uuid4(), actor)
    assert result.success is False
    assert result.error_code == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_at_most_one_current_published_after_concurrent_publishes(versions, actor, scope) -> None:
    created = [await _create(versions, actor, scope, title=f"Version {i}") for i in range(4)]
    results = await asyncio.gather(*(versions.publish_version(v.id, actor) for v in created))
    assert all(r.success for r in results)

    history = await _history(versions, scope)
    assert sum(1 for v in history.versions if v.is_current_published) == 1


@pytest.mark.asyncio
async def test_concurrent_creates_never_share_a_number(versions, actor, scope) -> None:
    results = await asyncio.gather(
        *(versions.create_version(VersionCreate(title=f"Title {i}"), actor, scope) for i in range(8))
    )
    assert all(r.success for r in results)
    numbers = sorted(r.data.version_number for r in results)
    assert numbers == list(range(1, 9))


@pytest.mark.asyncio
async def test_revert_creates_and_publishes_new_version(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="Original", body="Original body")
    await versions.publish_version(v1.id, actor)
    v2 = await _create(versions, actor, scope, title="Second", body="Second body")
    await versions.publish_version(v2.id, actor)
    v3 = await _create(versions, actor, scope, title="Third")
    await versions.publish_version(v3.id, actor)

    result = await versions.revert_to_version(v1.id, actor)

    assert result.success, result.error
    v4 = result.data
    assert v4.version_number == 4
    assert v4.id != v1.id
    assert v4.change_summary == "Reverted to version 1"
    assert v4.is_current_published is True
    assert v4.title == "Original"
    assert v4.body == "Original body"
    assert (await versions.get_version(v3.id)).data.is_current_published is False


@pytest.mark.asyncio
async def test_revert_failure_leaves_no_new_version(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="Original")
    outsider = Actor(actor_id="outsider")

    result = await versions.revert_to_version(v1.id, outsider)

    assert result.error_code == ErrorCode.ACCESS_DENIED
    assert (await _history(versions, scope)).total == 1


@pytest.mark.asyncio
async def test_delete_published_version_is_rejected(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="Live")
    await versions.publish_version(v1.id, actor)

    result = await versions.delete_version(v1.id, actor)

    assert result.success is False
    assert result.error_code == ErrorCode.INVALID_STATE
    assert (await _history(versions, scope)).total == 1
    assert (await versions.get_version(v1.id)).data.is_current_published is True


@pytest.mark.asyncio
async def test_delete_superseded_published_version_is_rejected(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="One")
    await versions.publish_version(v1.id, actor)
    v2 = await _create(versions, actor, scope, title="Two")
    await versions.publish_version(v2.id, actor)

    result = await versions.delete_version(v1.id, actor)
    assert result.error_code == ErrorCode.INVALID_STATE


@pytest.mark.asyncio
async def test_delete_draft(versions, actor, scope) -> None:
    await _create(versions, actor, scope, title="One")
    v2 = await _create(versions, actor, scope, title="Two")

    result = await versions.delete_version(v2.id, actor)

    assert result.success
    missing = await versions.get_version(v2.id)
    assert missing.error_code == ErrorCode.NOT_FOUND
    assert (await versions.delete_version(v2.id, actor)).error_code == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_version_numbers_are_not_reused_after_delete(versions, actor, scope) -> None:
    await _create(versions, actor, scope, title="One")
    v2 = await _create(versions, actor, scope, title="Two")
    await versions.delete_version(v2.id, actor)

    v3 = await _create(versions, actor, scope, title="Three")
    assert v3.version_number == 3


@pytest.mark.asyncio
async def test_scopes_number_independently(versions, actor, tenant_id) -> None:
    post = VersionScope(tenant_id=tenant_id, content_type=ContentType.POST, content_id=uuid.uuid4())
    page = VersionScope(tenant_id=tenant_id, content_type=ContentType.PAGE, content_id=post.content_id)
    await _create(versions, actor, post, title="Post 1")
    await _create(versions, actor, post, title="Post 2")
    first_page = await _create(versions, actor, page, title="Page 1")
    assert first_page.version_number == 1


@pytest.mark.asyncio
async def test_access_denied_for_actor_outside_tenant(versions, scope) -> None:
    result = await versions.create_version(VersionCreate(title="Hi"), Actor(actor_id="intruder"), scope)
    assert result.success is False
    assert result.error_code == ErrorCode.ACCESS_DENIED
    assert result.error == "Access denied"


@pytest.mark.asyncio
@pytest.mark.parametrize("title", ["", "   ", "<b></b>", "x" * 256])
async def test_invalid_title_is_rejected(versions, actor, scope, title) -> None:
    result = await versions.create_version(VersionCreate(title=title), actor, scope)
    assert result.error_code == ErrorCode.VALIDATION_FAILED


@pytest.mark.asyncio
async def test_missing_title_on_first_version_is_rejected(versions, actor, scope) -> None:
    result = await versions.create_version(VersionCreate(body="No title"), actor, scope)
    assert result.error_code == ErrorCode.VALIDATION_FAILED
    assert result.error == "Title is required"


@pytest.mark.asyncio
async def test_markup_is_sanitized(versions, actor, scope) -> None:
    v1 = await _create(
        versions,
        actor,
        scope,
        title="<script>alert(1)</script>Hello",
        body='<p onclick="x()">Hi</p><script>steal()</script>',
        change_summary="<i>typo</i> fix",
    )
    assert "<script>" not in v1.title
    assert v1.title.endswith("Hello")
    assert "<p>Hi</p>" in v1.body
    assert "<script>" not in v1.body
    assert "onclick" not in v1.body
    assert v1.change_summary == "typo fix"


@pytest.mark.asyncio
async def test_create_draft_moves_current_draft_pointer(versions, actor, scope) -> None:
    first = await versions.create_draft(VersionCreate(title="Draft 1"), actor, scope)
    second = await versions.create_draft(VersionCreate(title="Draft 2"), actor, scope)
    assert first.data.is_current_draft is True
    assert second.data.is_current_draft is True

    draft = (await versions.get_latest_draft(scope)).data
    assert draft.id == second.data.id
    assert (await versions.get_version(first.data.id)).data.is_current_draft is False


@pytest.mark.asyncio
async def test_publish_clears_current_draft_flag(versions, actor, scope) -> None:
    draft = (await versions.create_draft(VersionCreate(title="Draft"), actor, scope)).data
    published = (await versions.publish_version(draft.id, actor)).data
    assert published.is_current_draft is False
    assert (await versions.get_latest_draft(scope)).data is None


@pytest.mark.asyncio
async def test_pointer_lookups_return_none_when_empty(versions, scope) -> None:
    draft = await versions.get_latest_draft(scope)
    published = await versions.get_published_version(scope)
    assert draft.success is True and draft.data is None
    assert published.success is True and published.data is None


@pytest.mark.asyncio
async def test_cached_draft_is_invalidated_on_mutation(versions, actor, scope) -> None:
    await versions.create_draft(VersionCreate(title="Draft 1"), actor, scope)
    assert (await versions.get_latest_draft(scope)).data.title == "Draft 1"
    await versions.create_draft(VersionCreate(title="Draft 2"), actor, scope)
    assert (await versions.get_latest_draft(scope)).data.title == "Draft 2"


@pytest.mark.asyncio
async def test_pointer_read_racing_publish_does_not_cache_stale_value(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="One")
    await versions.publish_version(v1.id, actor)
    v2 = await _create(versions, actor, scope, title="Two")

    loaded = asyncio.Event()
    release = asyncio.Event()
    real = version_store.get_current_published

    async def paused(db, s, for_update=False):
        row = await real(db, s, for_update=for_update)
        if not for_update and not loaded.is_set():
            loaded.set()
            await release.wait()
        return row

    with patch.object(version_store, "get_current_published", paused):
        reader = asyncio.create_task(versions.get_published_version(scope))
        await loaded.wait()
        assert (await versions.publish_version(v2.id, actor)).success
        release.set()
        in_flight = await reader

    # The read that started before the publish may answer with v1, but must not cache it.
    assert in_flight.data.version_number == 1
    assert (await versions.get_published_version(scope)).data.version_number == 2


@pytest.mark.asyncio
async def test_compare_versions_reports_changes_both_ways(versions, actor, scope) -> None:
    a = await _create(versions, actor, scope, title="A", body="Body", structured_data={"status": "draft"})
    b = await _create(versions, actor, scope, title="B", excerpt="Short", structured_data={"status": "review"})

    forward = (await versions.compare_versions(a.id, b.id)).data
    backward = (await versions.compare_versions(b.id, a.id)).data

    names = {d.field for d in forward.diffs}
    assert names == {"title", "excerpt", "structured_data.status"}
    assert names == {d.field for d in backward.diffs}
    assert forward.summary.fields_changed == 3
    assert forward.version_a.id == a.id


@pytest.mark.asyncio
async def test_compare_reports_which_version_is_missing(versions, actor, scope) -> None:
    a = await _create(versions, actor, scope, title="A")
    first = await versions.compare_versions(uuid.uuid4(), a.id)
    second = await versions.compare_versions(a.id, uuid.uuid4())
    assert first.error_code == ErrorCode.NOT_FOUND and first.error == "First version not found"
    assert second.error_code == ErrorCode.NOT_FOUND and second.error == "Second version not found"


@pytest.mark.asyncio
async def test_compare_hides_other_tenants(versions, actor, scope) -> None:
    a = await _create(versions, actor, scope, title="A")
    b = await _create(versions, actor, scope, title="B")
    result = await versions.compare_versions(a.id, b.id, tenant_id=uuid.uuid4())
    assert result.error == "First version not found"


@pytest.mark.asyncio
async def test_compare_includes_body_text_diff_and_statistics(versions, actor, scope) -> None:
    a = await _create(versions, actor, scope, title="Guide", body="Intro\nStep one\nOutro")
    b = await _create(versions, actor, scope, title="Guide v2", body="Intro\nStep 1\nStep two\nOutro")

    comparison = (await versions.compare_versions(a.id, b.id)).data
    assert comparison.text_diff.lines_modified == 1
    assert comparison.text_diff.lines_added == 1
    assert comparison.text_diff.hunks[0].old_start == 2
    assert comparison.statistics.major_changes[0] == "Title changed"

    words = (await versions.compare_versions(a.id, b.id, granularity="word")).data
    assert words.text_diff.granularity == "word"
    assert words.text_diff.hunks == []
    assert any("1" in c.content for c in words.text_diff.changes if c.type == "add")


@pytest.mark.asyncio
async def test_text_diff_is_cached_per_pair(versions, actor, scope) -> None:
    a = await _create(versions, actor, scope, title="A", body="one")
    b = await _create(versions, actor, scope, title="B", body="two")
    await versions.compare_versions(a.id, b.id)
    assert await versions.cache.get(f"diff:{a.id}:{b.id}:line") is not None

    with patch("version_engine.services.text_diff.generate_text_diff") as generate:
        again = (await versions.compare_versions(a.id, b.id)).data
    generate.assert_not_called()
    assert again.text_diff.lines_modified == 1


@pytest.mark.asyncio
async def test_export_comparison(versions, actor, scope) -> None:
    a = await _create(versions, actor, scope, title="Tom & Jerry", body="chase")
    b = await _create(versions, actor, scope, title="Tom & Jerry II", body="chase again")

    exported = await versions.export_comparison(a.id, b.id, fmt="json")
    document = json.loads(exported.data)
    assert document["left_version"]["version_number"] == 1
    assert document["right_version"]["version_number"] == 2
    assert document["statistics"]["lines_modified"] == 1
    assert [c["field"] for c in document["field_changes"]] == ["title", "body"]

    page = (await versions.export_comparison(a.id, b.id, fmt="html", include_statistics=False)).data
    assert page.startswith("<!DOCTYPE html>")
    assert "Jerry II" in page
    assert "statistics" not in page

    unsupported = await versions.export_comparison(a.id, b.id, fmt="pdf")
    assert unsupported.error_code == ErrorCode.VALIDATION_FAILED


@pytest.mark.parametrize("settings_overrides", [{"MAX_VERSIONS_PER_CONTENT": 2}])
@pytest.mark.asyncio
async def test_version_ceiling(versions, actor, scope) -> None:
    await _create(versions, actor, scope, title="1")
    await _create(versions, actor, scope, title="2")
    result = await versions.create_version(VersionCreate(title="3"), actor, scope)
    assert result.error_code == ErrorCode.LIMIT_EXCEEDED


@pytest.mark.asyncio
async def test_history_filters_and_paging(versions, auto_saves, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="One")
    await versions.publish_version(v1.id, actor)
    await _create(versions, actor, scope, title="Two")
    await auto_saves.auto_save(VersionCreate(title="Typing"), actor, scope)
    await auto_saves.drain()

    everything = (await versions.get_version_history(scope)).data
    assert everything.total == 3
    assert [v.version_number for v in everything.versions] == [3, 2, 1]

    manual = (await versions.get_version_history(scope, HistoryOptions(include_auto_saves=False))).data
    assert manual.total == 2

    published = (await versions.get_version_history(scope, HistoryOptions(published_only=True))).data
    assert [v.version_number for v in published.versions] == [1]

    page = (await versions.get_version_history(scope, HistoryOptions(limit=1, offset=1))).data
    assert [v.version_number for v in page.versions] == [2]


@pytest.mark.asyncio
async def test_metrics_and_versions_by_actor(versions, actor, scope, tenant_id) -> None:
    v1 = await _create(versions, actor, scope, title="One", body="12345")
    await versions.publish_version(v1.id, actor)
    await _create(versions, actor, scope, title="Two")

    metrics = (await versions.get_version_metrics(tenant_id)).data
    assert metrics.total_versions == 2
    assert metrics.published_count == 1
    assert metrics.draft_count == 1
    assert metrics.storage_size_bytes > 0
    assert metrics.last_activity is not None

    mine = (await versions.get_versions_by_actor(tenant_id, actor.actor_id)).data
    assert {v.version_number for v in mine} == {1, 2}

    await _create(versions, actor, scope, title="Three")
    refreshed = (await versions.get_version_metrics(tenant_id)).data
    assert refreshed.total_versions == 3


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_the_operation(versions, actor, scope) -> None:
    versions.audit = AuditLogger(MagicMock(side_effect=RuntimeError("audit store down")))
    result = await versions.create_version(VersionCreate(title="Still saved"), actor, scope)
    assert result.success
    assert (await _history(versions, scope)).total == 1


@pytest.mark.asyncio
async def test_store_failure_surfaces_generic_error(versions, actor, scope) -> None:
    failure = OperationalError("SELECT count(*)", {}, Exception("could not connect to server"))
    with patch.object(version_store, "count_versions", AsyncMock(side_effect=failure)):
        result = await versions.create_version(VersionCreate(title="Hi"), actor, scope)
    assert result.error_code == ErrorCode.STORE_UNAVAILABLE
    assert result.error == "Version store unavailable"
    assert "connect" not in result.error


@pytest.mark.parametrize("settings_overrides", [{"CONFLICT_MAX_RETRIES": 2}])
@pytest.mark.asyncio
async def test_conflicts_are_retried_then_reported(versions, actor, scope) -> None:
    conflict = OperationalError("INSERT", {}, Exception("database is locked"))
    mock = AsyncMock(side_effect=conflict)
    with patch.object(version_store, "count_versions", mock):
        result = await versions.create_version(VersionCreate(title="Hi"), actor, scope)
    assert result.error_code == ErrorCode.CONFLICT_RETRYABLE
    assert mock.await_count == 3


@pytest.mark.asyncio
async def test_conflict_then_success(versions, actor, scope) -> None:
    conflict = OperationalError("INSERT", {}, Exception("database is locked"))
    real = version_store.count_versions
    calls = {"n": 0}

    async def flaky(db, s):
        calls["n"] += 1
        if calls["n"] == 1:
            raise conflict
        return await real(db, s)

    with patch.object(version_store, "count_versions", flaky):
        result = await versions.create_version(VersionCreate(title="Hi"), actor, scope)
    assert result.success
    assert result.data.version_number == 1


@pytest.mark.asyncio
async def test_operation_timeout(versions, actor, scope, access) -> None:
    async def slow_access(tenant_id, actor_id):
        await asyncio.sleep(1)
        return True

    with patch.object(access, "has_access", slow_access):
        result = await versions.create_version(VersionCreate(title="Slow"), actor, scope, timeout=0.05)
    assert result.error_code == ErrorCode.TIMEOUT
    assert (await _history(versions, scope)).total == 0


@pytest.mark.asyncio
async def test_timeout_inside_transaction_rolls_back(versions, actor, scope) -> None:
    real = version_store.insert_version

    async def slow_insert(db, **values):
        row = await real(db, **values)
        await asyncio.sleep(1)
        return row

    with patch.object(version_store, "insert_version", slow_insert):
        result = await versions.create_version(VersionCreate(title="Slow"), actor, scope, timeout=0.1)
    assert result.error_code == ErrorCode.TIMEOUT
    assert (await _history(versions, scope)).total == 0

    # Scope lock released and the allocated number rolled back with the row.
    retry = await versions.create_version(VersionCreate(title="Fast"), actor, scope, timeout=5)
    assert retry.success
    assert retry.data.version_number == 1
    assert (await _history(versions, scope)).total == 1


@pytest.mark.asyncio
async def test_events_emitted_after_commit(versions, actor, scope) -> None:
    received = []
    versions.events.on_any(lambda event, payload: received.append((event, payload["version_number"])))

    v1 = await _create(versions, actor, scope, title="One")
    await versions.publish_version(v1.id, actor)

    assert received == [("created", 1), ("published", 1)]


@pytest.mark.asyncio
async def test_feedback_is_audited(versions, actor, scope, tenant_id) -> None:
    v1 = await _create(versions, actor, scope, title="AI draft")
    feedback = VersionFeedback(signal="positive", comment="Great output", preset="improve_clarity")

    result = await versions.record_feedback(v1.id, feedback, actor)
    assert result.success
    assert result.data.id == v1.id

    entries = await versions.audit.list_entries(tenant_id, version_id=v1.id)
    recorded = [e for e in entries if e.action == "feedback"]
    assert len(recorded) == 1
    assert recorded[0].details["signal"] == "positive"
    assert recorded[0].details["preset"] == "improve_clarity"


@pytest.mark.asyncio
async def test_feedback_requires_access(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="AI draft")
    result = await versions.record_feedback(v1.id, VersionFeedback(signal="negative"), Actor(actor_id="stranger"))
    assert result.error_code == ErrorCode.ACCESS_DENIED


@pytest.mark.asyncio
async def test_feedback_fails_when_it_cannot_be_stored(versions, actor, scope) -> None:
    v1 = await _create(versions, actor, scope, title="AI draft")
    versions.audit = AuditLogger(MagicMock(side_effect=RuntimeError("audit store down")))
    result = await versions.record_feedback(v1.id, VersionFeedback(signal="neutral"), actor)
    assert result.error_code == ErrorCode.STORE_UNAVAILABLE
