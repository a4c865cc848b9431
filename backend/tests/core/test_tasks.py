"""
Kaban - Task Store Tests
========================

Lifecycle, WIP limits, optimistic versioning, archive and dependencies.
"""

from datetime import datetime, timedelta, timezone

import pytest

from kaban.core.context import KabanContext
from kaban.core.errors import ExitCode, KabanError
from kaban.core.ids import as_utc, utcnow
from kaban.core.models import LinkType, TaskPriority

PLUS_FIVE = timezone(timedelta(hours=5))


# ==========================================================================
# Add / Get / List
# ==========================================================================

class TestAddTask:
    """Tests for creating tasks."""

    async def test_defaults(self, context: KabanContext):
        task = await context.tasks.add_task("  Write the README  ")

        assert task.title == "Write the README"
        assert task.column_id == "todo"
        assert task.created_by == "user"
        assert task.version == 1
        assert task.priority == TaskPriority.MEDIUM
        assert task.depends_on == []
        assert task.archived is False
        assert task.started_at is None
        assert task.completed_at is None

    async def test_positions_append(self, context: KabanContext):
        first = await context.tasks.add_task("First")
        second = await context.tasks.add_task("Second")
        other = await context.tasks.add_task("Elsewhere", column_id="backlog")

        assert second.position == first.position + 1
        assert other.position == 0

    async def test_creator_is_case_folded(self, context: KabanContext):
        task = await context.tasks.add_task("Task", created_by="Alice-2")

        assert task.created_by == "alice-2"

    @pytest.mark.parametrize("title", ["", "   ", "x" * 201])
    async def test_invalid_title(self, context: KabanContext, title: str):
        with pytest.raises(KabanError) as exc_info:
            await context.tasks.add_task(title)

        assert exc_info.value.code == ExitCode.VALIDATION

    @pytest.mark.parametrize("agent", ["9lives", "has space", "a" * 51])
    async def test_invalid_agent(self, context: KabanContext, agent: str):
        with pytest.raises(KabanError) as exc_info:
            await context.tasks.add_task("Task", created_by=agent)

        assert exc_info.value.code == ExitCode.VALIDATION

    async def test_unknown_column(self, context: KabanContext):
        with pytest.raises(KabanError) as exc_info:
            await context.tasks.add_task("Task", column_id="nope")

        assert exc_info.value.code == ExitCode.VALIDATION
        assert "nope" in exc_info.value.message

    async def test_unknown_dependency(self, context: KabanContext):
        with pytest.raises(KabanError) as exc_info:
            await context.tasks.add_task("Task", depends_on=["01ARZ3NDEKTSV4RRFFQ69G5FAV"])

        assert exc_info.value.code == ExitCode.NOT_FOUND

    async def test_created_in_terminal_column_is_completed(self, context: KabanContext):
        task = await context.tasks.add_task("Already done", column_id="done")

        assert task.completed_at is not None


class TestGetAndList:
    """Tests for lookups and filtered listing."""

    async def test_missing_task_is_none(self, context: KabanContext):
        assert await context.tasks.get_task("01ARZ3NDEKTSV4RRFFQ69G5FAV") is None

    async def test_resolve_by_prefix(self, context: KabanContext):
        task = await context.tasks.add_task("Task")

        resolved = await context.tasks.resolve_task(task.id[:20].lower())

        assert resolved.id == task.id

    async def test_resolve_unknown(self, context: KabanContext):
        assert await context.tasks.resolve_task("ZZZZZZZZ") is None

    async def test_resolve_ambiguous_prefix(self, context: KabanContext):
        await context.tasks.add_task("One")
        await context.tasks.add_task("Two")

        with pytest.raises(KabanError) as exc_info:
            await context.tasks.resolve_task("0")

        assert exc_info.value.code == ExitCode.VALIDATION

    async def test_list_orders_by_column_then_position(self, context: KabanContext):
        a = await context.tasks.add_task("A")
        b = await context.tasks.add_task("B", column_id="backlog")
        c = await context.tasks.add_task("C")

        tasks = await context.tasks.list_tasks()

        assert [t.id for t in tasks] == [b.id, a.id, c.id]

    async def test_list_filters(self, context: KabanContext):
        mine = await context.tasks.add_task("Mine", created_by="alice", assigned_to="bob")
        await context.tasks.add_task("Theirs", created_by="carol")
        blocked = await context.tasks.add_task("Stuck")
        await context.tasks.update_task(blocked.id, {"blocked_reason": "waiting on API keys"})

        assert [t.id for t in await context.tasks.list_tasks(created_by="alice")] == [mine.id]
        assert [t.id for t in await context.tasks.list_tasks(assignee="BOB")] == [mine.id]
        assert [t.id for t in await context.tasks.list_tasks(blocked_only=True)] == [blocked.id]
        assert len(await context.tasks.list_tasks(column_id="todo")) == 3
        assert await context.tasks.list_tasks(column_id="review") == []

    async def test_archived_hidden_unless_requested(self, context: KabanContext):
        task = await context.tasks.add_task("Old")
        await context.tasks.archive_tasks({"task_ids": [task.id]})

        assert await context.tasks.list_tasks() == []
        assert [t.id for t in await context.tasks.list_tasks(include_archived=True)] == [task.id]


# ==========================================================================
# Move
# ==========================================================================

class TestMoveTask:
    """Tests for the column transition."""

    async def test_move_bumps_version_and_appends(self, context: KabanContext):
        existing = await context.tasks.add_task("Existing", column_id="review")
        task = await context.tasks.add_task("Task")

        moved = await context.tasks.move_task(task.id, "review")

        assert moved.column_id == "review"
        assert moved.version == 2
        assert moved.position == existing.position + 1

    async def test_wip_limit_scenario(self, context: KabanContext):
        for i in range(3):
            await context.tasks.add_task(f"Busy {i}", column_id="in_progress")
        fourth = await context.tasks.add_task("Fourth")

        with pytest.raises(KabanError) as exc_info:
            await context.tasks.move_task(fourth.id, "in_progress")

        assert exc_info.value.code == ExitCode.VALIDATION
        assert "3/3" in exc_info.value.message
        assert (await context.tasks.get_task(fourth.id)).column_id == "todo"

        await context.tasks.move_task(fourth.id, "in_progress", force=True)

        assert len(await context.tasks.list_tasks(column_id="in_progress")) == 4

    async def test_archived_tasks_do_not_count_toward_wip(self, context: KabanContext):
        busy = [await context.tasks.add_task(f"Busy {i}", column_id="in_progress") for i in range(3)]
        await context.tasks.archive_tasks({"task_ids": [busy[0].id]})
        task = await context.tasks.add_task("Next")

        moved = await context.tasks.move_task(task.id, "in_progress")

        assert moved.column_id == "in_progress"

    async def test_move_within_full_column(self, context: KabanContext):
        busy = [await context.tasks.add_task(f"Busy {i}", column_id="in_progress") for i in range(3)]

        moved = await context.tasks.move_task(busy[0].id, "in_progress")

        assert moved.position == 3

    async def test_missing_task(self, context: KabanContext):
        with pytest.raises(KabanError) as exc_info:
            await context.tasks.move_task("01ARZ3NDEKTSV4RRFFQ69G5FAV", "done")

        assert exc_info.value.code == ExitCode.NOT_FOUND
        assert "01ARZ3NDEKTSV4RRFFQ69G5FAV" in exc_info.value.message

    async def test_missing_column(self, context: KabanContext):
        task = await context.tasks.add_task("Task")

        with pytest.raises(KabanError) as exc_info:
            await context.tasks.move_task(task.id, "shipped")

        assert exc_info.value.code == ExitCode.VALIDATION

    async def test_started_at_set_once(self, context: KabanContext):
        task = await context.tasks.add_task("Task")

        started = await context.tasks.move_task(task.id, "in_progress")
        first_start = started.started_at
        await context.tasks.move_task(task.id, "todo")
        again = await context.tasks.move_task(task.id, "in_progress")

        assert first_start is not None
        assert again.started_at == first_start

    async def test_terminal_move_sets_completed_at(self, context: KabanContext):
        task = await context.tasks.add_task("Task")

        done = await context.tasks.move_task(task.id, "done")

        assert done.completed_at is not None

    async def test_complete_task(self, context: KabanContext):
        task = await context.tasks.add_task("Task")

        done = await context.tasks.complete_task(task.id)

        assert done.column_id == "done"
        assert done.completed_at is not None


# ==========================================================================
# Update / optimistic versioning
# ==========================================================================

class TestUpdateTask:
    """Tests for partial updates and the version gate."""

    async def test_partial_update(self, context: KabanContext):
        task = await context.tasks.add_task("Task", description="old", labels=["a"])

        updated = await context.tasks.update_task(
            task.id,
            {"title": "Renamed", "labels": ["b", "c"], "assigned_to": "Dev"},
        )

        assert updated.title == "Renamed"
        assert updated.labels == ["b", "c"]
        assert updated.assigned_to == "dev"
        assert updated.description == "old"
        assert updated.version == 2

    async def test_clear_description(self, context: KabanContext):
        task = await context.tasks.add_task("Task", description="old")

        updated = await context.tasks.update_task(task.id, {"description": None})

        assert updated.description is None

    async def test_version_conflict_scenario(self, context: KabanContext):
        task = await context.tasks.add_task("Task")
        assert task.version == 1

        updated = await context.tasks.update_task(task.id, {"title": "First"}, expected_version=1)
        assert updated.version == 2

        with pytest.raises(KabanError) as exc_info:
            await context.tasks.update_task(task.id, {"title": "Second"}, expected_version=1)

        assert exc_info.value.code == ExitCode.CONFLICT
        assert "Current version: 2" in exc_info.value.message
        stored = await context.tasks.get_task(task.id)
        assert stored.title == "First"
        assert stored.version == 2

    async def test_every_mutation_adds_one(self, context: KabanContext):
        task = await context.tasks.add_task("Task")

        task = await context.tasks.update_task(task.id, {"priority": "high"})
        task = await context.tasks.move_task(task.id, "review")
        task = await context.tasks.update_task(task.id, {"files": ["a.py"]})

        assert task.version == 4
        assert task.priority == TaskPriority.HIGH

    async def test_invalid_update(self, context: KabanContext):
        task = await context.tasks.add_task("Task")

        with pytest.raises(KabanError) as exc_info:
            await context.tasks.update_task(task.id, {"title": "   "})

        assert exc_info.value.code == ExitCode.VALIDATION
        assert (await context.tasks.get_task(task.id)).version == 1

    async def test_due_date_offset_stored_as_utc(self, context: KabanContext):
        task = await context.tasks.add_task("Task")

        updated = await context.tasks.update_task(task.id, {"due_date": "2030-01-01T12:00:00+05:00"})

        assert as_utc(updated.due_date) == datetime(2030, 1, 1, 7, 0, tzinfo=timezone.utc)

    async def test_add_task_due_date_offset_stored_as_utc(self, context: KabanContext):
        due = datetime(2030, 1, 1, 12, 0, tzinfo=PLUS_FIVE)

        task = await context.tasks.add_task("Task", due_date=due)

        assert as_utc(task.due_date) == datetime(2030, 1, 1, 7, 0, tzinfo=timezone.utc)

    async def test_update_missing(self, context: KabanContext):
        with pytest.raises(KabanError) as exc_info:
            await context.tasks.update_task("01ARZ3NDEKTSV4RRFFQ69G5FAV", {"title": "X"})

        assert exc_info.value.code == ExitCode.NOT_FOUND


# ==========================================================================
# Archive / Restore / Delete
# ==========================================================================

class TestArchive:
    """Tests for soft deletion and recovery."""

    async def test_requires_criteria(self, context: KabanContext):
        with pytest.raises(KabanError) as exc_info:
            await context.tasks.archive_tasks({})

        assert exc_info.value.code == ExitCode.VALIDATION

    async def test_archive_by_column(self, context: KabanContext):
        done = await context.tasks.add_task("Shipped", column_id="done")
        await context.tasks.add_task("Open")

        result = await context.tasks.archive_tasks({"status": "done"})

        assert result.archived_count == 1
        assert result.task_ids == [done.id]
        stored = await context.tasks.get_task(done.id)
        assert stored.archived is True
        assert stored.archived_at is not None

    async def test_criteria_combine_with_and(self, context: KabanContext):
        a = await context.tasks.add_task("A", column_id="done")
        b = await context.tasks.add_task("B")

        result = await context.tasks.archive_tasks({"task_ids": [a.id, b.id], "status": "todo"})

        assert result.task_ids == [b.id]

    async def test_older_than(self, context: KabanContext):
        await context.tasks.add_task("Fresh")

        past = await context.tasks.archive_tasks({"older_than": utcnow() - timedelta(days=1)})
        future = await context.tasks.archive_tasks({"older_than": utcnow() + timedelta(days=1)})

        assert past.archived_count == 0
        assert future.archived_count == 1

    async def test_older_than_with_offset(self, context: KabanContext):
        await context.tasks.add_task("Fresh")
        cutoff = (utcnow() - timedelta(hours=1)).astimezone(PLUS_FIVE)

        from_string = await context.tasks.archive_tasks({"older_than": cutoff.isoformat()})
        from_datetime = await context.tasks.archive_tasks({"older_than": cutoff})

        assert from_string.archived_count == 0
        assert from_datetime.archived_count == 0

    async def test_already_archived_skipped(self, context: KabanContext):
        task = await context.tasks.add_task("Task")
        await context.tasks.archive_tasks({"task_ids": [task.id]})

        again = await context.tasks.archive_tasks({"task_ids": [task.id]})

        assert again.archived_count == 0

    async def test_archive_then_restore(self, context: KabanContext):
        task = await context.tasks.add_task("Task", description="keep me", labels=["x"])
        original_version = task.version
        await context.tasks.archive_tasks({"task_ids": [task.id]})

        restored = await context.tasks.restore_task(task.id)

        assert restored.archived is False
        assert restored.archived_at is None
        assert restored.version > original_version
        assert restored.title == "Task"
        assert restored.description == "keep me"
        assert restored.labels == ["x"]
        assert restored.column_id == "todo"

    async def test_restore_into_column_ignores_wip(self, context: KabanContext):
        task = await context.tasks.add_task("Task")
        await context.tasks.archive_tasks({"task_ids": [task.id]})
        for i in range(3):
            await context.tasks.add_task(f"Busy {i}", column_id="in_progress")

        restored = await context.tasks.restore_task(task.id, "in_progress")

        assert restored.column_id == "in_progress"
        assert restored.position == 3

    async def test_restore_errors(self, context: KabanContext):
        live = await context.tasks.add_task("Live")
        archived = await context.tasks.add_task("Archived")
        await context.tasks.archive_tasks({"task_ids": [archived.id]})

        with pytest.raises(KabanError) as missing:
            await context.tasks.restore_task("01ARZ3NDEKTSV4RRFFQ69G5FAV")
        with pytest.raises(KabanError) as not_archived:
            await context.tasks.restore_task(live.id)
        with pytest.raises(KabanError) as bad_column:
            await context.tasks.restore_task(archived.id, "nope")

        assert missing.value.code == ExitCode.NOT_FOUND
        assert not_archived.value.code == ExitCode.VALIDATION
        assert bad_column.value.code == ExitCode.VALIDATION

    async def test_search_archive(self, context: KabanContext):
        login = await context.tasks.add_task("Fix login bug", description="OAuth redirect loop")
        docs = await context.tasks.add_task("Write docs")
        await context.tasks.add_task("Login page redesign")
        await context.tasks.archive_tasks({"task_ids": [login.id, docs.id]})

        hits, total = await context.tasks.search_archive("LOGIN")
        both, _ = await context.tasks.search_archive("login redirect")
        everything, all_total = await context.tasks.search_archive("")
        page, paged_total = await context.tasks.search_archive("", limit=1, offset=1)

        assert [t.id for t in hits] == [login.id]
        assert total == 1
        assert [t.id for t in both] == [login.id]
        assert {t.id for t in everything} == {login.id, docs.id}
        assert all_total == 2
        assert len(page) == 1
        assert paged_total == 2

    async def test_search_treats_wildcards_literally(self, context: KabanContext):
        task = await context.tasks.add_task("Plain title")
        await context.tasks.archive_tasks({"task_ids": [task.id]})

        hits, total = await context.tasks.search_archive("%")

        assert hits == []
        assert total == 0

    async def test_purge_archive(self, context: KabanContext):
        old = await context.tasks.add_task("Old")
        live = await context.tasks.add_task("Live")
        await context.tasks.archive_tasks({"task_ids": [old.id]})

        nothing = await context.tasks.purge_archive(older_than=utcnow() - timedelta(days=1))
        purged = await context.tasks.purge_archive()

        assert nothing.deleted_count == 0
        assert purged.deleted_count == 1
        assert await context.tasks.get_task(old.id) is None
        assert await context.tasks.get_task(live.id) is not None

    async def test_purge_cutoff_with_offset(self, context: KabanContext):
        task = await context.tasks.add_task("Old")
        await context.tasks.archive_tasks({"task_ids": [task.id]})
        cutoff = (utcnow() - timedelta(hours=1)).astimezone(PLUS_FIVE)

        result = await context.tasks.purge_archive(older_than=cutoff)

        assert result.deleted_count == 0
        assert await context.tasks.get_task(task.id) is not None

    async def test_reset_board(self, context: KabanContext):
        task = await context.tasks.add_task("One")
        await context.tasks.add_task("Two")
        await context.tasks.archive_tasks({"task_ids": [task.id]})

        result = await context.tasks.reset_board()

        assert result.deleted_count == 2
        assert await context.tasks.list_tasks(include_archived=True) == []

    async def test_delete_task_removes_links(self, context: KabanContext):
        a = await context.tasks.add_task("A")
        b = await context.tasks.add_task("B")
        await context.links.add_link(a.id, b.id, LinkType.BLOCKS)

        await context.tasks.delete_task(a.id)

        assert await context.tasks.get_task(a.id) is None
        assert await context.links.get_blockers(b.id) == []

    async def test_delete_missing(self, context: KabanContext):
        with pytest.raises(KabanError) as exc_info:
            await context.tasks.delete_task("01ARZ3NDEKTSV4RRFFQ69G5FAV")

        assert exc_info.value.code == ExitCode.NOT_FOUND


# ==========================================================================
# Dependencies / Parents / Similarity
# ==========================================================================

class TestDependencies:
    """Tests for dependsOn bookkeeping and actionable filtering."""

    async def test_add_and_remove(self, context: KabanContext):
        a = await context.tasks.add_task("A")
        b = await context.tasks.add_task("B")

        b = await context.tasks.add_dependency(b.id, a.id)
        version_after_add = b.version
        same = await context.tasks.add_dependency(b.id, a.id)

        assert b.depends_on == [a.id]
        assert version_after_add == 2
        assert same.version == 2

        b = await context.tasks.remove_dependency(b.id, a.id)
        assert b.depends_on == []

    async def test_self_dependency(self, context: KabanContext):
        a = await context.tasks.add_task("A")

        with pytest.raises(KabanError) as exc_info:
            await context.tasks.add_dependency(a.id, a.id)

        assert exc_info.value.code == ExitCode.VALIDATION

    async def test_validate_and_move_with_deps(self, context: KabanContext):
        a = await context.tasks.add_task("A")
        b = await context.tasks.add_task("B", depends_on=[a.id])

        check = await context.tasks.validate_dependencies(b.id)
        assert check.valid is False
        assert check.blocked_by == [a.id]

        with pytest.raises(KabanError) as exc_info:
            await context.tasks.move_task(b.id, "done", validate_deps=True)
        assert exc_info.value.code == ExitCode.VALIDATION

        await context.tasks.complete_task(a.id)
        assert (await context.tasks.validate_dependencies(b.id)).valid is True
        assert (await context.tasks.move_task(b.id, "done", validate_deps=True)).column_id == "done"

    async def test_actionable_tasks(self, context: KabanContext):
        a = await context.tasks.add_task("A")
        b = await context.tasks.add_task("B", depends_on=[a.id])
        stuck = await context.tasks.add_task("Stuck")
        await context.tasks.update_task(stuck.id, {"blocked_reason": "waiting"})
        await context.tasks.add_task("Finished", column_id="done")

        actionable = await context.tasks.get_actionable_tasks()
        assert [t.id for t in actionable] == [a.id]

        await context.tasks.complete_task(a.id)
        actionable = await context.tasks.get_actionable_tasks()
        assert [t.id for t in actionable] == [b.id]


class TestParents:
    """Tests for parent chains."""

    async def test_set_and_clear_parent(self, context: KabanContext):
        epic = await context.tasks.add_task("Epic")
        child = await context.tasks.add_task("Child")

        child = await context.tasks.set_parent(child.id, epic.id)
        assert child.parent_id == epic.id

        child = await context.tasks.set_parent(child.id, None)
        assert child.parent_id is None

    async def test_cycle_rejected(self, context: KabanContext):
        a = await context.tasks.add_task("A")
        b = await context.tasks.add_task("B", parent_id=a.id)
        c = await context.tasks.add_task("C", parent_id=b.id)

        with pytest.raises(KabanError) as exc_info:
            await context.tasks.set_parent(a.id, c.id)
        assert exc_info.value.code == ExitCode.VALIDATION

        with pytest.raises(KabanError):
            await context.tasks.set_parent(a.id, a.id)

    async def test_deleting_parent_detaches_children(self, context: KabanContext):
        parent = await context.tasks.add_task("Parent")
        child = await context.tasks.add_task("Child", parent_id=parent.id)

        await context.tasks.delete_task(parent.id)

        assert (await context.tasks.get_task(child.id)).parent_id is None


class TestSimilarTasks:
    """Tests for duplicate detection."""

    async def test_find_similar(self, context: KabanContext):
        await context.tasks.add_task("Fix the login page bug")
        await context.tasks.add_task("Write release notes")

        similar = await context.tasks.find_similar_tasks("fix login page bug")

        assert len(similar) == 1
        task, score = similar[0]
        assert task.title == "Fix the login page bug"
        assert score == pytest.approx(0.8)

    async def test_checked_add_rejects_duplicates(self, context: KabanContext):
        await context.tasks.add_task("Fix the login page bug")

        rejected = await context.tasks.add_task_checked("Fix login page bug")
        forced = await context.tasks.add_task_checked("Fix login page bug", force=True)
        fresh = await context.tasks.add_task_checked("Deploy to staging", column_id="backlog")

        assert rejected.created is False
        assert rejected.rejected is True
        assert "force" in rejected.rejection_reason
        assert forced.created is True
        assert forced.task.title == "Fix login page bug"
        assert fresh.created is True
        assert fresh.task.column_id == "backlog"
        assert fresh.similar_tasks == []
