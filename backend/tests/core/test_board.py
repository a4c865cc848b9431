"""
Kaban - Board Directory Tests
=============================
"""

import pytest

from kaban.core.context import KabanContext
from kaban.core.errors import ExitCode, KabanError
from kaban.core.schemas import (
    DEFAULT_BOARD_CONFIG,
    BoardConfig,
    load_board_config,
)


class TestInitializeBoard:
    """Tests for creating the board and its columns."""

    async def test_columns_keep_configured_order(self, context: KabanContext):
        columns = await context.boards.get_columns()

        assert [c.id for c in columns] == ["backlog", "todo", "in_progress", "review", "done"]
        assert [c.position for c in columns] == [0, 1, 2, 3, 4]

    async def test_wip_limits_and_terminal_flag(self, context: KabanContext):
        in_progress = await context.boards.get_column("in_progress")
        done = await context.boards.get_column("done")

        assert in_progress.wip_limit == 3
        assert in_progress.is_terminal is False
        assert done.is_terminal is True
        assert done.wip_limit is None

    async def test_second_initialize_is_rejected(self, context: KabanContext):
        with pytest.raises(KabanError) as exc_info:
            await context.boards.initialize_board(DEFAULT_BOARD_CONFIG)

        assert exc_info.value.code == ExitCode.VALIDATION

    async def test_custom_board(self, empty_context: KabanContext):
        config = BoardConfig.model_validate({
            "board": {"name": "Sprint"},
            "columns": [
                {"id": "todo", "name": "Todo"},
                {"id": "doing", "name": "Doing", "wipLimit": 1},
                {"id": "shipped", "name": "Shipped", "isTerminal": True},
            ],
        })

        board = await empty_context.boards.initialize_board(config)

        assert board.name == "Sprint"
        terminal = await empty_context.boards.get_terminal_column()
        assert terminal.id == "shipped"
        assert (await empty_context.boards.get_column("doing")).wip_limit == 1


class TestReads:
    """Tests for pure board reads."""

    async def test_no_board(self, empty_context: KabanContext):
        assert await empty_context.boards.get_board() is None
        assert await empty_context.boards.get_terminal_column() is None
        assert await empty_context.boards.get_status() is None
        assert await empty_context.boards.get_revision() == 0

    async def test_unknown_column(self, context: KabanContext):
        assert await context.boards.get_column("nope") is None

    async def test_revision_grows_with_writes(self, context: KabanContext):
        before = await context.boards.get_revision()

        task = await context.tasks.add_task("Write docs")
        await context.tasks.move_task(task.id, "in_progress")

        assert await context.boards.get_revision() == before + 2

    async def test_status_counts(self, context: KabanContext):
        await context.tasks.add_task("One")
        await context.tasks.add_task("Two")
        third = await context.tasks.add_task("Three", column_id="backlog")
        await context.tasks.archive_tasks({"task_ids": [third.id]})

        status = await context.boards.get_status()

        counts = {c.id: c.task_count for c in status.columns}
        assert counts["todo"] == 2
        assert counts["backlog"] == 0
        assert status.total_tasks == 2
        assert status.archived_tasks == 1


class TestBoardConfig:
    """Tests for board config validation and loading."""

    def test_duplicate_column_ids_rejected(self):
        with pytest.raises(ValueError):
            BoardConfig.model_validate({
                "board": {"name": "Dup"},
                "columns": [
                    {"id": "todo", "name": "A"},
                    {"id": "todo", "name": "B"},
                ],
            })

    def test_default_column_must_exist(self):
        with pytest.raises(ValueError):
            BoardConfig.model_validate({
                "board": {"name": "X"},
                "columns": [{"id": "backlog", "name": "Backlog"}],
                "defaults": {"column": "todo"},
            })

    def test_missing_file_falls_back_to_default(self, tmp_path):
        assert load_board_config(tmp_path / "missing.json") == DEFAULT_BOARD_CONFIG

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            '{"board": {"name": "Mine"}, "columns": ['
            '{"id": "todo", "name": "Todo"}, {"id": "done", "name": "Done", "isTerminal": true}]}'
        )

        config = load_board_config(path)

        assert config.board.name == "Mine"
        assert config.columns[1].is_terminal is True
