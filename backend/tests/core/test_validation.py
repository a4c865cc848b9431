"""
Kaban - Validation, Identifier and Result Tests
===============================================
"""

from datetime import datetime, timezone

import pytest

from kaban.core.errors import Err, ExitCode, KabanError, Ok, capture, not_found
from kaban.core.ids import as_utc, is_ulid, new_ulid
from kaban.core.validation import (
    validate_agent_name,
    validate_column_id,
    validate_task_id,
    validate_title,
)


class TestValidators:
    """Tests for the validate_* helpers."""

    def test_title_trimmed(self):
        assert validate_title("  Hello  ") == "Hello"

    def test_title_max_length(self):
        assert validate_title("x" * 200) == "x" * 200
        with pytest.raises(KabanError):
            validate_title("x" * 201)

    @pytest.mark.parametrize("name, expected", [("Claude", "claude"), ("dev_bot-2", "dev_bot-2")])
    def test_agent_names(self, name, expected):
        assert validate_agent_name(name) == expected

    @pytest.mark.parametrize("name", ["", "_lead", "two words", "x" * 51])
    def test_bad_agent_names(self, name):
        with pytest.raises(KabanError) as exc_info:
            validate_agent_name(name)

        assert exc_info.value.code == ExitCode.VALIDATION

    @pytest.mark.parametrize("column_id", ["In_Progress", "to-do", ""])
    def test_bad_column_ids(self, column_id):
        with pytest.raises(KabanError):
            validate_column_id(column_id)

    def test_task_id(self):
        task_id = new_ulid()

        assert validate_task_id(task_id) == task_id
        with pytest.raises(KabanError):
            validate_task_id("not-a-ulid")


class TestIds:
    """Tests for ULID generation and time helpers."""

    def test_ulid_shape(self):
        assert is_ulid(new_ulid())
        assert len(new_ulid()) == 26

    def test_ulids_sort_by_time(self):
        earlier = new_ulid(timestamp_ms=1_700_000_000_000)
        later = new_ulid(timestamp_ms=1_700_000_000_001)

        assert earlier < later

    def test_as_utc(self):
        naive = datetime(2026, 1, 1, 12, 0)

        assert as_utc(naive).tzinfo == timezone.utc
        assert as_utc(None) is None


class TestResult:
    """Tests for folding errors into Ok / Err."""

    async def test_ok(self):
        async def succeed():
            return 42

        result = await capture(succeed())

        assert result == Ok(42)
        assert result.ok is True

    async def test_kaban_error(self):
        async def missing():
            raise not_found("Task", "ABC")

        result = await capture(missing())

        assert result == Err(ExitCode.NOT_FOUND, "Task 'ABC' not found")
        assert result.ok is False

    async def test_unexpected_error(self):
        async def explode():
            raise RuntimeError("disk full")

        result = await capture(explode())

        assert result == Err(ExitCode.GENERAL_ERROR, "disk full")
