"""Tests for build-log query and search models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from otto_api.logs.schemas import (
    GetLogsQuery,
    GetUnifiedLogsQuery,
    LogLevel,
    SearchLogsRequest,
    TimeRange,
)


class TestGetLogsQuery:
    def test_defaults(self):
        query = GetLogsQuery.model_validate({"codebuildId": "proj-123:abc"})
        assert query.codebuild_id == "proj-123:abc"
        assert query.limit == 1000
        assert query.next_token is None

    def test_limit_string_is_coerced(self):
        assert GetLogsQuery.model_validate({"codebuildId": "b", "limit": "250"}).limit == 250

    @pytest.mark.parametrize("limit", [0, 10001])
    def test_limit_bounds(self, limit):
        with pytest.raises(ValidationError):
            GetLogsQuery.model_validate({"codebuildId": "b", "limit": limit})

    def test_times_are_parsed(self):
        query = GetLogsQuery.model_validate(
            {"codebuildId": "b", "startTime": "2026-01-02T03:04:05Z"}
        )
        assert isinstance(query.start_time, datetime)
        assert query.start_time.year == 2026

    def test_codebuild_id_required(self):
        with pytest.raises(ValidationError):
            GetLogsQuery.model_validate({})


class TestGetUnifiedLogsQuery:
    def test_defaults(self):
        query = GetUnifiedLogsQuery()
        assert query.limit == 100
        assert query.offset == 0
        assert query.levels is None
        assert query.regex is False
        assert query.time_range is TimeRange.ALL
        assert query.include_context is False
        assert query.context_lines == 3

    def test_comma_separated_levels(self):
        query = GetUnifiedLogsQuery.model_validate({"levels": "error, warn"})
        assert query.levels == [LogLevel.ERROR, LogLevel.WARN]

    def test_level_list(self):
        query = GetUnifiedLogsQuery.model_validate({"levels": ["INFO", "DEBUG"]})
        assert query.levels == [LogLevel.INFO, LogLevel.DEBUG]

    def test_unknown_level_is_rejected(self):
        with pytest.raises(ValidationError):
            GetUnifiedLogsQuery.model_validate({"levels": "fatal"})

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), (True, True), ("false", False), ("1", False), ("TRUE", False)],
    )
    def test_flag_coercion(self, value, expected):
        query = GetUnifiedLogsQuery.model_validate({"regex": value, "includeContext": value})
        assert query.regex is expected
        assert query.include_context is expected

    def test_time_range(self):
        assert GetUnifiedLogsQuery.model_validate({"timeRange": "24h"}).time_range is TimeRange.TWENTY_FOUR_HOURS
        with pytest.raises(ValidationError):
            GetUnifiedLogsQuery.model_validate({"timeRange": "2w"})

    def test_negative_offset_is_rejected(self):
        with pytest.raises(ValidationError):
            GetUnifiedLogsQuery.model_validate({"offset": -1})


class TestSearchLogsRequest:
    def test_query_required(self):
        with pytest.raises(ValidationError):
            SearchLogsRequest.model_validate({})

    def test_nested_time_window(self):
        request = SearchLogsRequest.model_validate(
            {
                "query": "npm ERR!",
                "regex": "true",
                "levels": "error",
                "timeRange": {"start": "2026-01-01T00:00:00Z"},
                "contextLines": "5",
            }
        )
        assert request.query == "npm ERR!"
        assert request.regex is True
        assert request.levels == [LogLevel.ERROR]
        assert request.time_range.start == "2026-01-01T00:00:00Z"
        assert request.time_range.end is None
        assert request.context_lines == 5
        assert request.limit == 100
