"""Query and body models for build-log retrieval.

These models exist for the build-log API endpoints and validate their
parameters; the log store itself is served elsewhere. Query-string values
arrive as text, so flags and level lists are coerced before validation.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from otto_api.github.schemas import CamelModel


class LogLevel(str, Enum):
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    UNKNOWN = "UNKNOWN"


class TimeRange(str, Enum):
    ONE_HOUR = "1h"
    TWENTY_FOUR_HOURS = "24h"
    SEVEN_DAYS = "7d"
    THIRTY_DAYS = "30d"
    ALL = "all"


def _truthy(value) -> bool:
    # Only the literal string "true" or boolean True count as set.
    return value is True or value == "true"


def _split_levels(value):
    if isinstance(value, str):
        return [part.strip().upper() for part in value.split(",")]
    return value


class GetLogsQuery(CamelModel):
    codebuild_id: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    limit: int = Field(default=1000, ge=1, le=10000)
    next_token: Optional[str] = None


class _LogFilters(CamelModel):
    levels: Optional[list[LogLevel]] = None
    regex: bool = False
    include_context: bool = False
    context_lines: int = Field(default=3, ge=0)
    limit: int = Field(default=100, ge=1)
    offset: int = Field(default=0, ge=0)

    @field_validator("levels", mode="before")
    @classmethod
    def split_levels(cls, v):
        return _split_levels(v)

    @field_validator("regex", "include_context", mode="before")
    @classmethod
    def coerce_flag(cls, v) -> bool:
        return _truthy(v)


class GetUnifiedLogsQuery(_LogFilters):
    search: Optional[str] = None
    time_range: TimeRange = TimeRange.ALL


class TimeWindow(CamelModel):
    start: Optional[str] = None
    end: Optional[str] = None


class SearchLogsRequest(_LogFilters):
    query: str
    time_range: Optional[TimeWindow] = None
