"""
Data model for resource-cache.

RawRecord is the only state that is ever stored. Commands are the only way
to change it. ResourceView and the response models are derived on read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, Field


class FetchError(Exception):
    """Raised by fetch operations. Permanent failures are never retried."""

    def __init__(
        self,
        message: str,
        permanent: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.permanent = permanent
        self.status_code = status_code


def is_permanent(error: Any) -> bool:
    """Read the permanence flag an error value carries, if any."""
    if isinstance(error, dict):
        return bool(error.get("permanent", False))
    return bool(getattr(error, "permanent", False))


# ---------------------------------------------------------------------------
# Raw record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawRecord:
    """Persisted state of one resource. Timestamps are clock seconds."""

    data: Any = None
    has_data: bool = False  # None is a valid value, so presence is separate
    is_loading: bool = False
    error: Any = None
    has_error: bool = False  # error values may themselves be None
    error_is_permanent: bool = False
    last_success_time: Optional[float] = None
    last_failure_time: Optional[float] = None
    is_manually_stale: bool = False
    dependency_snapshot: Optional[dict[str, Any]] = None  # None: never evaluated
    # Last snapshot in which every required dependency had a value
    resolved_snapshot: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class InvalidationMode(str, Enum):
    clear = "clear"
    stale = "stale"


@dataclass(frozen=True)
class Replace:
    value: Any


@dataclass(frozen=True)
class Transform:
    func: Callable[[Any], Any]


Adjustment = Union[Replace, Transform]


@dataclass(frozen=True)
class FetchStarted:
    pass


@dataclass(frozen=True)
class FetchSucceeded:
    value: Any
    time: float


@dataclass(frozen=True)
class FetchFailed:
    error: Any
    time: float


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class MarkStale:
    pass


@dataclass(frozen=True)
class Adjust:
    adjustment: Adjustment


@dataclass(frozen=True)
class DependencyInvalidate:
    snapshot: dict[str, Any]
    mode: InvalidationMode


@dataclass(frozen=True)
class DependencySnapshot:
    """Record new dependency values without invalidating anything."""

    snapshot: dict[str, Any]
    resolved: bool = False  # snapshot satisfies every required dependency


Command = Union[
    FetchStarted,
    FetchSucceeded,
    FetchFailed,
    Clear,
    MarkStale,
    Adjust,
    DependencyInvalidate,
    DependencySnapshot,
]


# ---------------------------------------------------------------------------
# Derived view
# ---------------------------------------------------------------------------


class ResourceView(BaseModel):
    """Everything a reader may ask about the resource at one instant."""

    data: Any = None
    is_present: bool = False
    is_loading: bool = False
    is_pending_for_fetch: bool = False
    error: Any = None
    has_error: bool = False
    error_is_permanent: bool = False
    is_stale: bool = False
    is_ready_for_retry: bool = False
    retry_at: Optional[float] = None
    dependency_values: dict[str, Any] = Field(default_factory=dict)
    dependencies_satisfied: bool = True


# ---------------------------------------------------------------------------
# API response models
# ---------------------------------------------------------------------------


class ResourceStatus(str, Enum):
    empty = "empty"
    loading = "loading"
    fresh = "fresh"
    stale = "stale"
    error = "error"


class ErrorDetail(BaseModel):
    """Error information when the last fetch failed."""

    message: str
    permanent: bool = False
    status_code: Optional[int] = None


class ResourceResponse(BaseModel):
    """Current state of one cached resource."""

    name: str
    as_of: datetime
    status: ResourceStatus
    data: Any = Field(default=None, description="Cached data; null may be a present value")
    is_present: bool = Field(description="Whether data is present, independent of its value")
    is_loading: bool
    is_pending_for_fetch: bool = Field(description="Whether a fetch should be issued now")
    is_stale: bool
    is_ready_for_retry: bool
    retry_at: Optional[datetime] = None
    error: Optional[ErrorDetail] = None
    dependency_values: dict[str, Any] = Field(default_factory=dict)
