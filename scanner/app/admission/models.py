"""Admission control data models.

This module contains the configuration, per-client state records and the
decision values produced by the admission-control components.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional


class DenialReason(str, Enum):
    """Machine-readable reason a request was refused."""

    NOT_ALLOWED = "not_allowed"
    COOLDOWN_ACTIVE = "cooldown_active"
    BLOCKED = "blocked"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"

    @property
    def status_code(self) -> int:
        if self is DenialReason.NOT_ALLOWED:
            return 403
        return 429


class Outcome(str, Enum):
    """Completion signal reported by the caller after the expensive operation."""

    SUCCESS = "success"
    UPSTREAM_FAILURE = "upstream_failure"
    FAILURE = "failure"


@dataclass(frozen=True)
class AdmissionConfig:
    """Limits applied to every client identity."""

    max_requests: int = 3
    window_seconds: float = 30.0
    block_seconds: float = 120.0
    cooldown_seconds: float = 30.0
    # Empty means every identity is allowed
    allow_list: FrozenSet[str] = field(default_factory=frozenset)


@dataclass
class ClientRecord:
    """Window and block state for one identity (owned by WindowCounter)."""

    count: int = 0
    window_start: float = 0.0
    blocked: bool = False
    block_until: float = 0.0

    def is_expired(self, now: float, window_seconds: float) -> bool:
        if self.blocked:
            return now >= self.block_until
        return now - self.window_start > window_seconds


@dataclass
class CooldownRecord:
    """Cooldown state for one identity (owned by CooldownGate)."""

    active_until: float

    def is_expired(self, now: float) -> bool:
        return now >= self.active_until


def seconds_until(deadline: float, now: float) -> int:
    """Whole seconds until deadline, rounded up so clients never retry early."""
    return max(0, math.ceil(deadline - now))


@dataclass
class Decision:
    """Result of an admission check.

    Allowed decisions carry rate-limit telemetry (limit, remaining, reset_at);
    denied decisions carry a reason, retry_after seconds and a message.
    """

    allowed: bool
    identity: str = ""
    limit: int = 0
    remaining: int = 0
    reset_at: Optional[float] = None
    reason: Optional[DenialReason] = None
    retry_after: Optional[int] = None
    message: str = ""

    @property
    def status_code(self) -> int:
        if self.allowed or self.reason is None:
            return 200
        return self.reason.status_code

    @classmethod
    def allow(
        cls, identity: str, limit: int, remaining: int, reset_at: float
    ) -> "Decision":
        return cls(
            allowed=True,
            identity=identity,
            limit=limit,
            remaining=remaining,
            reset_at=reset_at,
        )

    @classmethod
    def deny(
        cls,
        identity: str,
        reason: DenialReason,
        message: str,
        retry_after: Optional[int] = None,
        limit: int = 0,
    ) -> "Decision":
        return cls(
            allowed=False,
            identity=identity,
            limit=limit,
            remaining=0,
            reason=reason,
            retry_after=retry_after,
            message=message,
        )

    def headers(self) -> dict[str, str]:
        """Rate-limit response headers for HTTP callers."""
        headers: dict[str, str] = {}
        if self.limit:
            headers["X-RateLimit-Limit"] = str(self.limit)
            headers["X-RateLimit-Remaining"] = str(self.remaining)
        if self.reset_at is not None:
            headers["X-RateLimit-Reset"] = str(int(self.reset_at))
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


@dataclass
class ClientStatus:
    """Read-only view of one identity's admission state."""

    identity: str
    count: int
    limit: int
    remaining: int
    reset_at: Optional[float]
    blocked: bool
    block_remaining: int = 0
    cooldown_remaining: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "identity": self.identity,
            "count": self.count,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": int(self.reset_at) if self.reset_at is not None else None,
            "blocked": self.blocked,
            "block_remaining": self.block_remaining,
            "cooldown_remaining": self.cooldown_remaining,
        }
