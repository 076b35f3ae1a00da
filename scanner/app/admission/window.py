"""Per-client request window with block escalation.

Each identity may make ``max_requests`` requests per window. The request
that goes over the limit does not just get refused: it puts the identity
into a block that lasts ``block_seconds``, which is longer than the window,
so retry storms against the expensive backend stop paying off.
"""

import asyncio
from typing import Dict, Optional

from scanner.app.admission.models import (
    ClientRecord,
    Decision,
    DenialReason,
    seconds_until,
)
from scanner.app.core.logging import get_log_context, get_logger

logger = get_logger(__name__)


class WindowCounter:
    """In-memory fixed-window counter keyed by client identity.

    Suitable for single-instance deployments. All reads and writes of the
    store happen under one lock with no await in between, so concurrent
    requests from the same identity are serialized.
    """

    def __init__(
        self,
        max_requests: int = 3,
        window_seconds: float = 30.0,
        block_seconds: float = 120.0,
    ):
        """Initialize the counter.

        Args:
            max_requests: Requests allowed per window
            window_seconds: Window length in seconds
            block_seconds: How long an identity stays blocked after going
                over the limit
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.block_seconds = block_seconds

        self._records: Dict[str, ClientRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def observe(self, identity: str, now: float) -> Decision:
        """Count one request for identity and decide whether it may proceed."""
        async with self._lock:
            record = self._records.get(identity)
            if record is None:
                record = ClientRecord(count=0, window_start=now)
                self._records[identity] = record

            if record.blocked:
                if now < record.block_until:
                    return Decision.deny(
                        identity,
                        DenialReason.BLOCKED,
                        "Too many requests. You are temporarily blocked.",
                        retry_after=seconds_until(record.block_until, now),
                        limit=self.max_requests,
                    )
                # Block lifted: this request starts a fresh window
                record.blocked = False
                record.count = 0
                record.window_start = now

            if now - record.window_start > self.window_seconds:
                record.count = 0
                record.window_start = now

            record.count += 1

            if record.count > self.max_requests:
                record.blocked = True
                record.block_until = now + self.block_seconds
                logger.warning(
                    f"Client exceeded {self.max_requests} requests per "
                    f"{self.window_seconds:g}s, blocking for {self.block_seconds:g}s",
                    extra=get_log_context(
                        client_id=identity,
                        reason=DenialReason.RATE_LIMIT_EXCEEDED.value,
                    ),
                )
                return Decision.deny(
                    identity,
                    DenialReason.RATE_LIMIT_EXCEEDED,
                    "Rate limit exceeded. Please try again later.",
                    retry_after=seconds_until(record.block_until, now),
                    limit=self.max_requests,
                )

            return Decision.allow(
                identity,
                limit=self.max_requests,
                remaining=self.max_requests - record.count,
                reset_at=record.window_start + self.window_seconds,
            )

    async def snapshot(self, identity: str) -> Optional[ClientRecord]:
        """Return a copy of the identity's record without creating one."""
        async with self._lock:
            record = self._records.get(identity)
            if record is None:
                return None
            return ClientRecord(
                count=record.count,
                window_start=record.window_start,
                blocked=record.blocked,
                block_until=record.block_until,
            )

    async def sweep(self, now: float) -> int:
        """Evict expired records.

        Returns:
            Number of records removed
        """
        async with self._lock:
            expired = [
                identity for identity, record in self._records.items()
                if record.is_expired(now, self.window_seconds)
            ]
            for identity in expired:
                del self._records[identity]
        return len(expired)
