"""Post-completion cooldown gate.

After a client's expensive request finishes (or fails because of the OCR
upstream) the client must stay quiet for ``cooldown_seconds``.
"""

import asyncio
from typing import Dict, Optional

from scanner.app.admission.models import CooldownRecord, seconds_until
from scanner.app.core.logging import get_log_context, get_logger

logger = get_logger(__name__)


class CooldownGate:
    """In-memory cooldown deadlines keyed by client identity."""

    def __init__(self, cooldown_seconds: float = 30.0):
        self.cooldown_seconds = cooldown_seconds
        self._records: Dict[str, CooldownRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def check(self, identity: str, now: float) -> Optional[int]:
        """Return seconds left on the identity's cooldown, or None if not gated."""
        async with self._lock:
            record = self._records.get(identity)
            if record is None or record.is_expired(now):
                return None
            return seconds_until(record.active_until, now)

    async def arm(self, identity: str, now: float) -> None:
        """Start (or restart) the cooldown for identity."""
        async with self._lock:
            active_until = now + self.cooldown_seconds
            record = self._records.get(identity)
            if record is None:
                self._records[identity] = CooldownRecord(active_until=active_until)
            else:
                record.active_until = active_until
        logger.debug(
            f"Cooldown armed for {self.cooldown_seconds:g}s",
            extra=get_log_context(client_id=identity),
        )

    async def sweep(self, now: float) -> int:
        """Evict expired cooldowns and return how many were removed."""
        async with self._lock:
            expired = [
                identity for identity, record in self._records.items()
                if record.is_expired(now)
            ]
            for identity in expired:
                del self._records[identity]
        return len(expired)
