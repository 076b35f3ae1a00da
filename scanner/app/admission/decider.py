"""Admission decisions for the expensive scan endpoints."""

import time
from typing import Callable, Optional

from starlette.requests import HTTPConnection

from scanner.app.admission.cooldown import CooldownGate
from scanner.app.admission.identity import resolve_client_identity
from scanner.app.admission.models import (
    AdmissionConfig,
    ClientStatus,
    Decision,
    DenialReason,
    Outcome,
    seconds_until,
)
from scanner.app.admission.window import WindowCounter
from scanner.app.core.logging import get_log_context, get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


class AdmissionDecider:
    """Decides whether a client may run the expensive operation.

    Checks run in a fixed order and the first denial wins:

    1. allow-list (403 when configured and the identity is not on it)
    2. cooldown gate (429, the window budget is not charged)
    3. request window and block escalation (429)

    Usage:
        decider = AdmissionDecider(AdmissionConfig())
        decision = await decider.admit(request)
        if decision.allowed:
            try:
                result = await run_expensive_operation()
            except UpstreamError:
                await decider.report(decision.identity, Outcome.UPSTREAM_FAILURE)
                raise
            await decider.report(decision.identity, Outcome.SUCCESS)
    """

    def __init__(
        self,
        config: Optional[AdmissionConfig] = None,
        window_counter: Optional[WindowCounter] = None,
        cooldown_gate: Optional[CooldownGate] = None,
        clock: Clock = time.time,
    ):
        """Initialize the decider.

        Args:
            config: Limits and allow-list; defaults apply when omitted
            window_counter: Store for window/block state (built from config if omitted)
            cooldown_gate: Store for cooldown state (built from config if omitted)
            clock: Time source returning seconds; must be the same one the
                Reaper uses
        """
        self.config = config or AdmissionConfig()
        # Stores define __len__, so an empty one is falsy: compare with None
        if window_counter is None:
            window_counter = WindowCounter(
                max_requests=self.config.max_requests,
                window_seconds=self.config.window_seconds,
                block_seconds=self.config.block_seconds,
            )
        if cooldown_gate is None:
            cooldown_gate = CooldownGate(cooldown_seconds=self.config.cooldown_seconds)
        self.window_counter = window_counter
        self.cooldown_gate = cooldown_gate
        self.clock = clock

    async def admit(self, request: HTTPConnection, now: Optional[float] = None) -> Decision:
        """Decide on an incoming HTTP request."""
        return await self.evaluate(resolve_client_identity(request), now)

    async def evaluate(self, identity: str, now: Optional[float] = None) -> Decision:
        """Decide on a request from an already-resolved identity."""
        if now is None:
            now = self.clock()

        if self.config.allow_list and identity not in self.config.allow_list:
            decision = Decision.deny(
                identity,
                DenialReason.NOT_ALLOWED,
                "Access denied for this client.",
            )
        else:
            cooldown_left = await self.cooldown_gate.check(identity, now)
            if cooldown_left is not None:
                decision = Decision.deny(
                    identity,
                    DenialReason.COOLDOWN_ACTIVE,
                    f"Please wait {cooldown_left} seconds before the next scan.",
                    retry_after=cooldown_left,
                    limit=self.config.max_requests,
                )
            else:
                decision = await self.window_counter.observe(identity, now)

        if not decision.allowed:
            logger.info(
                f"Admission denied: {decision.message}",
                extra=get_log_context(
                    client_id=identity,
                    reason=decision.reason.value,
                    retry_after=decision.retry_after,
                ),
            )
        return decision

    async def report(
        self, identity: str, outcome: Outcome, now: Optional[float] = None
    ) -> None:
        """Record how the expensive operation ended for identity.

        Success and OCR upstream failures arm the cooldown; any other
        failure leaves the client's state untouched.
        """
        if outcome is Outcome.FAILURE:
            return
        await self.cooldown_gate.arm(identity, self.clock() if now is None else now)

    async def mark_success(self, identity: str, now: Optional[float] = None) -> None:
        await self.report(identity, Outcome.SUCCESS, now)

    async def mark_upstream_failure(self, identity: str, now: Optional[float] = None) -> None:
        await self.report(identity, Outcome.UPSTREAM_FAILURE, now)

    async def status(self, identity: str, now: Optional[float] = None) -> ClientStatus:
        """Current admission state of identity; never creates records."""
        if now is None:
            now = self.clock()

        limit = self.config.max_requests
        cooldown_left = await self.cooldown_gate.check(identity, now) or 0
        record = await self.window_counter.snapshot(identity)

        if record is not None and record.blocked and now < record.block_until:
            return ClientStatus(
                identity=identity,
                count=record.count,
                limit=limit,
                remaining=0,
                reset_at=record.block_until,
                blocked=True,
                block_remaining=seconds_until(record.block_until, now),
                cooldown_remaining=cooldown_left,
            )

        if record is None or record.is_expired(now, self.config.window_seconds):
            return ClientStatus(
                identity=identity,
                count=0,
                limit=limit,
                remaining=limit,
                reset_at=None,
                blocked=False,
                cooldown_remaining=cooldown_left,
            )

        return ClientStatus(
            identity=identity,
            count=record.count,
            limit=limit,
            remaining=max(0, limit - record.count),
            reset_at=record.window_start + self.config.window_seconds,
            blocked=False,
            cooldown_remaining=cooldown_left,
        )
