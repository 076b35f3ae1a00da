"""Tests for the per-client request window and block escalation."""

import asyncio

import pytest

from scanner.app.admission import DenialReason, WindowCounter


T0 = 1_000.0


class TestWindowCounter:
    """Tests for WindowCounter.observe."""

    @pytest.fixture
    def counter(self):
        return WindowCounter(max_requests=3, window_seconds=30, block_seconds=120)

    @pytest.mark.asyncio
    async def test_first_request_creates_record(self, counter):
        """Test that an unseen identity starts a new window."""
        decision = await counter.observe("10.0.0.1", T0)

        assert decision.allowed is True
        assert decision.limit == 3
        assert decision.remaining == 2
        assert decision.reset_at == T0 + 30
        assert len(counter) == 1

    @pytest.mark.asyncio
    async def test_requests_over_limit_are_blocked(self, counter):
        """Test that the (N+1)-th request in a window escalates into a block."""
        results = [await counter.observe("10.0.0.1", T0 + t) for t in (0, 5, 10, 15)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results[:3]] == [2, 1, 0]
        assert results[3].reason is DenialReason.RATE_LIMIT_EXCEEDED
        assert results[3].retry_after == 120
        assert results[3].status_code == 429

    @pytest.mark.asyncio
    async def test_blocked_identity_is_denied_without_counting(self, counter):
        """Test that requests during a block are denied with the time left."""
        for t in (0, 5, 10, 15):
            await counter.observe("10.0.0.1", T0 + t)

        decision = await counter.observe("10.0.0.1", T0 + 16)
        assert decision.allowed is False
        assert decision.reason is DenialReason.BLOCKED
        assert decision.retry_after == 119

        record = await counter.snapshot("10.0.0.1")
        assert record.count == 4
        assert record.blocked is True
        assert record.block_until == T0 + 135

    @pytest.mark.asyncio
    async def test_block_is_longer_than_window(self, counter):
        """Test that the block outlasts the window it was triggered in."""
        for t in (0, 5, 10, 15):
            await counter.observe("10.0.0.1", T0 + t)

        decision = await counter.observe("10.0.0.1", T0 + 60)
        assert decision.reason is DenialReason.BLOCKED
        assert decision.retry_after == 75

    @pytest.mark.asyncio
    async def test_expired_block_starts_fresh_window(self, counter):
        """Test that the request lifting a block is counted as the first of a new window."""
        for t in (0, 5, 10, 15):
            await counter.observe("10.0.0.1", T0 + t)

        decision = await counter.observe("10.0.0.1", T0 + 135)
        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == T0 + 135 + 30

        record = await counter.snapshot("10.0.0.1")
        assert record.count == 1
        assert record.blocked is False
        assert record.window_start == T0 + 135

    @pytest.mark.asyncio
    async def test_window_resets_after_elapsing(self, counter):
        """Test that the count resets once the window has passed."""
        for t in (0, 1, 2):
            await counter.observe("10.0.0.1", T0 + t)

        decision = await counter.observe("10.0.0.1", T0 + 31)
        assert decision.allowed is True
        assert decision.remaining == 2

    @pytest.mark.asyncio
    async def test_window_boundary_is_inclusive(self, counter):
        """Test that a request exactly one window after the first still counts."""
        for t in (0, 1, 2):
            await counter.observe("10.0.0.1", T0 + t)

        decision = await counter.observe("10.0.0.1", T0 + 30)
        assert decision.allowed is False
        assert decision.reason is DenialReason.RATE_LIMIT_EXCEEDED

    @pytest.mark.asyncio
    async def test_different_keys_independent(self, counter):
        """Test that different identities have independent limits."""
        for t in (0, 1, 2, 3):
            await counter.observe("key1", T0 + t)

        assert (await counter.observe("key1", T0 + 4)).allowed is False
        assert (await counter.observe("key2", T0 + 4)).allowed is True

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_not_double_counted(self, counter):
        """Test that simultaneous requests from one identity admit exactly max_requests."""
        decisions = await asyncio.gather(
            *(counter.observe("10.0.0.1", T0) for _ in range(counter.max_requests + 5))
        )

        allowed = [d for d in decisions if d.allowed]
        denied = [d for d in decisions if not d.allowed]
        assert len(allowed) == counter.max_requests
        assert len(denied) == 5
        assert sorted(d.remaining for d in allowed) == [0, 1, 2]
        assert {d.reason for d in denied} == {
            DenialReason.RATE_LIMIT_EXCEEDED,
            DenialReason.BLOCKED,
        }

    @pytest.mark.asyncio
    async def test_snapshot_does_not_create_records(self, counter):
        """Test that reading state leaves the store untouched."""
        assert await counter.snapshot("nobody") is None
        assert len(counter) == 0


class TestWindowCounterSweep:
    """Tests for evicting expired window records."""

    @pytest.mark.asyncio
    async def test_sweep_evicts_only_expired_records(self):
        counter = WindowCounter(max_requests=1, window_seconds=30, block_seconds=120)
        await counter.observe("elapsed", T0)
        await counter.observe("active", T0 + 20)
        await counter.observe("blocked", T0 + 10)
        await counter.observe("blocked", T0 + 11)  # blocked until T0 + 131

        removed = await counter.sweep(T0 + 40)

        assert removed == 1
        assert await counter.snapshot("elapsed") is None
        assert await counter.snapshot("active") is not None
        assert await counter.snapshot("blocked") is not None

    @pytest.mark.asyncio
    async def test_sweep_evicts_expired_block(self):
        counter = WindowCounter(max_requests=1, window_seconds=30, block_seconds=120)
        await counter.observe("blocked", T0)
        await counter.observe("blocked", T0 + 1)

        assert await counter.sweep(T0 + 120) == 0
        assert await counter.sweep(T0 + 121) == 1
        assert len(counter) == 0
