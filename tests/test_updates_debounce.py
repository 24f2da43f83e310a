"""
Tests for the progress Debouncer.

Tests cover:
- Coalescing a burst into a single trailing call
- Latest-value delivery
- flush() and cancel()
- Zero wait delivering immediately
"""

from __future__ import annotations

import asyncio

import pytest

from autoupdater.updates.debounce import Debouncer


class TestDebouncer:
    """Tests for Debouncer."""

    @pytest.mark.asyncio
    async def test_burst_coalesced_to_latest(self) -> None:
        """Test a burst yields one call carrying the last value."""
        calls: list[int] = []
        debounced = Debouncer(calls.append, wait_ms=20)

        for n in range(100):
            debounced(n)

        assert calls == []
        await asyncio.sleep(0.1)
        assert calls == [99]
        assert not debounced.pending

    @pytest.mark.asyncio
    async def test_separate_bursts(self) -> None:
        """Test bursts separated by more than the wait fire separately."""
        calls: list[int] = []
        debounced = Debouncer(calls.append, wait_ms=10)

        debounced(1)
        debounced(2)
        await asyncio.sleep(0.05)
        debounced(3)
        await asyncio.sleep(0.05)

        assert calls == [2, 3]

    @pytest.mark.asyncio
    async def test_multiple_arguments(self) -> None:
        """Test positional arguments are forwarded."""
        calls: list[tuple[int, int]] = []
        debounced = Debouncer(lambda done, total: calls.append((done, total)), wait_ms=10)

        debounced(1, 3)
        debounced(2, 3)
        debounced.flush()

        assert calls == [(2, 3)]

    @pytest.mark.asyncio
    async def test_flush_delivers_pending(self) -> None:
        """Test flush delivers immediately and disarms the timer."""
        calls: list[int] = []
        debounced = Debouncer(calls.append, wait_ms=1000)

        debounced(5)
        assert debounced.pending
        debounced.flush()

        assert calls == [5]
        await asyncio.sleep(0.01)
        assert calls == [5]

    @pytest.mark.asyncio
    async def test_flush_without_pending(self) -> None:
        """Test flush with nothing pending does nothing."""
        calls: list[int] = []
        debounced = Debouncer(calls.append, wait_ms=10)

        debounced.flush()

        assert calls == []

    @pytest.mark.asyncio
    async def test_cancel_drops_pending(self) -> None:
        """Test cancel drops the pending call."""
        calls: list[int] = []
        debounced = Debouncer(calls.append, wait_ms=10)

        debounced(1)
        debounced.cancel()
        await asyncio.sleep(0.05)

        assert calls == []
        assert not debounced.pending

    @pytest.mark.asyncio
    async def test_zero_wait_is_immediate(self) -> None:
        """Test a zero wait delivers every call synchronously."""
        calls: list[int] = []
        debounced = Debouncer(calls.append, wait_ms=0)

        debounced(1)
        debounced(2)

        assert calls == [1, 2]

    def test_wait_ms(self) -> None:
        """Test the configured interval is reported."""
        assert Debouncer(print, wait_ms=250).wait_ms == 250
        assert Debouncer(print, wait_ms=-5).wait_ms == 0
