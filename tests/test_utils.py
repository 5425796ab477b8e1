"""Tests for the bounded worker pool."""
import asyncio

import pytest

from findreplace.utils import run_bounded


class TestRunBounded:
    @pytest.mark.asyncio
    async def test_limit_and_order(self):
        in_flight = 0
        peak = 0

        async def work(n):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001 * (5 - n % 5))
            in_flight -= 1
            return n * 2

        results = await run_bounded(list(range(12)), work, 3)

        assert results == [n * 2 for n in range(12)]
        assert peak == 3

    @pytest.mark.asyncio
    async def test_empty(self):
        async def work(n):
            return n

        assert await run_bounded([], work, 4) == []
