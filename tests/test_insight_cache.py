"""
Insight cache and single-flight coalescing.
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from expense_ai.schemas import InsightType
from expense_ai.services.insight_cache import InsightCache
from expense_ai.services.single_flight import SingleFlight

T0 = datetime(2024, 3, 20, 12, 0, 0)


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return _Clock(T0)


@pytest.fixture()
def ttl_cache(db, clock):
    return InsightCache(db, ttl=timedelta(hours=24), clock=clock)


class TestInsightCache:
    def test_latest_of_two_is_returned(self, ttl_cache, clock):
        ttl_cache.store(1, InsightType.FINANCIAL_OVERVIEW, {"version": 1})
        clock.now = T0 + timedelta(minutes=5)
        ttl_cache.store(1, InsightType.FINANCIAL_OVERVIEW, {"version": 2})

        hit = ttl_cache.fetch_latest_valid(1, InsightType.FINANCIAL_OVERVIEW)
        assert hit.content == {"version": 2}

    def test_same_timestamp_breaks_tie_on_insert_order(self, ttl_cache):
        ttl_cache.store(1, InsightType.FINANCIAL_OVERVIEW, {"version": 1})
        ttl_cache.store(1, InsightType.FINANCIAL_OVERVIEW, {"version": 2})
        assert ttl_cache.fetch_latest_valid(1, InsightType.FINANCIAL_OVERVIEW).content == {"version": 2}

    def test_expires_after_ttl(self, ttl_cache, clock):
        stored = ttl_cache.store(1, InsightType.TRENDS, {"analysis": "flat"})
        assert stored.expires_at == T0 + timedelta(hours=24)

        clock.now = T0 + timedelta(hours=23, minutes=59)
        assert ttl_cache.fetch_latest_valid(1, InsightType.TRENDS) is not None

        clock.now = T0 + timedelta(hours=24)
        assert ttl_cache.fetch_latest_valid(1, InsightType.TRENDS) is None

    def test_scoped_by_user_and_type(self, ttl_cache):
        ttl_cache.store(1, InsightType.FINANCIAL_GOALS, {"short_term": []})
        assert ttl_cache.fetch_latest_valid(2, InsightType.FINANCIAL_GOALS) is None
        assert ttl_cache.fetch_latest_valid(1, InsightType.TRENDS) is None

    def test_metadata_round_trip(self, ttl_cache):
        ttl_cache.store(1, InsightType.TRENDS, {}, {"source": "ai", "period": "1year"})
        hit = ttl_cache.fetch_latest_valid(1, InsightType.TRENDS)
        assert hit.metadata == {"source": "ai", "period": "1year"}
        assert hit.type == InsightType.TRENDS

    def test_rows_are_never_updated(self, ttl_cache, db):
        from expense_ai.models import AIInsightModel

        ttl_cache.store(1, InsightType.TRENDS, {"n": 1})
        ttl_cache.store(1, InsightType.TRENDS, {"n": 2})
        assert db.query(AIInsightModel).count() == 2


class TestSingleFlight:
    def test_concurrent_callers_share_one_call(self):
        flights = SingleFlight()
        calls = []

        async def work():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "done"

        async def scenario():
            return await asyncio.gather(*(flights.do("k", work) for _ in range(5)))

        assert asyncio.run(scenario()) == ["done"] * 5
        assert len(calls) == 1
        assert not flights.in_flight("k")

    def test_distinct_keys_run_separately(self):
        flights = SingleFlight()
        calls = []

        async def work():
            calls.append(1)
            await asyncio.sleep(0)
            return len(calls)

        async def scenario():
            return await asyncio.gather(flights.do("a", work), flights.do("b", work))

        asyncio.run(scenario())
        assert len(calls) == 2

    def test_errors_reach_every_waiter(self):
        flights = SingleFlight()

        async def work():
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        async def scenario():
            return await asyncio.gather(
                flights.do("k", work), flights.do("k", work), return_exceptions=True
            )

        results = asyncio.run(scenario())
        assert all(isinstance(r, RuntimeError) for r in results)

    def test_shared_task_cancelled_when_all_waiters_cancel(self):
        flights = SingleFlight()
        finished = []

        async def work():
            await asyncio.sleep(10)
            finished.append(1)

        async def scenario():
            waiter = asyncio.ensure_future(flights.do("k", work))
            await asyncio.sleep(0.01)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            await asyncio.sleep(0.01)
            return flights.in_flight("k")

        assert asyncio.run(scenario()) is False
        assert finished == []

    def test_remaining_waiter_keeps_task_alive(self):
        flights = SingleFlight()

        async def work():
            await asyncio.sleep(0.02)
            return "kept"

        async def scenario():
            first = asyncio.ensure_future(flights.do("k", work))
            second = asyncio.ensure_future(flights.do("k", work))
            await asyncio.sleep(0.005)
            first.cancel()
            return await second

        assert asyncio.run(scenario()) == "kept"
