"""Tests for in-process keyed locks."""

import asyncio
from datetime import datetime, timezone

from shift_payroll.database import period_lock_key, user_lock_key
from shift_payroll.services.locking_service import LockingService

START = datetime(2024, 3, 11, tzinfo=timezone.utc)


class TestLockingService:
    async def test_same_period_serialized(self):
        """Two holders of one period section never overlap."""
        locks = LockingService()
        events = []

        async def worker(name):
            async with locks.period_section("u1", START):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    async def test_different_periods_independent(self):
        locks = LockingService()
        async with locks.period_section("u1", START):
            async with locks.period_section("u2", START):
                assert locks.is_held(period_lock_key("u1", START))
                assert locks.is_held(period_lock_key("u2", START))

    async def test_user_and_period_sections_nest(self):
        locks = LockingService()
        async with locks.user_section("u1"):
            async with locks.period_section("u1", START):
                assert locks.is_held(user_lock_key("u1"))
        assert not locks.is_held(user_lock_key("u1"))
        assert not locks.is_held(period_lock_key("u1", START))

    async def test_idle_keys_are_dropped(self):
        locks = LockingService()
        for day in range(1, 8):
            async with locks.period_section("u1", f"2024-03-0{day}"):
                assert locks.tracked() == 1
        assert locks.tracked() == 0

    async def test_key_kept_while_a_waiter_remains(self):
        locks = LockingService()
        release = asyncio.Event()
        seen = []

        async def holder():
            async with locks.period_section("u1", START):
                await release.wait()

        async def waiter():
            async with locks.period_section("u1", START):
                seen.append(locks.tracked())

        first = asyncio.create_task(holder())
        await asyncio.sleep(0)
        second = asyncio.create_task(waiter())
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second)

        assert seen == [1]
        assert locks.tracked() == 0


def test_lock_keys():
    assert user_lock_key("u1") == "pay_period_user:u1"
    assert period_lock_key("u1", "2024-03-11") == "pay_period:u1:2024-03-11"
