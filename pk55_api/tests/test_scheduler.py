import asyncio
import threading
import time
import unittest
from datetime import datetime, timezone

from pk55_api.db import BannerRecord, InMemoryDbClient
from pk55_api.routes import _get_or_create_banner
from pk55_api.scheduler import (
    DiscountScheduler,
    default_banner,
    seconds_until_next_hour,
)

# 05:00 UTC is 10:00 in Pakistan (day), 15:00 UTC is 20:00 (night).
DAY_UTC = datetime(2024, 5, 1, 5, 0, tzinfo=timezone.utc)
NIGHT_UTC = datetime(2024, 5, 1, 15, 0, tzinfo=timezone.utc)


class RecordingDbClient(InMemoryDbClient):
    """In-memory DB that counts banner writes and can fail on demand."""

    def __init__(self, fail_reads: int = 0, fail_writes: int = 0):
        super().__init__()
        self.writes = 0
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def get_latest_banner(self):
        if self.fail_reads:
            self.fail_reads -= 1
            raise RuntimeError("database unavailable")
        return super().get_latest_banner()

    def save_banner(self, banner, *, fields=None):
        if self.fail_writes:
            self.fail_writes -= 1
            raise RuntimeError("write timed out")
        self.writes += 1
        return super().save_banner(banner, fields=fields)


class SlowReadDbClient(InMemoryDbClient):
    """In-memory DB whose banner lookups take long enough for callers to overlap."""

    def get_latest_banner(self):
        banner = super().get_latest_banner()
        time.sleep(0.05)
        return banner


def seed_banner(db: RecordingDbClient, discount: int, heading: str = "Sale") -> str:
    banner = db.save_banner(
        BannerRecord(
            discount_percentage=discount,
            date="2024-05-01",
            heading=heading,
            description="Seeded",
        )
    )
    db.banners[banner.banner_id].updated_at = 0.0
    db.writes = 0
    return banner.banner_id


class SecondsUntilNextHourTests(unittest.TestCase):
    def test_mid_hour(self):
        now = datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)
        self.assertEqual(seconds_until_next_hour(now), 1800)

    def test_exactly_on_the_hour_waits_a_full_hour(self):
        now = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        self.assertEqual(seconds_until_next_hour(now), 3600)

    def test_crosses_midnight(self):
        now = datetime(2024, 5, 1, 23, 59, 59, tzinfo=timezone.utc)
        self.assertEqual(seconds_until_next_hour(now), 1)


class DefaultBannerTests(unittest.TestCase):
    def test_default_banner_is_priced_for_the_hour(self):
        banner = default_banner(NIGHT_UTC)
        self.assertEqual(banner.discount_percentage, 70)
        self.assertEqual(banner.date, "2024-05-01")
        self.assertEqual(banner.heading, "Welcome")

    def test_concurrent_callers_share_one_default(self):
        db = SlowReadDbClient()
        results = []

        def worker():
            results.append(
                db.get_or_create_latest_banner(lambda: default_banner(DAY_UTC))
            )

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(db.banners), 1)
        self.assertEqual(
            sorted(created for _, created in results), [False, False, False, True]
        )
        self.assertEqual({banner.banner_id for banner, _ in results}, set(db.banners))


class DiscountSchedulerTests(unittest.IsolatedAsyncioTestCase):
    async def test_initialize_creates_default_banner(self):
        db = RecordingDbClient()
        scheduler = DiscountScheduler(db, clock=lambda: NIGHT_UTC)

        self.assertEqual(await scheduler.initialize(), 70)

        self.assertEqual(len(db.banners), 1)
        self.assertEqual(db.writes, 1)
        banner = db.get_latest_banner()
        self.assertEqual(banner.discount_percentage, 70)
        self.assertEqual(banner.heading, "Welcome")
        self.assertEqual(banner.date, "2024-05-01")
        self.assertIsNone(banner.image)

    async def test_initialize_and_banner_request_create_one_banner(self):
        db = SlowReadDbClient()
        scheduler = DiscountScheduler(db, clock=lambda: NIGHT_UTC)
        request = threading.Thread(target=_get_or_create_banner, args=(db,))

        request.start()
        await scheduler.initialize()
        await asyncio.to_thread(request.join)

        self.assertEqual(len(db.banners), 1)
        self.assertEqual(db.get_latest_banner().discount_percentage, 70)

    async def test_default_banner_uses_pakistan_date(self):
        db = RecordingDbClient()
        late_evening_utc = datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc)
        scheduler = DiscountScheduler(db, clock=lambda: late_evening_utc)

        await scheduler.initialize()

        self.assertEqual(db.get_latest_banner().date, "2024-05-02")

    async def test_repeated_ticks_write_once(self):
        db = RecordingDbClient()
        scheduler = DiscountScheduler(db, clock=lambda: DAY_UTC)

        self.assertEqual(await scheduler.tick(), 50)
        self.assertIsNone(await scheduler.tick())

        self.assertEqual(db.writes, 1)

    async def test_day_tick_rewrites_night_discount(self):
        db = RecordingDbClient()
        banner_id = seed_banner(db, 70)
        scheduler = DiscountScheduler(db, clock=lambda: DAY_UTC)

        self.assertEqual(await scheduler.tick(), 50)

        stored = db.banners[banner_id]
        self.assertEqual(stored.discount_percentage, 50)
        self.assertGreater(stored.updated_at, 0.0)
        self.assertEqual(stored.heading, "Sale")
        self.assertEqual(db.writes, 1)

    async def test_night_tick_leaves_night_discount_untouched(self):
        db = RecordingDbClient()
        banner_id = seed_banner(db, 70)
        scheduler = DiscountScheduler(db, clock=lambda: NIGHT_UTC)

        self.assertIsNone(await scheduler.tick())

        stored = db.banners[banner_id]
        self.assertEqual(stored.discount_percentage, 70)
        self.assertEqual(stored.updated_at, 0.0)
        self.assertEqual(db.writes, 0)

    async def test_only_latest_banner_is_updated(self):
        db = RecordingDbClient()
        older_id = seed_banner(db, 70, heading="Old")
        db.banners[older_id].created_at = 1.0
        newer_id = seed_banner(db, 70, heading="New")
        scheduler = DiscountScheduler(db, clock=lambda: DAY_UTC)

        await scheduler.tick()

        self.assertEqual(db.banners[older_id].discount_percentage, 70)
        self.assertEqual(db.banners[newer_id].discount_percentage, 50)

    async def test_failed_write_does_not_stop_later_ticks(self):
        db = RecordingDbClient()
        banner_id = seed_banner(db, 70)
        db.fail_writes = 1
        scheduler = DiscountScheduler(db, clock=lambda: DAY_UTC)

        with self.assertLogs("pk55_api.scheduler", level="ERROR") as logs:
            self.assertIsNone(await scheduler.tick())
        self.assertIn("could not save banner", logs.output[0])
        self.assertEqual(db.banners[banner_id].discount_percentage, 70)

        self.assertEqual(await scheduler.tick(), 50)
        self.assertEqual(db.banners[banner_id].discount_percentage, 50)

    async def test_failed_read_is_contained(self):
        db = RecordingDbClient(fail_reads=1)
        scheduler = DiscountScheduler(db, clock=lambda: DAY_UTC)

        with self.assertLogs("pk55_api.scheduler", level="ERROR") as logs:
            self.assertIsNone(await scheduler.initialize())
        self.assertIn("could not load banner", logs.output[0])
        self.assertEqual(db.banners, {})

        self.assertEqual(await scheduler.tick(), 50)

    async def test_recurring_ticks_wait_for_top_of_hour(self):
        db = RecordingDbClient()
        half_past = datetime(2024, 5, 1, 5, 30, tzinfo=timezone.utc)
        delays = []
        blocker = asyncio.Event()

        async def fake_sleep(delay):
            delays.append(delay)
            if len(delays) > 2:
                await blocker.wait()

        scheduler = DiscountScheduler(db, clock=lambda: half_past, sleep=fake_sleep)
        scheduler.start_recurring()
        self.assertTrue(scheduler.running)

        for _ in range(200):
            if len(delays) >= 3:
                break
            await asyncio.sleep(0.01)

        self.assertEqual(delays, [1800, 1800, 1800])
        self.assertEqual(db.get_latest_banner().discount_percentage, 50)
        self.assertEqual(db.writes, 1)

        await scheduler.stop()
        self.assertFalse(scheduler.running)

    async def test_start_runs_initializer_in_background(self):
        db = RecordingDbClient()
        blocker = asyncio.Event()

        async def never_wakes(delay):
            await blocker.wait()

        scheduler = DiscountScheduler(db, clock=lambda: NIGHT_UTC, sleep=never_wakes)
        scheduler.start()

        for _ in range(200):
            if db.banners:
                break
            await asyncio.sleep(0.01)

        self.assertEqual(db.get_latest_banner().discount_percentage, 70)
        await scheduler.stop()
        self.assertFalse(scheduler.running)

    async def test_stop_without_start(self):
        scheduler = DiscountScheduler(RecordingDbClient())
        await scheduler.stop()
        self.assertFalse(scheduler.running)


if __name__ == "__main__":
    unittest.main()
