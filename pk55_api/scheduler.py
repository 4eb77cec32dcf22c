"""
Background job that keeps the latest banner's discount in line with the
time of day in Pakistan.

The job runs once at startup and then at minute 0 of every hour. Each run
reads the latest banner, computes the discount for the current hour and
writes it back only when it changed. Failures are logged and left for the
next hourly run to retry.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from pk55_api.db import (
    BannerRecord,
    DbClient,
    PersistenceError,
    PersistenceReadError,
    PersistenceWriteError,
)
from pk55_api.discount import TimezoneConversionError, discount_for, to_local_time

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[None]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def default_banner(now: datetime) -> BannerRecord:
    """Default banner for an empty collection, dated and priced for ``now``."""
    banner = BannerRecord.default(to_local_time(now).date())
    banner.discount_percentage = discount_for(now)
    return banner


def seconds_until_next_hour(now: datetime) -> float:
    next_hour = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return max((next_hour - now).total_seconds(), 0.0)


class DiscountScheduler:
    """Owns the startup discount update and the hourly recurring task."""

    def __init__(
        self,
        db: DbClient,
        *,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.db = db
        self.clock = clock
        self._sleep = sleep
        self._timer: Optional[asyncio.Task] = None
        self._init_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def tick(self) -> Optional[int]:
        """
        Run one discount update. Returns the discount that was written, or
        None when the stored value was already correct or the update failed.
        """
        try:
            return await self._update_discount()
        except PersistenceError as exc:
            logger.error("Error updating discount: %s", exc)
        except TimezoneConversionError as exc:
            logger.warning("Skipping discount update, clock unusable: %s", exc)
        except Exception:
            logger.exception("Unexpected error updating discount")
        return None

    async def _update_discount(self) -> Optional[int]:
        now = self.clock()
        local_now = to_local_time(now)
        new_discount = discount_for(now)

        try:
            banner, created = await asyncio.to_thread(
                self.db.get_or_create_latest_banner, lambda: default_banner(now)
            )
        except Exception as exc:
            raise PersistenceReadError(f"could not load banner: {exc}") from exc

        if created:
            logger.info(
                "No banner found, created the default banner at %d%%",
                banner.discount_percentage,
            )
            return banner.discount_percentage
        if banner.discount_percentage == new_discount:
            logger.debug(
                "Discount already set to %d%% (no change needed)", new_discount
            )
            return None

        banner.discount_percentage = new_discount
        try:
            await asyncio.to_thread(
                self.db.save_banner, banner, fields=("discount_percentage",)
            )
        except Exception as exc:
            raise PersistenceWriteError(f"could not save banner: {exc}") from exc

        logger.info(
            "Discount updated to %d%% at %s PKT",
            new_discount,
            local_now.strftime("%Y-%m-%d %H:%M"),
        )
        return new_discount

    async def initialize(self) -> Optional[int]:
        logger.info("Initializing discount based on Pakistan time")
        return await self.tick()

    async def _run_hourly(self) -> None:
        while True:
            await self._sleep(seconds_until_next_hour(self.clock()))
            logger.info("Running scheduled discount update")
            await self.tick()

    def start_recurring(self) -> asyncio.Task:
        """Register the hourly update on the running event loop."""
        if self.running:
            return self._timer
        self._timer = asyncio.get_running_loop().create_task(
            self._run_hourly(), name="discount-scheduler"
        )
        logger.info(
            "Discount scheduler started - will update every hour based on Pakistan time"
        )
        return self._timer

    def start(self) -> None:
        """Run the startup update in the background and register the hourly job."""
        self._init_task = asyncio.get_running_loop().create_task(
            self.initialize(), name="discount-initializer"
        )
        self.start_recurring()

    async def stop(self) -> None:
        tasks = [task for task in (self._timer, self._init_task) if task is not None]
        self._timer = None
        self._init_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Discount scheduler stopped")
