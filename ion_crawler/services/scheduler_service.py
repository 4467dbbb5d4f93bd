"""
Runs crawl cycles on a fixed interval
"""
import asyncio
import time
from typing import Optional

from loguru import logger

from ion_crawler.errors import StoreError, NotFoundError
from ion_crawler.services.crawl_cycle_service import CrawlCycleService


class SchedulerService:
    """Invokes CrawlCycleService.run_cycle every interval until stopped"""

    def __init__(self, crawl_cycle: CrawlCycleService, interval_minutes: float):
        self._crawl_cycle = crawl_cycle
        self._interval = interval_minutes * 60
        self.cycles_run = 0
        self.ticks_skipped = 0

    async def run(self, stop_event: asyncio.Event, max_cycles: Optional[int] = None) -> None:
        """
        Run the first cycle immediately, then one per interval

        Cycles never overlap. If a cycle outlasts the interval, the missed ticks
        are dropped and the next cycle starts right away.

        Args:
            stop_event: Stops the loop; also passed to each cycle as cancel signal
            max_cycles: Stop after this many cycles
        """
        logger.info(f"Started periodic crawling every {self._interval / 60:g} minutes")
        next_run = time.monotonic()
        while not stop_event.is_set():
            await self._run_once(stop_event)
            self.cycles_run += 1
            if max_cycles is not None and self.cycles_run >= max_cycles:
                break

            next_run += self._interval
            now = time.monotonic()
            if now >= next_run:
                missed = int((now - next_run) // self._interval)
                self.ticks_skipped += missed
                logger.warning(
                    f"Crawl cycle overran the interval by {now - next_run:.0f}s, "
                    f"starting the next one now ({missed} scheduled run(s) dropped)"
                )
                next_run = now
                continue

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=next_run - now)
            except asyncio.TimeoutError:
                pass
        logger.info("Stopped periodic crawling")

    async def _run_once(self, stop_event: asyncio.Event) -> None:
        try:
            await self._crawl_cycle.run_cycle(cancel_event=stop_event)
        except (StoreError, NotFoundError) as e:
            logger.critical(f"ALERT: crawler state store failure, cycle aborted: {e}")
