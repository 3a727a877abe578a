"""Scheduled maintenance: counter compaction and expired-slot sweeps."""

import asyncio
import logging
from typing import Optional

from .period_clock import MentionKind, PeriodClock
from .slot_service import SlotService
from .usage_service import UsageLedger

logger = logging.getLogger(__name__)


class MaintenanceService:
    """Runs the daily and weekly storage jobs at UTC period boundaries."""

    def __init__(
        self,
        slot_service: SlotService,
        usage_ledger: UsageLedger,
        clock: Optional[PeriodClock] = None,
    ):
        self.slot_service = slot_service
        self.usage_ledger = usage_ledger
        self.clock = clock or usage_ledger.clock

    async def run_daily(self) -> None:
        """Compact @here counters and sweep expired slots."""
        logger.info("Running daily maintenance")
        await self.usage_ledger.compact(MentionKind.HERE)
        await self.slot_service.sweep_expired(self.clock.now())

    async def run_weekly(self) -> None:
        """Compact @everyone counters."""
        logger.info("Running weekly maintenance")
        await self.usage_ledger.compact(MentionKind.EVERYONE)

    async def run_once(self) -> None:
        await self.run_daily()
        await self.run_weekly()

    async def run(self) -> None:
        """Sleep until each UTC midnight and run the jobs due then."""
        while True:
            now = self.clock.now()
            boundary = self.clock.next_day_boundary(now)
            delay = (boundary - now).total_seconds()
            logger.debug("Next maintenance run in %.0f seconds", delay)
            await asyncio.sleep(delay)

            try:
                await self.run_daily()
                if self.clock.now().weekday() == 0:
                    await self.run_weekly()
            except Exception as e:
                logger.error("Maintenance run failed: %s", e, exc_info=True)
