import asyncio
import logging
import threading
import time
from concurrent.futures import Future
from typing import Optional

import pendulum
import schedule

from src.fieldtrack.daily_report.exceptions import PeriodNotClosedError
from src.fieldtrack.daily_report.services import DailyReportService
from src.fieldtrack.database.database import db

logger = logging.getLogger(__name__)


class DailyReportScheduler:
    """
    Finalizes yesterday's reports once a day and runs a periodic live alert
    pass. The schedule thread only submits coroutines to the app's loop.
    """

    def __init__(
        self,
        service: DailyReportService,
        loop: asyncio.AbstractEventLoop,
        finalize_time: str = "00:15",
        live_interval_minutes: int = 10,
    ):
        self.service = service
        self.loop = loop
        self.finalize_time = finalize_time
        self.live_interval_minutes = live_interval_minutes
        self.scheduler = schedule.Scheduler()
        self._stop = threading.Event()

    def run(self):
        self.scheduler.every().day.at(self.finalize_time).do(self.run_finalize_job)
        self.scheduler.every(self.live_interval_minutes).minutes.do(self.run_live_job)
        threading.Thread(target=self._schedule_loop, daemon=True).start()
        logger.info("Running the report scheduler")

    def stop(self):
        self._stop.set()
        self.scheduler.clear()

    def _schedule_loop(self):
        while not self._stop.is_set():
            self.scheduler.run_pending()
            time.sleep(1)

    def run_finalize_job(self, period=None) -> Future:
        return asyncio.run_coroutine_threadsafe(self.finalize_period(period), self.loop)

    def run_live_job(self) -> Future:
        return asyncio.run_coroutine_threadsafe(self.evaluate_live(), self.loop)

    async def finalize_period(self, period=None) -> Optional[int]:
        if period is None:
            period = (
                pendulum.instance(self.service.clock())
                .in_timezone(self.service.timezone)
                .subtract(days=1)
                .date()
            )
        logger.info(f"Starting report finalization for {period}")
        try:
            async with await db.get_client() as session:
                return await self.service.finalize_all(session, period)
        except PeriodNotClosedError as e:
            logger.warning(e.message)
        except Exception as e:
            logger.error(f"Report finalization for {period} failed: {e}", exc_info=True)
        return None

    async def evaluate_live(self) -> None:
        logger.info("Starting live alert evaluation")
        try:
            async with await db.get_client() as session:
                events = await self.service.evaluate_live(session)
            logger.info(f"Live alert evaluation fired {len(events)} alert(s)")
        except Exception as e:
            logger.error(f"Live alert evaluation failed: {e}", exc_info=True)
