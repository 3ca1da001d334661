"""Periodic price sweeps over all tracked products."""

import logging
import random
import threading
import time
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from steamwatch import storage
from steamwatch.engine import PriceRefreshEngine
from steamwatch.models import (
    DeliveryReport,
    Destination,
    PriceChangeEvent,
    RefreshResult,
    RefreshStatus,
    SweepReport,
    TrackedProduct,
)
from steamwatch.notifiers.fanout import notify

logger = logging.getLogger(__name__)

JOB_ID = "price_sweep"


class RefreshScheduler:
    """
    Runs sweeps on a fixed interval.

    A sweep refreshes products one after another and delivers each price drop
    to every destination before moving to the next product. Only one sweep
    runs at a time, whether started by the timer or by hand.
    """

    def __init__(
        self,
        engine: PriceRefreshEngine,
        notifier: Callable[[PriceChangeEvent, list[Destination]], DeliveryReport] = notify,
        interval_hours: float = 24,
        jitter_max_seconds: float = 0,
        request_delay_seconds: float = 0,
        list_products: Callable[[], list[TrackedProduct]] = storage.list_products,
        list_destinations: Callable[[], list[Destination]] = storage.list_destinations,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.engine = engine
        self.notifier = notifier
        self.interval_hours = interval_hours
        self.jitter_max_seconds = jitter_max_seconds
        self.request_delay_seconds = request_delay_seconds
        self.list_products = list_products
        self.list_destinations = list_destinations
        self.sleep = sleep
        self._sweep_lock = threading.Lock()
        self._scheduler: BlockingScheduler | None = None

    @property
    def sweep_running(self) -> bool:
        return self._sweep_lock.locked()

    def run_sweep(self) -> SweepReport | None:
        """Refresh every product. Returns None if a sweep is already running."""
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("Sweep already in progress, skipping this run")
            return None
        try:
            return self._sweep()
        finally:
            self._sweep_lock.release()

    def _sweep(self) -> SweepReport:
        report = SweepReport(started_at=datetime.now())
        products = self.list_products()
        logger.info("Sweep started: %d products", len(products))

        for index, product in enumerate(products):
            if index and self.request_delay_seconds:
                self.sleep(self.request_delay_seconds)

            try:
                result = self.engine.refresh(product.id)
            except Exception as e:
                logger.exception("Unexpected error refreshing product %d: %s", product.id, e)
                result = RefreshResult(product.id, RefreshStatus.ERROR, error=str(e))
            report.results.append(result)

            if result.event is not None:
                report.deliveries.append(self.deliver(result.event))

        report.finished_at = datetime.now()
        logger.info(
            "Sweep finished: %d updated, %d price drops, %d fetch failures, "
            "%d extraction failures, %d errors",
            report.count(RefreshStatus.UPDATED),
            len(report.events),
            report.count(RefreshStatus.FETCH_FAILED),
            report.count(RefreshStatus.EXTRACTION_FAILED),
            report.count(RefreshStatus.ERROR),
        )
        return report

    def refresh_one(self, product_id: int) -> tuple[RefreshResult, DeliveryReport | None]:
        """Refresh a single product on demand and deliver its price drop, if any."""
        result = self.engine.refresh(product_id)
        delivery = self.deliver(result.event) if result.event is not None else None
        return result, delivery

    def deliver(self, event: PriceChangeEvent) -> DeliveryReport:
        """Hand an event to the notifier with the current destination list."""
        try:
            destinations = self.list_destinations()
        except Exception as e:
            logger.exception("Could not load destinations for '%s': %s", event.title, e)
            return DeliveryReport()
        if not destinations:
            logger.warning("Price drop on '%s' but no destinations configured", event.title)
            return DeliveryReport()
        return self.notifier(event, destinations)

    def run_sweep_with_jitter(self) -> None:
        """
        Add randomized jitter before each scheduled sweep.

        Avoids hitting the store at exactly the same time every cycle.
        """
        if self.jitter_max_seconds:
            delay = random.uniform(0, self.jitter_max_seconds)
            logger.debug("Jitter: sleeping %.1f s before sweep", delay)
            self.sleep(delay)
        self.run_sweep()

    def start(self, run_immediately: bool = True) -> None:
        """Run a sweep now (optionally) and then block on the interval timer."""
        logger.info(
            "Scheduler: every %.1f h, jitter up to %d s",
            self.interval_hours, self.jitter_max_seconds,
        )
        if run_immediately:
            self.run_sweep()

        self._scheduler = BlockingScheduler()
        self._scheduler.add_job(
            self.run_sweep_with_jitter,
            trigger=IntervalTrigger(hours=self.interval_hours),
            id=JOB_ID,
            max_instances=1,          # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=300,
        )
        self._scheduler.start()

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self._scheduler = None
