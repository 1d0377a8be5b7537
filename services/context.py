# services/context.py
"""
Explicitly constructed service context

Everything the alert cycle depends on is built once at startup from the Flask
config and stored on app.extensions['rate_alerts']; there is no module-level
pool or timer handle.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import redis
from flask import Flask, current_app

from core.database_models import db
from core.rate_source import FreeCurrencyApiSource, RateSource
from services.alert_cycle import AlertCycle
from services.cycle_lock import RedisCycleLock
from services.notifier import Notifier, create_notifier
from services.scheduler import AlertScheduler
from services.subscriber_store import SubscriberStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'rate_alerts'


@dataclass
class ServiceContext:
    rate_source: RateSource
    store: SubscriberStore
    notifier: Notifier
    cycle: AlertCycle
    scheduler: Optional[AlertScheduler] = None
    _closed: bool = False

    def start(self) -> None:
        if self.scheduler is not None:
            self.scheduler.start()

    def shutdown(self, timeout: Optional[float] = 30.0) -> None:
        """Cancel the timer and drain any in-flight cycle"""
        if self._closed:
            return
        self._closed = True

        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True, timeout=timeout)
        if not self.cycle.wait_idle(timeout):
            logger.warning("Alert cycle still sending after shutdown timeout")
        logger.info("Rate alert services shut down")


def build_service_context(app: Flask,
                          rate_source: Optional[RateSource] = None,
                          notifier: Optional[Notifier] = None,
                          cycle_lock=None) -> ServiceContext:
    """
    Construct the alert services from app.config

    rate_source, notifier and cycle_lock may be injected (tests, the Celery
    worker); otherwise they are built from configuration.
    """
    config = app.config
    rate_source = rate_source or FreeCurrencyApiSource.from_config(config)
    notifier = notifier or create_notifier(config)
    store = SubscriberStore(db)
    if cycle_lock is None and config.get('CYCLE_LOCK_BACKEND') == 'redis':
        cycle_lock = RedisCycleLock(
            redis.Redis.from_url(config['REDIS_URL']),
            timeout=config['ALERT_LOCK_TIMEOUT'],
        )

    cycle = AlertCycle(
        rate_source=rate_source,
        store=store,
        notifier=notifier,
        threshold=float(config['FAVORABLE_THRESHOLD']),
        favorable_text=config['FAVORABLE_TEXT'],
        unfavorable_text=config['UNFAVORABLE_TEXT'],
        notify_workers=int(config.get('NOTIFY_WORKERS', 1)),
        guard=cycle_lock,
    )

    scheduler = None
    if config.get('SCHEDULER_ENABLED'):
        def scheduled_job():
            with app.app_context():
                return cycle.run_scheduled()

        scheduler = AlertScheduler(
            scheduled_job,
            interval_seconds=float(config['ALERT_INTERVAL_SECONDS']),
            run_on_start=bool(config.get('SCHEDULER_RUN_ON_START', False)),
        )

    context = ServiceContext(
        rate_source=rate_source,
        store=store,
        notifier=notifier,
        cycle=cycle,
        scheduler=scheduler,
    )
    app.extensions[EXTENSION_KEY] = context

    logger.info(
        f"Rate alerts configured: source={rate_source.name}, transport={notifier.name}, "
        f"threshold={cycle.threshold}, cross-process lock={'on' if cycle_lock else 'off'}, scheduler={'on' if scheduler else 'off'}"
    )
    return context


def get_services(app: Optional[Flask] = None) -> ServiceContext:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
