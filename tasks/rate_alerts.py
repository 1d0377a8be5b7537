# tasks/rate_alerts.py
"""
Celery deployment of the exchange rate alert cycle

Use this instead of the in-process scheduler when the web app runs with
several worker processes: set SCHEDULER_ENABLED=false for the web app and run

    celery -A tasks.rate_alerts worker --beat --loglevel=info

The worker's AlertCycle always takes the Redis cycle lock, so cycles never
overlap across Celery workers or with web processes running a scheduler.
"""

from typing import Any, Dict

import redis
from celery import Celery
from celery.signals import task_prerun, task_postrun, task_failure
from celery.utils.log import get_task_logger

from config.settings import get_config
from core.models import CycleReport
from services.cycle_lock import LOCK_NAME, RedisCycleLock

logger = get_task_logger(__name__)

settings = get_config()

TASK_NAME = 'tasks.rate_alerts.check_exchange_rate'

celery_app = Celery('rate_alerts')
celery_app.conf.update({
    'broker_url': settings.REDIS_URL,
    'result_backend': settings.REDIS_URL,

    # Serialization
    'task_serializer': 'json',
    'result_serializer': 'json',
    'accept_content': ['json'],

    'timezone': 'UTC',
    'enable_utc': True,

    # A lost worker must not replay a half-sent batch
    'task_acks_late': False,
    'worker_prefetch_multiplier': 1,
    'result_expires': 3600,

    'worker_hijack_root_logger': False,

    'beat_schedule': {
        'check-exchange-rate': {
            'task': TASK_NAME,
            'schedule': settings.ALERT_INTERVAL_SECONDS,
        },
    },
})

redis_client = redis.Redis.from_url(settings.REDIS_URL)

_flask_app = None


def get_flask_app():
    """Lazily build the Flask app the worker runs cycles in"""
    global _flask_app
    if _flask_app is None:
        from app import create_app
        _flask_app = create_app(
            start_scheduler=False,
            cycle_lock=RedisCycleLock(redis_client, LOCK_NAME, timeout=settings.ALERT_LOCK_TIMEOUT),
        )
    return _flask_app


def summarize_report(report: CycleReport) -> Dict[str, Any]:
    return {
        'status': 'skipped' if report.skipped else ('aborted' if report.aborted else 'completed'),
        'reason': report.reason,
        'rate': report.sample.value if report.sample else None,
        'classification': report.message.classification.value if report.message else None,
        'recipients': report.recipients,
        'sent': report.sent,
        'failed': list(report.failed),
    }


@celery_app.task(name=TASK_NAME)
def check_exchange_rate() -> Dict[str, Any]:
    """
    Run one timer-triggered alert cycle

    The cycle takes the Redis lock without blocking: a tick that finds
    another cycle running, or cannot reach Redis, is skipped.
    """
    from services.context import get_services

    app = get_flask_app()
    with app.app_context():
        report = get_services(app).cycle.run_scheduled()
    return summarize_report(report)


# Celery signal handlers for monitoring
@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, **kwargs):
    logger.info(f"Task {task.name} [{task_id}] starting")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, retval=None, state=None, **kwargs):
    logger.info(f"Task {task.name} [{task_id}] completed with state: {state}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, **kwargs):
    logger.error(f"Task {sender.name} [{task_id}] failed: {exception}")
