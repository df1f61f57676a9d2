import logging

from celery import Task
from django.db import InterfaceError, OperationalError

logger = logging.getLogger("escrow_tasks")


class BaseTaskWithRetry(Task):
    """
    Base task for store-touching jobs: retries transient database failures
    with exponential backoff and logs the final failure.
    """

    autoretry_for = (OperationalError, InterfaceError)
    retry_kwargs = {"max_retries": 5}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name}[{task_id}] failed: {exc}")
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(f"Task {self.name}[{task_id}] retrying after: {exc}")
        super().on_retry(exc, task_id, args, kwargs, einfo)
