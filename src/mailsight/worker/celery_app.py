from __future__ import annotations

from celery import Celery

from mailsight.core.config import settings


def make_celery() -> Celery:
    app = Celery("mailsight", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.environment in {"dev", "test"},
        task_eager_propagates=True,
        task_store_eager_result=False,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        result_expires=3600,
        # One task per worker process at a time.
        worker_prefetch_multiplier=1,
        task_acks_late=True,
    )
    app.autodiscover_tasks(["mailsight.worker"])
    return app


celery_app = make_celery()
