from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import mailsight.models  # noqa: F401
# isort: on

import time
from collections.abc import Callable
from typing import Any, TypeVar

from mailsight.core.db import SessionLocal
from mailsight.core.logging import get_logger, log_event, log_exception, monotonic_ms, task_context
from mailsight.worker.celery_app import celery_app

logger = get_logger(__name__)

T = TypeVar("T")


def _run_logged(task, name: str, fn: Callable[[], T], **fields: Any) -> T:
    task_id = getattr(task.request, "id", None)
    start = time.monotonic()
    with task_context(task_id):
        log_event(logger, "celery.task.start", task_name=name, **fields)
        try:
            result = fn()
        except Exception:
            log_exception(
                logger,
                "celery.task.error",
                task_name=name,
                duration_ms=monotonic_ms(start),
                **fields,
            )
            raise
        log_event(
            logger,
            "celery.task.finish",
            task_name=name,
            duration_ms=monotonic_ms(start),
            **fields,
        )
        return result


@celery_app.task(name="load_mock_emails", bind=True)
def load_mock_emails_task(self) -> dict[str, int]:
    from mailsight.api.deps import get_llm_client
    from mailsight.modules.finance.extractor import FinancialExtractor
    from mailsight.modules.mock.service import summarize_mock_emails

    def run() -> dict[str, int]:
        client = get_llm_client()
        with SessionLocal() as session:
            created, failures = summarize_mock_emails(
                session, client=client, extractor=FinancialExtractor(client)
            )
        return {"created": len(created), "failed": len(failures)}

    return _run_logged(self, "load_mock_emails", run)

