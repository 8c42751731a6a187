from __future__ import annotations

from fastapi import APIRouter, status

from mailsight.core.logging import get_logger, log_event
from mailsight.modules.mock.service import load_mock_emails
from mailsight.worker.tasks import load_mock_emails_task

router = APIRouter(tags=["mock"])
logger = get_logger(__name__)


@router.get("/mock/emails")
def list_mock_emails() -> dict:
    emails = load_mock_emails()
    return {
        "data": [
            {"sender": e.sender, "subject": e.subject, "body": e.body} for e in emails
        ],
        "count": len(emails),
    }


@router.post("/mock/load", status_code=status.HTTP_202_ACCEPTED)
def enqueue_mock_load() -> dict:
    result = load_mock_emails_task.delay()
    log_event(logger, "mock.load.enqueued", celery_task_id=result.id)
    return {"message": "Mock emails queued for processing", "task_id": result.id}
