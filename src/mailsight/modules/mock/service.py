from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.orm import Session

from mailsight.core.logging import get_logger, log_event
from mailsight.modules.finance.extractor import FinancialExtractor
from mailsight.modules.llm.client import CompletionClient
from mailsight.modules.summaries.models import EmailSummary
from mailsight.modules.summaries.service import BatchFailure, batch_create_summaries
from mailsight.modules.summarization.ai import EmailContent

MOCK_EMAILS_PATH = Path(__file__).resolve().parents[2] / "data" / "mock_emails.json"

logger = get_logger(__name__)


def load_mock_emails(path: Path = MOCK_EMAILS_PATH) -> list[EmailContent]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    return [
        EmailContent(sender=item["sender"], subject=item["subject"], body=item["body"])
        for item in raw
    ]


def summarize_mock_emails(
    session: Session,
    *,
    client: CompletionClient,
    extractor: FinancialExtractor,
) -> tuple[list[EmailSummary], list[BatchFailure]]:
    emails = load_mock_emails()
    log_event(logger, "mock.load.start", email_count=len(emails))
    return batch_create_summaries(session, client=client, extractor=extractor, emails=emails)
