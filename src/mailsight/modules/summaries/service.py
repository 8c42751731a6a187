from __future__ import annotations

import math
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mailsight.core.config import settings
from mailsight.core.logging import get_logger, log_event, log_exception, monotonic_ms
from mailsight.core.storage import StorageError, get_storage
from mailsight.modules.documents.text import DocumentReadError, extract_pdf_text
from mailsight.modules.finance.extractor import FinancialExtractor
from mailsight.modules.finance.schemas import ExtractionResult, ExtractionStatus
from mailsight.modules.llm.client import CompletionClient
from mailsight.modules.summaries.models import EmailSummary
from mailsight.modules.summarization.ai import EmailContent, SummarizationError, summarize_email

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchFailure:
    email: EmailContent
    error: str


def _sanitize_filename(name: str) -> str:
    name = name.replace("\\", "/").split("/")[-1].strip()
    return " ".join(name.split())


def _store_attachment(body: bytes, filename: str | None) -> str:
    safe = _sanitize_filename(filename or "") or "attachment.pdf"
    key = f"summaries/attachments/{uuid.uuid4()}-{safe}"
    get_storage().put(key=key, body=body)
    return key


def _discard_attachment(key: str) -> None:
    try:
        get_storage().delete(key=key)
    except StorageError:
        log_exception(logger, "summary.attachment.discard_failed", storage_key=key)


def run_financial_extraction(
    extractor: FinancialExtractor,
    *,
    subject: str,
    body: str,
    attachment: bytes | None = None,
) -> ExtractionResult:
    """Attachment first; the message body is the fallback when it yields nothing."""
    attachment_result: ExtractionResult | None = None
    if attachment:
        try:
            text = extract_pdf_text(attachment)
        except DocumentReadError as e:
            attachment_result = ExtractionResult(
                status=ExtractionStatus.UNREADABLE_DOCUMENT, detail=str(e)
            )
        else:
            attachment_result = extractor.extract(text, is_attached_document=True)
        if attachment_result.ok:
            return attachment_result

    body_result = extractor.extract(f"{subject}\n\n{body}", is_attached_document=False)
    if body_result.ok or attachment_result is None:
        return body_result
    return attachment_result


def _apply_extraction(summary: EmailSummary, result: ExtractionResult) -> None:
    # Replaced wholesale on every run; never merged with a previous document.
    summary.invoice_data = result.document.to_dict() if result.document else None
    summary.financial_status = result.status.value


def create_summary(
    session: Session,
    *,
    client: CompletionClient,
    extractor: FinancialExtractor,
    email: EmailContent,
    attachment: bytes | None = None,
    attachment_filename: str | None = None,
) -> EmailSummary:
    start = time.monotonic()
    log_event(
        logger,
        "summary.create.start",
        body_chars=len(email.body),
        has_attachment=bool(attachment),
    )
    ai = summarize_email(client, email)
    result = run_financial_extraction(
        extractor, subject=email.subject, body=email.body, attachment=attachment
    )
    attachment_key = _store_attachment(attachment, attachment_filename) if attachment else None

    summary = EmailSummary(
        sender=email.sender,
        subject=email.subject,
        body=email.body,
        summary=ai.summary,
        category=ai.category,
        keywords=list(ai.keywords),
        attachment_filename=attachment_filename if attachment else None,
        attachment_key=attachment_key,
    )
    _apply_extraction(summary, result)
    session.add(summary)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        if attachment_key:
            _discard_attachment(attachment_key)
        raise
    session.refresh(summary)
    log_event(
        logger,
        "summary.create.finish",
        summary_id=str(summary.id),
        category=summary.category,
        financial_status=summary.financial_status,
        duration_ms=monotonic_ms(start),
    )
    return summary


def batch_create_summaries(
    session: Session,
    *,
    client: CompletionClient,
    extractor: FinancialExtractor,
    emails: list[EmailContent],
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[list[EmailSummary], list[BatchFailure]]:
    """Serially summarize `emails`, pausing between requests to respect provider rate limits."""
    batch_size = max(1, settings.batch_size)
    delay_s = max(0, settings.batch_delay_ms) / 1000
    created: list[EmailSummary] = []
    failures: list[BatchFailure] = []

    log_event(logger, "summary.batch.start", email_count=len(emails), batch_size=batch_size)
    for batch_start in range(0, len(emails), batch_size):
        batch = emails[batch_start : batch_start + batch_size]
        for offset, email in enumerate(batch):
            number = batch_start + offset + 1
            try:
                created.append(
                    create_summary(session, client=client, extractor=extractor, email=email)
                )
            except SummarizationError as e:
                session.rollback()
                failures.append(BatchFailure(email=email, error=str(e)))
                log_event(
                    logger,
                    "summary.batch.item_failed",
                    email_number=number,
                    error=str(e),
                )
            if number < len(emails) and delay_s:
                sleep(delay_s)
        if batch_start + batch_size < len(emails) and delay_s:
            sleep(delay_s * 2)

    log_event(
        logger,
        "summary.batch.finish",
        email_count=len(emails),
        created=len(created),
        failed=len(failures),
    )
    return created, failures


def _filtered(category: str | None, search: str | None):
    stmt = select(EmailSummary)
    if category:
        stmt = stmt.where(EmailSummary.category == category)
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(EmailSummary.sender).like(pattern),
                func.lower(EmailSummary.subject).like(pattern),
                func.lower(EmailSummary.summary).like(pattern),
            )
        )
    return stmt


def list_summaries(
    session: Session,
    *,
    category: str | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> tuple[list[EmailSummary], int, int]:
    page = max(1, page)
    page_size = max(1, page_size or settings.default_page_size)
    stmt = _filtered(category, search)

    total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = list(
        session.scalars(
            stmt.order_by(EmailSummary.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    )
    return rows, total, math.ceil(total / page_size)


def all_summaries(session: Session, *, category: str | None = None) -> list[EmailSummary]:
    return list(
        session.scalars(_filtered(category, None).order_by(EmailSummary.created_at.desc()))
    )


def get_summary(session: Session, *, summary_id: uuid.UUID) -> EmailSummary:
    summary = session.scalar(select(EmailSummary).where(EmailSummary.id == summary_id))
    if not summary:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Summary not found")
    return summary


def resummarize(
    session: Session,
    *,
    summary_id: uuid.UUID,
    client: CompletionClient,
    extractor: FinancialExtractor,
) -> EmailSummary:
    summary = get_summary(session, summary_id=summary_id)
    start = time.monotonic()
    ai = summarize_email(
        client, EmailContent(sender=summary.sender, subject=summary.subject, body=summary.body)
    )

    attachment: bytes | None = None
    if summary.attachment_key:
        try:
            attachment = get_storage().get(key=summary.attachment_key)
        except StorageError:
            log_exception(
                logger,
                "summary.attachment.missing",
                summary_id=str(summary.id),
                storage_key=summary.attachment_key,
            )

    result = run_financial_extraction(
        extractor, subject=summary.subject, body=summary.body, attachment=attachment
    )
    summary.summary = ai.summary
    summary.category = ai.category
    summary.keywords = list(ai.keywords)
    _apply_extraction(summary, result)
    session.add(summary)
    session.commit()
    session.refresh(summary)
    log_event(
        logger,
        "summary.resummarize.finish",
        summary_id=str(summary.id),
        category=summary.category,
        financial_status=summary.financial_status,
        duration_ms=monotonic_ms(start),
    )
    return summary


def delete_summary(session: Session, *, summary_id: uuid.UUID) -> None:
    summary = get_summary(session, summary_id=summary_id)
    if summary.attachment_key:
        try:
            get_storage().delete(key=summary.attachment_key)
        except StorageError:
            log_exception(
                logger,
                "summary.attachment.delete_failed",
                summary_id=str(summary.id),
                storage_key=summary.attachment_key,
            )
    session.delete(summary)
    session.commit()
    log_event(logger, "summary.deleted", summary_id=str(summary_id))
