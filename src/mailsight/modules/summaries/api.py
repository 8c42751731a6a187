from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from mailsight.api.deps import get_financial_extractor, get_llm_client
from mailsight.core.config import settings
from mailsight.core.db import db_session
from mailsight.core.logging import get_logger, log_event
from mailsight.modules.documents.text import parse_eml
from mailsight.modules.finance.extractor import FinancialExtractor
from mailsight.modules.llm.client import CompletionClient
from mailsight.modules.summaries.models import EmailSummary
from mailsight.modules.summaries.schemas import (
    BatchError,
    BatchIn,
    BatchOut,
    EmailIn,
    EmailSummaryOut,
    SummaryEnvelope,
    SummaryPage,
)
from mailsight.modules.summaries.service import (
    batch_create_summaries,
    create_summary,
    delete_summary,
    get_summary,
    list_summaries,
    resummarize,
)
from mailsight.modules.summarization.ai import EmailContent, SummarizationError

router = APIRouter(tags=["summaries"])
logger = get_logger(__name__)

_FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def _out(summary: EmailSummary) -> EmailSummaryOut:
    return EmailSummaryOut.model_validate(summary, from_attributes=True)


def _bad_gateway(e: SummarizationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.get("/summaries", response_model=SummaryPage)
def list_summaries_endpoint(
    response: Response,
    category: str | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=500),
    session: Session = Depends(db_session),
) -> SummaryPage:
    rows, total, total_pages = list_summaries(
        session, category=category, search=search, page=page, page_size=limit
    )
    response.headers["Cache-Control"] = "private, max-age=60"
    return SummaryPage(
        data=[_out(r) for r in rows],
        count=len(rows),
        total=total,
        page=page,
        page_size=limit or settings.default_page_size,
        total_pages=total_pages,
    )


@router.get("/summaries/{summary_id}", response_model=SummaryEnvelope)
def get_summary_endpoint(
    summary_id: uuid.UUID, session: Session = Depends(db_session)
) -> SummaryEnvelope:
    return SummaryEnvelope(data=_out(get_summary(session, summary_id=summary_id)))


@router.post("/summaries", response_model=SummaryEnvelope, status_code=status.HTTP_201_CREATED)
async def create_summary_endpoint(
    request: Request,
    session: Session = Depends(db_session),
    client: CompletionClient = Depends(get_llm_client),
    extractor: FinancialExtractor = Depends(get_financial_extractor),
) -> SummaryEnvelope:
    content_type = request.headers.get("content-type", "").lower()
    attachment: bytes | None = None
    attachment_filename: str | None = None

    if content_type.startswith(_FORM_CONTENT_TYPES):
        form = await request.form()
        fields: dict[str, str] = {}
        for key, value in form.multi_items():
            if isinstance(value, str):
                fields[key] = value
                continue
            filename = value.filename or ""
            if filename.lower().endswith(".pdf"):
                attachment = await value.read()
                attachment_filename = filename
                log_event(
                    logger,
                    "upload.received",
                    filename=filename,
                    byte_size=len(attachment),
                )
            else:
                log_event(logger, "upload.ignored", filename=filename, reason="not_pdf")
        missing = [k for k in ("sender", "subject", "body") if not fields.get(k, "").strip()]
        if missing:
            return JSONResponse(  # type: ignore[return-value]
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "Missing required fields", "required": missing},
            )
        if attachment is not None and len(attachment) > settings.max_upload_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="Attachment is too large",
            )
        email_in = EmailIn(sender=fields["sender"], subject=fields["subject"], body=fields["body"])
    else:
        try:
            email_in = EmailIn.model_validate(await request.json())
        except (ValidationError, ValueError) as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email data"
            ) from e

    try:
        summary = await run_in_threadpool(
            create_summary,
            session,
            client=client,
            extractor=extractor,
            email=EmailContent(**email_in.model_dump()),
            attachment=attachment,
            attachment_filename=attachment_filename,
        )
    except SummarizationError as e:
        raise _bad_gateway(e) from e

    message = "Email processed with PDF attachment" if attachment else "Email processed successfully"
    return SummaryEnvelope(data=_out(summary), message=message)


@router.post("/summaries/eml", response_model=SummaryEnvelope, status_code=status.HTTP_201_CREATED)
async def create_summary_from_eml(
    upload: UploadFile = File(...),
    session: Session = Depends(db_session),
    client: CompletionClient = Depends(get_llm_client),
    extractor: FinancialExtractor = Depends(get_financial_extractor),
) -> SummaryEnvelope:
    raw = await upload.read()
    log_event(logger, "upload.received", filename=upload.filename, byte_size=len(raw))
    parsed = parse_eml(raw)
    if not parsed.sender or not parsed.subject or not parsed.body.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email must have a sender, a subject and a text body.",
        )
    try:
        summary = await run_in_threadpool(
            create_summary,
            session,
            client=client,
            extractor=extractor,
            email=EmailContent(sender=parsed.sender, subject=parsed.subject, body=parsed.body),
            attachment=parsed.attachment,
            attachment_filename=parsed.attachment_filename,
        )
    except SummarizationError as e:
        raise _bad_gateway(e) from e
    return SummaryEnvelope(data=_out(summary), message="Email file processed successfully")


@router.post("/summaries/batch", response_model=BatchOut, status_code=status.HTTP_201_CREATED)
def create_batch(
    payload: BatchIn,
    session: Session = Depends(db_session),
    client: CompletionClient = Depends(get_llm_client),
    extractor: FinancialExtractor = Depends(get_financial_extractor),
) -> BatchOut:
    created, failures = batch_create_summaries(
        session,
        client=client,
        extractor=extractor,
        emails=[EmailContent(**e.model_dump()) for e in payload.emails],
    )
    return BatchOut(
        data=[_out(s) for s in created],
        count=len(created),
        errors=[
            BatchError(sender=f.email.sender, subject=f.email.subject, error=f.error)
            for f in failures
        ],
    )


@router.post("/summaries/{summary_id}/resummarize", response_model=SummaryEnvelope)
def resummarize_endpoint(
    summary_id: uuid.UUID,
    session: Session = Depends(db_session),
    client: CompletionClient = Depends(get_llm_client),
    extractor: FinancialExtractor = Depends(get_financial_extractor),
) -> SummaryEnvelope:
    try:
        summary = resummarize(
            session, summary_id=summary_id, client=client, extractor=extractor
        )
    except SummarizationError as e:
        raise _bad_gateway(e) from e
    return SummaryEnvelope(data=_out(summary))


@router.delete("/summaries/{summary_id}")
def delete_summary_endpoint(
    summary_id: uuid.UUID, session: Session = Depends(db_session)
) -> dict[str, str]:
    delete_summary(session, summary_id=summary_id)
    return {"message": "Summary deleted successfully"}
