from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from starlette.concurrency import run_in_threadpool

from mailsight.api.deps import get_financial_extractor
from mailsight.core.logging import get_logger, log_event
from mailsight.modules.documents.text import DocumentReadError, extract_pdf_text
from mailsight.modules.finance.extractor import FinancialExtractor
from mailsight.modules.finance.schemas import ExtractionResult, ExtractionStatus

router = APIRouter(tags=["documents"])
logger = get_logger(__name__)

SAMPLE_INVOICE_PATH = Path(__file__).resolve().parents[2] / "data" / "sample_invoice.txt"


async def _read_pdf_upload(upload: UploadFile) -> bytes:
    if not upload.filename or not upload.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be a PDF")
    body = await upload.read()
    log_event(logger, "upload.received", filename=upload.filename, byte_size=len(body))
    return body


def _result_payload(result: ExtractionResult) -> dict:
    payload: dict = {"status": result.status.value}
    if result.document:
        payload["data"] = result.document.to_dict()
    if result.detail:
        payload["detail"] = result.detail
    return payload


@router.post("/pdf/extract")
async def extract_pdf(
    upload: UploadFile = File(...),
    extractor: FinancialExtractor = Depends(get_financial_extractor),
) -> dict:
    body = await _read_pdf_upload(upload)
    try:
        text = await run_in_threadpool(extract_pdf_text, body)
    except DocumentReadError as e:
        result = ExtractionResult(status=ExtractionStatus.UNREADABLE_DOCUMENT, detail=str(e))
        text = ""
    else:
        result = await run_in_threadpool(extractor.extract, text, is_attached_document=True)

    payload = _result_payload(result)
    payload.update(filename=upload.filename, extracted_text_length=len(text))
    if result.ok:
        payload["message"] = "Financial data extracted successfully"
    else:
        payload["message"] = "PDF processed but no financial data found"
        payload["extracted_text_preview"] = text[:500]
    return payload


@router.post("/pdf/debug")
async def debug_pdf(upload: UploadFile = File(...)) -> dict:
    body = await _read_pdf_upload(upload)
    try:
        text = await run_in_threadpool(extract_pdf_text, body)
    except DocumentReadError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return {
        "filename": upload.filename,
        "file_size": len(body),
        "extracted_text_length": len(text),
        "extracted_text": text,
        "preview": text[:2000],
    }


@router.get("/pdf/test")
def sample_invoice(extractor: FinancialExtractor = Depends(get_financial_extractor)) -> dict:
    text = SAMPLE_INVOICE_PATH.read_text(encoding="utf-8")
    result = extractor.extract(text, is_attached_document=False)
    payload = _result_payload(result)
    payload["message"] = (
        "Sample invoice data extracted successfully"
        if result.ok
        else "Sample invoice processed but no invoice data found"
    )
    return payload
