from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from mailsight.core.storage import diagnose_storage
from mailsight.modules.documents.api import router as documents_router
from mailsight.modules.exports.api import router as exports_router
from mailsight.modules.mock.api import router as mock_router
from mailsight.modules.summaries.api import router as summaries_router

router = APIRouter()

# Exports first: "/summaries/export" must win over "/summaries/{summary_id}".
router.include_router(exports_router, prefix="/api")
router.include_router(summaries_router, prefix="/api")
router.include_router(documents_router, prefix="/api")
router.include_router(mock_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz/storage")
def healthz_storage() -> JSONResponse:
    result = diagnose_storage()
    status_code = 200 if result.get("ok") else 503
    return JSONResponse(status_code=status_code, content=result)
