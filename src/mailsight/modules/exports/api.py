from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from mailsight.core.db import db_session
from mailsight.core.logging import get_logger, log_event
from mailsight.modules.exports.service import build_csv, build_xlsx, export_filename
from mailsight.modules.summaries.service import all_summaries

router = APIRouter(tags=["exports"])
logger = get_logger(__name__)


@router.get("/summaries/export")
def export_csv(category: str | None = None, session: Session = Depends(db_session)) -> Response:
    rows = all_summaries(session, category=category)
    log_event(logger, "export.csv", category=category, row_count=len(rows))
    return Response(
        content=build_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("csv")}"'},
    )


@router.get("/summaries/export.xlsx")
def export_xlsx(category: str | None = None, session: Session = Depends(db_session)) -> Response:
    rows = all_summaries(session, category=category)
    log_event(logger, "export.xlsx", category=category, row_count=len(rows))
    return Response(
        content=build_xlsx(rows),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("xlsx")}"'},
    )
