from __future__ import annotations

from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mailsight.core.models import Base, Timestamped, UUIDPrimaryKey
from mailsight.modules.finance.schemas import ExtractionStatus


class EmailSummary(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "summaries_email_summary"

    sender: Mapped[str] = mapped_column(String(255))
    subject: Mapped[str] = mapped_column(Text)
    body: Mapped[str] = mapped_column(Text)

    summary: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(100), index=True)
    keywords: Mapped[list[str]] = mapped_column(default=list)

    # FinancialDocument.to_dict() of the latest extraction, or None.
    invoice_data: Mapped[dict[str, Any] | None]
    financial_status: Mapped[str] = mapped_column(
        String(50), default=ExtractionStatus.NO_FINANCIAL_DATA.value
    )

    attachment_filename: Mapped[str | None] = mapped_column(String(512))
    attachment_key: Mapped[str | None] = mapped_column(String(1024))
