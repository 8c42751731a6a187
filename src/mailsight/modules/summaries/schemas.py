from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class EmailIn(BaseModel):
    sender: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)

    @field_validator("sender", "subject", "body")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class BatchIn(BaseModel):
    emails: list[EmailIn] = Field(min_length=1)


class EmailSummaryOut(BaseModel):
    id: uuid.UUID
    sender: str
    subject: str
    body: str
    summary: str
    category: str
    keywords: list[str]
    invoice_data: dict[str, Any] | None
    financial_status: str
    attachment_filename: str | None
    created_at: datetime
    updated_at: datetime


class SummaryEnvelope(BaseModel):
    data: EmailSummaryOut
    message: str | None = None


class SummaryPage(BaseModel):
    data: list[EmailSummaryOut]
    count: int
    total: int
    page: int
    page_size: int
    total_pages: int


class BatchError(BaseModel):
    sender: str
    subject: str
    error: str


class BatchOut(BaseModel):
    data: list[EmailSummaryOut]
    count: int
    errors: list[BatchError] = []
