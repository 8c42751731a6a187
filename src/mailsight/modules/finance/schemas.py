from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


class DocumentFlavor(str, enum.Enum):
    PAYSLIP = "payslip"
    GENERIC = "generic"


class ExtractionStatus(str, enum.Enum):
    EXTRACTED = "extracted"
    NO_FINANCIAL_DATA = "no_financial_data"
    UNREADABLE_DOCUMENT = "unreadable_document"
    EXTRACTION_FAILED = "extraction_failed"
    MALFORMED_RESPONSE = "malformed_response"


@dataclass(frozen=True)
class FinancialLineItem:
    label: str
    unit_amount: Decimal
    quantity: int
    line_total: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "item": self.label,
            "price": float(self.unit_amount),
            "quantity": self.quantity,
            "total": float(self.line_total),
        }


@dataclass(frozen=True)
class FinancialDocument:
    items: tuple[FinancialLineItem, ...]
    grand_total: Decimal
    currency: str
    flavor: DocumentFlavor

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready shape stored on the summary record."""
        return {
            "items": [item.to_dict() for item in self.items],
            "total": float(self.grand_total),
            "currency": self.currency,
            "documentType": self.flavor.value,
        }


@dataclass(frozen=True)
class ExtractionResult:
    status: ExtractionStatus
    document: FinancialDocument | None = None
    detail: str | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.status == ExtractionStatus.EXTRACTED and self.document is not None
