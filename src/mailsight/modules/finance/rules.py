"""
Term lists and thresholds for the financial extraction heuristic.

Every list is matched as a case-insensitive substring of the relevant text
(the whole document for eligibility, flavor and currency; an item label for
deductions). Extend a list here rather than adding string checks elsewhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from mailsight.core.config import settings
from mailsight.core.currencies import DEFAULT_CURRENCY

ELIGIBILITY_TERMS: tuple[str, ...] = (
    "$",
    "€",
    "£",
    "₹",
    "rs.",
    "inr",
    "invoice",
    "bill",
    "receipt",
    "payment due",
    "amount due",
    "total",
    "item:",
    "quantity",
    "price",
    "payslip",
    "pay slip",
    "salary",
    "earnings",
    "deduction",
    "allowance",
    "net payable",
    "gross",
    "tax",
)

PAYSLIP_TERMS: tuple[str, ...] = (
    "payslip",
    "pay slip",
    "salary",
    "earnings",
    "deductions",
    "basic",
    "hra",
)

DEDUCTION_TERMS: tuple[str, ...] = (
    "tax",
    "pf",
    "deduction",
    "professional",
    "provident",
    "leave",
)

# Checked in order; the first currency with any marker present wins.
CURRENCY_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("INR", ("rs.", "inr", "rupees", "₹")),
    ("EUR", ("€", "eur")),
    ("GBP", ("£", "gbp")),
)

FALLBACK_CURRENCY = DEFAULT_CURRENCY


@dataclass(frozen=True)
class FinanceRules:
    max_content_chars: int = 4000
    min_text_chars: int = 20
    min_attachment_chars: int = 50
    payslip_tolerance: Decimal = Decimal("100")
    generic_tolerance_ratio: Decimal = Decimal("0.01")
    temperature: float = 0.2
    max_tokens: int = 500


def rules_from_settings() -> FinanceRules:
    return FinanceRules(
        max_content_chars=settings.finance_max_content_chars,
        min_text_chars=settings.finance_min_text_chars,
        min_attachment_chars=settings.finance_min_attachment_chars,
        payslip_tolerance=Decimal(str(settings.finance_payslip_tolerance)),
        generic_tolerance_ratio=Decimal(str(settings.finance_generic_tolerance_ratio)),
        temperature=settings.finance_temperature,
        max_tokens=settings.finance_max_tokens,
    )
