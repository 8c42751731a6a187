from __future__ import annotations

import math
import re
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from typing import Any

from mailsight.core.currencies import normalize_currency
from mailsight.modules.finance.errors import NoFinancialData, UnreadableDocument
from mailsight.modules.finance.rules import (
    CURRENCY_MARKERS,
    DEDUCTION_TERMS,
    ELIGIBILITY_TERMS,
    FALLBACK_CURRENCY,
    PAYSLIP_TERMS,
    FinanceRules,
)
from mailsight.modules.finance.schemas import DocumentFlavor, FinancialLineItem

_ZERO = Decimal("0")
_CENTS = Decimal("0.01")

_LABEL_KEYS = ("item", "label", "description", "name")
_UNIT_KEYS = ("price", "unit_amount", "unitAmount", "unit_price", "amount")
_QUANTITY_KEYS = ("quantity", "qty")
_TOTAL_KEYS = ("total", "line_total", "lineTotal")

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
# Integer digits accepted in an amount or quantity.
_MAX_INTEGER_DIGITS = 15


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


def check_eligibility(text: str, *, is_attached_document: bool, rules: FinanceRules) -> None:
    """Raise unless `text` deserves an extraction request.

    Attached documents skip keyword screening; an attachment that rendered to
    almost no text is reported as unreadable rather than non-financial.
    """
    stripped = (text or "").strip()
    if is_attached_document:
        if len(stripped) < rules.min_attachment_chars:
            raise UnreadableDocument(
                f"attachment yielded {len(stripped)} characters of text"
            )
        return

    if len(stripped) < rules.min_text_chars:
        raise NoFinancialData("text too short")
    if not _contains_any(stripped.lower(), ELIGIBILITY_TERMS):
        raise NoFinancialData("no financial keywords")


def classify_flavor(text: str) -> DocumentFlavor:
    # Any single payslip term wins, even in documents that also look like invoices.
    if _contains_any((text or "").lower(), PAYSLIP_TERMS):
        return DocumentFlavor.PAYSLIP
    return DocumentFlavor.GENERIC


def _coerce_decimal(raw: Any) -> Decimal | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return None
        return Decimal(str(raw))
    if isinstance(raw, str):
        s = raw.replace(",", "").replace(" ", "").replace("\xa0", "")
        m = _NUMBER_RE.search(s)
        if not m:
            return None
        try:
            return Decimal(m.group(0))
        except InvalidOperation:
            return None
    return None


def _to_decimal(raw: Any) -> Decimal | None:
    value = _coerce_decimal(raw)
    if value is None or value.adjusted() >= _MAX_INTEGER_DIGITS:
        return None
    return value


def parse_amount(raw: Any) -> Decimal:
    """Coerce a number or a comma-formatted string to a non-negative amount.

    Unparseable or out-of-range input yields 0. A leading minus sign (how some models render
    deductions) is dropped.
    """
    value = _to_decimal(raw)
    if value is None:
        return _ZERO
    return abs(value).quantize(_CENTS)


def parse_quantity(raw: Any) -> int:
    value = _to_decimal(raw)
    if value is None or value <= _ZERO:
        return 1
    return max(1, int(value))


def _first_present(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def normalize_items(raw_items: Iterable[Any]) -> tuple[FinancialLineItem, ...]:
    out: list[FinancialLineItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        label_raw = _first_present(raw, _LABEL_KEYS)
        label = str(label_raw).strip() if label_raw is not None else ""
        if not label:
            continue

        quantity = parse_quantity(_first_present(raw, _QUANTITY_KEYS))
        unit_amount = parse_amount(_first_present(raw, _UNIT_KEYS))
        stated_total = parse_amount(_first_present(raw, _TOTAL_KEYS))

        try:
            line_total = stated_total if stated_total > _ZERO else unit_amount * quantity
            line_total = line_total.quantize(_CENTS)
            if unit_amount == _ZERO and line_total > _ZERO:
                unit_amount = (line_total / quantity).quantize(_CENTS)
        except InvalidOperation:
            continue
        if unit_amount == _ZERO and line_total == _ZERO:
            continue

        out.append(
            FinancialLineItem(
                label=label,
                unit_amount=unit_amount,
                quantity=quantity,
                line_total=line_total,
            )
        )
    return tuple(out)


def is_deduction(label: str) -> bool:
    return _contains_any(label.lower(), DEDUCTION_TERMS)


def expected_total(items: Iterable[FinancialLineItem], flavor: DocumentFlavor) -> Decimal:
    """Net pay (earnings minus deductions) for payslips, the plain sum otherwise."""
    if flavor == DocumentFlavor.PAYSLIP:
        earnings = _ZERO
        deductions = _ZERO
        for item in items:
            if is_deduction(item.label):
                deductions += item.line_total
            else:
                earnings += item.line_total
        return earnings - deductions
    return sum((item.line_total for item in items), _ZERO)


def reconcile_total(
    items: tuple[FinancialLineItem, ...],
    stated_total: Decimal,
    *,
    flavor: DocumentFlavor,
    rules: FinanceRules,
) -> Decimal:
    if not items:
        return stated_total if stated_total > _ZERO else _ZERO

    expected = expected_total(items, flavor)
    if stated_total <= _ZERO:
        return expected

    deviation = abs(stated_total - expected)
    if flavor == DocumentFlavor.PAYSLIP:
        # Fixed absolute bound: a 10,000,000 payslip gets the same slack as a 10 one.
        if deviation > rules.payslip_tolerance:
            return expected
        return stated_total

    if expected > _ZERO and deviation > rules.generic_tolerance_ratio * expected:
        return expected
    return stated_total


def infer_currency(stated: Any, text: str) -> str:
    code = normalize_currency(stated) if isinstance(stated, str) else None
    if code and code != FALLBACK_CURRENCY:
        return code

    lowered = (text or "").lower()
    for currency, markers in CURRENCY_MARKERS:
        if _contains_any(lowered, markers):
            return currency
    return FALLBACK_CURRENCY
