from __future__ import annotations

import time
from typing import Any

from mailsight.core.logging import get_logger, log_event, monotonic_ms
from mailsight.modules.finance.errors import (
    ExtractionFailed,
    FinancialExtractionError,
    MalformedExtractionResponse,
    NoFinancialData,
    UnreadableDocument,
)
from mailsight.modules.finance.heuristics import (
    check_eligibility,
    classify_flavor,
    infer_currency,
    normalize_items,
    parse_amount,
    reconcile_total,
)
from mailsight.modules.finance.rules import FinanceRules, rules_from_settings
from mailsight.modules.finance.schemas import (
    DocumentFlavor,
    ExtractionResult,
    ExtractionStatus,
    FinancialDocument,
)
from mailsight.modules.llm.client import CompletionClient, LLMError
from mailsight.modules.llm.json_tools import parse_json_object

logger = get_logger(__name__)

_SYSTEM_PROMPT = (
    "You extract line items and totals from invoices, bills, receipts and payslips.\n"
    "Only use figures explicitly present in the text. Never guess.\n"
    "Return JSON only."
)

_FLAVOR_RULES: dict[DocumentFlavor, str] = {
    DocumentFlavor.PAYSLIP: (
        "- This looks like a payslip. List every earning (Basic, HRA, allowances, ...) and "
        "every deduction (tax, PF, professional tax, leave, ...) as separate items.\n"
        "- total MUST be the Net Payable amount (earnings minus deductions).\n"
    ),
    DocumentFlavor.GENERIC: (
        "- List every billed line with its unit price, quantity and line total.\n"
        "- total MUST be the grand total / amount due.\n"
    ),
}

_STATUS_BY_ERROR: tuple[tuple[type[FinancialExtractionError], ExtractionStatus], ...] = (
    (UnreadableDocument, ExtractionStatus.UNREADABLE_DOCUMENT),
    (MalformedExtractionResponse, ExtractionStatus.MALFORMED_RESPONSE),
    (ExtractionFailed, ExtractionStatus.EXTRACTION_FAILED),
    (NoFinancialData, ExtractionStatus.NO_FINANCIAL_DATA),
)


def build_extraction_prompt(
    text: str, *, flavor: DocumentFlavor, is_attached_document: bool, max_chars: int
) -> str:
    # Plain prefix cut: long documents lose their tail, even if the totals live there.
    content = text.strip()[:max_chars]
    source = "PDF document" if is_attached_document else "email body"
    return (
        f"Extract financial information from the following {source}.\n"
        "Return JSON with this exact shape:\n"
        "{\n"
        '  "items": [{"item": string, "price": number, "quantity": number, "total": number}],\n'
        '  "total": number,\n'
        '  "currency": "ISO-4217 code"\n'
        "}\n\n"
        "Rules:\n"
        + _FLAVOR_RULES[flavor]
        + "- If the text contains no financial data, return {\"items\": []}.\n\n"
        "Content:\n"
        + content
    )


class FinancialExtractor:
    """Turns plain document text into a reconciled `FinancialDocument`.

    The completion client is the only I/O; everything else is pure, so one
    instance can serve concurrent callers.
    """

    def __init__(self, client: CompletionClient, rules: FinanceRules | None = None) -> None:
        self._client = client
        self._rules = rules or rules_from_settings()

    def extract(self, text: str, *, is_attached_document: bool = False) -> ExtractionResult:
        start = time.monotonic()
        try:
            document = self._extract(text, is_attached_document=is_attached_document)
        except FinancialExtractionError as e:
            status = next(s for cls, s in _STATUS_BY_ERROR if isinstance(e, cls))
            log_event(
                logger,
                "finance.extract.finish",
                status=status.value,
                reason=str(e) or None,
                attached=is_attached_document,
                text_chars=len(text or ""),
                duration_ms=monotonic_ms(start),
            )
            return ExtractionResult(status=status, detail=str(e) or None)

        log_event(
            logger,
            "finance.extract.finish",
            status=ExtractionStatus.EXTRACTED.value,
            attached=is_attached_document,
            flavor=document.flavor.value,
            item_count=len(document.items),
            currency=document.currency,
            duration_ms=monotonic_ms(start),
        )
        return ExtractionResult(status=ExtractionStatus.EXTRACTED, document=document)

    def _extract(self, text: str, *, is_attached_document: bool) -> FinancialDocument:
        check_eligibility(text, is_attached_document=is_attached_document, rules=self._rules)
        flavor = classify_flavor(text)
        candidate = self._request_candidate(
            text, flavor=flavor, is_attached_document=is_attached_document
        )
        try:
            return self._assemble(candidate, text=text, flavor=flavor)
        except ArithmeticError as e:
            raise MalformedExtractionResponse(f"unusable numbers: {e!r}") from e

    def _request_candidate(
        self, text: str, *, flavor: DocumentFlavor, is_attached_document: bool
    ) -> dict[str, Any]:
        prompt = build_extraction_prompt(
            text,
            flavor=flavor,
            is_attached_document=is_attached_document,
            max_chars=self._rules.max_content_chars,
        )
        try:
            content = self._client.complete_json(
                system=_SYSTEM_PROMPT,
                prompt=prompt,
                temperature=self._rules.temperature,
                max_tokens=self._rules.max_tokens,
            )
        except LLMError as e:
            raise ExtractionFailed(str(e)) from e
        if not content or not content.strip():
            raise ExtractionFailed("empty response")

        if content.strip() == "null":
            raise NoFinancialData("model returned null")
        parsed = parse_json_object(content)
        if parsed is None:
            raise MalformedExtractionResponse("response is not JSON")
        if not isinstance(parsed, dict) or not isinstance(parsed.get("items"), list):
            raise NoFinancialData("response has no items list")
        return parsed

    def _assemble(
        self, candidate: dict[str, Any], *, text: str, flavor: DocumentFlavor
    ) -> FinancialDocument:
        items = normalize_items(candidate["items"])
        stated_total = parse_amount(candidate.get("total"))
        if not items and stated_total == 0:
            raise NoFinancialData("no usable items or total")

        grand_total = reconcile_total(items, stated_total, flavor=flavor, rules=self._rules)
        if grand_total != stated_total and stated_total > 0:
            log_event(
                logger,
                "finance.total.corrected",
                flavor=flavor.value,
                stated_total=str(stated_total),
                grand_total=str(grand_total),
                item_count=len(items),
            )
        return FinancialDocument(
            items=items,
            grand_total=grand_total,
            currency=infer_currency(candidate.get("currency"), text),
            flavor=flavor,
        )
