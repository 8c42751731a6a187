from __future__ import annotations

import csv
import io
from datetime import UTC, datetime

from openpyxl import Workbook
from openpyxl.styles import Font

from mailsight.modules.summaries.models import EmailSummary

CSV_HEADERS: tuple[str, ...] = (
    "ID",
    "Sender",
    "Subject",
    "Summary",
    "Category",
    "Keywords",
    "Invoice Total",
    "Created At",
    "Updated At",
)

_ITEM_HEADERS: tuple[str, ...] = ("Summary ID", "Subject", "Item", "Price", "Quantity", "Total", "Currency")


def export_filename(ext: str) -> str:
    return f"email-summaries-{int(datetime.now(UTC).timestamp() * 1000)}.{ext}"


def format_invoice_total(invoice_data: dict | None) -> str:
    if not isinstance(invoice_data, dict):
        return ""
    currency = invoice_data.get("currency")
    total = invoice_data.get("total")
    if not isinstance(currency, str) or not isinstance(total, (int, float)):
        return ""
    return f"{currency} {float(total):.2f}"


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def summary_row(summary: EmailSummary) -> list[str]:
    return [
        str(summary.id),
        summary.sender,
        summary.subject,
        summary.summary.replace("\r", "").replace("\n", " "),
        summary.category,
        "; ".join(summary.keywords or []),
        format_invoice_total(summary.invoice_data),
        _iso(summary.created_at),
        _iso(summary.updated_at),
    ]


def build_csv(summaries: list[EmailSummary]) -> bytes:
    buf = io.StringIO()
    # BOM so Excel opens the file as UTF-8.
    buf.write("\ufeff")
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for summary in summaries:
        writer.writerow(summary_row(summary))
    return buf.getvalue().encode("utf-8")


def build_xlsx(summaries: list[EmailSummary]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Summaries"
    ws.append(list(CSV_HEADERS))
    for summary in summaries:
        ws.append(summary_row(summary))

    items_ws = wb.create_sheet("Line Items")
    items_ws.append(list(_ITEM_HEADERS))
    for summary in summaries:
        data = summary.invoice_data if isinstance(summary.invoice_data, dict) else None
        if not data:
            continue
        for item in data.get("items") or []:
            items_ws.append(
                [
                    str(summary.id),
                    summary.subject,
                    item.get("item"),
                    item.get("price"),
                    item.get("quantity"),
                    item.get("total"),
                    data.get("currency"),
                ]
            )

    for sheet in (ws, items_ws):
        for cell in sheet[1]:
            cell.font = Font(bold=True)
        sheet.freeze_panes = "A2"
    ws.column_dimensions["D"].width = 60

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()
