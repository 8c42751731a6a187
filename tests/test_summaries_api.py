from __future__ import annotations

import asyncio
import json
import uuid
from email.message import EmailMessage
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from mailsight.api.deps import get_llm_client
from mailsight.main import app
from mailsight.modules.llm.client import LLMError
from mailsight.modules.summaries import api as summaries_api
from mailsight.modules.summaries import service as summaries_service

INVOICE_REPLY = json.dumps(
    {
        "items": [{"item": "Consulting", "price": "1,200", "quantity": 2}],
        "total": "2,400",
        "currency": "EUR",
    }
)
EMAIL = {
    "sender": "billing@acme.com",
    "subject": "Invoice #77",
    "body": "Consulting 2 days at €1,200. Total due: €2,400.",
}


@pytest.fixture()
def llm(make_llm):
    return make_llm(extraction=INVOICE_REPLY)


@pytest.fixture()
def client(llm):
    app.dependency_overrides[get_llm_client] = lambda: llm
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _create(client, **overrides) -> dict:
    resp = client.post("/api/summaries", json={**EMAIL, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    resp = client.get("/healthz/storage")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert resp.headers["x-request-id"]


def test_create_summary_from_json(client):
    resp = client.post("/api/summaries", json=EMAIL)

    assert resp.status_code == 201
    payload = resp.json()
    assert payload["message"] == "Email processed successfully"
    data = payload["data"]
    assert data["sender"] == "billing@acme.com"
    assert data["category"] == "Work"
    assert data["financial_status"] == "extracted"
    assert data["invoice_data"]["total"] == 2400.0
    assert data["invoice_data"]["currency"] == "EUR"


@pytest.mark.parametrize(
    "body",
    [
        {"sender": "a@b.com", "subject": "Hi"},
        {"sender": "a@b.com", "subject": "Hi", "body": "   "},
    ],
)
def test_create_summary_rejects_incomplete_json(client, body):
    resp = client.post("/api/summaries", json=body)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid email data"


def test_multipart_requires_all_fields(client):
    resp = client.post("/api/summaries", data={"sender": "a@b.com", "body": "Hello"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required fields", "required": ["subject"]}


def test_urlencoded_form_is_accepted(client):
    resp = client.post(
        "/api/summaries",
        data={"sender": "a@b.com", "subject": "Hi", "body": "Hello there"},
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["subject"] == "Hi"


def test_create_runs_summarization_off_the_event_loop(client, monkeypatch):
    calls: list[bool] = []
    real_create = summaries_api.create_summary

    def _create(*args, **kwargs):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            calls.append(False)
        else:
            calls.append(True)
        return real_create(*args, **kwargs)

    monkeypatch.setattr(summaries_api, "create_summary", _create)
    resp = client.post("/api/summaries", json=EMAIL)

    assert resp.status_code == 201
    assert calls == [False]


def test_multipart_with_pdf_attachment(client, monkeypatch):
    monkeypatch.setattr(
        summaries_service,
        "extract_pdf_text",
        lambda body: "Invoice #77\nConsulting 2 days at EUR 1,200\nTotal due: EUR 2,400",
    )
    resp = client.post(
        "/api/summaries",
        data={"sender": "a@b.com", "subject": "Docs", "body": "See attached."},
        files={"pdf": ("invoice.pdf", b"%PDF-1.4 fake", "application/pdf")},
    )

    assert resp.status_code == 201, resp.text
    payload = resp.json()
    assert payload["message"] == "Email processed with PDF attachment"
    assert payload["data"]["attachment_filename"] == "invoice.pdf"
    assert payload["data"]["invoice_data"]["total"] == 2400.0


def test_multipart_ignores_non_pdf_files(client):
    resp = client.post(
        "/api/summaries",
        data=EMAIL,
        files={"pdf": ("notes.txt", b"hello", "text/plain")},
    )
    assert resp.status_code == 201
    assert resp.json()["message"] == "Email processed successfully"
    assert resp.json()["data"]["attachment_filename"] is None


def test_summarization_failure_is_bad_gateway(client, llm):
    llm.summary = LLMError("OpenAI request failed: 500")
    resp = client.post("/api/summaries", json=EMAIL)
    assert resp.status_code == 502
    assert "OpenAI API error" in resp.json()["detail"]


def test_list_get_and_delete(client):
    first = _create(client)
    _create(client, subject="Lunch plans", body="Want to get lunch on Friday at noon?")

    resp = client.get("/api/summaries", params={"search": "lunch"})
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "private, max-age=60"
    page = resp.json()
    assert page["total"] == 1
    assert page["data"][0]["subject"] == "Lunch plans"

    resp = client.get("/api/summaries", params={"limit": 1, "page": 2})
    page = resp.json()
    assert page["count"] == 1
    assert page["total"] == 2
    assert page["total_pages"] == 2

    resp = client.get(f"/api/summaries/{first['id']}")
    assert resp.status_code == 200
    assert resp.json()["data"]["subject"] == "Invoice #77"

    resp = client.delete(f"/api/summaries/{first['id']}")
    assert resp.json() == {"message": "Summary deleted successfully"}
    assert client.get(f"/api/summaries/{first['id']}").status_code == 404
    assert client.delete(f"/api/summaries/{first['id']}").status_code == 404


def test_unknown_summary_is_not_found(client):
    resp = client.get(f"/api/summaries/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Summary not found"


def test_batch_reports_created_and_failed(client, llm):
    ok = json.dumps({"summary": "Fine.", "category": "Personal", "keywords": []})
    llm.summary = [ok, LLMError("OpenAI request failed: 429")]
    resp = client.post(
        "/api/summaries/batch",
        json={
            "emails": [
                {"sender": "a@b.com", "subject": "One", "body": "First message body"},
                {"sender": "c@d.com", "subject": "Two", "body": "Second message body"},
            ]
        },
    )
    assert resp.status_code == 201
    payload = resp.json()
    assert payload["count"] == 1
    assert payload["data"][0]["category"] == "Personal"
    assert payload["errors"][0]["subject"] == "Two"


def test_batch_requires_emails(client):
    assert client.post("/api/summaries/batch", json={"emails": []}).status_code == 422


def test_eml_upload(client):
    msg = EmailMessage()
    msg["From"] = "ACME Billing <billing@acme.com>"
    msg["To"] = "me@example.com"
    msg["Subject"] = "Invoice #77"
    msg.set_content("Consulting 2 days at €1,200. Total due: €2,400.")

    resp = client.post(
        "/api/summaries/eml",
        files={"upload": ("invoice.eml", msg.as_bytes(), "message/rfc822")},
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    assert data["sender"] == "billing@acme.com"
    assert data["subject"] == "Invoice #77"
    assert data["financial_status"] == "extracted"


def test_eml_upload_without_subject_is_rejected(client):
    msg = EmailMessage()
    msg["From"] = "billing@acme.com"
    msg.set_content("Body only")
    resp = client.post(
        "/api/summaries/eml",
        files={"upload": ("x.eml", msg.as_bytes(), "message/rfc822")},
    )
    assert resp.status_code == 400


def test_resummarize_endpoint(client, llm):
    created = _create(client)
    llm.summary = json.dumps({"summary": "Second pass.", "category": "Invoice", "keywords": []})

    resp = client.post(f"/api/summaries/{created['id']}/resummarize")
    assert resp.status_code == 200
    assert resp.json()["data"]["summary"] == "Second pass."
    assert resp.json()["data"]["category"] == "Invoice"


def test_csv_export(client):
    _create(client)
    _create(client, subject="Lunch plans", body="Want to get lunch on Friday at noon?")

    resp = client.get("/api/summaries/export")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=\"email-summaries-" in resp.headers["content-disposition"]

    text = resp.content.decode("utf-8")
    assert text.startswith("\ufeff")
    lines = text.lstrip("\ufeff").splitlines()
    assert lines[0] == (
        "ID,Sender,Subject,Summary,Category,Keywords,Invoice Total,Created At,Updated At"
    )
    assert len(lines) == 3
    assert any("EUR 2400.00" in line for line in lines)


def test_xlsx_export(client):
    _create(client)
    resp = client.get("/api/summaries/export.xlsx")
    assert resp.status_code == 200

    wb = load_workbook(BytesIO(resp.content))
    summaries = wb["Summaries"]
    assert summaries["B2"].value == "billing@acme.com"
    items = wb["Line Items"]
    assert items["C2"].value == "Consulting"
    assert items["G2"].value == "EUR"
