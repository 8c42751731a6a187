from __future__ import annotations

import time
from dataclasses import dataclass

from pydantic import BaseModel, ValidationError, field_validator

from mailsight.core.config import settings
from mailsight.core.logging import get_logger, log_event, monotonic_ms
from mailsight.modules.llm.client import CompletionClient, LLMError
from mailsight.modules.llm.json_tools import parse_json_object

logger = get_logger(__name__)

CATEGORIES: tuple[str, ...] = (
    "Meeting",
    "Invoice",
    "Support Request",
    "Newsletter",
    "Promotion",
    "Personal",
    "Work",
    "Other",
)

_CATEGORY_BY_KEY = {c.lower(): c for c in CATEGORIES}
_MAX_KEYWORDS = 10

_SYSTEM_PROMPT = (
    "You are an email analysis assistant. Always respond with valid JSON only, "
    "no additional text."
)


class SummarizationError(RuntimeError):
    pass


@dataclass(frozen=True)
class EmailContent:
    sender: str
    subject: str
    body: str


class SummaryResponse(BaseModel):
    summary: str
    category: str = "Other"
    keywords: list[str] = []

    @field_validator("summary")
    @classmethod
    def _summary_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("summary is empty")
        return v

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, v: object) -> str:
        if not isinstance(v, str):
            return "Other"
        return _CATEGORY_BY_KEY.get(v.strip().lower(), "Other")

    @field_validator("keywords", mode="before")
    @classmethod
    def _clean_keywords(cls, v: object) -> list[str]:
        if not isinstance(v, list):
            return []
        out: list[str] = []
        seen: set[str] = set()
        for raw in v:
            if not isinstance(raw, str):
                continue
            kw = raw.strip()
            if not kw or kw.lower() in seen:
                continue
            seen.add(kw.lower())
            out.append(kw)
        return out[:_MAX_KEYWORDS]


def _truncate_body(body: str, *, max_chars: int) -> str:
    if len(body) <= max_chars:
        return body
    return body[:max_chars] + "..."


def build_summary_prompt(email: EmailContent, *, max_body_chars: int) -> str:
    body = _truncate_body(email.body, max_chars=max_body_chars)
    return (
        "Analyze the following email and provide:\n"
        "1. A concise 2-3 sentence summary\n"
        f"2. A category from: {', '.join(CATEGORIES)}\n"
        "3. 5-10 key terms or phrases extracted from the email\n\n"
        "Email Details:\n"
        f"From: {email.sender}\n"
        f"Subject: {email.subject}\n"
        f"Body: {body}\n\n"
        "Respond in JSON format with the following structure:\n"
        "{\n"
        '  "summary": "2-3 sentence summary here",\n'
        '  "category": "one of the categories listed above",\n'
        '  "keywords": ["keyword1", "keyword2", ...]\n'
        "}"
    )


def summarize_email(client: CompletionClient, email: EmailContent) -> SummaryResponse:
    start = time.monotonic()
    if len(email.body) > settings.summary_max_body_chars:
        log_event(
            logger,
            "summarize.body.truncated",
            body_chars=len(email.body),
            max_chars=settings.summary_max_body_chars,
        )

    prompt = build_summary_prompt(email, max_body_chars=settings.summary_max_body_chars)
    try:
        content = client.complete_json(
            system=_SYSTEM_PROMPT,
            prompt=prompt,
            temperature=settings.openai_temperature,
            max_tokens=settings.openai_max_tokens,
        )
    except LLMError as e:
        raise SummarizationError(f"OpenAI API error: {e}") from e

    parsed = parse_json_object(content)
    if not isinstance(parsed, dict):
        raise SummarizationError("Summary response is not a JSON object")
    try:
        result = SummaryResponse.model_validate(parsed)
    except ValidationError as e:
        messages = ", ".join(err["msg"] for err in e.errors())
        raise SummarizationError(f"Validation error: {messages}") from e

    log_event(
        logger,
        "summarize.finish",
        category=result.category,
        keyword_count=len(result.keywords),
        summary_chars=len(result.summary),
        duration_ms=monotonic_ms(start),
    )
    return result
