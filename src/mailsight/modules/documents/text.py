from __future__ import annotations

import re
from dataclasses import dataclass
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parseaddr
from html.parser import HTMLParser
from io import BytesIO

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from mailsight.core.logging import get_logger, log_event

logger = get_logger(__name__)


class DocumentReadError(ValueError):
    pass


class NoExtractableText(DocumentReadError):
    """The document parsed but holds no text layer (e.g. a scanned image)."""


@dataclass(frozen=True)
class ParsedEmail:
    sender: str
    subject: str
    body: str
    attachment: bytes | None = None
    attachment_filename: str | None = None


def looks_like_pdf_bytes(body: bytes) -> bool:
    if not body:
        return False
    b = body.lstrip()
    if b.startswith(b"\xef\xbb\xbf"):
        b = b[3:].lstrip()
    return b.startswith(b"%PDF")


def extract_pdf_text(body: bytes) -> str:
    if not looks_like_pdf_bytes(body):
        raise DocumentReadError("Not a PDF (missing %PDF header)")
    try:
        reader = PdfReader(BytesIO(body))
        pages = [
            (page.extract_text() or "").replace("\u202f", " ").replace("\xa0", " ")
            for page in reader.pages
        ]
    except (PdfReadError, ValueError, KeyError) as e:
        raise DocumentReadError(f"Could not read PDF: {e}") from e

    text = "\n".join(pages).strip()
    log_event(
        logger,
        "document.pdf.text",
        page_count=len(pages),
        text_chars=len(text),
    )
    if not text:
        raise NoExtractableText("PDF has no extractable text; it may be a scanned image")
    return text


_SKIP_TAGS = frozenset({"script", "style", "head", "title"})
_BLOCK_TAGS = frozenset({"div", "tr", "li", "table", "h1", "h2", "h3", "h4", "h5", "h6"})


class _TextCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._chunks: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs) -> None:
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag == "br":
            self._chunks.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag == "p":
            self._chunks.append("\n\n")
        elif tag in _BLOCK_TAGS:
            self._chunks.append("\n")

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self._chunks.append(data)

    @property
    def text(self) -> str:
        return "".join(self._chunks)


def html_to_text(html: str) -> str:
    collector = _TextCollector()
    collector.feed(html)
    collector.close()
    lines = (" ".join(line.split()) for line in collector.text.splitlines())
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def _email_body_text(msg: EmailMessage) -> str:
    part = msg.get_body(preferencelist=("plain", "html"))
    if part is None:
        return ""
    try:
        content = part.get_content()
    except (LookupError, UnicodeDecodeError):
        content = (part.get_payload(decode=True) or b"").decode("utf-8", errors="replace")
    if part.get_content_type() == "text/html":
        return html_to_text(content)
    return content.strip()


def parse_eml(body: bytes) -> ParsedEmail:
    """Split an RFC-822 message into sender, subject, text body and first PDF attachment."""
    msg = BytesParser(policy=policy.default).parsebytes(body)

    subject = str(msg.get("subject") or "").strip()
    from_header = str(msg.get("from") or "").strip()
    from_name, from_addr = parseaddr(from_header)
    sender = from_addr or from_name or from_header

    attachment: bytes | None = None
    attachment_filename: str | None = None
    for part in msg.iter_attachments():
        payload = part.get_payload(decode=True)
        if not payload:
            continue
        filename = part.get_filename() or ""
        is_pdf = filename.lower().endswith(".pdf") or part.get_content_type() == "application/pdf"
        if is_pdf:
            attachment = payload
            attachment_filename = filename or "attachment.pdf"
            break

    return ParsedEmail(
        sender=sender,
        subject=subject,
        body=_email_body_text(msg),
        attachment=attachment,
        attachment_filename=attachment_filename,
    )
