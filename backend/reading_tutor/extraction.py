"""
Content extraction.

Turns every kind of reading material (pasted text, PDF, DOCX, remote URL) into
a single plain-text passage. PDF and DOCX parsing run in the threadpool so the
event loop stays free; URL extraction is delegated to Gemini with Google
Search grounding.
"""

from __future__ import annotations
import logging
from io import BytesIO
from typing import Callable, List, Optional

import docx
from pypdf import PdfReader
from starlette.concurrency import run_in_threadpool

from .errors import ExtractionError, ExtractionFailure
from .gemini_client import GeminiClient, GeminiError
from .models import DocxContent, PdfContent, TextContent, UrlContent

logger = logging.getLogger(__name__)

EXTRACT_FAILED_SENTINEL = "ERROR::EXTRACT_FAILED"

FILE_UNREADABLE_MESSAGE = (
    "Could not extract readable text from the file. It may be corrupted, "
    "password-protected, or contain only scanned images."
)
URL_UNREADABLE_MESSAGE = (
    "Could not extract readable text from the URL. The page may be behind a paywall, "
    "require a login, or contain no main article. Please try another link or paste the text directly."
)
TEXT_TOO_SHORT_MESSAGE = (
    "The provided text is too short to create a reading session. "
    "Please provide a longer passage."
)

CancelCheck = Callable[[], bool]


def _never_cancelled() -> bool:
    return False


def _url_extraction_prompt(url: str) -> str:
    return (
        "You are a content extraction tool. Use Google Search to retrieve the web page at the URL below.\n"
        f"URL: {url}\n"
        "Return ONLY the main article text of the page, as plain paragraphs separated by blank lines.\n"
        "Exclude navigation menus, headers, footers, advertisements, cookie notices, comments and related links.\n"
        "Do not summarize, translate or add commentary.\n"
        "If the page has no main article body of at least 100 words, is behind a paywall or login, "
        "or cannot be retrieved, respond with exactly: "
        f"{EXTRACT_FAILED_SENTINEL}"
    )


def failure_message_for(content) -> str:
    """User-facing message for a passage that could not be extracted from ``content``."""
    if isinstance(content, UrlContent):
        return URL_UNREADABLE_MESSAGE
    if isinstance(content, (PdfContent, DocxContent)):
        return FILE_UNREADABLE_MESSAGE
    return TEXT_TOO_SHORT_MESSAGE


class ContentExtractor:
    def __init__(self, client: Optional[GeminiClient] = None) -> None:
        # Only URL materials need the model
        self.client = client

    async def extract(self, content, is_cancelled: CancelCheck = _never_cancelled) -> str:
        if isinstance(content, TextContent):
            return content.text.strip()
        if isinstance(content, PdfContent):
            return await extract_pdf_text(content.data, is_cancelled)
        if isinstance(content, DocxContent):
            return await extract_docx_text(content.data)
        if isinstance(content, UrlContent):
            return await self._extract_url(content.url)
        raise TypeError(f"Unsupported material content: {type(content).__name__}")

    async def _extract_url(self, url: str) -> str:
        if self.client is None:
            raise ExtractionError(ExtractionFailure.URL_UNREADABLE, URL_UNREADABLE_MESSAGE)
        try:
            text = await self.client.generate_with_search(_url_extraction_prompt(url))
        except GeminiError as e:
            logger.warning("URL extraction request failed for %s: %s", url, e)
            raise ExtractionError(ExtractionFailure.URL_UNREADABLE, URL_UNREADABLE_MESSAGE) from e
        if EXTRACT_FAILED_SENTINEL in text:
            raise ExtractionError(ExtractionFailure.URL_UNREADABLE, URL_UNREADABLE_MESSAGE)
        return text


def _page_text(page) -> str:
    # Collapse the extractor's line breaks into space-separated runs
    return " ".join((page.extract_text() or "").split())


async def extract_pdf_text(data: bytes, is_cancelled: CancelCheck = _never_cancelled) -> str:
    try:
        reader = await run_in_threadpool(PdfReader, BytesIO(data))
        if reader.is_encrypted:
            reader.decrypt("")
        pages = list(reader.pages)
        if not pages:
            raise ValueError("document has no pages")
    except Exception as e:
        logger.warning("PDF could not be opened: %s", e)
        raise ExtractionError(ExtractionFailure.CORRUPT_OR_UNREADABLE, FILE_UNREADABLE_MESSAGE) from e

    texts: List[str] = []
    for number, page in enumerate(pages, start=1):
        try:
            text = await run_in_threadpool(_page_text, page)
        except Exception as e:
            logger.warning("PDF page %d could not be read: %s", number, e)
            raise ExtractionError(ExtractionFailure.CORRUPT_OR_UNREADABLE, FILE_UNREADABLE_MESSAGE) from e
        if is_cancelled():
            logger.debug("PDF extraction cancelled after page %d", number)
            return ""
        if text:
            texts.append(text)
    return "\n\n".join(texts).strip()


def _docx_text(data: bytes) -> str:
    document = docx.Document(BytesIO(data))
    blocks = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            for cell in row.cells:
                blocks.extend(p.text for p in cell.paragraphs)
    return "\n\n".join(b.strip() for b in blocks if b.strip())


async def extract_docx_text(data: bytes) -> str:
    try:
        return await run_in_threadpool(_docx_text, data)
    except Exception as e:
        logger.warning("DOCX could not be opened: %s", e)
        raise ExtractionError(ExtractionFailure.CORRUPT_OR_UNREADABLE, FILE_UNREADABLE_MESSAGE) from e
