"""Fetch a web page and extract its main text with httpx and trafilatura."""

from __future__ import annotations

import json
from typing import Optional

import httpx
import trafilatura
from pydantic import BaseModel

from knowledge_ingestion.config import get_settings
from knowledge_ingestion.utils.errors import (
    ExternalServiceError,
    ExtractionFailedError,
    ExtractionFailureReason,
)
from knowledge_ingestion.utils.logging import get_logger

logger = get_logger("scraper_service")
settings = get_settings()


class ScrapedPage(BaseModel):
    url: str
    title: Optional[str] = None
    content: str


class WebScraper:
    """
    Scrape one URL into plain text.

    Navigation, ads and boilerplate are stripped by trafilatura; the page
    title comes from trafilatura's metadata output.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.scraper.timeout),
            headers={
                "User-Agent": settings.scraper.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
            follow_redirects=True,
        )

    async def scrape(self, url: str) -> ScrapedPage:
        """
        Raises:
            ExtractionFailedError: Timeout, or too little readable text on the page
            ExternalServiceError: Any other HTTP failure
        """
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ExtractionFailedError(
                f"Timeout fetching {url}",
                reason=ExtractionFailureReason.UPSTREAM_TIMEOUT,
                details={"url": url},
            ) from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                "web",
                message=f"HTTP {e.response.status_code} for {url}",
                details={"url": url, "status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                "web", message=f"HTTP error fetching {url}: {e}", details={"url": url}
            ) from e

        html = response.text
        text = trafilatura.extract(html, include_comments=False, include_tables=True)
        if not text or len(text.strip()) < settings.scraper.min_content_length:
            logger.warning(f"Page has too little readable content: {url}")
            raise ExtractionFailedError(
                f"Not enough readable content at {url}",
                reason=ExtractionFailureReason.EMPTY_CONTENT,
                mime_type="text/html",
                details={"url": url},
            )

        title = None
        metadata = trafilatura.extract(
            html,
            include_comments=False,
            output_format="json",
            with_metadata=True,
        )
        if metadata:
            try:
                title = json.loads(metadata).get("title") or None
            except (json.JSONDecodeError, AttributeError):
                logger.debug(f"Could not parse page metadata: {url}")

        logger.info(f"Page scraped: url={url}, title={title}, text_length={len(text)}")
        return ScrapedPage(url=str(response.url), title=title, content=text.strip())

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
