"""Download a provider page and pull candidate price texts out of it."""

from typing import List

import httpx
import soupsieve
import structlog
from bs4 import BeautifulSoup

from price_scraper.core.exceptions import FetchError, SelectorError
from price_scraper.scrapers.api_client import describe_response
from price_scraper.scrapers.utils.retry import transport_retry


logger = structlog.get_logger(__name__)


class PageFetcher:
    """Fetches external provider pages and evaluates a CSS selector on them."""

    def __init__(self, http_client: httpx.AsyncClient, retry_attempts: int = 2):
        """Initialize page fetcher.

        Args:
            http_client: Shared client; requests go out without control-API headers
            retry_attempts: Total attempts on transport errors
        """
        self.http_client = http_client
        self.retry_attempts = retry_attempts

    @staticmethod
    def compile_selector(selector: str, provider_id: int = 0) -> soupsieve.SoupSieve:
        """Compile a selector, mapping syntax errors to SelectorError."""
        try:
            return soupsieve.compile(selector)
        except soupsieve.SelectorSyntaxError as e:
            raise SelectorError(provider_id, selector, str(e).splitlines()[0]) from e

    async def _download(self, url: str, provider_id: int) -> str:
        try:
            async for attempt in transport_retry(self.retry_attempts):
                with attempt:
                    response = await self.http_client.get(url, follow_redirects=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(provider_id, url, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise FetchError(provider_id, url, describe_response(response))
        return response.text

    async def fetch(self, url: str, selector: str, provider_id: int = 0) -> List[str]:
        """Fetch a page and return the text of every element matching selector.

        The selector is compiled before the request is made, so a broken
        selector costs no network round-trip.

        Args:
            url: Page to download
            selector: CSS selector identifying price elements
            provider_id: Used for error context only

        Returns:
            Text content of each matched element, in document order

        Raises:
            SelectorError: If the selector does not compile
            FetchError: On transport failure or non-2xx status
        """
        compiled = self.compile_selector(selector, provider_id)
        html = await self._download(url, provider_id)

        soup = BeautifulSoup(html, "lxml")
        candidates = [element.get_text() for element in compiled.select(soup)]

        logger.debug(
            "page_parsed",
            provider_id=provider_id,
            url=url,
            candidates=len(candidates),
        )
        return candidates
