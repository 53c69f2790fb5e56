"""HTTP client for the control API.

Covers the five control-API calls a scraping run makes: login, catalog,
provider lookup, price report and run report.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from price_scraper.core.exceptions import (
    AuthError,
    CatalogError,
    ProviderResolutionError,
    ReportPriceError,
    RunReportError,
)
from price_scraper.scrapers.models import PriceRecord, Provider, ProviderRef, RunRecord, Token
from price_scraper.scrapers.utils.retry import transport_retry


logger = structlog.get_logger(__name__)

LOGIN_ENDPOINT = "/auth/login"
CATALOG_ENDPOINT = "/scraping_runs/providers"
PROVIDER_ENDPOINT = "/providers/{provider_id}"
PRICES_ENDPOINT = "/providers/{provider_id}/prices"
RUNS_ENDPOINT = "/scraping_runs"

_catalog_adapter = TypeAdapter(List[ProviderRef])


def describe_response(response: httpx.Response) -> str:
    """Short "HTTP <status>: <body>" description for error messages."""
    return f"HTTP {response.status_code}: {response.text[:300]}"


class RemoteApiClient:
    """Thin async wrapper around the control API.

    Instances are cheap and immutable: after login, with_token() returns a new
    client whose requests carry the Authorization header, and that client is
    shared read-only by every provider pipeline of the run.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient,
        retry_attempts: int = 2,
        token: Optional[Token] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Control API base URL (e.g. "https://api.example.com")
            http_client: Client used for every request; owned by the caller
            retry_attempts: Total attempts for idempotent GETs on transport errors
            token: Token to send with every request, if already authenticated
        """
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client
        self.retry_attempts = retry_attempts
        self.token = token

    @property
    def headers(self) -> Dict[str, str]:
        if self.token is None:
            return {}
        return {"Authorization": self.token.authorization_header}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def with_token(self, token: Token) -> "RemoteApiClient":
        """Return a copy that sends ``Authorization: <type> <token>``.

        The httpx client is shared, the token is not set on it: pages fetched
        from provider sites through the same client never see it.
        """
        return RemoteApiClient(self.base_url, self.http_client, self.retry_attempts, token)

    async def _get(self, path: str) -> httpx.Response:
        async for attempt in transport_retry(self.retry_attempts):
            with attempt:
                return await self.http_client.get(self._url(path), headers=self.headers)

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        return await self.http_client.post(self._url(path), json=payload, headers=self.headers)

    async def authenticate(self, client_id: str, client_secret: str) -> Token:
        """Log in and return the access token.

        Raises:
            AuthError: On transport failure, non-2xx status or a malformed token
        """
        try:
            response = await self._post(
                LOGIN_ENDPOINT,
                {"client_id": client_id, "client_secret": client_secret},
            )
        except httpx.HTTPError as e:
            raise AuthError(str(e)) from e

        if not response.is_success:
            raise AuthError(describe_response(response))

        try:
            token = Token.model_validate_json(response.content)
        except ValidationError as e:
            raise AuthError(f"malformed token response: {e}") from e

        if not token.is_set:
            raise AuthError("token response is missing access_token or token_type")

        logger.info("authenticated", client_id=client_id, token_type=token.token_type)
        return token

    async def fetch_catalog(self) -> List[ProviderRef]:
        """Fetch the list of providers to scrape this run.

        Raises:
            CatalogError: On transport failure, non-2xx status or a body that
                is not a list of {"id": int} objects
        """
        try:
            response = await self._get(CATALOG_ENDPOINT)
        except httpx.HTTPError as e:
            raise CatalogError(str(e)) from e

        if not response.is_success:
            raise CatalogError(describe_response(response))

        try:
            return _catalog_adapter.validate_json(response.content)
        except ValidationError as e:
            raise CatalogError(f"malformed catalog: {e.error_count()} validation error(s)") from e

    async def resolve_provider(self, provider_id: int) -> Provider:
        """Fetch the full provider record.

        Raises:
            ProviderResolutionError: On transport failure, non-2xx status or a
                body missing url/html_element
        """
        try:
            response = await self._get(PROVIDER_ENDPOINT.format(provider_id=provider_id))
        except httpx.HTTPError as e:
            raise ProviderResolutionError(provider_id, str(e)) from e

        if not response.is_success:
            raise ProviderResolutionError(provider_id, describe_response(response))

        try:
            return Provider.model_validate_json(response.content)
        except ValidationError as e:
            raise ProviderResolutionError(provider_id, f"malformed provider: {e}") from e

    async def _post_price(self, record: PriceRecord) -> httpx.Response:
        try:
            response = await self._post(
                PRICES_ENDPOINT.format(provider_id=record.provider_id),
                record.to_payload(),
            )
        except httpx.HTTPError as e:
            raise ReportPriceError(record.provider_id, str(e)) from e

        if not response.is_success:
            raise ReportPriceError(record.provider_id, describe_response(response))
        return response

    async def report_price(self, provider_id: int, price: float) -> bool:
        """Post a price for a provider. Best-effort: never raises.

        Returns:
            True if the control API accepted the price
        """
        record = PriceRecord(provider_id=provider_id, price=price)
        try:
            response = await self._post_price(record)
        except ReportPriceError as e:
            logger.warning("price_report_failed", provider_id=provider_id, price=price, error=e.message)
            return False

        logger.info(
            "price_reported",
            provider_id=provider_id,
            price=price,
            response=response.text[:300],
        )
        return True

    async def report_run(self, start: datetime, end: datetime) -> None:
        """Post the run record.

        Raises:
            RunReportError: On transport failure or non-2xx status
        """
        record = RunRecord(start_time=start, end_time=end)
        try:
            response = await self._post(RUNS_ENDPOINT, record.to_payload())
        except httpx.HTTPError as e:
            raise RunReportError(str(e)) from e

        if not response.is_success:
            raise RunReportError(describe_response(response))

        logger.info("run_reported", **record.to_payload())
