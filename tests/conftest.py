"""Pytest configuration and shared fixtures.

HTTP is faked in-process with httpx.MockTransport: ``FakeControlApi`` answers
the control-API routes on ``api.test`` and serves provider pages from
``shop.test``.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from price_scraper.scrapers.models import Credentials


API_BASE_URL = "http://api.test"
SHOP_BASE_URL = "http://shop.test"

Responder = Callable[[httpx.Request], httpx.Response]


class FakeControlApi:
    """Records every request and answers with configurable responses."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token = {"access_token": "abc.def", "token_type": "Bearer"}
        self.catalog: Any = []
        self.providers: Dict[int, Any] = {}
        self.pages: Dict[str, Any] = {}  # path on shop.test -> html or Responder
        self.overrides: Dict[str, Responder] = {}  # "METHOD /path" -> Responder

    # -- setup helpers -----------------------------------------------------

    def add_provider(
        self,
        provider_id: int,
        html: Optional[str] = None,
        selector: str = ".price",
        name: Optional[str] = None,
    ) -> None:
        """Register a provider in the catalog with a page on shop.test."""
        path = f"/p/{provider_id}"
        self.catalog.append({"id": provider_id})
        self.providers[provider_id] = {
            "id": provider_id,
            "name": name or f"Provider {provider_id}",
            "url": f"{SHOP_BASE_URL}{path}",
            "html_element": selector,
        }
        if html is not None:
            self.pages[path] = html

    def override(self, method: str, path: str, responder: Responder) -> None:
        self.overrides[f"{method} {path}"] = responder

    # -- inspection helpers ------------------------------------------------

    def requests_to(self, method: str, path: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.host == "api.test" and r.url.path == path
        ]

    def reported_prices(self) -> Dict[int, float]:
        prices = {}
        for request in self.requests:
            parts = request.url.path.strip("/").split("/")
            if request.method == "POST" and len(parts) == 3 and parts[2] == "prices":
                prices[int(parts[1])] = json.loads(request.content)["price"]
        return prices

    # -- transport ---------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {request.url.path}"

        if request.url.host == "shop.test":
            page = self.pages.get(request.url.path)
            if page is None:
                return httpx.Response(404, text="not found")
            if callable(page):
                return page(request)
            return httpx.Response(200, text=page, headers={"content-type": "text/html"})

        if key in self.overrides:
            return self.overrides[key](request)

        path = request.url.path
        if key == "POST /auth/login":
            return httpx.Response(200, json=self.token)
        if key == "GET /scraping_runs/providers":
            return httpx.Response(200, json=self.catalog)
        if key == "POST /scraping_runs":
            return httpx.Response(201, json={"id": 1})
        if request.method == "GET" and path.startswith("/providers/"):
            provider = self.providers.get(int(path.rsplit("/", 1)[1]))
            if provider is None:
                return httpx.Response(404, json={"detail": "Not found"})
            return httpx.Response(200, json=provider)
        if request.method == "POST" and path.endswith("/prices"):
            return httpx.Response(201, json={"ok": True})
        return httpx.Response(404, json={"detail": f"no route for {key}"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_api() -> FakeControlApi:
    return FakeControlApi()


@pytest_asyncio.fixture
async def http_client(fake_api: FakeControlApi):
    async with httpx.AsyncClient(transport=fake_api.transport()) as client:
        yield client


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(client_id="scraper", client_secret="s3cret")
