"""End-to-end tests for ScrapeOrchestrator against the fake control API."""

import asyncio
import json
from datetime import datetime
from typing import List

import httpx
import pytest

from conftest import API_BASE_URL
from price_scraper.config import Settings
from price_scraper.core.exceptions import (
    AuthError,
    CatalogError,
    FetchError,
    PipelineFailedError,
    RunReportError,
)
from price_scraper.scrapers.models import OUTCOME_FAILED, OUTCOME_NO_PRICE_FOUND, Token
from price_scraper.scrapers.orchestrator import RunState, ScrapeOrchestrator


def make_orchestrator(fake_api, credentials, **kwargs) -> ScrapeOrchestrator:
    kwargs.setdefault("retry_attempts", 1)
    return ScrapeOrchestrator(API_BASE_URL, credentials, transport=fake_api.transport(), **kwargs)


def price_page(text: str) -> str:
    return f'<html><body><span class="price">{text}</span></body></html>'


class CountingFetcher:
    """Page fetcher that tracks how many fetches are in flight at once."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls = 0

    async def fetch(self, url: str, selector: str, provider_id: int = 0) -> List[str]:
        self.active += 1
        self.calls += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            return ["kr. 100,-"]
        finally:
            self.active -= 1


class TestSuccessfulRun:

    async def test_end_to_end_single_provider(self, fake_api, credentials):
        fake_api.add_provider(1, name="Acme", html=price_page("kr. 199,-"))
        orchestrator = make_orchestrator(fake_api, credentials)

        summary = await orchestrator.run()

        price_posts = fake_api.requests_to("POST", "/providers/1/prices")
        assert len(price_posts) == 1
        assert json.loads(price_posts[0].content) == {"price": 199.0}
        assert summary.stats() == {
            "providers_total": 1,
            "prices_reported": 1,
            "prices_found_dry_run": 0,
            "no_price_found": 0,
            "failed": 0,
        }
        assert orchestrator.state is RunState.IDLE

    async def test_call_order_and_auth_header(self, fake_api, credentials):
        fake_api.add_provider(1, html=price_page("kr. 199,-"))
        orchestrator = make_orchestrator(fake_api, credentials)

        await orchestrator.run()

        api_calls = [
            (r.method, r.url.path, r.headers.get("authorization"))
            for r in fake_api.requests
            if r.url.host == "api.test"
        ]
        assert api_calls == [
            ("POST", "/auth/login", None),
            ("GET", "/scraping_runs/providers", "Bearer abc.def"),
            ("GET", "/providers/1", "Bearer abc.def"),
            ("POST", "/providers/1/prices", "Bearer abc.def"),
            ("POST", "/scraping_runs", "Bearer abc.def"),
        ]
        assert credentials.token == Token(access_token="abc.def", token_type="Bearer")

    async def test_run_record_start_before_end(self, fake_api, credentials):
        fake_api.add_provider(1, html=price_page("kr. 199,-"))
        orchestrator = make_orchestrator(fake_api, credentials)

        summary = await orchestrator.run()

        body = json.loads(fake_api.requests_to("POST", "/scraping_runs")[0].content)
        start = datetime.fromisoformat(body["start_time"])
        end = datetime.fromisoformat(body["end_time"])
        assert start <= end
        assert summary.run.start_time == start
        assert summary.run.end_time == end

    async def test_empty_catalog_still_reports_run(self, fake_api, credentials):
        summary = await make_orchestrator(fake_api, credentials).run()

        assert summary.outcomes == []
        assert len(fake_api.requests_to("POST", "/scraping_runs")) == 1

    async def test_no_price_found_is_benign(self, fake_api, credentials):
        fake_api.add_provider(1, html=price_page("Udsolgt"))

        summary = await make_orchestrator(fake_api, credentials).run()

        assert summary.outcomes[0].status == OUTCOME_NO_PRICE_FOUND
        assert fake_api.reported_prices() == {}
        assert len(fake_api.requests_to("POST", "/scraping_runs")) == 1

    async def test_reauthenticates_every_run(self, fake_api, credentials):
        orchestrator = make_orchestrator(fake_api, credentials)

        await orchestrator.run()
        fake_api.token = {"access_token": "second", "token_type": "Bearer"}
        await orchestrator.run()

        assert len(fake_api.requests_to("POST", "/auth/login")) == 2
        last_catalog = fake_api.requests_to("GET", "/scraping_runs/providers")[-1]
        assert last_catalog.headers["authorization"] == "Bearer second"


class TestConcurrency:

    async def test_at_most_ten_pipelines_in_flight(self, fake_api, credentials):
        for provider_id in range(1, 26):
            fake_api.add_provider(provider_id)
        fetcher = CountingFetcher()
        orchestrator = make_orchestrator(
            fake_api, credentials, page_fetcher_factory=lambda client: fetcher
        )

        summary = await orchestrator.run()

        assert fetcher.calls == 25
        assert fetcher.max_active == 10
        assert len(fake_api.reported_prices()) == 25
        assert summary.stats()["prices_reported"] == 25

    async def test_custom_cap(self, fake_api, credentials):
        for provider_id in range(1, 8):
            fake_api.add_provider(provider_id)
        fetcher = CountingFetcher()
        orchestrator = make_orchestrator(
            fake_api, credentials, max_concurrency=3, page_fetcher_factory=lambda client: fetcher
        )

        await orchestrator.run()

        assert fetcher.max_active == 3

    def test_rejects_zero_cap(self, credentials):
        with pytest.raises(ValueError):
            ScrapeOrchestrator(API_BASE_URL, credentials, max_concurrency=0)


class TestFailureIsolation:

    @pytest.fixture
    def five_providers(self, fake_api):
        for provider_id in range(1, 6):
            fake_api.add_provider(provider_id, html=price_page(f"kr. {provider_id}00,-"))
        fake_api.pages["/p/3"] = lambda request: httpx.Response(500, text="boom")

    async def test_failing_provider_does_not_stop_siblings(
        self, fake_api, credentials, five_providers
    ):
        summary = await make_orchestrator(fake_api, credentials).run()

        assert fake_api.reported_prices() == {1: 100.0, 2: 200.0, 4: 400.0, 5: 500.0}
        assert [o.provider_id for o in summary.failures] == [3]
        assert isinstance(summary.failures[0].error, FetchError)
        assert summary.run is not None
        assert len(fake_api.requests_to("POST", "/scraping_runs")) == 1

    async def test_strict_policy_raises_after_all_pipelines(
        self, fake_api, credentials, five_providers
    ):
        orchestrator = make_orchestrator(
            fake_api, credentials, report_run_on_pipeline_failure=False
        )

        with pytest.raises(PipelineFailedError) as exc_info:
            await orchestrator.run()

        assert exc_info.value.provider_id == 3
        assert isinstance(exc_info.value.__cause__, FetchError)
        assert fake_api.reported_prices() == {1: 100.0, 2: 200.0, 4: 400.0, 5: 500.0}
        assert fake_api.requests_to("POST", "/scraping_runs") == []
        assert orchestrator.state is RunState.IDLE

    async def test_unexpected_exception_becomes_failed_outcome(self, fake_api, credentials):
        fake_api.add_provider(1)
        fake_api.add_provider(2)

        class BrokenFetcher(CountingFetcher):
            async def fetch(self, url, selector, provider_id=0):
                if provider_id == 1:
                    raise KeyError("bug")
                return await super().fetch(url, selector, provider_id)

        orchestrator = make_orchestrator(
            fake_api, credentials, page_fetcher_factory=lambda client: BrokenFetcher()
        )

        summary = await orchestrator.run()

        assert summary.outcomes[0].status == OUTCOME_FAILED
        assert isinstance(summary.outcomes[0].error, KeyError)
        assert fake_api.reported_prices() == {2: 100.0}

    async def test_price_report_failure_is_contained(self, fake_api, credentials):
        fake_api.add_provider(1, html=price_page("kr. 199,-"))
        fake_api.override("POST", "/providers/1/prices", lambda r: httpx.Response(500))

        summary = await make_orchestrator(fake_api, credentials).run()

        assert summary.failures == []
        assert summary.outcomes[0].reported is False
        assert len(fake_api.requests_to("POST", "/scraping_runs")) == 1


class TestAbortedRuns:

    async def test_auth_failure_abandons_run(self, fake_api, credentials):
        fake_api.add_provider(1, html=price_page("kr. 199,-"))
        fake_api.override("POST", "/auth/login", lambda r: httpx.Response(401))
        orchestrator = make_orchestrator(fake_api, credentials)

        with pytest.raises(AuthError):
            await orchestrator.run()

        assert [r.url.path for r in fake_api.requests] == ["/auth/login"]
        assert orchestrator.state is RunState.IDLE
        assert not credentials.token.is_set

    async def test_catalog_failure_abandons_run(self, fake_api, credentials):
        fake_api.override(
            "GET", "/scraping_runs/providers", lambda r: httpx.Response(200, json={"id": 1})
        )
        orchestrator = make_orchestrator(fake_api, credentials)

        with pytest.raises(CatalogError):
            await orchestrator.run()

        assert fake_api.requests_to("POST", "/scraping_runs") == []
        assert orchestrator.state is RunState.IDLE

    async def test_run_report_failure_propagates(self, fake_api, credentials):
        fake_api.add_provider(1, html=price_page("kr. 199,-"))
        fake_api.override("POST", "/scraping_runs", lambda r: httpx.Response(500, text="db down"))
        orchestrator = make_orchestrator(fake_api, credentials)

        with pytest.raises(RunReportError):
            await orchestrator.run()

        assert fake_api.reported_prices() == {1: 199.0}
        assert orchestrator.state is RunState.IDLE

    async def test_refuses_overlapping_runs(self, fake_api, credentials):
        fake_api.add_provider(1)
        fetcher = CountingFetcher(delay=0.05)
        orchestrator = make_orchestrator(
            fake_api, credentials, page_fetcher_factory=lambda client: fetcher
        )

        first = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0.01)

        with pytest.raises(RuntimeError):
            await orchestrator.run()
        await first


class TestDryRun:

    async def test_posts_nothing(self, fake_api, credentials):
        fake_api.add_provider(1, html=price_page("kr. 199,-"))

        summary = await make_orchestrator(fake_api, credentials, dry_run=True).run()

        assert summary.outcomes[0].price == 199.0
        assert summary.stats()["prices_found_dry_run"] == 1
        assert summary.stats()["prices_reported"] == 0
        assert summary.run is None
        assert [r.method for r in fake_api.requests if r.url.host == "api.test"] == [
            "POST",  # login
            "GET",
            "GET",
        ]


class TestFromSettings:

    def test_uses_settings_values(self):
        settings = Settings(
            API_BASE_URL="http://api.test/",
            CLIENT_ID="id",
            CLIENT_SECRET="secret",
            MAX_CONCURRENT_PIPELINES=4,
            HTTP_TIMEOUT_SECONDS=5.0,
            REPORT_RUN_ON_PIPELINE_FAILURE=False,
        )

        orchestrator = ScrapeOrchestrator.from_settings(settings, dry_run=True)

        assert orchestrator.base_url == "http://api.test"
        assert orchestrator.credentials.client_id == "id"
        assert orchestrator.max_concurrency == 4
        assert orchestrator.timeout == 5.0
        assert orchestrator.report_run_on_pipeline_failure is False
        assert orchestrator.dry_run is True
