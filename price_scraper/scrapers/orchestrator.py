"""Scrape run orchestration.

One run: log in, fetch the catalog, fan the catalog out to provider
pipelines under a concurrency cap, then report the run boundaries.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

import httpx
import structlog

from price_scraper.config import Settings
from price_scraper.core.exceptions import PipelineFailedError, PriceScraperError
from price_scraper.scrapers.api_client import RemoteApiClient
from price_scraper.scrapers.models import (
    OUTCOME_FAILED,
    Credentials,
    PipelineOutcome,
    ProviderRef,
    RunRecord,
    RunSummary,
    Token,
)
from price_scraper.scrapers.page_fetcher import PageFetcher
from price_scraper.scrapers.pipeline import ExecutionContext, ProviderPipeline


logger = structlog.get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 10


class RunState(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    FETCHING_CATALOG = "fetching_catalog"
    SCRAPING = "scraping"
    REPORTING_RUN = "reporting_run"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScrapeOrchestrator:
    """Runs complete scraping cycles against the control API.

    The orchestrator owns the credentials and re-authenticates on every run;
    tokens are never reused across runs. Runs must not overlap; run() refuses
    to start while another run is in progress.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout: float = 30.0,
        retry_attempts: int = 2,
        report_run_on_pipeline_failure: bool = True,
        dry_run: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        page_fetcher_factory: Optional[Callable[[httpx.AsyncClient], PageFetcher]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            base_url: Control API base URL
            credentials: Client id/secret; the token is filled in per run
            max_concurrency: Maximum provider pipelines in flight at once
            timeout: Per-request timeout in seconds
            retry_attempts: Total attempts for idempotent GETs on transport errors
            report_run_on_pipeline_failure: Report the run even if some
                pipelines failed. When False the first failure is raised
                instead and the run is not reported.
            dry_run: Scrape but post neither prices nor the run record
            transport: Optional httpx transport (used by tests)
            page_fetcher_factory: Builds the PageFetcher for a run's HTTP client
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.report_run_on_pipeline_failure = report_run_on_pipeline_failure
        self.dry_run = dry_run
        self.transport = transport
        self.page_fetcher_factory = page_fetcher_factory or (
            lambda client: PageFetcher(client, retry_attempts=self.retry_attempts)
        )
        self.state = RunState.IDLE
        self.last_summary: Optional[RunSummary] = None

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "ScrapeOrchestrator":
        """Build an orchestrator from application settings."""
        kwargs = {
            "max_concurrency": settings.MAX_CONCURRENT_PIPELINES,
            "timeout": settings.HTTP_TIMEOUT_SECONDS,
            "retry_attempts": settings.HTTP_RETRY_ATTEMPTS,
            "report_run_on_pipeline_failure": settings.REPORT_RUN_ON_PIPELINE_FAILURE,
        }
        kwargs.update(overrides)
        return cls(
            settings.API_BASE_URL,
            Credentials(client_id=settings.CLIENT_ID, client_secret=settings.CLIENT_SECRET),
            **kwargs,
        )

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def run(self) -> RunSummary:
        """Execute one complete scraping run.

        Returns:
            RunSummary with one outcome per catalog entry

        Raises:
            AuthError: Login failed; nothing else was attempted
            CatalogError: Catalog unavailable; no pipelines ran
            PipelineFailedError: Strict policy only, after every pipeline finished
            RunReportError: The run record could not be posted
            RuntimeError: A run is already in progress
        """
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"Scraping run already in progress (state={self.state.value})")

        self.state = RunState.AUTHENTICATING
        run_start = _utcnow()
        log = logger.bind(run_start=run_start.isoformat())
        log.info("run_started", dry_run=self.dry_run)

        try:
            async with self._http_client() as http_client:
                self.credentials.token = Token()
                api = RemoteApiClient(self.base_url, http_client, self.retry_attempts)
                self.credentials.token = await api.authenticate(
                    self.credentials.client_id, self.credentials.client_secret
                )

                self.state = RunState.FETCHING_CATALOG
                context = ExecutionContext(
                    api=api.with_token(self.credentials.token),
                    page_fetcher=self.page_fetcher_factory(http_client),
                    dry_run=self.dry_run,
                )
                catalog = await context.api.fetch_catalog()
                log.info("catalog_fetched", providers=len(catalog))

                self.state = RunState.SCRAPING
                summary = RunSummary(outcomes=await self._scrape_all(context, catalog))
                self.last_summary = summary

                failures = summary.failures
                if failures and not self.report_run_on_pipeline_failure:
                    first = failures[0]
                    raise PipelineFailedError(first.provider_id, str(first.error)) from first.error

                if self.dry_run:
                    log.info("run_report_skipped", reason="dry_run", **summary.stats())
                    return summary

                self.state = RunState.REPORTING_RUN
                run_end = max(_utcnow(), run_start)
                await context.api.report_run(run_start, run_end)
                summary.run = RunRecord(start_time=run_start, end_time=run_end)
        except PriceScraperError as e:
            log.error("run_aborted", state=self.state.value, error=e.message)
            raise
        finally:
            self.state = RunState.IDLE

        log.info("run_completed", run_end=summary.run.end_time.isoformat(), **summary.stats())
        return summary

    async def _scrape_all(
        self, context: ExecutionContext, catalog: List[ProviderRef]
    ) -> List[PipelineOutcome]:
        """Run every pipeline, at most max_concurrency at a time.

        All pipelines are awaited to completion; an exception escaping one of
        them becomes a failed outcome instead of cancelling its siblings.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        pipeline = ProviderPipeline(context)

        async def execute_with_slot(ref: ProviderRef) -> PipelineOutcome:
            async with semaphore:
                return await pipeline.execute(ref)

        results = await asyncio.gather(
            *(execute_with_slot(ref) for ref in catalog),
            return_exceptions=True,
        )

        outcomes: List[PipelineOutcome] = []
        for ref, result in zip(catalog, results):
            if isinstance(result, Exception):
                logger.error(
                    "pipeline_crashed",
                    provider_id=ref.id,
                    error=f"{type(result).__name__}: {result}",
                    exc_info=result,
                )
                outcomes.append(
                    PipelineOutcome(provider_id=ref.id, status=OUTCOME_FAILED, error=result)
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
        return outcomes
