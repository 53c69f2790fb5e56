"""Per-provider pipeline: resolve -> fetch -> extract -> report."""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import structlog

from price_scraper.core.exceptions import (
    FetchError,
    ProviderResolutionError,
    SanitizeError,
    SelectorError,
)
from price_scraper.scrapers.api_client import RemoteApiClient
from price_scraper.scrapers.models import (
    OUTCOME_FAILED,
    OUTCOME_NO_PRICE_FOUND,
    OUTCOME_PRICE_FOUND,
    OUTCOME_PRICE_REPORTED,
    PipelineOutcome,
    ProviderRef,
)
from price_scraper.scrapers.page_fetcher import PageFetcher
from price_scraper.scrapers.utils.normalizer import PriceNormalizer


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExecutionContext:
    """Everything a pipeline needs, built once per run after login.

    Pipelines only read from it; nothing in here points back into the
    orchestrator.
    """

    api: RemoteApiClient
    page_fetcher: PageFetcher
    normalize: Callable[[str], float] = PriceNormalizer.normalize
    dry_run: bool = False


def select_price(candidates: Iterable[str], normalize: Callable[[str], float]) -> Optional[float]:
    """Return the first candidate that normalizes to a positive price.

    Candidates after the first usable one are never normalized.
    """
    for raw in candidates:
        try:
            price = normalize(raw)
        except SanitizeError as e:
            logger.debug("candidate_skipped", raw=raw[:100], reason=e.message)
            continue
        if price > 0:
            return price
        logger.debug("candidate_skipped", raw=raw[:100], reason="non_positive", price=price)
    return None


class ProviderPipeline:
    """Runs the scrape for a single catalog entry."""

    def __init__(self, context: ExecutionContext):
        self.context = context

    async def execute(self, ref: ProviderRef) -> PipelineOutcome:
        """Scrape one provider and report its price.

        Provider-scoped errors (resolution, fetch, selector) are caught and
        returned as a failed outcome so sibling pipelines are unaffected.

        Args:
            ref: Catalog entry to scrape

        Returns:
            PipelineOutcome with status price_reported, price_found (dry run),
            no_price_found or failed
        """
        log = logger.bind(provider_id=ref.id)

        try:
            provider = await self.context.api.resolve_provider(ref.id)
        except ProviderResolutionError as e:
            log.error("pipeline_failed", stage="resolve", error=e.message)
            return PipelineOutcome(provider_id=ref.id, status=OUTCOME_FAILED, error=e)

        log = log.bind(provider_name=provider.name)
        log.info("scraping_provider", url=provider.url)

        try:
            candidates = await self.context.page_fetcher.fetch(
                provider.url, provider.html_element, provider_id=provider.id
            )
        except SelectorError as e:
            log.error("pipeline_failed", stage="selector", selector=e.selector, error=e.message)
            return PipelineOutcome(
                provider_id=ref.id,
                provider_name=provider.name,
                status=OUTCOME_FAILED,
                error=e,
            )
        except FetchError as e:
            log.error("pipeline_failed", stage="fetch", error=e.message)
            return PipelineOutcome(
                provider_id=ref.id,
                provider_name=provider.name,
                status=OUTCOME_FAILED,
                error=e,
            )

        price = select_price(candidates, self.context.normalize)
        if price is None:
            log.info("no_price_found", candidates=len(candidates))
            return PipelineOutcome(
                provider_id=ref.id,
                provider_name=provider.name,
                status=OUTCOME_NO_PRICE_FOUND,
            )

        if self.context.dry_run:
            log.info("price_found_dry_run", price=price)
            return PipelineOutcome(
                provider_id=ref.id,
                provider_name=provider.name,
                status=OUTCOME_PRICE_FOUND,
                price=price,
            )

        reported = await self.context.api.report_price(provider.id, price)
        return PipelineOutcome(
            provider_id=ref.id,
            provider_name=provider.name,
            status=OUTCOME_PRICE_REPORTED,
            price=price,
            reported=reported,
        )
