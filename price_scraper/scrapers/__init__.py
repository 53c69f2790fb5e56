"""Scrape pipeline: control-API client, page fetching and orchestration.

This package provides:
- Data structures for control-API payloads and run results
- RemoteApiClient for the control API
- PageFetcher and ProviderPipeline for per-provider work
- ScrapeOrchestrator for complete runs, PeriodicScrapeScheduler to repeat them
"""

from .api_client import RemoteApiClient
from .models import (
    Credentials,
    PipelineOutcome,
    PriceRecord,
    Provider,
    ProviderRef,
    RunRecord,
    RunSummary,
    Token,
)
from .orchestrator import RunState, ScrapeOrchestrator
from .page_fetcher import PageFetcher
from .pipeline import ExecutionContext, ProviderPipeline
from .scheduler import PeriodicScrapeScheduler

__all__ = [
    # Data structures
    "Credentials",
    "PipelineOutcome",
    "PriceRecord",
    "Provider",
    "ProviderRef",
    "RunRecord",
    "RunSummary",
    "Token",
    # Components
    "RemoteApiClient",
    "PageFetcher",
    "ExecutionContext",
    "ProviderPipeline",
    "RunState",
    "ScrapeOrchestrator",
    "PeriodicScrapeScheduler",
]
