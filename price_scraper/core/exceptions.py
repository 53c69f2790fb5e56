"""Custom exception classes for the price scraper."""

from typing import Optional


class PriceScraperError(Exception):
    """Base exception for all price scraper errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Run-level errors: abort the run and propagate to the caller
# ---------------------------------------------------------------------------


class AuthError(PriceScraperError):
    """Raised when the control API rejects or cannot be reached for login."""

    def __init__(self, message: str):
        super().__init__(f"Authentication failed: {message}")


class CatalogError(PriceScraperError):
    """Raised when the provider catalog is unreachable or malformed."""

    def __init__(self, message: str):
        super().__init__(f"Catalog fetch failed: {message}")


class RunReportError(PriceScraperError):
    """Raised when the scraping run record could not be posted."""

    def __init__(self, message: str):
        super().__init__(f"Run report failed: {message}")


# ---------------------------------------------------------------------------
# Pipeline-level errors: contained to a single provider
# ---------------------------------------------------------------------------


class ProviderError(PriceScraperError):
    """Base for errors scoped to one provider pipeline."""

    def __init__(self, provider_id: int, message: str):
        self.provider_id = provider_id
        super().__init__(message)


class ProviderResolutionError(ProviderError):
    """Raised when a provider's details cannot be fetched or parsed."""

    def __init__(self, provider_id: int, message: str):
        super().__init__(provider_id, f"Could not resolve provider {provider_id}: {message}")


class FetchError(ProviderError):
    """Raised when a provider's page cannot be downloaded."""

    def __init__(self, provider_id: int, url: str, message: str):
        self.url = url
        super().__init__(provider_id, f"Fetch failed for {url}: {message}")


class SelectorError(ProviderError):
    """Raised when a provider's html_element is not a valid CSS selector."""

    def __init__(self, provider_id: int, selector: str, message: str):
        self.selector = selector
        super().__init__(provider_id, f"Invalid selector {selector!r}: {message}")


class PipelineFailedError(PriceScraperError):
    """Raised after a run when strict failure policy is enabled.

    The underlying pipeline error is chained as ``__cause__``.
    """

    def __init__(self, provider_id: Optional[int], message: str):
        self.provider_id = provider_id
        super().__init__(f"Pipeline for provider {provider_id} failed: {message}")


# ---------------------------------------------------------------------------
# Local errors: logged, never escalated
# ---------------------------------------------------------------------------


class SanitizeError(PriceScraperError):
    """Raised when a candidate text does not normalize to a number."""

    def __init__(self, raw: str, message: str = "not a number"):
        self.raw = raw
        super().__init__(f"Failed to parse price from {raw!r}: {message}")


class ReportPriceError(PriceScraperError):
    """Raised internally when posting a price fails."""

    def __init__(self, provider_id: int, message: str):
        self.provider_id = provider_id
        super().__init__(f"Failed to add price for provider {provider_id}: {message}")
