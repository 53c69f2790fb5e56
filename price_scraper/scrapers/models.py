"""Data structures shared by the scrape pipeline.

Control-API payloads (Token, ProviderRef, Provider) are Pydantic models so a
malformed response body fails validation at the client boundary. Everything
produced locally is a plain dataclass.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Control-API payloads
# ---------------------------------------------------------------------------


class Token(BaseModel):
    """Access token returned by POST /auth/login."""

    model_config = ConfigDict(frozen=True)

    access_token: str = ""
    token_type: str = ""

    @property
    def is_set(self) -> bool:
        return bool(self.access_token) and bool(self.token_type)

    @property
    def authorization_header(self) -> str:
        """Value for the Authorization header, exactly as received."""
        return f"{self.token_type} {self.access_token}"


class ProviderRef(BaseModel):
    """Catalog entry from GET /scraping_runs/providers."""

    model_config = ConfigDict(frozen=True)

    id: int


class Provider(BaseModel):
    """Full provider record from GET /providers/{id}."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    url: str = Field(..., min_length=1)
    html_element: str = Field(..., min_length=1)  # CSS selector


# ---------------------------------------------------------------------------
# Local records
# ---------------------------------------------------------------------------


@dataclass
class Credentials:
    """Client credentials plus the token obtained for the current run."""

    client_id: str
    client_secret: str
    token: Token = field(default_factory=Token)

    def __repr__(self) -> str:
        return f"Credentials(client_id={self.client_id!r}, token_set={self.token.is_set})"


@dataclass(frozen=True)
class PriceRecord:
    """A usable price extracted for one provider."""

    provider_id: int
    price: float

    def __post_init__(self):
        if not self.price > 0:
            raise ValueError("price must be greater than zero")

    def to_payload(self) -> Dict[str, float]:
        return {"price": self.price}


@dataclass(frozen=True)
class RunRecord:
    """Start/end bookkeeping for one scraping run."""

    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        if self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")

    def to_payload(self) -> Dict[str, str]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
        }


OUTCOME_PRICE_REPORTED = "price_reported"
OUTCOME_PRICE_FOUND = "price_found"  # dry run: scraped, not posted
OUTCOME_NO_PRICE_FOUND = "no_price_found"
OUTCOME_FAILED = "failed"
OUTCOME_STATUSES = (
    OUTCOME_PRICE_REPORTED,
    OUTCOME_PRICE_FOUND,
    OUTCOME_NO_PRICE_FOUND,
    OUTCOME_FAILED,
)


@dataclass
class PipelineOutcome:
    """Result of running one provider pipeline."""

    provider_id: int
    status: str
    provider_name: Optional[str] = None
    price: Optional[float] = None
    reported: bool = False  # False when the best-effort report failed
    error: Optional[Exception] = None

    def __post_init__(self):
        if self.status not in OUTCOME_STATUSES:
            raise ValueError(f"Invalid status: {self.status}")

    @property
    def failed(self) -> bool:
        return self.status == OUTCOME_FAILED


@dataclass
class RunSummary:
    """Everything a caller needs to know about a finished run."""

    outcomes: List[PipelineOutcome] = field(default_factory=list)
    run: Optional[RunRecord] = None  # None when the run was not reported

    @property
    def failures(self) -> List[PipelineOutcome]:
        return [o for o in self.outcomes if o.failed]

    def stats(self) -> Dict[str, int]:
        """Counts per outcome, in the shape the run log line uses."""
        return {
            "providers_total": len(self.outcomes),
            "prices_reported": sum(
                1 for o in self.outcomes if o.status == OUTCOME_PRICE_REPORTED
            ),
            "prices_found_dry_run": sum(
                1 for o in self.outcomes if o.status == OUTCOME_PRICE_FOUND
            ),
            "no_price_found": sum(
                1 for o in self.outcomes if o.status == OUTCOME_NO_PRICE_FOUND
            ),
            "failed": len(self.failures),
        }
