from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

CandidateSource = Literal["form_action", "link", "script_tag", "embed", "inline_script"]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Restaurant:
    id: str
    name: str
    website_url: str | None = None
    created_at: str = field(default_factory=utc_now_iso)


@dataclass
class EnrichmentRecord:
    restaurant_id: str
    website_url: str
    newsletter_url: str | None = None
    newsletter_form_html: str | None = None
    newsletter_provider: str | None = None
    newsletter_direct_endpoint: str | None = None
    newsletter_extracted_params: str | None = None
    enriched_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)


@dataclass
class DetectionResult:
    provider: str | None = None
    direct_endpoint: str | None = None
    confidence: int = 0
    extracted_params: dict[str, str] = field(default_factory=dict)


@dataclass
class NewsletterCandidate:
    url: str
    score: int
    source: CandidateSource
    position_ratio: float
    form_html: str | None = None


@dataclass
class EnrichmentOutcome:
    provider: str | None = None
    endpoint: str | None = None
