from dataclasses import dataclass, field

from scene.models.enrichment import utc_now_iso

TIER1_DIRECT = "tier1_direct"
TIER2_FORM = "tier2_form"
TIER3_NEEDS_MANUAL = "tier3_needs_manual"


@dataclass
class SubmitResult:
    success: bool
    evidence: str


@dataclass
class SubscribeItem:
    restaurant_id: str
    email: str
    website_url: str


@dataclass
class SubscriptionAttempt:
    restaurant_id: str
    email: str
    tier: str
    success: bool
    evidence: str
    provider: str | None = None
    endpoint: str | None = None
    attempted_at: str = field(default_factory=utc_now_iso)


@dataclass
class SubscribeResult:
    restaurant_id: str
    tier: str
    success: bool
    evidence: str
    provider: str | None = None
    endpoint: str | None = None
    log_error: str | None = None
