import asyncio
import json
import logging
import re
from urllib.parse import urljoin, urlsplit

from scene.config import settings
from scene.models.enrichment import EnrichmentRecord
from scene.models.subscription import (
    TIER1_DIRECT,
    TIER2_FORM,
    TIER3_NEEDS_MANUAL,
    SubscribeItem,
    SubscribeResult,
    SubscriptionAttempt,
)
from scene.repositories.base import AbstractEnrichmentRepository
from scene.services.candidates import ACTIONLESS_FORM_URL, extract_candidates
from scene.services.http_client import HttpFetcher
from scene.services.providers import detect_provider
from scene.services.submitters import submit_for_provider, submit_generic

logger = logging.getLogger(__name__)

CAPTCHA_SIGNALS_RE = re.compile(r"captcha|recaptcha|hcaptcha|cf-turnstile|challenge-form|g-recaptcha", re.I)

NO_FORM_EVIDENCE = "No newsletter form found on website"
BOT_PROTECTION_EVIDENCE = (
    "CAPTCHA or bot protection detected on website; automated submission not attempted, needs manual sign-up"
)
SCRIPTED_FORM_EVIDENCE = "Newsletter form has no action URL (submitted by script); not attempted"


def _resolve_form_url(page_url: str, candidate_url: str) -> str | None:
    """Absolute http(s) URL for a candidate found on ``page_url``, or None if it cannot be posted to."""
    if candidate_url == ACTIONLESS_FORM_URL:
        return None
    resolved = urljoin(page_url, candidate_url)
    if urlsplit(resolved).scheme not in ("http", "https"):
        return None
    return resolved


def _load_params(raw: str | None) -> dict[str, str]:
    """Persisted params are best-effort: anything unreadable becomes {}."""
    if not raw:
        return {}
    try:
        params = json.loads(raw)
    except ValueError:
        logger.warning("[subscribe] unreadable extracted params, continuing without them")
        return {}
    if not isinstance(params, dict):
        return {}
    return {str(k): str(v) for k, v in params.items()}


def _has_direct_endpoint(record: EnrichmentRecord | None) -> bool:
    return bool(record and record.newsletter_direct_endpoint and record.newsletter_provider)


class SubscriptionService:
    """
    Tiered subscription pipeline, one item at a time:

    - tier1_direct: a stored provider + direct endpoint is submitted straight
      to the provider. Terminal, success or not.
    - tier2_form: the live site is re-fetched, re-classified and the best
      form is submitted.
    - tier3_needs_manual: the live site shows bot protection; nothing is sent.

    Exactly one attempt row is logged per item.
    """

    def __init__(
        self,
        repository: AbstractEnrichmentRepository,
        fetcher: HttpFetcher | None = None,
        site_delay: float | None = None,
        provider_delay: float | None = None,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher or HttpFetcher()
        self._site_delay = settings.SITE_FETCH_DELAY_S if site_delay is None else site_delay
        self._provider_delay = settings.PROVIDER_SUBMIT_DELAY_S if provider_delay is None else provider_delay

    async def subscribe_batch(self, items: list[SubscribeItem]) -> list[SubscribeResult]:
        results = []
        for item in items:
            try:
                results.append(await self.subscribe(item))
            except Exception as exc:
                logger.exception("[subscribe] crashed | restaurant_id=%s", item.restaurant_id)
                attempt = SubscriptionAttempt(
                    restaurant_id=item.restaurant_id,
                    email=item.email,
                    tier=TIER3_NEEDS_MANUAL,
                    success=False,
                    evidence=f"Subscription crashed: {str(exc) or type(exc).__name__}",
                )
                results.append(self._record(attempt))
        return results

    async def subscribe_enriched(self, email: str, restaurant_ids: list[str] | None = None) -> list[SubscribeResult]:
        """Subscribe ``email`` to every enriched restaurant with a known newsletter destination."""
        targets = self._repository.get_restaurants_with_enrichment()
        if restaurant_ids:
            wanted = set(restaurant_ids)
            targets = [r for r in targets if r.id in wanted]
        items = [SubscribeItem(restaurant_id=r.id, email=email, website_url=r.website_url or "") for r in targets]
        return await self.subscribe_batch(items)

    async def subscribe(self, item: SubscribeItem) -> SubscribeResult:
        record = self._repository.get_enrichment(item.restaurant_id)
        if _has_direct_endpoint(record):
            attempt = await self._tier1(item, record)
        else:
            attempt = await self._tier2(item)
        return self._record(attempt)

    async def _tier1(self, item: SubscribeItem, record: EnrichmentRecord) -> SubscriptionAttempt:
        await asyncio.sleep(self._provider_delay)
        provider = record.newsletter_provider
        endpoint = record.newsletter_direct_endpoint
        result = await submit_for_provider(
            self._fetcher, provider, endpoint, _load_params(record.newsletter_extracted_params), item.email
        )
        return SubscriptionAttempt(
            restaurant_id=item.restaurant_id,
            email=item.email,
            tier=TIER1_DIRECT,
            provider=provider,
            endpoint=endpoint,
            success=result.success,
            evidence=result.evidence,
        )

    async def _tier2(self, item: SubscribeItem) -> SubscriptionAttempt:
        await asyncio.sleep(self._site_delay)

        def outcome(tier: str, success: bool, evidence: str, provider=None, endpoint=None) -> SubscriptionAttempt:
            return SubscriptionAttempt(
                restaurant_id=item.restaurant_id,
                email=item.email,
                tier=tier,
                provider=provider,
                endpoint=endpoint,
                success=success,
                evidence=evidence,
            )

        response = await self._fetcher.get_html(item.website_url)
        if not response.ok:
            return outcome(TIER2_FORM, False, f"Tier 2 fetch failed: {response.describe_failure()}", endpoint=item.website_url)
        if not response.text:
            return outcome(TIER2_FORM, False, "Tier 2 body read failed: empty response body", endpoint=item.website_url)

        if CAPTCHA_SIGNALS_RE.search(response.text):
            logger.info("[subscribe] bot protection, escalating | restaurant_id=%s", item.restaurant_id)
            return outcome(TIER3_NEEDS_MANUAL, False, BOT_PROTECTION_EVIDENCE, endpoint=item.website_url)

        detection = detect_provider(response.text)
        if detection.provider and detection.direct_endpoint:
            result = await submit_for_provider(
                self._fetcher, detection.provider, detection.direct_endpoint, detection.extracted_params, item.email
            )
            return outcome(TIER2_FORM, result.success, result.evidence, detection.provider, detection.direct_endpoint)

        candidates = extract_candidates(response.text)
        if not candidates:
            return outcome(TIER2_FORM, False, NO_FORM_EVIDENCE, endpoint=item.website_url)

        best = candidates[0]
        endpoint = _resolve_form_url(response.url, best.url)
        if endpoint is None:
            if best.url == ACTIONLESS_FORM_URL:
                evidence = SCRIPTED_FORM_EVIDENCE
            else:
                evidence = f"Newsletter form URL is not http(s): {best.url}; not attempted"
            return outcome(TIER2_FORM, False, evidence, endpoint=item.website_url)

        result = await submit_generic(self._fetcher, endpoint, item.email)
        return outcome(TIER2_FORM, result.success, result.evidence, endpoint=endpoint)

    def _record(self, attempt: SubscriptionAttempt) -> SubscribeResult:
        """Append the attempt to the audit log, then report it to the caller."""
        log_error = None
        try:
            self._repository.log_attempt(attempt)
        except Exception as exc:
            # the submission already happened; surface the lost log row instead of dropping the result
            logger.exception(
                "[subscribe] attempt log write failed | restaurant_id=%s | tier=%s",
                attempt.restaurant_id,
                attempt.tier,
            )
            log_error = str(exc) or type(exc).__name__

        logger.info(
            "[subscribe] %s | restaurant_id=%s | success=%s",
            attempt.tier,
            attempt.restaurant_id,
            attempt.success,
        )
        return SubscribeResult(
            restaurant_id=attempt.restaurant_id,
            tier=attempt.tier,
            success=attempt.success,
            evidence=attempt.evidence,
            provider=attempt.provider,
            endpoint=attempt.endpoint,
            log_error=log_error,
        )
