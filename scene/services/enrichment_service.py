import asyncio
import json
import logging

from scene.config import settings
from scene.models.enrichment import EnrichmentOutcome, EnrichmentRecord
from scene.repositories.base import AbstractEnrichmentRepository
from scene.services.candidates import extract_candidates
from scene.services.http_client import HttpFetcher
from scene.services.providers import detect_provider

logger = logging.getLogger(__name__)

FORM_HTML_MAX_CHARS = 5000


class EnrichmentService:
    def __init__(
        self,
        repository: AbstractEnrichmentRepository,
        fetcher: HttpFetcher | None = None,
        site_delay: float | None = None,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher or HttpFetcher()
        self._site_delay = settings.SITE_FETCH_DELAY_S if site_delay is None else site_delay

    async def enrich(self, restaurant_id: str, website_url: str) -> EnrichmentOutcome:
        """
        Fetch a restaurant's homepage once, classify it and persist the best
        newsletter finding. A record is written even when the fetch fails.
        """
        await asyncio.sleep(self._site_delay)
        response = await self._fetcher.get_html(website_url)

        if not response.ok or not response.text:
            reason = response.describe_failure() if not response.ok else "empty body"
            logger.info("[enrich] fetch failed | restaurant_id=%s | url=%s | reason=%s", restaurant_id, website_url, reason)
            self._repository.upsert_enrichment(EnrichmentRecord(restaurant_id=restaurant_id, website_url=website_url))
            return EnrichmentOutcome()

        detection = detect_provider(response.text)
        candidates = extract_candidates(response.text)
        top = candidates[0] if candidates else None

        self._repository.upsert_enrichment(
            EnrichmentRecord(
                restaurant_id=restaurant_id,
                website_url=website_url,
                newsletter_url=detection.direct_endpoint or (top.url if top else None),
                newsletter_form_html=top.form_html[:FORM_HTML_MAX_CHARS] if top and top.form_html else None,
                # an endpoint is only ever persisted alongside the provider that produced it
                newsletter_provider=detection.provider,
                newsletter_direct_endpoint=detection.direct_endpoint,
                newsletter_extracted_params=json.dumps(detection.extracted_params) if detection.extracted_params else None,
            )
        )
        logger.info(
            "[enrich] done | restaurant_id=%s | provider=%s | endpoint=%s | candidates=%d",
            restaurant_id,
            detection.provider,
            detection.direct_endpoint,
            len(candidates),
        )
        return EnrichmentOutcome(provider=detection.provider, endpoint=detection.direct_endpoint)

    async def enrich_many(self, items: list[tuple[str, str]]) -> list[dict]:
        """Enrich (restaurant_id, website_url) pairs one after another."""
        results = []
        for restaurant_id, website_url in items:
            try:
                outcome = await self.enrich(restaurant_id, website_url)
            except Exception as exc:
                logger.exception("[enrich] crashed | restaurant_id=%s", restaurant_id)
                results.append({"restaurant_id": restaurant_id, "error": str(exc)})
                continue
            results.append(
                {"restaurant_id": restaurant_id, "provider": outcome.provider, "endpoint": outcome.endpoint}
            )
        return results

    async def enrich_pending(self, restaurant_ids: list[str] | None = None) -> list[dict]:
        """Enrich imported restaurants that have a website but no enrichment row yet."""
        targets = self._repository.get_restaurants_to_enrich()
        if restaurant_ids:
            wanted = set(restaurant_ids)
            targets = [r for r in targets if r.id in wanted]
        return await self.enrich_many([(r.id, r.website_url) for r in targets])
