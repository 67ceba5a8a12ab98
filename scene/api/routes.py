import logging
from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Request

from scene.models.enrichment import Restaurant
from scene.models.subscription import SubscribeItem
from scene.schemas.enrich import (
    DetectResponse,
    EnrichItemResult,
    EnrichRequest,
    EnrichResponse,
    ImportRequest,
    ImportResponse,
)
from scene.schemas.subscribe import SubscribeItemResult, SubscribeRequest, SubscribeResponse
from scene.services.candidates import extract_candidates
from scene.services.providers import detect_provider

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@router.get("/api/detect", response_model=DetectResponse)
async def detect(request: Request, url: str | None = None) -> DetectResponse:
    """Diagnostic: fetch a page and show what the classifier makes of it. Nothing is stored."""
    if not url:
        raise HTTPException(status_code=400, detail="Missing ?url= query parameter")

    response = await request.app.state.fetcher.get_html(url)
    if not response.ok or not response.text:
        reason = response.describe_failure() if not response.ok else "empty body"
        raise HTTPException(status_code=502, detail=f"Fetch failed: {reason}")

    detection = detect_provider(response.text)
    return DetectResponse(
        provider=detection.provider,
        direct_endpoint=detection.direct_endpoint,
        confidence=detection.confidence,
        extracted_params=detection.extracted_params,
        html_length=len(response.text),
        candidates=len(extract_candidates(response.text)),
    )


@router.post("/api/import", response_model=ImportResponse)
async def import_restaurants(payload: ImportRequest, request: Request) -> ImportResponse:
    restaurants = [Restaurant(id=r.id, name=r.name, website_url=r.website_url) for r in payload.restaurants]
    count = request.app.state.repository.import_restaurants(restaurants)
    logger.info("[import] restaurants upserted | count=%d", count)
    return ImportResponse(imported=count)


@router.post("/api/enrich", response_model=EnrichResponse)
async def enrich(payload: EnrichRequest, request: Request) -> EnrichResponse:
    enrichment_service = request.app.state.enrichment_service
    if payload.items:
        results = await enrichment_service.enrich_many(
            [(item.restaurant_id, item.website_url) for item in payload.items]
        )
    else:
        results = await enrichment_service.enrich_pending(payload.restaurant_ids or None)
    return EnrichResponse(enriched=len(results), results=[EnrichItemResult(**r) for r in results])


@router.post("/api/subscribe", response_model=SubscribeResponse)
async def subscribe(payload: SubscribeRequest, request: Request) -> SubscribeResponse:
    subscription_service = request.app.state.subscription_service
    if payload.items:
        items = [
            SubscribeItem(restaurant_id=i.restaurant_id, email=i.email, website_url=i.website_url)
            for i in payload.items
        ]
        results = await subscription_service.subscribe_batch(items)
    elif payload.email:
        results = await subscription_service.subscribe_enriched(payload.email, payload.restaurant_ids or None)
    else:
        raise HTTPException(status_code=400, detail="Provide items[] or email (+ optional restaurant_ids)")

    if not results:
        raise HTTPException(status_code=400, detail="No subscribable restaurants found")
    return SubscribeResponse(
        subscribed=len(results),
        results=[SubscribeItemResult(**asdict(r)) for r in results],
    )
