import logging

from scene.db.connection import transaction
from scene.models.enrichment import EnrichmentRecord, Restaurant, utc_now_iso
from scene.models.subscription import SubscriptionAttempt
from scene.repositories.base import AbstractEnrichmentRepository

logger = logging.getLogger(__name__)


class EnrichmentRepository(AbstractEnrichmentRepository):
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def get_enrichment(self, restaurant_id: str) -> EnrichmentRecord | None:
        with transaction(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM restaurant_enrichment WHERE restaurant_id = ?",
                (restaurant_id,),
            ).fetchone()
        return EnrichmentRecord(**dict(row)) if row else None

    def upsert_enrichment(self, record: EnrichmentRecord) -> None:
        """
        Overwrite every classification field for the restaurant.
        enriched_at comes from the record; updated_at is always stamped now.
        """
        now = utc_now_iso()
        with transaction(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO restaurant_enrichment
                    (restaurant_id, website_url, newsletter_url, newsletter_form_html,
                     newsletter_provider, newsletter_direct_endpoint,
                     newsletter_extracted_params, enriched_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(restaurant_id) DO UPDATE SET
                    website_url                 = excluded.website_url,
                    newsletter_url              = excluded.newsletter_url,
                    newsletter_form_html        = excluded.newsletter_form_html,
                    newsletter_provider         = excluded.newsletter_provider,
                    newsletter_direct_endpoint  = excluded.newsletter_direct_endpoint,
                    newsletter_extracted_params = excluded.newsletter_extracted_params,
                    enriched_at                 = excluded.enriched_at,
                    updated_at                  = excluded.updated_at
                """,
                (
                    record.restaurant_id,
                    record.website_url,
                    record.newsletter_url,
                    record.newsletter_form_html,
                    record.newsletter_provider,
                    record.newsletter_direct_endpoint,
                    record.newsletter_extracted_params,
                    record.enriched_at,
                    now,
                ),
            )
        logger.debug("[repo] enrichment upserted | restaurant_id=%s", record.restaurant_id)

    def log_attempt(self, attempt: SubscriptionAttempt) -> None:
        with transaction(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO subscription_attempt
                    (restaurant_id, email, tier, provider, endpoint, success, evidence, attempted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    attempt.restaurant_id,
                    attempt.email,
                    attempt.tier,
                    attempt.provider,
                    attempt.endpoint,
                    1 if attempt.success else 0,
                    attempt.evidence,
                    attempt.attempted_at,
                ),
            )

    def list_attempts(self, restaurant_id: str) -> list[SubscriptionAttempt]:
        with transaction(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT restaurant_id, email, tier, provider, endpoint, success, evidence, attempted_at
                FROM subscription_attempt WHERE restaurant_id = ? ORDER BY id
                """,
                (restaurant_id,),
            ).fetchall()
        return [
            SubscriptionAttempt(**{**dict(row), "success": bool(row["success"])})
            for row in rows
        ]

    def import_restaurants(self, restaurants: list[Restaurant]) -> int:
        with transaction(self._db_path) as conn:
            conn.executemany(
                """
                INSERT INTO restaurants (id, name, website_url, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name        = excluded.name,
                    website_url = excluded.website_url
                """,
                [(r.id, r.name, r.website_url, r.created_at) for r in restaurants],
            )
        return len(restaurants)

    def get_restaurants_to_enrich(self) -> list[Restaurant]:
        with transaction(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT r.id, r.name, r.website_url, r.created_at
                FROM restaurants r
                LEFT JOIN restaurant_enrichment e ON r.id = e.restaurant_id
                WHERE r.website_url IS NOT NULL AND e.restaurant_id IS NULL
                ORDER BY r.id
                """
            ).fetchall()
        return [Restaurant(**dict(row)) for row in rows]

    def get_restaurants_with_enrichment(self) -> list[Restaurant]:
        with transaction(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT r.id, r.name, r.website_url, r.created_at
                FROM restaurants r
                INNER JOIN restaurant_enrichment e ON r.id = e.restaurant_id
                WHERE e.newsletter_url IS NOT NULL OR e.newsletter_direct_endpoint IS NOT NULL
                ORDER BY r.id
                """
            ).fetchall()
        return [Restaurant(**dict(row)) for row in rows]
