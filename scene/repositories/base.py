from abc import ABC, abstractmethod

from scene.models.enrichment import EnrichmentRecord, Restaurant
from scene.models.subscription import SubscriptionAttempt


class AbstractEnrichmentRepository(ABC):
    @abstractmethod
    def get_enrichment(self, restaurant_id: str) -> EnrichmentRecord | None:
        """Return the enrichment record for a restaurant, or None."""

    @abstractmethod
    def upsert_enrichment(self, record: EnrichmentRecord) -> None:
        """Insert or overwrite the enrichment record keyed by restaurant_id."""

    @abstractmethod
    def log_attempt(self, attempt: SubscriptionAttempt) -> None:
        """Append a subscription attempt to the audit log. Raises on failure."""

    @abstractmethod
    def list_attempts(self, restaurant_id: str) -> list[SubscriptionAttempt]:
        """Return logged attempts for a restaurant, oldest first."""

    @abstractmethod
    def import_restaurants(self, restaurants: list[Restaurant]) -> int:
        """Upsert restaurants by id. Returns the number of rows written."""

    @abstractmethod
    def get_restaurants_to_enrich(self) -> list[Restaurant]:
        """Restaurants with a website and no enrichment record yet."""

    @abstractmethod
    def get_restaurants_with_enrichment(self) -> list[Restaurant]:
        """Restaurants whose enrichment found a newsletter URL or direct endpoint."""
