import sqlite3

from scene.db.connection import run_migrations
from scene.models.enrichment import EnrichmentRecord, Restaurant
from scene.models.subscription import SubscriptionAttempt


def test_migrations_are_idempotent(db_path):
    run_migrations(db_path)
    conn = sqlite3.connect(db_path)
    applied = conn.execute("SELECT COUNT(*) FROM _schema_migrations").fetchone()[0]
    conn.close()
    assert applied == 1


def test_get_missing_enrichment(repository):
    assert repository.get_enrichment("nope") is None


def test_upsert_overwrites_and_keeps_one_row(repository, db_path):
    repository.upsert_enrichment(
        EnrichmentRecord(
            restaurant_id="r1",
            website_url="https://a.example/",
            newsletter_provider="substack",
            newsletter_direct_endpoint="https://a.substack.com/api/v1/free",
            newsletter_extracted_params='{"subdomain": "a"}',
        )
    )
    repository.upsert_enrichment(EnrichmentRecord(restaurant_id="r1", website_url="https://b.example/"))

    record = repository.get_enrichment("r1")
    assert record.website_url == "https://b.example/"
    assert record.newsletter_provider is None
    assert record.newsletter_direct_endpoint is None
    assert record.newsletter_extracted_params is None

    conn = sqlite3.connect(db_path)
    assert conn.execute("SELECT COUNT(*) FROM restaurant_enrichment").fetchone()[0] == 1
    conn.close()


def test_attempt_log_is_append_only(repository):
    for success in (False, True):
        repository.log_attempt(
            SubscriptionAttempt(
                restaurant_id="r1",
                email="a@b.co",
                tier="tier2_form",
                success=success,
                evidence="Provider POST 200",
            )
        )
    attempts = repository.list_attempts("r1")
    assert [a.success for a in attempts] == [False, True]
    assert repository.list_attempts("r2") == []


def test_import_restaurants_upserts_by_id(repository):
    repository.import_restaurants([Restaurant(id="r1", name="Old", website_url=None)])
    repository.import_restaurants([Restaurant(id="r1", name="New", website_url="https://new.example/")])

    [pending] = repository.get_restaurants_to_enrich()
    assert pending.name == "New"
    assert pending.website_url == "https://new.example/"
    assert repository.get_restaurants_with_enrichment() == []
