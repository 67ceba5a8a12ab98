import httpx
import pytest

from scene.db.connection import run_migrations
from scene.repositories.enrichment_repository import EnrichmentRepository
from scene.services.http_client import HttpFetcher


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "scene.db")
    run_migrations(path)
    return path


@pytest.fixture
def repository(db_path):
    return EnrichmentRepository(db_path)


class FakeWeb:
    """
    Routes requests to canned responses by exact URL and records every request.
    A route is either an exception instance to raise or a callable
    taking the request and returning an httpx.Response.
    """

    def __init__(self) -> None:
        self.routes: dict[str, object] = {}
        self.requests: list[httpx.Request] = []

    def page(self, url: str, body: str, status_code: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(status_code, text=body)

    def fail(self, url: str, exc: Exception) -> None:
        self.routes[url] = exc

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        return route(request)

    def posts(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def fetcher(self) -> HttpFetcher:
        return HttpFetcher(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def web():
    return FakeWeb()
