"""API tests for the articles service."""
import pytest
from fastapi.testclient import TestClient

from services.articles.app.auth import AccessLists, AuthenticationError, UserIdentity
from services.articles.app.cache import DateCache
from services.articles.app.extract import RecordExtractor
from services.articles.app.main import ServiceContainer, app, get_container
from services.articles.app.preferences import PreferencesStore
from services.articles.app.reconcile import ArticleReconciler
from services.articles.app.triggers import TriggerPublisher
from shared.config.settings import get_settings
from shared.storage.object_store import LocalObjectStore, ObjectStoreError
from shared.utils.health import create_articles_health_checker
from shared.utils.redis_client import get_redis_client

from conftest import FIXED_NOW, FIXED_TODAY, jsonl, make_raw, put

API_KEY = "test-api-key"
ALICE = "alice@example.com"
ADMIN = "admin@example.com"
EVE = "eve@example.com"

EU_DAY = "batch_processing/eu/2025-06/2025-06-10"


class FakeVerifier:
    tokens = {
        "alice-token": UserIdentity(ALICE, name="Alice"),
        "admin-token": UserIdentity(ADMIN, name="Admin"),
        "eve-token": UserIdentity(EVE, name="Eve"),
    }

    async def verify(self, token):
        if token not in self.tokens:
            raise AuthenticationError("Invalid or expired token")
        return self.tokens[token]

    async def close(self):
        return None


def build_test_container(store, settings):
    redis_client = get_redis_client("articles")
    return ServiceContainer(
        settings=settings,
        store=store,
        reconciler=ArticleReconciler(
            store,
            DateCache(600),
            regions=["eu", "tr"],
            extractor=RecordExtractor(clock=lambda: FIXED_NOW),
            today=lambda: FIXED_TODAY,
        ),
        access_lists=AccessLists(
            store,
            allowed_key="config/allowed_users.json",
            admin_key="config/admin_users.json",
            emergency_allowlist=[ALICE],
            emergency_admins=[ADMIN],
        ),
        verifier=FakeVerifier(),
        preferences=PreferencesStore(store),
        publisher=TriggerPublisher(redis_client, settings),
        redis_client=redis_client,
        health_checker=create_articles_health_checker(store, redis_client),
    )


@pytest.fixture
def settings():
    base = get_settings()
    return base.model_copy(update={"auth": base.auth.model_copy(update={"api_key": API_KEY})})


@pytest.fixture
def container(store, settings, fake_redis):
    return build_test_container(store, settings)


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(store_root):
    put(store_root, f"{EU_DAY}/run_08-00-00/predictions.jsonl", jsonl(
        make_raw(1, title="Fenerbahce sign striker", publish_date="2025-06-10T08:00:00"),
        make_raw(2, publish_date="2025-06-10T09:00:00", _merge_metadata={"merged": 2}),
    ))
    put(store_root, f"{EU_DAY}/run_08-00-00/metadata.json", {"triggered_by": ALICE})
    put(store_root, f"{EU_DAY}/run_17-07-10/predictions.jsonl", jsonl(make_raw(3)))
    put(store_root, "ingestion/api/2025-06-10/newsapi.json", {"articles": [make_raw(2, title="API copy")]})


def api_key():
    return {"X-API-Key": API_KEY}


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_articles_imports():
    """Test that the articles service modules can be imported."""
    try:
        from services.articles.app.main import app, build_container
        from services.articles.app.reconcile import ArticleReconciler
        assert app is not None
        assert build_container is not None
    except ImportError as e:
        pytest.fail(f"Import failed: {e}")


def test_liveness(client):
    response = client.get("/articles/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive", "service": "articles"}


def test_health_and_readiness(client):
    health = client.get("/articles/health").json()
    assert health["status"] == "healthy"
    assert {c["name"] for c in health["checks"]} == {"object_store", "redis"}

    ready = client.get("/articles/health/ready").json()
    assert ready["status"] == "ready"
    assert ready["critical_dependencies"] == {"object_store": "healthy"}


def test_metrics_endpoint(client):
    response = client.get("/articles/metrics")
    assert response.status_code == 200
    assert "articles_cache_hits_total" in response.text


def test_articles_require_credentials(client, seeded):
    assert client.get("/articles").status_code == 401
    assert client.get("/articles", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/articles", headers={"X-API-Key": API_KEY[:4]}).status_code == 401
    assert client.get("/articles", headers={"X-API-Key": API_KEY + "-extra"}).status_code == 401
    assert client.get("/articles", headers=bearer("forged")).status_code == 401
    assert client.get("/articles", headers=bearer("eve-token")).status_code == 403


def test_articles_with_api_key(client, seeded):
    response = client.get("/articles", params={"region": "eu"}, headers=api_key())

    assert response.status_code == 200
    body = response.json()
    assert [a["article_id"] for a in body] == ["article-2", "article-1", "article-3"]
    by_id = {a["article_id"]: a for a in body}
    assert by_id["article-2"]["title"] == "Article 2"
    assert by_id["article-2"]["source_type"] == "scraped"
    assert by_id["article-2"]["_merge_metadata"] == {"merged": 2}
    assert "batch_id" not in by_id["article-2"]


def test_articles_date_range_and_search(client, seeded):
    response = client.get(
        "/articles",
        params={"startDate": "2025-06-09", "endDate": "2025-06-10", "search": "fenerbahce"},
        headers=api_key(),
    )
    assert response.status_code == 200
    assert [a["article_id"] for a in response.json()] == ["article-1"]


def test_articles_errors(client, seeded):
    response = client.get("/articles", params={"region": "us"}, headers=api_key())
    assert response.status_code == 400
    assert response.json()["detail"]["region"] == "us"

    response = client.get(
        "/articles", params={"startDate": "2025-06-10", "endDate": "2025-06-01"}, headers=api_key()
    )
    assert response.status_code == 400

    response = client.get(
        "/articles", params={"startDate": "1900-01-01", "endDate": "2100-12-31"}, headers=api_key()
    )
    assert response.status_code == 400
    assert response.json()["detail"]["maxDays"] == 90
    assert response.json()["detail"]["startDate"] == "1900-01-01"

    response = client.get(
        "/articles", params={"startDate": "2025-01-01", "endDate": "2025-01-02"}, headers=api_key()
    )
    assert response.status_code == 404
    assert response.json()["detail"]["startDate"] == "2025-01-01"


def test_triggered_by_me(client, seeded):
    response = client.get("/articles", params={"triggered_by": "me"}, headers=bearer("alice-token"))
    assert response.status_code == 200
    assert sorted(a["article_id"] for a in response.json()) == ["article-1", "article-2"]

    # API-key callers have no identity to filter on
    response = client.get("/articles", params={"triggered_by": "me"}, headers=api_key())
    assert response.status_code == 403


def test_only_admins_filter_by_other_users(client, seeded):
    response = client.get("/articles", params={"triggered_by": ALICE}, headers=bearer("admin-token"))
    assert response.status_code == 200

    response = client.get("/articles", params={"triggered_by": ADMIN}, headers=bearer("alice-token"))
    assert response.status_code == 403


def test_object_store_outage_is_503(store_root, settings, fake_redis):
    class BrokenStore(LocalObjectStore):
        async def list(self, prefix):
            raise ObjectStoreError("GCS error 503")

    container = build_test_container(BrokenStore(store_root), settings)
    app.dependency_overrides[get_container] = lambda: container
    try:
        response = TestClient(app).get("/articles", headers=api_key())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503


def test_request_id_is_echoed(client):
    response = client.get("/articles/health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert client.get("/articles/health/live").headers["X-Request-ID"]


def test_runs(client, seeded):
    response = client.get("/runs", params={"region": "eu"}, headers=api_key())
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["runs"][0] == {"date": "2025-06-10", "run_id": "17-07-10", "region": "eu"}

    response = client.get("/runs/2025-06-10/08-00-00/articles", params={"region": "eu"}, headers=api_key())
    assert response.status_code == 200
    assert response.json()["total"] == 2

    response = client.get("/runs/2025-06-10/00-00-00/articles", params={"region": "eu"}, headers=api_key())
    assert response.status_code == 404

    response = client.get("/runs/latest/articles", params={"region": "eu"}, headers=api_key())
    assert response.status_code == 200
    latest = response.json()
    assert latest["run_id"] == "17-07-10"
    assert [a["article_id"] for a in latest["articles"]] == ["article-3"]


def test_user_profile(client):
    response = client.get("/user", headers=bearer("alice-token"))
    assert response.status_code == 200
    assert response.json() == {"email": ALICE, "name": "Alice", "picture": "", "isAdmin": False}

    assert client.get("/user", headers=bearer("admin-token")).json()["isAdmin"] is True
    assert client.get("/user").status_code == 401
    assert client.get("/user", headers=api_key()).status_code == 401
    assert client.get("/user", headers=bearer("eve-token")).status_code == 403


def test_user_preferences(client):
    response = client.get("/user/preferences", headers=bearer("alice-token"))
    assert response.json() == {"email": ALICE, "scraperConfig": None, "feedSettings": {}}

    response = client.put(
        "/user/preferences",
        json={"feedSettings": {"density": "compact"}},
        headers=bearer("alice-token"),
    )
    assert response.status_code == 200
    assert response.json()["feedSettings"] == {"density": "compact"}

    stored = client.get("/user/preferences", headers=bearer("alice-token")).json()
    assert stored["feedSettings"] == {"density": "compact"}
    assert "lastUpdated" in stored


def test_news_api_config(client):
    response = client.get("/config/news-api", headers=bearer("alice-token"))
    assert response.status_code == 200
    assert response.json()["default_time_range"] == "last_24_hours"
    assert "last_week" in response.json()["available_time_ranges"]


def test_trigger_scraper(client, fake_redis):
    response = client.post(
        "/trigger/scraper",
        json={"urls": ["https://www.fanatik.com.tr"], "keywords": ["fenerbahce"], "region": "tr"},
        headers=bearer("alice-token"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["triggeredBy"] == ALICE
    assert fake_redis.xlen("scraper_requests") == 1


def test_trigger_validation_and_auth(client, fake_redis):
    response = client.post(
        "/trigger/scraper",
        json={"urls": [], "keywords": ["fenerbahce"], "region": "tr"},
        headers=bearer("alice-token"),
    )
    assert response.status_code == 422

    response = client.post("/trigger/news-api", json={"keywords": ["x"]}, headers=api_key())
    assert response.status_code == 401

    response = client.post(
        "/trigger/news-api",
        json={"keywords": ["x"], "time_range": "forever"},
        headers=bearer("alice-token"),
    )
    assert response.status_code == 400
    assert fake_redis.xlen("news_api_requests") == 0
