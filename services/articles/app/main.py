import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from services.articles.app.auth import AccessLists, AuthenticationError, IdentityVerifier, UserIdentity
from services.articles.app.cache import DateCache
from services.articles.app.errors import ArticleServiceError
from services.articles.app.metrics import ARTICLE_REQUESTS
from services.articles.app.preferences import PreferencesStore
from services.articles.app.reconcile import ArticleQuery, ArticleReconciler, Caller
from services.articles.app.sources import MAX_RANGE_DAYS, expand_dates
from services.articles.app.triggers import TriggerPublisher
from shared.app_logging.logger import CorrelationContext, setup_logging
from shared.config.settings import Settings, get_settings
from shared.schemas.messages import (
    NewsApiConfig,
    NewsApiTriggerResponse,
    ScraperTriggerResponse,
    TriggerNewsApiRequest,
    TriggerScraperRequest,
)
from shared.storage.object_store import ObjectStore, ObjectStoreError, create_object_store
from shared.utils.health import HealthChecker, create_articles_health_checker
from shared.utils.redis_client import RedisClient, close_all_redis_clients, get_redis_client

# Setup logging
logger = setup_logging("articles")


@dataclass
class ServiceContainer:
    settings: Settings
    store: ObjectStore
    reconciler: ArticleReconciler
    access_lists: AccessLists
    verifier: IdentityVerifier
    preferences: PreferencesStore
    publisher: TriggerPublisher
    redis_client: RedisClient
    health_checker: HealthChecker


def build_container(settings: Settings) -> ServiceContainer:
    store = create_object_store()
    redis_client = get_redis_client("articles")
    return ServiceContainer(
        settings=settings,
        store=store,
        reconciler=ArticleReconciler(
            store,
            DateCache(settings.cache.article_ttl),
            regions=settings.service.regions,
        ),
        access_lists=AccessLists(
            store,
            allowed_key=settings.auth.allowed_users_key,
            admin_key=settings.auth.admin_users_key,
            emergency_allowlist=settings.auth.emergency_allowlist,
            emergency_admins=settings.auth.emergency_admins,
            ttl=settings.cache.user_list_ttl,
        ),
        verifier=IdentityVerifier(settings.auth.userinfo_url, timeout=settings.service.http_timeout),
        preferences=PreferencesStore(store),
        publisher=TriggerPublisher(redis_client, settings),
        redis_client=redis_client,
        health_checker=create_articles_health_checker(store, redis_client),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    app.state.container = build_container(settings)
    logger.info(f"Articles service started (storage={settings.storage.backend}, regions={settings.service.regions})")
    try:
        yield
    finally:
        container = app.state.container
        await container.store.close()
        await container.verifier.close()
        close_all_redis_clients()
        logger.info("Articles service shut down cleanly")


app = FastAPI(title="NewsDesk Articles Service", lifespan=lifespan)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    with CorrelationContext(request.headers.get("X-Request-ID")) as correlation_id:
        response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ArticleServiceError):
        return HTTPException(status_code=e.status_code, detail=e.to_detail())
    if isinstance(e, ObjectStoreError):
        return HTTPException(status_code=503, detail={"error": "Object store unavailable"})
    return HTTPException(status_code=500, detail={"error": "Internal Server Error"})


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


@dataclass
class AuthenticatedUser:
    identity: UserIdentity
    is_admin: bool


async def _authenticate(token: str, container: ServiceContainer) -> AuthenticatedUser:
    try:
        identity = await container.verifier.verify(token)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail={"error": str(e)})
    if not await container.access_lists.is_allowed(identity.email):
        logger.warning(f"Rejected sign-in from non-allowlisted user {identity.email}")
        raise HTTPException(status_code=403, detail={"error": "User is not allowed"})
    return AuthenticatedUser(identity, await container.access_lists.is_admin(identity.email))


async def current_user(
    request: Request, container: ServiceContainer = Depends(get_container)
) -> AuthenticatedUser:
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail={"error": "Missing bearer token"})
    return await _authenticate(token, container)


async def article_caller(
    request: Request, container: ServiceContainer = Depends(get_container)
) -> Caller:
    """Bearer users get their identity; API-key callers are anonymous."""
    token = _bearer_token(request)
    if token is not None:
        user = await _authenticate(token, container)
        return Caller(email=user.identity.email, is_admin=user.is_admin)
    api_key = container.settings.auth.api_key
    supplied = request.headers.get("X-API-Key", "").encode("utf-8")
    if api_key and secrets.compare_digest(supplied, api_key.encode("utf-8")):
        return Caller()
    raise HTTPException(status_code=401, detail={"error": "Missing or invalid credentials"})


@app.get("/articles/health")
async def health(container: ServiceContainer = Depends(get_container)):
    """Comprehensive health check endpoint."""
    return await container.health_checker.run_all_checks()


@app.get("/articles/health/live")
def liveness_check():
    """Liveness check endpoint."""
    return {"status": "alive", "service": "articles"}


@app.get("/articles/health/ready")
async def readiness_check(container: ServiceContainer = Depends(get_container)):
    """Ready once the object store answers; Redis only gates triggers."""
    health_data = await container.health_checker.run_all_checks()
    critical = {c["name"]: c["status"] for c in health_data["checks"] if c["name"] == "object_store"}
    return {
        "status": "ready" if all(s == "healthy" for s in critical.values()) else "not_ready",
        "service": "articles",
        "critical_dependencies": critical,
    }


@app.get("/articles/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/articles")
async def get_articles(
    region: str = Query("all"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    last_n_days: Optional[int] = Query(None, ge=1, le=MAX_RANGE_DAYS),
    search: Optional[str] = Query(None),
    no_cache: bool = Query(False),
    triggered_by: Optional[str] = Query(None),
    caller: Caller = Depends(article_caller),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    query = ArticleQuery(
        region=region,
        start_date=start_date,
        end_date=end_date,
        last_n_days=last_n_days,
        triggered_by=triggered_by,
        search=search,
        use_cache=not no_cache,
    )
    try:
        articles = await container.reconciler.get_articles(query, caller)
    except (ArticleServiceError, ObjectStoreError) as e:
        ARTICLE_REQUESTS.labels(outcome=type(e).__name__).inc()
        if isinstance(e, ObjectStoreError):
            logger.error(f"Object store failure serving region={region}: {e}")
        raise _http_error(e)
    except Exception as e:
        ARTICLE_REQUESTS.labels(outcome="error").inc()
        logger.exception("Unexpected error in /articles: %s", e)
        raise _http_error(e)

    ARTICLE_REQUESTS.labels(outcome="ok").inc()
    return [a.to_response() for a in articles]


def _selector_dates(container, start_date, end_date, last_n_days) -> List[str]:
    return expand_dates(start_date, end_date, last_n_days, today=container.reconciler.today())


@app.get("/runs")
async def list_runs(
    region: str = Query("all"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    last_n_days: Optional[int] = Query(7, ge=1, le=MAX_RANGE_DAYS),
    caller: Caller = Depends(article_caller),
    container: ServiceContainer = Depends(get_container),
):
    try:
        dates = _selector_dates(container, start_date, end_date, last_n_days)
        runs = await container.reconciler.list_runs(region, dates)
    except (ArticleServiceError, ObjectStoreError) as e:
        raise _http_error(e)
    return {"runs": [r.to_response() for r in runs], "total": len(runs)}


@app.get("/runs/latest/articles")
async def latest_run_articles(
    region: str = Query("all"),
    last_n_days: Optional[int] = Query(7, ge=1, le=MAX_RANGE_DAYS),
    caller: Caller = Depends(article_caller),
    container: ServiceContainer = Depends(get_container),
):
    try:
        dates = _selector_dates(container, None, None, last_n_days)
        run, articles = await container.reconciler.get_latest_run_articles(region, dates)
    except (ArticleServiceError, ObjectStoreError) as e:
        raise _http_error(e)
    return {
        "articles": [a.to_response() for a in articles],
        "total": len(articles),
        **run.to_response(),
    }


@app.get("/runs/{date}/{run_id}/articles")
async def run_articles(
    date: str,
    run_id: str,
    region: str = Query("all"),
    caller: Caller = Depends(article_caller),
    container: ServiceContainer = Depends(get_container),
):
    try:
        day = _selector_dates(container, date, date, None)[0]
        articles = await container.reconciler.get_run_articles(region, day, run_id)
    except (ArticleServiceError, ObjectStoreError) as e:
        raise _http_error(e)
    return {
        "articles": [a.to_response() for a in articles],
        "total": len(articles),
        "date": day,
        "run_id": run_id,
    }


@app.get("/user")
async def get_user(user: AuthenticatedUser = Depends(current_user)):
    return {
        "email": user.identity.email,
        "name": user.identity.name,
        "picture": user.identity.picture,
        "isAdmin": user.is_admin,
    }


@app.get("/user/preferences")
async def get_preferences(
    user: AuthenticatedUser = Depends(current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        return await container.preferences.load(user.identity.email)
    except ObjectStoreError as e:
        raise _http_error(e)


@app.put("/user/preferences")
async def save_preferences(
    updates: Dict[str, Any] = Body(...),
    user: AuthenticatedUser = Depends(current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        return await container.preferences.save(user.identity.email, updates)
    except ObjectStoreError as e:
        raise _http_error(e)


@app.get("/config/news-api", response_model=NewsApiConfig)
async def news_api_config(
    user: AuthenticatedUser = Depends(current_user),
    container: ServiceContainer = Depends(get_container),
):
    service = container.settings.service
    return NewsApiConfig(
        default_keywords=service.news_api_default_keywords,
        default_time_range=service.news_api_default_time_range,
        default_max_results=service.news_api_default_max_results,
        available_time_ranges=service.news_api_time_ranges,
    )


@app.post("/trigger/scraper", response_model=ScraperTriggerResponse)
def trigger_scraper(
    request: TriggerScraperRequest,
    user: AuthenticatedUser = Depends(current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        return container.publisher.trigger_scraper(request, user.identity.email)
    except ArticleServiceError as e:
        raise _http_error(e)


@app.post("/trigger/news-api", response_model=NewsApiTriggerResponse)
def trigger_news_api(
    request: TriggerNewsApiRequest,
    user: AuthenticatedUser = Depends(current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        return container.publisher.trigger_news_api(request, user.identity.email)
    except ArticleServiceError as e:
        raise _http_error(e)


def run():
    import uvicorn

    uvicorn.run("services.articles.app.main:app", host="0.0.0.0", port=8080)
