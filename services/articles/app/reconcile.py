"""
Article reconciliation: dates → cache / object store → merged, deduplicated,
filtered article list.
"""

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from services.articles.app.cache import DateCache
from services.articles.app.dedup import dedupe, filter_region, filter_search, sort_newest_first
from services.articles.app.errors import BadRegionError, NotFoundError
from services.articles.app.extract import RecordExtractor
from services.articles.app.metrics import CACHE_HITS, CACHE_MISSES
from services.articles.app.ownership import OwnershipResolver, resolve_owner_filter
from services.articles.app.sources import (
    NAMESPACES,
    SCRAPED,
    expand_dates,
    is_article_file,
    prefixes_for,
    run_id_of,
    utc_today,
)
from shared.app_logging.logger import get_logger
from shared.schemas.article import Article
from shared.storage.object_store import ObjectNotFoundError, ObjectStore

logger = get_logger("articles.reconcile")


@dataclass
class ArticleQuery:
    region: str = "all"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    last_n_days: Optional[int] = None
    triggered_by: Optional[str] = None
    search: Optional[str] = None
    use_cache: bool = True


@dataclass
class Caller:
    email: Optional[str] = None
    is_admin: bool = False


@dataclass
class RunInfo:
    date: str
    run_id: str
    region: str
    prefix: str

    def to_response(self) -> dict:
        return {"date": self.date, "run_id": self.run_id, "region": self.region}


class ArticleReconciler:
    def __init__(
        self,
        store: ObjectStore,
        cache: DateCache,
        regions: Sequence[str] = ("eu", "tr"),
        extractor: Optional[RecordExtractor] = None,
        namespaces: Sequence[str] = NAMESPACES,
        today: Callable[[], date] = utc_today,
    ):
        self.store = store
        self.cache = cache
        self.regions = tuple(regions)
        self.extractor = extractor or RecordExtractor()
        self.namespaces = tuple(namespaces)
        self.today = today

    def validate_region(self, region: Optional[str]) -> str:
        region = region or "all"
        if region != "all" and region not in self.regions:
            raise BadRegionError(
                f"Unknown region '{region}'",
                {"region": region, "allowed": ["all", *self.regions]},
            )
        return region

    async def get_articles(self, query: ArticleQuery, caller: Optional[Caller] = None) -> List[Article]:
        caller = caller or Caller()
        region = self.validate_region(query.region)
        # Authorization is settled before any object-store work
        owner = resolve_owner_filter(query.triggered_by, caller.email, caller.is_admin)
        dates = expand_dates(query.start_date, query.end_date, query.last_n_days, today=self.today())

        merged = await self.resolve(region, dates, use_cache=query.use_cache)
        articles = dedupe(merged)
        articles = filter_region(articles, region)
        if owner is not None:
            articles = await OwnershipResolver(self.store).filter(articles, owner)
        articles = filter_search(articles, query.search)

        if not articles:
            raise NotFoundError(
                "No articles found for the requested region and dates",
                {"region": region, "startDate": dates[0], "endDate": dates[-1]},
            )
        logger.info(
            f"Serving {len(articles)} articles for region={region} "
            f"dates={dates[0]}..{dates[-1]} ({len(merged)} before dedup/filters)"
        )
        return sort_newest_first(articles)

    async def resolve(self, region: str, dates: List[str], use_cache: bool = True) -> List[Article]:
        """Cached dates first, then freshly fetched ones, each group in date order."""
        cached: List[Article] = []
        missed: List[str] = []
        for day in dates:
            hit = self.cache.get_articles(region, day) if use_cache else None
            if hit is None:
                missed.append(day)
            else:
                cached.extend(hit)

        CACHE_HITS.inc(len(dates) - len(missed))
        CACHE_MISSES.inc(len(missed))
        logger.debug(f"Cache for region={region}: {len(dates) - len(missed)} hit, {len(missed)} missed")

        fetched = await asyncio.gather(*(self.fetch_date(region, day) for day in missed))
        fresh: List[Article] = []
        for day, articles in zip(missed, fetched):
            self.cache.put_articles(region, day, articles)
            fresh.extend(articles)

        return cached + fresh

    async def fetch_date(self, region: str, day: str) -> List[Article]:
        """Read and extract every article file for one region and date, all namespaces."""
        articles: List[Article] = []
        for namespace in self.namespaces:
            for prefix in prefixes_for(namespace, region, day, self.regions):
                articles.extend(await self._fetch_prefix(prefix, namespace))
        return articles

    async def _fetch_prefix(self, prefix: str, namespace: str) -> List[Article]:
        keys = [k for k in await self.store.list(prefix) if is_article_file(k)]
        results = await asyncio.gather(*(self._fetch_file(k, namespace) for k in keys))
        return [article for file_articles in results for article in file_articles]

    async def _fetch_file(self, key: str, namespace: str) -> List[Article]:
        try:
            data = await self.store.read(key)
        except ObjectNotFoundError:
            # Listed but gone by the time we read it
            logger.warning(f"Object vanished before read: {key}")
            return []
        articles, _ = self.extractor.extract(data, key, namespace)
        return articles

    async def list_runs(self, region: str, dates: Iterable[str]) -> List[RunInfo]:
        """Scraped runs for the given dates, newest first."""
        region = self.validate_region(region)
        runs: List[RunInfo] = []
        for day in dates:
            for prefix in prefixes_for(SCRAPED, region, day, self.regions):
                run_region = prefix.split("/")[1]
                seen = set()
                for key in await self.store.list(prefix):
                    run_id = run_id_of(key, prefix)
                    if run_id and run_id not in seen and is_article_file(key):
                        seen.add(run_id)
                        run_dir = key[len(prefix):].split("/", 1)[0]
                        runs.append(RunInfo(day, run_id, run_region, f"{prefix}{run_dir}/"))
        return sorted(runs, key=_run_sort_key, reverse=True)

    async def get_run_articles(self, region: str, day: str, run_id: str) -> List[Article]:
        """Articles from one scraped run; not cached."""
        runs = [r for r in await self.list_runs(region, [day]) if r.run_id == run_id]
        if not runs:
            raise NotFoundError("Run not found", {"region": region, "date": day, "run_id": run_id})
        articles: List[Article] = []
        for run in runs:
            articles.extend(await self._fetch_prefix(run.prefix, SCRAPED))
        return sort_newest_first(dedupe(articles))

    async def get_latest_run_articles(self, region: str, dates: List[str]) -> Tuple[RunInfo, List[Article]]:
        runs = await self.list_runs(region, dates)
        if not runs:
            raise NotFoundError(
                "No runs found", {"region": region, "startDate": dates[0], "endDate": dates[-1]}
            )
        latest = runs[0]
        articles = await self._fetch_prefix(latest.prefix, SCRAPED)
        return latest, sort_newest_first(dedupe(articles))


def _run_sort_key(run: RunInfo) -> Tuple[str, str, str]:
    return (run.date, run.run_id, run.region)
