from datetime import datetime, timezone
from typing import Iterable, List, Optional

from shared.schemas.article import Article


def dedup_key(article: Article) -> Optional[str]:
    """URL the article is deduplicated on; falls back to its id.

    Upstream ``url`` fields were already folded into ``original_url`` during
    normalization.
    """
    return article.original_url or article.article_id or None


def dedupe(articles: Iterable[Article]) -> List[Article]:
    """
    Keep the first article seen for each key, in arrival order.

    Which of two duplicates survives depends only on the order the merge
    step produced, not on content. Keyless articles are always kept.
    """
    seen = set()
    unique: List[Article] = []
    for article in articles:
        key = dedup_key(article)
        if key is None:
            unique.append(article)
            continue
        if key in seen:
            continue
        seen.add(key)
        unique.append(article)
    return unique


def filter_region(articles: List[Article], region: Optional[str]) -> List[Article]:
    if not region or region == "all":
        return articles
    return [a for a in articles if a.region == region]


def filter_search(articles: List[Article], search: Optional[str]) -> List[Article]:
    """Case-insensitive substring match on title, summary and X post."""
    needle = (search or "").strip().lower()
    if not needle:
        return articles
    return [
        a for a in articles
        if needle in a.title.lower()
        or needle in a.summary.lower()
        or needle in (a.x_post or "").lower()
    ]


def _published(article: Article) -> datetime:
    try:
        value = datetime.fromisoformat(article.publish_date.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def sort_newest_first(articles: List[Article]) -> List[Article]:
    # sorted() is stable, so equal timestamps keep merge order
    return sorted(articles, key=_published, reverse=True)
