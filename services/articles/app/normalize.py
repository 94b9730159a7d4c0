"""
Mapping of upstream article dicts onto the ``Article`` schema.

Upstream producers (scraper batch jobs, news-API ingestion, the enricher) each
name and shape fields a little differently. Everything funnels through
``normalize_article`` so downstream code only ever sees fully populated
``Article`` objects.
"""

import hashlib
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

from shared.schemas.article import ENTITY_KEYS, Article, CategoryTag, KeyEntities

DEFAULT_CONFIDENCE = {
    "scraped": 0.8,
    "processed": 0.7,
    "api": 0.5,
}
CONTENT_QUALITIES = ("high", "medium", "low")

_SUMMARY_FIELDS = ("summary", "body", "content", "description")
_DATE_FIELDS = ("publish_date", "published_date", "published_at", "publishedAt")
_PASSTHROUGH_FIELDS = ("_grouping_metadata", "_merge_metadata", "_processing_metadata")


def infer_region(language: Optional[str]) -> str:
    """Region for an article that does not state one: Turkish goes to ``tr``, the rest to ``eu``."""
    return "tr" if (language or "").strip().lower() == "tr" else "eu"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _first_text(raw: Dict[str, Any], fields) -> str:
    for field in fields:
        value = _text(raw.get(field))
        if value:
            return value
    return ""


def _synthesize_id(source_type: str, url: str, raw: Dict[str, Any], batch_id: Optional[str]) -> str:
    """Content-derived id, so re-reading the same blob yields the same article."""
    if url:
        fingerprint = url
    else:
        source = raw.get("source")
        if isinstance(source, dict):
            source = source.get("name") or source.get("id")
        fingerprint = "|".join([
            _text(raw.get("title")),
            _first_text(raw, _DATE_FIELDS),
            _text(source),
            _first_text(raw, _SUMMARY_FIELDS),
            batch_id or "",
        ])
    return f"{source_type}_{hashlib.sha1(fingerprint.encode('utf-8')).hexdigest()[:16]}"


def _source_name(raw: Dict[str, Any], url: str) -> str:
    source = raw.get("source")
    # NewsAPI-style {"id": ..., "name": ...}
    if isinstance(source, dict):
        source = source.get("name") or source.get("id")
    name = _text(source) or _text(raw.get("site_name")) or _text(raw.get("site"))
    if name:
        return name
    host = urlparse(url).netloc if url else ""
    return host[4:] if host.startswith("www.") else (host or "Unknown")


def _categories(value: Any) -> List[Union[str, CategoryTag]]:
    if not isinstance(value, list):
        return []
    categories: List[Union[str, CategoryTag]] = []
    for item in value:
        if isinstance(item, str):
            if item.strip():
                categories.append(item.strip())
        elif isinstance(item, dict) and _text(item.get("tag")):
            categories.append(
                CategoryTag(tag=_text(item["tag"]), confidence=_clamp(item.get("confidence"), 0.5))
            )
    return categories


def _key_entities(value: Any) -> KeyEntities:
    value = value if isinstance(value, dict) else {}
    entities = {}
    for key in ENTITY_KEYS:
        items = value.get(key)
        if isinstance(items, str):
            items = [items]
        entities[key] = [_text(i) for i in items if _text(i)] if isinstance(items, list) else []
    return KeyEntities(**entities)


def _clamp(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(1.0, max(0.0, number))


def _publish_date(raw: Dict[str, Any], now: datetime) -> str:
    value = _first_text(raw, _DATE_FIELDS)
    return value or now.isoformat()


def normalize_article(
    raw: Dict[str, Any],
    source_type: str,
    batch_id: Optional[str] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Article:
    """Build a fully defaulted ``Article`` from one upstream dict."""
    now = clock()

    url = _text(raw.get("original_url")) or _text(raw.get("url")) or _text(raw.get("link"))
    article_id = _text(raw.get("article_id")) or _text(raw.get("id")) or _synthesize_id(source_type, url, raw, batch_id)
    language = _text(raw.get("language")).lower()
    quality = _text(raw.get("content_quality")).lower()
    body = _text(raw.get("body")) or _text(raw.get("content"))

    merged = raw.get("merged_from_urls")
    passthrough = {
        field: raw[field] for field in _PASSTHROUGH_FIELDS if isinstance(raw.get(field), dict)
    }

    return Article(
        article_id=article_id,
        original_url=url or article_id,
        title=_text(raw.get("title")) or "Untitled",
        summary=_first_text(raw, _SUMMARY_FIELDS),
        content=body or None,
        source=_source_name(raw, url),
        publish_date=_publish_date(raw, now),
        categories=_categories(raw.get("categories")),
        key_entities=_key_entities(raw.get("key_entities")),
        content_quality=quality if quality in CONTENT_QUALITIES else "medium",
        confidence=_clamp(raw.get("confidence"), DEFAULT_CONFIDENCE.get(source_type, 0.5)),
        language=language,
        region=_text(raw.get("region")) or infer_region(language),
        source_type=source_type,
        summary_translation=_text(raw.get("summary_translation")) or None,
        x_post=_text(raw.get("x_post")) or None,
        merged_from_urls=[_text(u) for u in merged if _text(u)] if isinstance(merged, list) else None,
        batch_id=batch_id,
        **passthrough,
    )
