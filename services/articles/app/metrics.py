from prometheus_client import Counter

CACHE_HITS = Counter("articles_cache_hits_total", "Dates served from the article cache")
CACHE_MISSES = Counter("articles_cache_misses_total", "Dates fetched from the object store")
EXTRACTION_ERRORS = Counter(
    "articles_extraction_errors_total",
    "Lines or files skipped because they could not be parsed",
    ["source_type"],
)
ARTICLES_EXTRACTED = Counter(
    "articles_extracted_total",
    "Articles normalized from object-store files",
    ["source_type"],
)
ARTICLE_REQUESTS = Counter(
    "articles_requests_total",
    "Article queries by outcome",
    ["outcome"],
)
TRIGGERS_PUBLISHED = Counter(
    "articles_triggers_published_total",
    "Trigger messages published to the queue",
    ["kind"],
)
