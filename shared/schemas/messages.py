from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def _clean_keywords(v: List[str]) -> List[str]:
    seen = []
    for keyword in v:
        keyword = keyword.strip()
        if keyword and keyword.lower() not in (s.lower() for s in seen):
            seen.append(keyword)
    if not seen:
        raise ValueError("at least one non-empty keyword is required")
    return seen


class TriggerScraperRequest(BaseModel):
    urls: List[str] = Field(..., min_length=1, description="Source pages to scrape")
    keywords: List[str] = Field(..., description="Keywords the scraper filters on")
    region: Literal["eu", "tr"] = Field(..., description="Region the batch is filed under")
    scrape_depth: int = Field(1, ge=1, le=3, description="Link-follow depth")
    persist: bool = Field(False, description="Keep raw scraped pages")
    collection_id: Optional[str] = Field(None, description="Scraper collection, defaults to region")

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: List[str]) -> List[str]:
        cleaned = [url.strip() for url in v if url.strip()]
        for url in cleaned:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"URL must use HTTP or HTTPS: {url}")
        if not cleaned:
            raise ValueError("at least one URL is required")
        return cleaned

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, v: List[str]) -> List[str]:
        return _clean_keywords(v)


class TriggerNewsApiRequest(BaseModel):
    keywords: List[str] = Field(..., description="Search keywords for the news APIs")
    time_range: Optional[str] = Field(None, description="One of the configured time ranges")
    max_results: Optional[int] = Field(None, ge=1, le=100)

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, v: List[str]) -> List[str]:
        return _clean_keywords(v)


class TriggerMessage(BaseModel):
    """Envelope published to a trigger topic."""

    version: Literal["1.0"] = Field("1.0", description="Schema version")
    kind: Literal["scraper", "news_api"]
    triggered_by: str = Field(..., description="Email of the user who requested the run")
    requested_at: datetime
    payload: dict


class TriggerResponse(BaseModel):
    success: bool = True
    messageId: str
    triggeredBy: str


class ScraperTriggerResponse(TriggerResponse):
    region: str
    sourcesCount: int


class NewsApiTriggerResponse(TriggerResponse):
    keywords: List[str]


class NewsApiConfig(BaseModel):
    default_keywords: List[str]
    default_time_range: str
    default_max_results: int
    available_time_ranges: List[str]
