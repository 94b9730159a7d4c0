from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

SourceType = Literal["scraped", "api", "processed"]
ContentQuality = Literal["high", "medium", "low"]

ENTITY_KEYS = ("teams", "players", "amounts", "dates", "competitions", "locations")


class CategoryTag(BaseModel):
    tag: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class KeyEntities(BaseModel):
    teams: List[str] = Field(default_factory=list)
    players: List[str] = Field(default_factory=list)
    amounts: List[str] = Field(default_factory=list)
    dates: List[str] = Field(default_factory=list)
    competitions: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)


class Article(BaseModel):
    """Normalized article as served to the dashboard."""

    model_config = ConfigDict(populate_by_name=True)

    article_id: str = Field(..., description="Stable identifier, synthesized when upstream has none")
    original_url: str = Field(..., description="Canonical URL used as the dedup key")
    title: str = "Untitled"
    summary: str = ""
    content: Optional[str] = None
    source: str = "Unknown"
    publish_date: str = Field(..., description="ISO-8601 timestamp")
    categories: List[Union[str, CategoryTag]] = Field(default_factory=list)
    key_entities: KeyEntities = Field(default_factory=KeyEntities)
    content_quality: ContentQuality = "medium"
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    language: str = ""
    region: str = "eu"
    source_type: SourceType = Field(..., description="Namespace the article was read from")

    summary_translation: Optional[str] = None
    x_post: Optional[str] = None
    merged_from_urls: Optional[List[str]] = None
    grouping_metadata: Optional[Dict[str, Any]] = Field(None, alias="_grouping_metadata")
    merge_metadata: Optional[Dict[str, Any]] = Field(None, alias="_merge_metadata")
    processing_metadata: Optional[Dict[str, Any]] = Field(None, alias="_processing_metadata")

    # Object-store directory of the file the article was read from; never serialized
    batch_id: Optional[str] = Field(None, exclude=True)

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
