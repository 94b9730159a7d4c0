from services.articles.app.normalize import infer_region, normalize_article
from shared.schemas.article import CategoryTag

from conftest import FIXED_NOW, make_raw


def fixed_clock():
    return FIXED_NOW


def test_infer_region():
    assert infer_region("tr") == "tr"
    assert infer_region("TR") == "tr"
    assert infer_region("en") == "eu"
    assert infer_region("") == "eu"
    assert infer_region(None) == "eu"


def test_empty_record_gets_every_default():
    article = normalize_article({}, "scraped", clock=fixed_clock)

    assert article.title == "Untitled"
    assert article.summary == ""
    assert article.source == "Unknown"
    assert article.publish_date == FIXED_NOW.isoformat()
    assert article.categories == []
    assert article.key_entities.model_dump() == {
        "teams": [], "players": [], "amounts": [], "dates": [], "competitions": [], "locations": [],
    }
    assert article.content_quality == "medium"
    assert article.confidence == 0.8
    assert article.region == "eu"
    assert article.source_type == "scraped"
    assert article.article_id.startswith("scraped_")
    assert article.original_url == article.article_id


def test_default_confidence_depends_on_source_type():
    assert normalize_article({}, "api", clock=fixed_clock).confidence == 0.5
    assert normalize_article({}, "processed", clock=fixed_clock).confidence == 0.7


def test_url_is_renamed_to_original_url():
    article = normalize_article({"url": "https://www.fanatik.com.tr/a"}, "api", clock=fixed_clock)
    assert article.original_url == "https://www.fanatik.com.tr/a"
    assert article.source == "fanatik.com.tr"


def test_synthesized_id_is_stable_for_a_url():
    first = normalize_article({"url": "https://example.com/x"}, "api", clock=fixed_clock)
    second = normalize_article({"url": "https://example.com/x"}, "api", clock=fixed_clock)
    assert first.article_id == second.article_id


def test_synthesized_id_without_url_is_content_derived():
    raw = {"title": "Derbi sonrasi", "publish_date": "2025-06-10T08:00:00", "source": "fanatik"}

    def later():
        return FIXED_NOW.replace(hour=23)

    first = normalize_article(dict(raw), "scraped", batch_id="run_08-00-00", clock=fixed_clock)
    second = normalize_article(dict(raw), "scraped", batch_id="run_08-00-00", clock=later)

    assert first.article_id == second.article_id
    assert first.original_url == first.article_id
    other_title = normalize_article(dict(raw, title="Derbi oncesi"), "scraped", batch_id="run_08-00-00", clock=fixed_clock)
    other_batch = normalize_article(dict(raw), "scraped", batch_id="run_17-07-10", clock=fixed_clock)
    assert other_title.article_id != first.article_id
    assert other_batch.article_id != first.article_id


def test_summary_field_priority():
    raw = {"body": "from body", "content": "from content", "description": "from description"}
    assert normalize_article(raw, "api", clock=fixed_clock).summary == "from body"

    raw = {"content": "from content", "description": "from description"}
    assert normalize_article(raw, "api", clock=fixed_clock).summary == "from content"

    raw = {"description": "from description"}
    assert normalize_article(raw, "api", clock=fixed_clock).summary == "from description"

    raw = {"summary": "kept", "body": "ignored"}
    article = normalize_article(raw, "api", clock=fixed_clock)
    assert article.summary == "kept"
    assert article.content == "ignored"


def test_source_object_and_published_at():
    raw = {
        "url": "https://example.com/a",
        "source": {"id": "bbc-sport", "name": "BBC Sport"},
        "publishedAt": "2025-06-09T08:00:00Z",
    }
    article = normalize_article(raw, "api", clock=fixed_clock)
    assert article.source == "BBC Sport"
    assert article.publish_date == "2025-06-09T08:00:00Z"


def test_both_category_shapes_are_accepted():
    raw = {"categories": ["transfer", {"tag": "derby", "confidence": 0.7}, 42, {"no_tag": True}]}
    article = normalize_article(raw, "processed", clock=fixed_clock)
    assert article.categories == ["transfer", CategoryTag(tag="derby", confidence=0.7)]


def test_partial_key_entities_are_filled_in():
    raw = {"key_entities": {"teams": ["Fenerbahce"], "players": None, "locations": "Istanbul"}}
    entities = normalize_article(raw, "scraped", clock=fixed_clock).key_entities
    assert entities.teams == ["Fenerbahce"]
    assert entities.players == []
    assert entities.locations == ["Istanbul"]
    assert entities.amounts == []


def test_unknown_quality_and_out_of_range_confidence():
    raw = {"content_quality": "excellent", "confidence": 1.7}
    article = normalize_article(raw, "scraped", clock=fixed_clock)
    assert article.content_quality == "medium"
    assert article.confidence == 1.0

    assert normalize_article({"confidence": "n/a"}, "api", clock=fixed_clock).confidence == 0.5


def test_region_from_language_when_missing():
    article = normalize_article({"language": "tr", "title": "Transfer haberi"}, "scraped", clock=fixed_clock)
    assert article.region == "tr"


def test_explicit_region_is_kept_verbatim():
    article = normalize_article({"language": "tr", "region": "EU"}, "scraped", clock=fixed_clock)
    assert article.region == "EU"


def test_upstream_source_type_is_overridden():
    article = normalize_article(make_raw(1, source_type="api"), "scraped", clock=fixed_clock)
    assert article.source_type == "scraped"


def test_passthrough_blocks_serialize_with_underscore_names():
    raw = make_raw(
        1,
        x_post="BREAKING",
        summary_translation="Ozet",
        merged_from_urls=["https://other.com/a"],
        _merge_metadata={"merged": 2},
        _processing_metadata={"model": "batch"},
    )
    body = normalize_article(raw, "processed", batch_id="ingestion/2025-06-10", clock=fixed_clock).to_response()

    assert body["_merge_metadata"] == {"merged": 2}
    assert body["_processing_metadata"] == {"model": "batch"}
    assert "_grouping_metadata" not in body
    assert body["merged_from_urls"] == ["https://other.com/a"]
    assert body["x_post"] == "BREAKING"
    assert "batch_id" not in body
