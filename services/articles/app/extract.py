"""
Record extraction: object-store blobs in, normalized ``Article`` lists out.

The file format (JSONL or JSON) is chosen by extension. Within a JSONL line
the record may be wrapped in one of several shapes; the matchers in
``SHAPE_MATCHERS`` are tried in order and the first one that recognises the
line decides how its articles are pulled out. The order is part of the
contract and covered by tests.

Nothing in here raises for bad data: unparseable lines and files are
recorded on the ``ExtractionReport`` and skipped.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from services.articles.app.metrics import ARTICLES_EXTRACTED, EXTRACTION_ERRORS
from services.articles.app.normalize import normalize_article, utc_now
from services.articles.app.sources import batch_of
from shared.app_logging.logger import get_logger
from shared.schemas.article import Article

logger = get_logger("articles.extract")

ARTICLE_KEYS = ("article_id", "original_url", "url", "title")
CONTAINER_KEYS = ("articles", "processed_articles", "enriched_articles")

_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


class ShapeError(ValueError):
    """A line matched a wrapper shape but its embedded payload was unusable."""


@dataclass
class ExtractionIssue:
    key: str
    line: Optional[int]
    reason: str


@dataclass
class ExtractionReport:
    key: str
    source_type: str
    articles: int = 0
    shapes: Dict[str, int] = field(default_factory=dict)
    issues: List[ExtractionIssue] = field(default_factory=list)

    def record_issue(self, reason: str, line: Optional[int] = None):
        self.issues.append(ExtractionIssue(self.key, line, reason))
        EXTRACTION_ERRORS.labels(source_type=self.source_type).inc()
        where = f"{self.key}:{line}" if line is not None else self.key
        logger.warning(f"Skipping unparseable record at {where}: {reason}")


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, as model output often has one."""
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text.strip()


def _looks_like_article(obj: Any) -> bool:
    return isinstance(obj, dict) and any(k in obj for k in ARTICLE_KEYS)


def _dicts(items: List[Any]) -> List[Dict[str, Any]]:
    return [item for item in items if isinstance(item, dict)]


def articles_in(doc: Any) -> List[Dict[str, Any]]:
    """Articles inside a decoded payload: a container object, an array, or one article."""
    if isinstance(doc, list):
        return _dicts(doc)
    if isinstance(doc, dict):
        for key in CONTAINER_KEYS:
            if isinstance(doc.get(key), list):
                return _dicts(doc[key])
        if _looks_like_article(doc):
            return [doc]
    return []


def _decode_embedded(text: Any) -> Any:
    if not isinstance(text, str):
        raise ShapeError("embedded payload is not text")
    try:
        return json.loads(strip_fences(text))
    except json.JSONDecodeError as e:
        raise ShapeError(f"embedded JSON invalid: {e.msg}")


def match_response_wrapper(obj: Any) -> Optional[List[Dict[str, Any]]]:
    """Batch model output: ``{"response": {"candidates": [{"content": {"parts": [{"text": ...}]}}]}}``."""
    if not isinstance(obj, dict):
        return None
    response = obj.get("response") if isinstance(obj.get("response"), dict) else None
    container = response if response is not None else obj
    candidates = container.get("candidates")
    if not isinstance(candidates, list):
        return None

    found: List[Dict[str, Any]] = []
    for candidate in candidates:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        for part in parts if isinstance(parts, list) else []:
            if isinstance(part, dict) and "text" in part:
                found.extend(articles_in(_decode_embedded(part["text"])))
    return found


def match_single_article(obj: Any) -> Optional[List[Dict[str, Any]]]:
    return [obj] if _looks_like_article(obj) else None


def match_article_array(obj: Any) -> Optional[List[Dict[str, Any]]]:
    return _dicts(obj) if isinstance(obj, list) else None


def match_prediction_wrapper(obj: Any) -> Optional[List[Dict[str, Any]]]:
    if not isinstance(obj, dict) or "prediction" not in obj:
        return None
    prediction = obj["prediction"]
    if isinstance(prediction, str):
        prediction = _decode_embedded(prediction)
    return articles_in(prediction)


SHAPE_MATCHERS: Tuple[Tuple[str, Callable[[Any], Optional[List[Dict[str, Any]]]]], ...] = (
    ("response_wrapper", match_response_wrapper),
    ("single_article", match_single_article),
    ("article_array", match_article_array),
    ("prediction_wrapper", match_prediction_wrapper),
)


def match_shape(obj: Any) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Return (shape name, raw articles) for the first matcher that accepts ``obj``."""
    for name, matcher in SHAPE_MATCHERS:
        found = matcher(obj)
        if found is not None:
            return name, found
    return None, []


class RecordExtractor:
    """Parses JSON/JSONL blobs into normalized articles."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock

    def extract(self, data: bytes, key: str, source_type: str) -> Tuple[List[Article], ExtractionReport]:
        report = ExtractionReport(key=key, source_type=source_type)
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            report.record_issue(f"not UTF-8: {e}")
            return [], report

        if key.endswith(".jsonl"):
            raw_articles = self._parse_jsonl(text, report)
        else:
            raw_articles = self._parse_json(text, report)

        batch_id = batch_of(key)
        articles: List[Article] = []
        for raw in raw_articles:
            try:
                articles.append(normalize_article(raw, source_type, batch_id=batch_id, clock=self.clock))
            except ValueError as e:
                # pydantic.ValidationError is a ValueError
                report.record_issue(f"article rejected by schema: {e}")

        report.articles = len(articles)
        ARTICLES_EXTRACTED.labels(source_type=source_type).inc(len(articles))
        logger.debug(f"Extracted {len(articles)} {source_type} articles from {key}")
        return articles, report

    def _apply_shapes(self, obj: Any, report: ExtractionReport, line: Optional[int]) -> List[Dict[str, Any]]:
        try:
            shape, found = match_shape(obj)
        except ShapeError as e:
            report.record_issue(str(e), line)
            return []
        if shape is None:
            logger.debug(f"No known shape at {report.key}:{line}")
            return []
        report.shapes[shape] = report.shapes.get(shape, 0) + 1
        return found

    def _parse_jsonl(self, text: str, report: ExtractionReport) -> List[Dict[str, Any]]:
        found: List[Dict[str, Any]] = []
        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as e:
                report.record_issue(f"invalid JSON: {e.msg}", number)
                continue
            found.extend(self._apply_shapes(obj, report, number))
        return found

    def _parse_json(self, text: str, report: ExtractionReport) -> List[Dict[str, Any]]:
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            report.record_issue(f"invalid JSON: {e.msg}")
            return []

        if isinstance(doc, dict):
            for container in ("articles", "processed_articles"):
                if isinstance(doc.get(container), list):
                    report.shapes[container] = 1
                    return _dicts(doc[container])
        return self._apply_shapes(doc, report, None)
