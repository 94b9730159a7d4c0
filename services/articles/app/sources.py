"""Date-range expansion and object-store prefix layout for article sources."""

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional

from services.articles.app.errors import BadRequestError

SCRAPED = "scraped"
API = "api"
PROCESSED = "processed"

# Order in which namespaces are read for a date; dedup keeps the first seen
NAMESPACES = (SCRAPED, API, PROCESSED)

METADATA_FILENAME = "metadata.json"
ARTICLE_EXTENSIONS = (".jsonl", ".json")
MAX_RANGE_DAYS = 90


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def parse_date(value: str, field: str = "date") -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid {field}: expected YYYY-MM-DD", {field: value})


def expand_dates(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    last_n_days: Optional[int] = None,
    today: Optional[date] = None,
) -> List[str]:
    """
    Turn a date selector into an ordered list of ``YYYY-MM-DD`` strings.

    An explicit (start, end) pair wins over ``last_n_days``; with neither,
    only today is returned. A start after the end is rejected, as is a range
    longer than ``MAX_RANGE_DAYS``.
    """
    today = today or utc_today()

    if start_date and end_date:
        start = parse_date(start_date, "startDate")
        end = parse_date(end_date, "endDate")
        if start > end:
            raise BadRequestError(
                "startDate must not be after endDate",
                {"startDate": start_date, "endDate": end_date},
            )
        days = (end - start).days
        if days + 1 > MAX_RANGE_DAYS:
            raise BadRequestError(
                f"Date range must not exceed {MAX_RANGE_DAYS} days",
                {"startDate": start_date, "endDate": end_date, "maxDays": MAX_RANGE_DAYS},
            )
        return [(start + timedelta(days=i)).isoformat() for i in range(days + 1)]

    if last_n_days is not None and last_n_days > 0:
        return [
            (today - timedelta(days=offset)).isoformat()
            for offset in range(last_n_days - 1, -1, -1)
        ]

    return [today.isoformat()]


def prefixes_for(namespace: str, region: str, day: str, regions: Iterable[str] = ("eu", "tr")) -> List[str]:
    """Key prefixes holding ``namespace`` output for one region and day."""
    if namespace == SCRAPED:
        month = day[:7]
        targets = list(regions) if region == "all" else [region]
        return [f"batch_processing/{r}/{month}/{day}/" for r in targets]
    if namespace == API:
        return [f"ingestion/api/{day}/"]
    if namespace == PROCESSED:
        return [f"ingestion/{day}/"]
    raise ValueError(f"Unknown namespace: {namespace}")


def is_article_file(key: str) -> bool:
    name = key.rsplit("/", 1)[-1]
    return name != METADATA_FILENAME and name.endswith(ARTICLE_EXTENSIONS)


def batch_of(key: str) -> str:
    """The 'directory' a file lives in; run metadata sits beside it."""
    return key.rsplit("/", 1)[0] if "/" in key else ""


def metadata_key(batch_id: str) -> str:
    return f"{batch_id}/{METADATA_FILENAME}" if batch_id else METADATA_FILENAME


def run_id_of(key: str, prefix: str) -> Optional[str]:
    """Run directory name directly under a scraped date prefix, e.g. ``17-07-10``."""
    rest = key[len(prefix):]
    if "/" not in rest:
        return None
    run_dir = rest.split("/", 1)[0]
    return run_dir[len("run_"):] if run_dir.startswith("run_") else run_dir
