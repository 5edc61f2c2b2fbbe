"""Browse AI capture normalization - document keys, item cleaning, dedup and merge.

Everything here is pure: no I/O, no shared state. The ingestion service calls
these inside a store transaction, so any function may run more than once for
the same request.
"""

import copy
import ipaddress
import logging
import re
import uuid
from datetime import date, datetime
from typing import Any, Iterable, Union
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

JSONValue = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]

UNKNOWN = "unknown"

IMAGE_URL_FIELD = "Image URL"
EVENT_DATE_FIELD = "EventDate"
_STATUS_FIELD = "_STATUS"

# Ordered; the dedup key is built from whichever of these an item carries
DEDUP_FIELDS = ("Title", "EventDate", "Location", "Sports")
_DEDUP_SEPARATOR = "|"

_MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)
# Full names and three-letter abbreviations, plus "sept"
_MONTHS = {name: i for i, name in enumerate(_MONTH_NAMES, start=1)}
_MONTHS.update({name[:3]: i for i, name in enumerate(_MONTH_NAMES, start=1)})
_MONTHS["sept"] = 9
# "Jun 13 (Fri)", "June 13", "Sept. 2"
_MONTH_DAY = re.compile(r"\b([A-Za-z]{3,9})\.?\s+(\d{1,2})\b")
_HOST_LABELS = re.compile(r"^[a-z0-9_-]+(\.[a-z0-9_-]+)*\.?$")


# ---------------------------------------------------------------------------
# Document keys
# ---------------------------------------------------------------------------


def derive_document_key(url: Any) -> str:
    """Return the site key for a source URL, e.g. 'https://www.espn.com/nfl' -> 'espn.com'.

    Falls back to 'unknown' for empty, missing or unparseable input.
    """
    if not url or not isinstance(url, str) or url == UNKNOWN:
        return UNKNOWN

    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    try:
        hostname = urlsplit(candidate).hostname
    except ValueError:
        logger.warning(f"Failed to parse URL: {url!r}")
        return UNKNOWN

    if not hostname:
        return UNKNOWN
    try:
        ipaddress.ip_address(hostname)
        return hostname
    except ValueError:
        pass
    if not _HOST_LABELS.match(hostname):
        logger.warning(f"Failed to parse URL: {url!r}")
        return UNKNOWN

    labels = hostname.rstrip(".").split(".")
    if len(labels) < 2:
        return hostname
    return ".".join(labels[-2:])


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------


def _is_excluded(key: str) -> bool:
    return key.lower() == "position" or key == _STATUS_FIELD


def _uid(category: str) -> str:
    slug = re.sub(r"\s+", "-", category.strip().lower()) or "item"
    return f"{slug}-{uuid.uuid4().hex}"


def _strip_query(url: Any) -> Any:
    if isinstance(url, str):
        return url.split("?", 1)[0]
    return url


def wants_event_dates(category: str, doc_key: str, event_sites: Iterable[str] = ()) -> bool:
    """Site-specific enrichment applies to event-like categories and listed sites."""
    return "event" in category.lower() or doc_key in set(event_sites)


def parse_event_dates(text: Any, year: int | None = None) -> tuple[str, str] | None:
    """Parse a human-readable date range like 'Jun 13 (Fri) - Jun 23 (Mon)'.

    Returns ISO (start, end) dates in ``year`` (default: the current year),
    or None when the text holds no recognizable month-day pair. A single
    date is both the start and the end.
    """
    if not isinstance(text, str):
        return None

    year = year or datetime.now().year
    found: list[date] = []
    for month_name, day in _MONTH_DAY.findall(text):
        month = _MONTHS.get(month_name.lower())
        if month is None:
            continue
        found.append(date(year, month, int(day)))  # ValueError on e.g. Feb 30
        if len(found) == 2:
            break

    if not found:
        return None
    start, end = found[0], found[-1]
    if end < start:
        # "Dec 28 - Jan 3" ends in the following year
        end = date(year + 1, end.month, end.day)
    return start.isoformat(), end.isoformat()


def _enrich_event_dates(item: dict, category: str) -> None:
    raw = item.get(EVENT_DATE_FIELD)
    if raw is None:
        return
    try:
        parsed = parse_event_dates(raw)
    except ValueError as e:
        logger.warning(f"Could not parse {EVENT_DATE_FIELD} {raw!r} in '{category}': {e}")
        return
    if parsed is None:
        logger.warning(f"Unrecognized {EVENT_DATE_FIELD} {raw!r} in '{category}'")
        return
    item["StartDate"], item["EndDate"] = parsed


def build_item(
    element: JSONValue,
    category: str,
    origin_url: str,
    enrich: bool = False,
) -> dict[str, JSONValue]:
    """Wrap one already-cleaned category element into a captured item."""
    item: dict[str, JSONValue] = {
        "uid": _uid(category),
        "Title": category,
        "originUrl": origin_url,
    }
    if isinstance(element, dict):
        item.update(element)
    else:
        item["value"] = element

    if IMAGE_URL_FIELD in item:
        item[IMAGE_URL_FIELD] = _strip_query(item[IMAGE_URL_FIELD])
    else:
        item[IMAGE_URL_FIELD] = ""

    if enrich:
        _enrich_event_dates(item, category)
    return item


def clean_fields(
    value: JSONValue,
    origin_url: str = UNKNOWN,
    doc_key: str = UNKNOWN,
    event_sites: Iterable[str] = (),
) -> JSONValue:
    """Strip excluded keys at every depth and turn arrays into captured items.

    Every array held by a mapping key is a category: its elements become
    items tagged with the category name, then deduplicated in input order.
    """
    event_sites = tuple(event_sites)

    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    if isinstance(value, list):
        return [clean_fields(v, origin_url, doc_key, event_sites) for v in value]

    if isinstance(value, dict):
        cleaned: dict[str, JSONValue] = {}
        for key, child in value.items():
            if _is_excluded(key):
                continue
            if isinstance(child, list):
                enrich = wants_event_dates(key, doc_key, event_sites)
                items = [
                    build_item(
                        clean_fields(element, origin_url, doc_key, event_sites),
                        key,
                        origin_url,
                        enrich=enrich,
                    )
                    for element in child
                ]
                cleaned[key] = dedup_items(items)
            else:
                cleaned[key] = clean_fields(child, origin_url, doc_key, event_sites)
        return cleaned

    raise TypeError(f"Unsupported JSON value: {type(value).__name__}")


_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")


def convert_timestamps(value: JSONValue) -> Any:
    """Copy of ``value`` with ISO-8601 datetime strings turned into datetimes."""
    if isinstance(value, str) and _ISO_DATETIME.match(value):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, list):
        return [convert_timestamps(v) for v in value]
    if isinstance(value, dict):
        return {k: convert_timestamps(v) for k, v in value.items()}
    return value


# ---------------------------------------------------------------------------
# Dedup
# ---------------------------------------------------------------------------


def dedup_key(item: JSONValue) -> str:
    if not isinstance(item, dict):
        return ""
    return _DEDUP_SEPARATOR.join(
        f"{field}:{item[field]}" for field in DEDUP_FIELDS if field in item
    )


def dedup_items(items: list, existing: Iterable = ()) -> list:
    """Drop repeats within ``items`` and against ``existing``, keeping input order.

    Items without any dedup field have an empty key and are always kept.
    """
    seen = {key for key in map(dedup_key, existing) if key}
    kept = []
    for item in items:
        key = dedup_key(item)
        if key:
            if key in seen:
                continue
            seen.add(key)
        kept.append(item)
    return kept


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_document(
    existing: dict | None,
    normalized: dict,
    origin_url: str,
    now: datetime,
) -> dict:
    """Merge normalized capture data into a stored document.

    Arrays are append-only: stored items keep their order and new items not
    already present are added after them. A stored array is never replaced
    by a non-array value; any other value is overwritten.
    """
    if existing is None:
        return {"data": dict(normalized), "originUrl": origin_url, "updatedAt": now}

    merged = copy.deepcopy(existing)
    data = merged.get("data")
    if not isinstance(data, dict):
        data = {}
    merged["data"] = data

    for key, value in normalized.items():
        current = data.get(key)
        if isinstance(value, list) and isinstance(current, list):
            added = dedup_items(value, existing=current)
            data[key] = current + added
            logger.debug(f"Appended {len(added)} of {len(value)} items to '{key}'")
        elif isinstance(current, list):
            logger.warning(
                f"Keeping stored items of '{key}': incoming {type(value).__name__} is not a list"
            )
        else:
            data[key] = value

    merged["originUrl"] = origin_url
    merged["updatedAt"] = now
    return merged
