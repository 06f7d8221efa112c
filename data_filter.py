import json
import logging
import os
from typing import Any, Dict, List, Optional

from models import DATA_SOURCES, DataItem

logger = logging.getLogger("data-filter")

DEFAULT_SOURCE = "movies"
DEFAULT_LIMIT = 100
MAX_LIMIT = 500
DATA_FILE = "data.json"

# Keys every collection consumes before the generic pass.
RESERVED_KEYS = {"year", "genre", "location", "category", "limit"}
# Keys a collection-specific branch already applied.
HANDLED_KEYS = {
    "companies": {"industry"},
    "products": {"personas", "business"},
}

COMPANY_PHRASES = (
    "company website", "business website", "our company", "our business",
    "company's mission", "company's vision", "our mission", "our vision",
    "our services", "company's services",
)


def _has(text: str, *words: str) -> bool:
    return any(w in text for w in words)


def detect_data_source(intent: str) -> str:
    """Pick a collection from keywords. Rules are checked in order; the first hit wins."""
    text = (intent or "").lower()

    if _has(text, "movie", "film", "cinema") or ("action" in text and "genre" in text):
        return "movies"

    if _has(text, "testimonial", "customer feedback", "customer review") or "review" in text:
        return "testimonials"

    if _has(text, "actor", "actress", "movie star"):
        return "actors"

    if _has(text, "director", "filmmaker", "directed by"):
        return "directors"

    if _has(text, *COMPANY_PHRASES):
        return "companies"

    company_word = _has(text, "company", "business", "corporate")
    if company_word and _has(text, "mission", "vision", "about", "our"):
        return "companies"

    if _has(text, " product", "products"):
        if _has(text, "company", "business"):
            if _has(text, "products for", "show me products"):
                return "products"
            return "companies"
        return "products"

    if company_word or _has(text, "mission", "vision", "about us"):
        return "companies"

    if _has(text, "trial", "sign up", "software", "app", "service", "tool"):
        return "products"

    return DEFAULT_SOURCE


def clamp_limit(value: Any) -> Optional[int]:
    """Coerce a requested limit into [1, MAX_LIMIT]; None when no usable number was given."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return None
    return max(1, min(limit, MAX_LIMIT))


def load_data(data_source: str, data_root: str, log: logging.Logger = logger) -> List[DataItem]:
    path = os.path.join(data_root, f"{data_source}.json")
    if not os.path.exists(path):
        fallback = os.path.join(data_root, f"{DEFAULT_SOURCE}.json")
        log.warning("Data file not found: %s, falling back to %s", path, fallback)
        if not os.path.exists(fallback):
            return []
        path = fallback
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else []


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _contains(item: DataItem, key: str, needle: str) -> bool:
    return needle.lower() in _as_text(item.get(key)).lower()


def _year_of(item: DataItem) -> Optional[int]:
    raw = str(item.get("Year") or item.get("year") or "")[:4]
    return int(raw) if raw.isdigit() else None


def _number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _narrow(items: List[DataItem], label: str, predicate, log: logging.Logger) -> List[DataItem]:
    before = len(items)
    items = [item for item in items if predicate(item)]
    log.info("%s: %d -> %d", label, before, len(items))
    return items


def filter_data(data_source: str, filters: Dict[str, Any], data_root: str, log: logging.Logger = logger) -> List[DataItem]:
    """Load a collection and narrow it by the declared filters, then truncate to the limit.

    When the filters leave nothing but the collection has records, the
    filters are dropped and the first ``limit`` records are returned instead.
    """
    filters = dict(filters or {})
    all_data = load_data(data_source, data_root, log=log)
    log.info("Filtering %s data. Total records: %d", data_source, len(all_data))
    log.info("Applied filters: %s", json.dumps(filters, default=str))

    year = _number(filters.get("year"))
    genre = _text(filters.get("genre"))
    location = _text(filters.get("location"))
    category = _text(filters.get("category"))
    limit = clamp_limit(filters.get("limit"))

    filtered = all_data
    if data_source == "movies":
        if year:
            filtered = _narrow(filtered, f"Year filter ({year})", lambda i: _year_of(i) == year, log)
        if genre:
            filtered = _narrow(filtered, f"Genre filter ({genre})",
                               lambda i: genre.lower() in _as_text(i.get("Genre") or i.get("genre")).lower(), log)
    elif data_source == "companies":
        if location:
            filtered = _narrow(filtered, f"Location filter ({location})", lambda i: _contains(i, "location", location), log)
        industry = _text(filters.get("industry"))
        if industry:
            filtered = _narrow(filtered, f"Industry filter ({industry})", lambda i: _contains(i, "industry", industry), log)
    elif data_source == "products":
        if category:
            filtered = _narrow(filtered, f"Category filter ({category})", lambda i: _contains(i, "category", category), log)
        personas = filters.get("personas")
        if personas:
            needle = _as_text(personas)
            filtered = _narrow(filtered, f"Personas filter ({needle})", lambda i: _contains(i, "personas", needle), log)
        if filters.get("business") or "business" in _as_text(personas).lower():
            def serves_business(item):
                text = " ".join([_as_text(item.get("personas")), _as_text(item.get("useCases"))])
                return "business" in text.lower()
            filtered = _narrow(filtered, "Business filter", serves_business, log)
    elif data_source in ("actors", "directors"):
        if location:
            filtered = _narrow(filtered, f"Location filter ({location})", lambda i: _contains(i, "location", location), log)

    skip = RESERVED_KEYS | HANDLED_KEYS.get(data_source, set())
    for key, value in filters.items():
        if key in skip or value is None:
            continue
        if isinstance(value, str):
            filtered = _narrow(filtered, f"Filter {key}={value!r}", lambda i, k=key, v=value: _contains(i, k, v), log)
        else:
            filtered = _narrow(filtered, f"Filter {key}={value!r}", lambda i, k=key, v=value: i.get(k) == v, log)

    if limit and len(filtered) > limit:
        log.info("Limit filter (%d): %d -> %d", limit, len(filtered), limit)
        filtered = filtered[:limit]

    log.info("Final filtered count: %d %s records", len(filtered), data_source)

    if not filtered and all_data:
        log.warning("Filtering resulted in 0 records! Returning up to %d unfiltered records instead.", limit or DEFAULT_LIMIT)
        log.warning("Filters may be too restrictive: %s", json.dumps(filters, default=str))
        return list(all_data[:limit or DEFAULT_LIMIT])

    return filtered


def write_data_snapshot(project_dir: str, items: List[DataItem]) -> str:
    path = os.path.join(project_dir, DATA_FILE)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(items, f, indent=2, ensure_ascii=False)
    return path


def read_data_snapshot(project_dir: str) -> List[DataItem]:
    path = os.path.join(project_dir, DATA_FILE)
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else []


def is_known_source(name: Any) -> bool:
    return isinstance(name, str) and name in DATA_SOURCES
