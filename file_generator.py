import json
import logging
import re
from typing import Any, Dict, List, Optional

from ai_client import complete, strip_code_fences
from data_filter import DATA_FILE
from models import DataItem, WebsiteDetails
from policies import CorrectionPolicy

logger = logging.getLogger("file-generator")

DEFAULT_SITE_NAME = "SleekCMS Website"
MAX_RECORDS = 50
MAX_STRING = 200
MAX_ARRAY = 5

# first matching keyword wins
COLOR_SCHEMES = [
    (("dark mode", "dark theme", "dark"), "dark theme: slate-900/slate-800 backgrounds, white text, cyan (#06b6d4) accents"),
    (("blue", "ocean", "sky"), "blue (#2563eb), white, slate gray"),
    (("green", "nature", "eco", "organic"), "emerald green (#059669), white, stone gray"),
    (("red", "crimson"), "red (#dc2626), white, black, gray"),
    (("purple", "violet"), "purple (#7c3aed), white, gray"),
    (("pink", "rose"), "pink (#db2777), white, gray"),
    (("gold", "luxury", "elegant"), "gold (#d97706), black, white"),
    (("orange",), "orange (#f97316), white, black, gray"),
]
DEFAULT_COLOR_SCHEME = "orange (#f97316), white, black, gray"

SYSTEM_PROMPT = """You generate exactly ONE file for a static website called "{name}".
You MUST output ONLY the raw file contents with no surrounding markdown, no backticks, and no commentary.
Do not include explanations, and do not mention that you are an AI.
The file will be saved directly using the content you return.
ALWAYS use "{name}" as the website name/title, never use any other name."""


class FileGenerationError(RuntimeError):
    """The model produced no usable content for a planned file."""


def trim_records(items: List[DataItem], count: int = MAX_RECORDS) -> List[Dict[str, Any]]:
    """Shorten records for the prompt: long strings cut at 200 chars, arrays at 5 elements."""
    trimmed = []
    for item in items[:count]:
        out = {}
        for key, value in item.items():
            if isinstance(value, str) and len(value) > MAX_STRING:
                out[key] = value[:MAX_STRING] + "..."
            elif isinstance(value, list):
                out[key] = value[:MAX_ARRAY]
            else:
                out[key] = value
        trimmed.append(out)
    return trimmed


def color_scheme_for(intent: Optional[str]) -> str:
    text = (intent or "").lower()
    for words, scheme in COLOR_SCHEMES:
        if any(w in text for w in words):
            return scheme
    return DEFAULT_COLOR_SCHEME


_LOCAL_LINK = re.compile(
    r"<a\b[^>]*?\bhref\s*=\s*[\"'](?:\./)?([A-Za-z0-9._-]+\.html)(?:[?#][^\"']*)?[\"'][^>]*>.*?</a\s*>",
    re.I | re.S,
)


class NavigationPolicy(CorrectionPolicy):
    """Removes anchors that point at local pages the site will not have."""

    name = "navigation"

    def __init__(self, existing_pages: List[str]):
        self.allowed = {p.lower() for p in existing_pages}

    def apply(self, proposal: str, request: str, log: logging.Logger) -> str:
        removed = []

        def _drop(m):
            if m.group(1).lower() in self.allowed:
                return m.group(0)
            removed.append(m.group(1))
            return ""

        cleaned = _LOCAL_LINK.sub(_drop, proposal)
        if removed:
            log.warning("Removed links to non-existent pages: %s", ", ".join(sorted(set(removed))))
        return cleaned


def _branding_block(details: Optional[WebsiteDetails]) -> str:
    if details is None or details.is_empty():
        return ""
    lines = ["BRANDING (use consistently on every page):"]
    if details.website_name:
        lines.append(f"- Website name: {details.website_name}")
    if details.tagline:
        lines.append(f"- Tagline: {details.tagline}")
    if details.description:
        lines.append(f"- Description: {details.description}")
    return "\n".join(lines) + "\n\n"


def _html_prompt(file_name, purpose, data_source, data_json, name, colors, pages, branding):
    others = [p for p in pages if p != file_name]
    nav = (
        f"  * The ONLY pages that exist are: {', '.join(pages)}\n"
        f"  * This page may link to: {', '.join(others) if others else '(no other pages)'}\n"
        "  * NEVER link to any other .html file - it will not exist\n"
    )
    return f"""You are generating the HTML file "{file_name}" for "{name}".
Purpose: {purpose}
Data source: {data_source}

{branding}REQUIREMENTS:
- Website name/title MUST be "{name}"
- Generate ONLY this one HTML file with ALL styles embedded using Tailwind CSS
- Use Tailwind CSS via CDN: <script src="https://cdn.tailwindcss.com"></script> in the <head>
- DO NOT link to any external CSS file (no <link rel="stylesheet"> tags)
- Include a <div id="content-list"> container where content will be rendered
- NAVIGATION MUST use actual file links, NOT hash-based routing:
{nav}- Include <script src="./app.js" defer></script> at the end of <body>
- Do NOT embed hard-coded data arrays in HTML - data is loaded from "./{DATA_FILE}" by app.js

DESIGN CONSISTENCY:
- ALL pages share the SAME header/navigation, spacing, typography and button styles
- Color scheme: {colors}
- Constrain content width: container mx-auto px-4 or max-w-7xl mx-auto
- Cards in a responsive grid: grid grid-cols-1 sm:grid-cols-2 md:grid-cols-3 lg:grid-cols-4 gap-6
- Each card: rounded-lg shadow-lg p-6, equal heights, never full-width boxes

SEARCH AND FILTERS (index.html or browse.html):
- Search box: <input type="text" id="search-input" placeholder="Search..." />
- Filter dropdowns with ids like id="genre-filter", id="category-filter", id="location-filter"
- Apply button: <button id="apply-filters">Apply Filters</button>
- Every interactive element has a unique id

Here is the filtered data (JSON) for context only (DO NOT embed it in the HTML):
{data_json}

Now output ONLY the full HTML document for "{file_name}"."""


def _script_prompt(file_name, purpose, data_source, data_json, name, pages):
    details_hint = (
        '- Cards may link to "details.html?id=<item id>"\n' if "details.html" in pages
        else "- Do NOT link cards to any detail page\n"
    )
    return f"""You are generating the JavaScript file "{file_name}" for "{name}".
Purpose: {purpose}
Data source: {data_source}

REQUIREMENTS:
- Generate ONLY this one JS file, plain DOM APIs, no frameworks
- Do NOT hard-code data - ALWAYS fetch("./{DATA_FILE}") and use that data
- Store loaded data: let allData = []; let filteredData = [];
- Render into the element with id="content-list" if it exists on the page

SEARCH (MUST IMPLEMENT):
- const searchInput = document.getElementById("search-input");
- searchInput.addEventListener("input", handleSearch) - real time, case-insensitive substring match over all text fields

FILTERS (MUST IMPLEMENT):
- Listen to every filter dropdown (genre-filter, category-filter, location-filter, ...) and the "apply-filters" button
- Filters combine with each other and with the search text (AND)
- Clearing the filters shows all data again

RENDERING:
- function renderContent(data) clears the container and renders every item as a card
- Each card displays EVERY field of the item; arrays joined, nested objects flattened - nothing hidden
{details_hint}- Pages in this site: {', '.join(pages)}

INITIALIZATION:
- document.addEventListener("DOMContentLoaded", ...) -> load data -> attach listeners -> initial render
- On fetch errors log to console and show an error message in the UI
- Guard every getElementById lookup: not every page has every element

DATA STRUCTURE (this is what {DATA_FILE} contains):
{data_json}

Now output ONLY the JavaScript contents for "{file_name}"."""


def _other_prompt(file_name, purpose, data_json):
    return f"""You are generating the file "{file_name}" for a static website.
Purpose: {purpose}

Rules:
- Generate ONLY this one file.
- Use relative paths when linking local files (e.g. "./app.js").

Here is the filtered data (JSON) for context:
{data_json}

Now output ONLY the content of "{file_name}"."""


def generate_file(file_name: str, purpose: str, data: List[DataItem], data_source: str,
                  provider: str = "openrouter", intent: Optional[str] = None,
                  existing_pages: Optional[List[str]] = None, details: Optional[WebsiteDetails] = None,
                  log: logging.Logger = logger) -> str:
    """Produce the content of one site file. Raises FileGenerationError on an empty reply."""
    name = (details.website_name if details and details.website_name else None) or DEFAULT_SITE_NAME
    data_json = json.dumps(trim_records(data), default=str)
    pages = list(existing_pages) if existing_pages else ["index.html"]

    if file_name.endswith(".html"):
        prompt = _html_prompt(file_name, purpose, data_source, data_json, name,
                              color_scheme_for(intent), pages, _branding_block(details))
    elif file_name.endswith(".js"):
        prompt = _script_prompt(file_name, purpose, data_source, data_json, name, pages)
    else:
        prompt = _other_prompt(file_name, purpose, data_json)

    text = complete("file", prompt, provider=provider, system=SYSTEM_PROMPT.format(name=name), temperature=0.4, log=log)
    code = strip_code_fences(text)
    if not code:
        raise FileGenerationError(f'Model did not return text content for "{file_name}".')

    if file_name.endswith(".html") and existing_pages is not None:
        code = NavigationPolicy(existing_pages)(code, intent or "", log)
    return code
