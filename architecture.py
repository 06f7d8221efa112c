import json
import logging
import re
from typing import Any, Dict, List, Optional

from ai_client import complete, extract_json
from models import ArchitecturePlan, DataItem, PlannedFile
from policies import CorrectionPolicy

logger = logging.getLogger("architecture-planner")

INDEX_PAGE = PlannedFile(file_name="index.html", purpose="Home/landing page listing content with search and filters", kind="page")
APP_SCRIPT = PlannedFile(file_name="app.js", purpose="Client-side interactions, search, filters, and data rendering", kind="script")

# keyword triggers -> page, checked against the user's original request
PAGE_KEYWORDS = [
    (("about", "mission", "vision"), "about.html", "About page with mission and vision"),
    (("product", "service", "browse"), "browse.html", "Browse page for products/services"),
    (("detail", "individual"), "details.html", "Detail pages for individual items"),
    (("contact",), "contact.html", "Contact page with location and email"),
]

KINDS = {"page", "script", "asset", "style", "data"}
FILE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*\.(html|js)$")

SYSTEM_PROMPT = """You are designing a small static website architecture.
Return ONLY compact JSON matching this schema, no markdown, no backticks, no explanation:
{
  "files": [
    {
      "fileName": "index.html",
      "purpose": "Landing page listing content with filters",
      "kind": "page" | "script"
    }
  ]
}

STRICT RULES:
- You MUST include "index.html" (home/landing page) and "app.js" (shared JavaScript) - these are REQUIRED
- DO NOT create a separate "styles.css" file - all styles are embedded in HTML using Tailwind CSS

SIZE THE SITE TO THE REQUEST:
- SIMPLE request (no page types and no business vocabulary, e.g. "show me action movies"): ONLY ["index.html", "app.js"]
- ONE page type named (e.g. "movies with a contact page"): that page plus index.html and app.js
- MULTI-PAGE or BUSINESS request ("portfolio", "company", "business", "website", or two or more of
  about/contact/products/services/mission/vision): create EVERY page the request implies:
  * "about page", "mission", "vision", "about us" -> "about.html"
  * "products page", "services page", "browse", "products", "services" -> "browse.html"
  * "detail pages", "individual product", "each product", "product details" -> "details.html"
  * "contact page", "contact information", "contact form", "email address" -> "contact.html"

- Pages MUST link to each other using real file paths (href="about.html"), NOT hash links
- NEVER create JSON, CSV, XML or data files - the backend provides data.json automatically
- NEVER create image files, config files, or any non-code files
- File names must be lowercase with dashes (e.g., "movie-details.html", "about.html")
- index.html should have a search box with id="search-input" and filters
- All pages should have a navigation bar linking to other existing pages only

Examples:
- "show me movies": ["index.html", "app.js"]
- "company website with about, products, details, contact": ["index.html", "about.html", "browse.html", "details.html", "contact.html", "app.js"]
- "multi-page website with about and contact": ["index.html", "about.html", "contact.html", "app.js"]"""


def sample_records(items: List[DataItem], count: int = 30) -> List[Dict[str, Any]]:
    """Small id/title/year-style digest of the data for the planning prompt."""
    out = []
    for item in items[:count]:
        sample = {"id": item.get("id") or item.get("imdbID") or item.get("name") or "unknown"}
        for key, candidates in (
            ("title", ("title", "Title")),
            ("name", ("name",)),
            ("year", ("year", "Year")),
            ("genre", ("genre", "Genre")),
            ("rating", ("rating", "imdbRating")),
            ("location", ("location",)),
            ("category", ("category",)),
        ):
            for c in candidates:
                if item.get(c):
                    sample[key] = item[c]
                    break
        out.append(sample)
    return out


def minimal_plan() -> ArchitecturePlan:
    return ArchitecturePlan(files=[INDEX_PAGE.model_copy(), APP_SCRIPT.model_copy()])


def requested_pages(request: str) -> List[PlannedFile]:
    text = (request or "").lower()
    return [
        PlannedFile(file_name=name, purpose=purpose, kind="page")
        for words, name, purpose in PAGE_KEYWORDS
        if any(w in text for w in words)
    ]


class ArchitecturePolicy(CorrectionPolicy):
    """Turns the model's file list into a plan that always has one index.html and one app.js."""

    name = "architecture"

    def apply(self, proposal: List[Any], request: str, log: logging.Logger) -> ArchitecturePlan:
        files: List[PlannedFile] = []
        seen = set()
        for raw in proposal or []:
            if not isinstance(raw, dict):
                continue
            name = str(raw.get("fileName") or "").strip().lower()
            if not FILE_NAME_RE.match(name):
                if name:
                    log.info('Dropping planned file "%s" (only .html/.js pages and scripts are generated)', name)
                continue
            if name in seen:
                continue
            seen.add(name)
            kind = raw.get("kind")
            if kind not in KINDS:
                kind = "page" if name.endswith(".html") else "script"
            files.append(PlannedFile(file_name=name, purpose=str(raw.get("purpose") or "Generated file"), kind=kind))

        missing = [p for p in requested_pages(request) if p.file_name not in seen]
        if missing:
            log.warning("User requested pages the model did not plan: %s. Adding them.",
                        ", ".join(p.file_name for p in missing))
            for page in missing:
                files.append(page)
                seen.add(page.file_name)

        if INDEX_PAGE.file_name not in seen:
            files.insert(0, INDEX_PAGE.model_copy())
        if APP_SCRIPT.file_name not in seen:
            files.append(APP_SCRIPT.model_copy())
        return ArchitecturePlan(files=files)


architecture_policy = ArchitecturePolicy()


def plan_architecture(intent: str, data: List[DataItem], data_source: str, provider: str = "openrouter",
                      original_intent: Optional[str] = None, log: logging.Logger = logger) -> ArchitecturePlan:
    """Ask the model for a file list, then let ArchitecturePolicy re-check it against the user's own words."""
    prompt = (
        f"User intent: {intent}\n"
        f"Data source: {data_source}\n"
        "Here is a small sample of the filtered data (JSON):\n"
        f"{json.dumps(sample_records(data), default=str)[:2000]}\n\n"
        "Create every page the user intent asks for, and nothing the intent does not imply.\n"
        "Return ONLY the JSON architecture object."
    )
    try:
        text = complete("architecture", prompt, provider=provider, system=SYSTEM_PROMPT, temperature=0.3, log=log)
        log.info("Raw architecture response (first 500 chars): %s", text[:500])
        parsed = extract_json(text, kind="object")
        if not isinstance(parsed, dict) or not isinstance(parsed.get("files"), list):
            raise ValueError("Invalid architecture response: missing files array")
    except Exception as e:
        log.error("Error planning architecture: %s", e)
        log.error("Falling back to minimal architecture (2 files)")
        return minimal_plan()

    log.info("AI planned %d files: %s", len(parsed["files"]),
             ", ".join(str(f.get("fileName")) for f in parsed["files"] if isinstance(f, dict)))
    plan = architecture_policy(parsed["files"], original_intent or intent, log)
    log.info("Final architecture: %d files - %s", len(plan.files), ", ".join(plan.file_names))
    return plan
