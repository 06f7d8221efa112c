import json
import logging
import re
from typing import Any, Dict

from ai_client import complete, extract_json
from data_filter import DEFAULT_LIMIT, MAX_LIMIT, detect_data_source, is_known_source
from models import IntentAnalysis
from policies import CorrectionPolicy

logger = logging.getLogger("intent-analyzer")

GENRES = ["action", "sci-fi", "science fiction", "drama", "comedy", "horror"]
KNOWN_CITIES = ["Delhi", "Mumbai", "Bangalore", "Pune", "Hyderabad", "Chennai", "Kolkata",
                "New York", "San Francisco", "London", "Paris"]
LOCATION_PREPOSITIONS = ("in ", "from ", "located", "at ")

YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
ALL_RE = re.compile(r"\b(all|show all|all data|all services)\b")
SINGULAR_RE = re.compile(r"\b(one|single|just one)\b")
# Prepositions match in any case; the place itself must be capitalized.
LOCATION_RE = re.compile(r"\b(?i:located in|in|from|at)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?(?:\s*,\s*[A-Z][a-z]+)?)")
CITY_RE = re.compile(r"\b(%s)\b" % "|".join(KNOWN_CITIES), re.I)
NOT_PLACES = {"the", "a", "an", "my", "our", "your", "this", "that", "all", "any", "each", "every"}

SYSTEM_PROMPT = """You analyze a user's request for a website and return STRICT JSON filters.
Always respond with ONLY a compact JSON object, no markdown, no backticks, no explanation.
The JSON schema is:
{
  "dataSource": "movies" | "companies" | "products" | "actors" | "directors" | "testimonials",
  "filters": {
    "year"?: number,           // For movies
    "genre"?: string,          // For movies
    "location"?: string,       // For companies, actors, directors (e.g., "Delhi, India")
    "category"?: string,       // For products
    "personas"?: string,       // For products (e.g., "Business Owners", "IT Managers")
    ...other relevant filters
  },
  "limit": number
}

Available data sources and their use cases:
- "movies": movie/film content. Fields: year, genre, rating, director, actors, plot
- "companies": company/business information. Fields: name, industry, location, mission, vision, people
  **"company website" = companies (even if it has a products page - the website is ABOUT the company)**
- "products": products/services/tools/apps. Fields: name, category, personas, useCases, price, trialDays
  **Only use "products" for standalone product listings, NOT for company websites**
- "actors": actor/actress information. Fields: name, gender, location, about, bestFilms
- "directors": director/filmmaker information. Fields: name, location, bestFilms, about
- "testimonials": reviews/testimonials/feedback. Fields: name, role, company, location, rating, text

DATA SOURCE SELECTION RULES (CHECK IN THIS ORDER):
1. "movie", "movies", "film", "films", "cinema", "action movies", "movie genre" -> "movies"
2. "company website", "our company", "our mission", "our vision", "our services", "company's mission",
   "mission", "vision", "about us", "our business" -> "companies" (NOT products).
   "Company website with products page" = "companies"
3. "product" or "products" with no company/business context -> "products"
4. "products for businesses" or "business products" (standalone listing) -> "products" with personas "Business Owners"
5. "company" or "business" without "product" -> "companies"
6. "trial", "sign up", "software", "app", "service" with no company website context -> "products"
7. "actor", "actress", "movie star" -> "actors"
8. "director", "filmmaker" -> "directors"
9. "testimonial", "review", "feedback" -> "testimonials"
10. DEFAULT when unclear: "movies"

Filter rules:
- "year": single 4-digit year if specified (movies only)
- "genre": single lowercase word like "action", "drama", "comedy" (movies only)
- "location": ONLY if the user explicitly names a place with "in", "from", "located", or a city name
- "category": for products if mentioned (e.g., "Software", "Hardware", "Mobile App")
- "personas": for products if mentioned (e.g., "Business Owners", "IT Managers", "Students")
- "industry": if mentioned for any data source
- "limit":
  * "all", "show all", "all companies", "all products" -> 100 (or higher)
  * "small", "few", "top 10", "just a few" -> 20-50
  * quantity not specified -> ALWAYS 100
  * NEVER use 1 unless the user explicitly says "one", "single", or "just one"

Detected source hint: {detected} (but choose the correct one based on the rules above)
Never include extra fields or comments.
"""


class AnalysisPolicy(CorrectionPolicy):
    """Normalizes the analyzer's JSON regardless of what the model said."""

    name = "intent-analysis"

    def apply(self, proposal: Dict[str, Any], request: str, log: logging.Logger) -> IntentAnalysis:
        text = request.lower()
        filters = proposal.get("filters")
        filters = dict(filters) if isinstance(filters, dict) else {}

        limit = proposal.get("limit")
        try:
            limit = 0 if isinstance(limit, bool) else int(limit)
        except (TypeError, ValueError, OverflowError):
            limit = 0
        if not 0 < limit <= MAX_LIMIT:
            limit = DEFAULT_LIMIT

        if ALL_RE.search(text) and limit < 50:
            log.warning('User wants "all" data but limit is %d. Increasing to %d.', limit, DEFAULT_LIMIT)
            limit = DEFAULT_LIMIT

        if limit == 1 and not SINGULAR_RE.search(text):
            log.warning('Limit is 1 but user did not ask for "one". Increasing to %d.', DEFAULT_LIMIT)
            limit = DEFAULT_LIMIT

        source = proposal.get("dataSource")
        if not is_known_source(source):
            fallback = detect_data_source(request)
            log.warning("Model returned unknown data source %r, using detected %s", source, fallback)
            source = fallback

        location = filters.get("location")
        if location:
            value = str(location).lower()
            if value not in text and not any(p in text for p in LOCATION_PREPOSITIONS):
                log.warning('Location filter "%s" extracted but not mentioned in intent. Removing it.', location)
                del filters["location"]

        return IntentAnalysis(data_source=source, filters=filters, limit=limit)


analysis_policy = AnalysisPolicy()


def heuristic_analysis(intent: str) -> IntentAnalysis:
    """Keyword-only analysis used when the model call or its JSON fails."""
    lowered = (intent or "").lower()
    filters: Dict[str, Any] = {}

    m = YEAR_RE.search(lowered)
    if m:
        filters["year"] = int(m.group(0))

    for g in GENRES:
        if g in lowered:
            filters["genre"] = "sci-fi" if g == "science fiction" else g
            break

    location = None
    for m in LOCATION_RE.finditer(intent or ""):
        candidate = m.group(1).strip()
        if candidate.split()[0].lower() not in NOT_PLACES:
            location = candidate
            break
    if location is None:
        m = CITY_RE.search(intent or "")
        if m:
            location = m.group(1)
    if location:
        filters["location"] = location

    return IntentAnalysis(data_source=detect_data_source(intent), filters=filters, limit=DEFAULT_LIMIT)


def analyze_intent(intent: str, provider: str = "openrouter", log: logging.Logger = logger) -> IntentAnalysis:
    detected = detect_data_source(intent)
    log.info('Detected data source: %s from intent: "%s"', detected, (intent or "")[:100])

    prompt = (
        f'User request: "{intent}"\n\n'
        "Analyze the request carefully:\n"
        '- If the user wants to see "products" (even "for businesses"), use dataSource: "products"\n'
        '- If the user wants company information (mission, vision, about), use dataSource: "companies"\n'
        "- Extract filters like location, category, personas based on what the user mentions\n"
        '- For "products for businesses", use dataSource: "products" with personas filter: "Business Owners"\n\n'
        "Return ONLY the JSON object as specified."
    )
    try:
        text = complete("analyze", prompt, provider=provider,
                        system=SYSTEM_PROMPT.replace("{detected}", detected), temperature=0.1, log=log)
        parsed = extract_json(text, kind="object")
        if not isinstance(parsed, dict):
            raise ValueError("analysis reply is not a JSON object")
    except Exception as e:
        log.warning("Intent analysis failed (%s); using keyword fallback", e)
        analysis = heuristic_analysis(intent)
        log.info("Fallback analysis: %s", json.dumps(analysis.to_wire()))
        return analysis

    analysis = analysis_policy(parsed, intent, log)
    log.info("Extracted filters: %s", json.dumps(analysis.filters, default=str))
    log.info("Data source: %s, Limit: %d", analysis.data_source, analysis.limit)
    return analysis
