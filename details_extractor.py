import logging

from ai_client import complete, extract_json
from models import WebsiteDetails

logger = logging.getLogger("website-details-extractor")

SYSTEM_PROMPT = """You extract website details from user intent.
Return ONLY compact JSON matching this schema, no markdown, no backticks, no explanation:
{
  "websiteName": "string or null",
  "tagline": "string or null",
  "description": "string or null"
}

Extract:
- websiteName: The name of the website/company/brand if mentioned (e.g., "TechCorp", "MovieHub", "My Portfolio")
- tagline: A short tagline or slogan if mentioned
- description: A brief description of what the website is about

If not mentioned, return null for that field.
Return ONLY the JSON object."""


def _clean(value):
    if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
        return value.strip()
    return None


def extract_website_details(intent: str, provider: str = "openrouter", log: logging.Logger = logger) -> WebsiteDetails:
    prompt = f'User intent: "{intent}"\n\nExtract website details from this intent. Return ONLY the JSON object.'
    try:
        text = complete("details", prompt, provider=provider, system=SYSTEM_PROMPT, temperature=0.2, log=log)
        parsed = extract_json(text, kind="object")
    except Exception:
        log.exception("Error extracting website details; continuing unbranded")
        return WebsiteDetails()
    if not isinstance(parsed, dict):
        return WebsiteDetails()
    return WebsiteDetails(
        website_name=_clean(parsed.get("websiteName")),
        tagline=_clean(parsed.get("tagline")),
        description=_clean(parsed.get("description")),
    )
