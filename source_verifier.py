import logging
from typing import List, Optional

from ai_client import complete
from models import DATA_SOURCES
from policies import CorrectionPolicy

logger = logging.getLogger("data-source-verifier")

AGREEMENT = "CORRECT"

SYSTEM_PROMPT = """You are a data source verifier. You verify if the detected data source is correct for a user's intent.

Available data sources: {sources}

RULES:
- "company website", "our company", "our mission", "our vision", "company's mission" -> ALWAYS "companies" (NOT products)
- "company website with products page" -> "companies" (the website is ABOUT the company)
- Standalone "products" or "show me products" -> "products"
- "products for businesses" (standalone) -> "products"

Your job:
- If the detected source is CORRECT, respond with just: "CORRECT"
- If the detected source is WRONG, respond with just the correct source name (one word): {quoted}
- Be very brief - maximum 1 word or 1 short sentence
- Only correct if it's clearly wrong"""


class SourceVerdictPolicy(CorrectionPolicy):
    """Maps the verifier's free-text verdict onto one known collection."""

    name = "source-verdict"

    def __init__(self, detected: str, available: Optional[List[str]] = None):
        self.detected = detected
        self.available = list(available or DATA_SOURCES)

    def apply(self, proposal: str, request: str, log: logging.Logger) -> str:
        text = (proposal or "").strip()
        if AGREEMENT in text.upper() or text.lower() == self.detected.lower():
            return self.detected
        lowered = text.lower()
        for source in self.available:
            if source.lower() in lowered:
                log.info("AI corrected data source: %s -> %s", self.detected, source)
                return source
        log.warning('Could not parse verifier response "%s", using original: %s', text, self.detected)
        return self.detected


def verify_data_source(detected: str, intent: str, available: Optional[List[str]] = None,
                       provider: str = "openrouter", log: logging.Logger = logger) -> str:
    """Ask the model for a second opinion on the collection. Any failure keeps ``detected``."""
    available = list(available or DATA_SOURCES)
    system = SYSTEM_PROMPT.format(
        sources=", ".join(available),
        quoted=", ".join(f'"{s}"' for s in available),
    )
    prompt = (
        f'Detected data source: "{detected}"\n'
        f"Available sources: {', '.join(available)}\n"
        f'User intent: "{intent}"\n\n'
        f'Is "{detected}" correct? Respond with "{AGREEMENT}" if yes, or the correct source name if no.'
    )
    try:
        text = complete("verify", prompt, provider=provider, system=system, temperature=0.1, log=log)
    except Exception:
        log.exception("Error verifying data source, using detected source")
        return detected
    return SourceVerdictPolicy(detected, available)(text, intent, log)
