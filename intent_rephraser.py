import logging

from ai_client import complete, strip_code_fences

logger = logging.getLogger("intent-rephraser")

SYSTEM_PROMPT = """You are an intent rephraser. Your job is to take a user's casual or informal request and rephrase it into a clear, structured, professional format that will be used to generate a website.

Rules:
- Keep the core meaning and requirements exactly the same
- Make it clear and specific
- Add any implied requirements (like "amazing design", "proper filtering", "responsive layout") if not explicitly mentioned
- Ensure it's well-structured and easy for an AI to understand
- Return ONLY the rephrased intent, no explanations, no markdown, no backticks
- Keep it concise but complete"""


def rephrase_intent(intent: str, provider: str = "openrouter", log: logging.Logger = logger) -> str:
    """Restate the request more clearly. Returns the original text on any failure."""
    prompt = (
        f'User\'s original intent: "{intent}"\n\n'
        "Rephrase this into a clear, structured format that preserves all requirements and makes it "
        "easy for an AI website generator to understand. Return ONLY the rephrased intent."
    )
    try:
        text = complete("rephrase", prompt, provider=provider, system=SYSTEM_PROMPT, temperature=0.3, log=log)
    except Exception:
        log.exception("Error rephrasing intent, using original")
        return intent
    rephrased = strip_code_fences(text)
    if not rephrased:
        log.warning("Rephraser returned no text, using original intent")
        return intent
    return rephrased
