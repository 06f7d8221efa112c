import json
import logging
import re
import threading
from typing import Any, Dict, List, Optional, Union

import anthropic
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import Settings, get_settings, mask_secret

logger = logging.getLogger("ai-client")

PROVIDERS = ("openrouter", "anthropic")

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

RETRYABLE_STATUS = {429, 500, 502, 503, 504}

# (REST ceiling, SDK ceiling) per pipeline step
TOKEN_BUDGETS = {
  "rephrase": (200, 256),
  "analyze": (200, 256),
  "verify": (50, 100),
  "details": (200, 256),
  "architecture": (800, 512),
  "file": (3000, 4000),
  "validate": (1500, 2000),
  "fix": (3000, 4000),
}

Message = Dict[str, Any]


class ConfigurationError(RuntimeError):
  """A backend was asked for but its credentials are not configured."""


class LLMRequestError(RuntimeError):

  def __init__(self, provider: str, status: Union[int, str, None], message: str):
    self.provider = provider
    self.status = status
    self.message = message
    super().__init__(f"{provider} API error ({status}): {message}")


def max_tokens_for(step: str, provider: str) -> int:
  rest, sdk = TOKEN_BUDGETS[step]
  return rest if provider == "openrouter" else sdk


_FENCE_LINE = re.compile(r"^```[\w-]*[ \t]*\n?", re.M)
_FENCE_TAIL = re.compile(r"\n?```[ \t]*$", re.M)


def strip_code_fences(text: str) -> str:
  """Remove markdown code fences the model wrapped around its reply."""
  text = (text or "").strip()
  if "```" in text:
    text = _FENCE_LINE.sub("", text)
    text = _FENCE_TAIL.sub("", text).strip()
  return text


def extract_json(text: str, kind: str = "object") -> Any:
  """Parse a JSON object (or array) out of a model reply.

  Tries, in order: the body of a ```json fenced block, the fence-stripped
  text, and the outermost {...} / [...] substring. Raises ValueError when
  none of them parse.
  """
  opener, closer = ("[", "]") if kind == "array" else ("{", "}")
  text = (text or "").strip()
  candidates = []
  if "```" in text:
    m = re.search(r"```(?:json)?\s*(\%s.*?\%s)\s*```" % (opener, closer), text, flags=re.S)
    if m:
      candidates.append(m.group(1))
    candidates.append(strip_code_fences(text))
  else:
    candidates.append(text)
  start, end = text.find(opener), text.rfind(closer)
  if start != -1 and end > start:
    candidates.append(text[start:end + 1])

  for candidate in candidates:
    try:
      return json.loads(candidate, strict=False)
    except json.JSONDecodeError:
      continue
  raise ValueError(f"No parseable JSON {kind} in model output: {text[:200]!r}")


def _message_text(message: Message) -> str:
  content = message.get("content")
  if isinstance(content, str):
    return content
  parts = [c.get("text", "") for c in content or [] if isinstance(c, dict) and c.get("type") == "text"]
  return "\n".join(parts)


def user_message(text: str) -> Message:
  return {"role": "user", "content": [{"type": "text", "text": text}]}


def _build_session() -> requests.Session:
  s = requests.Session()
  retry = Retry(
    total=2,
    connect=2,
    read=0,
    status=2,
    backoff_factor=1,
    status_forcelist=RETRYABLE_STATUS,
    allowed_methods=frozenset({"POST"}),
    raise_on_status=False,
  )
  adapter = HTTPAdapter(max_retries=retry)
  s.mount("https://", adapter)
  s.mount("http://", adapter)
  return s


class OpenRouterClient:
  """Chat completions over the OpenRouter REST API."""

  provider = "openrouter"

  def __init__(self, api_key: str, site_url: str = "", site_name: str = "", url: str = OPENROUTER_URL, timeout: float = 120.0):
    self.api_key = api_key
    self.url = url
    self.timeout = timeout
    self.headers = {
      "Authorization": f"Bearer {api_key}",
      "HTTP-Referer": site_url,
      "X-Title": site_name,
      "Content-Type": "application/json",
    }
    self.session = _build_session()

  def create(self, model: str, max_tokens: int, temperature: float, messages: List[Message], system: Optional[str] = None,
             log: logging.Logger = logger) -> str:
    chat = []
    if system:
      chat.append({"role": "system", "content": system})
    for msg in messages:
      text = _message_text(msg)
      if text:
        chat.append({"role": msg.get("role", "user"), "content": text})

    payload = {"model": model, "messages": chat, "max_tokens": max_tokens, "temperature": temperature}
    try:
      resp = self.session.post(self.url, headers=self.headers, json=payload, timeout=self.timeout)
    except requests.exceptions.RequestException as e:
      log.error("OpenRouter request failed: %s", e)
      raise LLMRequestError(self.provider, "network", str(e)) from e

    if not resp.ok:
      try:
        body = resp.json()
      except ValueError:
        body = {}
      err = body.get("error") if isinstance(body.get("error"), dict) else {}
      message = err.get("message") or body.get("message") or (resp.text or "Unknown error")[:500]
      status = err.get("code") or resp.status_code
      log.error("OpenRouter API error %s: %s", resp.status_code, message)
      raise LLMRequestError(self.provider, status, f"{message}. Check that OPENROUTER_API_KEY is correct.")

    data = resp.json()
    try:
      content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
      raise LLMRequestError(self.provider, resp.status_code, "Unexpected OpenRouter response format")
    if content is None:
      return ""
    return content if isinstance(content, str) else json.dumps(content)


class AnthropicClient:
  """Messages API through the vendor SDK."""

  provider = "anthropic"

  def __init__(self, api_key: str):
    self.client = anthropic.Anthropic(api_key=api_key)

  def create(self, model: str, max_tokens: int, temperature: float, messages: List[Message], system: Optional[str] = None,
             log: logging.Logger = logger) -> str:
    sdk_messages = []
    for msg in messages:
      content = msg.get("content")
      if isinstance(content, str):
        content = [{"type": "text", "text": content}]
      sdk_messages.append({"role": msg.get("role", "user"), "content": content})

    kwargs = {"model": model, "max_tokens": max_tokens, "temperature": temperature, "messages": sdk_messages}
    if system:
      kwargs["system"] = system
    try:
      response = self.client.messages.create(**kwargs)
    except anthropic.APIStatusError as e:
      log.error("Anthropic API error %s: %s", e.status_code, e.message)
      raise LLMRequestError(self.provider, e.status_code, e.message) from e
    except anthropic.APIError as e:
      log.error("Anthropic request failed: %s", e)
      raise LLMRequestError(self.provider, "network", str(e)) from e

    texts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
    return "\n".join(texts)


_client_cache: Dict[str, Any] = {}
_cache_lock = threading.Lock()


def get_client(provider: str = "openrouter", settings: Optional[Settings] = None):
  """Return the cached client for a backend, building it on first use."""
  if provider not in PROVIDERS:
    raise ValueError(f"Unknown model provider: {provider!r}")
  with _cache_lock:
    if provider in _client_cache:
      return _client_cache[provider]
    settings = settings or get_settings()

    if provider == "openrouter":
      key = settings.openrouter_api_key
      if not key:
        logger.error("OPENROUTER_API_KEY is not set. Add it to your environment or .env file.")
        raise ConfigurationError("OpenRouter API key is not configured. Please set OPENROUTER_API_KEY.")
      logger.info("OpenRouter API key loaded (%s)", mask_secret(key))
      client = OpenRouterClient(key, site_url=settings.openrouter_site_url, site_name=settings.openrouter_site_name)
    else:
      key = settings.anthropic_api_key
      if not key:
        logger.error("ANTHROPIC_API_KEY is not set. Add it to your environment or .env file.")
        raise ConfigurationError("Anthropic API key is not configured. Please set ANTHROPIC_API_KEY.")
      logger.info("Anthropic API key loaded (%s)", mask_secret(key))
      client = AnthropicClient(key)

    _client_cache[provider] = client
    return client


def get_default_model(provider: str = "openrouter", settings: Optional[Settings] = None) -> str:
  settings = settings or get_settings()
  if provider == "openrouter":
    return settings.openrouter_model
  return settings.anthropic_model


def complete(step: str, prompt: str, provider: str = "openrouter", system: Optional[str] = None, temperature: float = 0.2,
             log: logging.Logger = logger) -> str:
  """One model call with the step's token ceiling and the backend's default model."""
  client = get_client(provider)
  return client.create(
    model=get_default_model(provider),
    max_tokens=max_tokens_for(step, provider),
    temperature=temperature,
    system=system,
    messages=[user_message(prompt)],
    log=log,
  )


def clear_client_cache() -> None:
  with _cache_lock:
    _client_cache.clear()
