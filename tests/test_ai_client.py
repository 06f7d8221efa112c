from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

import ai_client
from ai_client import (AnthropicClient, ConfigurationError, LLMRequestError, OpenRouterClient, extract_json,
                       get_client, get_default_model, max_tokens_for, strip_code_fences)
from config import Settings


def test_strip_code_fences():
    assert strip_code_fences("```html\n<p>x</p>\n```") == "<p>x</p>"
    assert strip_code_fences("  plain text  ") == "plain text"
    assert strip_code_fences("intro\n```js\nrun();\n```\noutro") == "intro\nrun();\noutro"
    assert strip_code_fences(None) == ""


def test_extract_json_variants():
    assert extract_json('{"a": 1}') == {"a": 1}
    assert extract_json('Sure!\n```json\n{"a": 2}\n```\nanything else?') == {"a": 2}
    assert extract_json('Here you go: {"a": 3} hope it helps') == {"a": 3}
    assert extract_json('Issues: [{"fileName": "app.js"}]', kind="array") == [{"fileName": "app.js"}]
    assert extract_json("```\n[]\n```", kind="array") == []


def test_extract_json_failure():
    with pytest.raises(ValueError):
        extract_json("no json at all")
    with pytest.raises(ValueError):
        extract_json('{"broken": ', kind="object")


def test_token_budgets():
    assert max_tokens_for("file", "openrouter") == 3000
    assert max_tokens_for("file", "anthropic") == 4000
    assert max_tokens_for("architecture", "openrouter") == 800
    assert max_tokens_for("verify", "anthropic") == 100


def test_missing_keys_raise_configuration_error():
    with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
        get_client("openrouter", Settings())
    with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
        get_client("anthropic", Settings())


def test_unknown_provider():
    with pytest.raises(ValueError):
        get_client("mystery", Settings(openrouter_api_key="k"))


def test_clients_are_cached():
    settings = Settings(openrouter_api_key="sk-or-test-key")
    first = get_client("openrouter", settings)
    assert isinstance(first, OpenRouterClient)
    assert get_client("openrouter", settings) is first
    ai_client.clear_client_cache()
    assert get_client("openrouter", settings) is not first


def test_default_models():
    settings = Settings(openrouter_model="x/model", anthropic_model="claude-test")
    assert get_default_model("openrouter", settings) == "x/model"
    assert get_default_model("anthropic", settings) == "claude-test"


def openrouter_with(response):
    client = OpenRouterClient("sk-or-key", site_url="http://localhost:3000", site_name="Tests")
    client.session = MagicMock()
    client.session.post.return_value = response
    return client


def test_openrouter_create():
    response = MagicMock(ok=True, status_code=200)
    response.json.return_value = {"choices": [{"message": {"content": "hello"}}]}
    client = openrouter_with(response)

    messages = [{"role": "user", "content": [
        {"type": "text", "text": "part one"},
        {"type": "image", "source": {}},
        {"type": "text", "text": "part two"},
    ]}]
    assert client.create("m", 50, 0.1, messages, system="be brief") == "hello"

    payload = client.session.post.call_args.kwargs["json"]
    assert payload["model"] == "m"
    assert payload["max_tokens"] == 50
    assert payload["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "part one\npart two"},
    ]
    headers = client.session.post.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer sk-or-key"
    assert headers["X-Title"] == "Tests"


def test_openrouter_http_error():
    response = MagicMock(ok=False, status_code=401, text="unauthorized")
    response.json.return_value = {"error": {"message": "Invalid API key", "code": 401}}
    client = openrouter_with(response)
    with pytest.raises(LLMRequestError) as err:
        client.create("m", 50, 0.1, [{"role": "user", "content": "hi"}])
    assert err.value.status == 401
    assert "Invalid API key" in str(err.value)


def test_openrouter_network_error():
    client = openrouter_with(None)
    client.session.post.side_effect = requests.exceptions.ConnectionError("refused")
    with pytest.raises(LLMRequestError) as err:
        client.create("m", 50, 0.1, [{"role": "user", "content": "hi"}])
    assert err.value.status == "network"


def test_openrouter_unexpected_body():
    response = MagicMock(ok=True, status_code=200)
    response.json.return_value = {"choices": []}
    with pytest.raises(LLMRequestError):
        openrouter_with(response).create("m", 50, 0.1, [{"role": "user", "content": "hi"}])


@patch("ai_client.anthropic.Anthropic")
def test_anthropic_create(mock_sdk):
    sdk = mock_sdk.return_value
    sdk.messages.create.return_value = SimpleNamespace(content=[
        SimpleNamespace(type="text", text="first"),
        SimpleNamespace(type="tool_use", id="t"),
        SimpleNamespace(type="text", text="second"),
    ])
    client = AnthropicClient("sk-ant-key")
    assert client.create("claude", 256, 0.2, [{"role": "user", "content": "hi"}], system="sys") == "first\nsecond"

    kwargs = sdk.messages.create.call_args.kwargs
    assert kwargs["system"] == "sys"
    assert kwargs["messages"] == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]
    mock_sdk.assert_called_once_with(api_key="sk-ant-key")


@patch("ai_client.get_client")
def test_complete_uses_step_budget(mock_get_client, monkeypatch):
    monkeypatch.setattr(ai_client, "get_settings", lambda: Settings(anthropic_model="claude-test"))
    mock_get_client.return_value.create.return_value = "ok"
    assert ai_client.complete("analyze", "prompt", provider="anthropic", system="s", temperature=0.1) == "ok"
    mock_get_client.return_value.create.assert_called_once_with(
        model="claude-test", max_tokens=256, temperature=0.1, system="s", log=ai_client.logger,
        messages=[{"role": "user", "content": [{"type": "text", "text": "prompt"}]}],
    )


def test_backend_errors_reach_the_given_logger():
    response = MagicMock(ok=False, status_code=500, text="upstream exploded")
    response.json.side_effect = ValueError("not json")
    client = openrouter_with(response)
    log = MagicMock()
    with pytest.raises(LLMRequestError):
        client.create("m", 50, 0.1, [{"role": "user", "content": "hi"}], log=log)
    log.error.assert_called_once_with("OpenRouter API error %s: %s", 500, "upstream exploded")


@patch("ai_client.get_client")
def test_complete_passes_logger_to_backend(mock_get_client, monkeypatch):
    monkeypatch.setattr(ai_client, "get_settings", lambda: Settings())
    mock_get_client.return_value.create.return_value = "ok"
    log = MagicMock()
    ai_client.complete("verify", "prompt", log=log)
    assert mock_get_client.return_value.create.call_args.kwargs["log"] is log
