"""Tests for utils.llm - the Anthropic client is mocked."""

import logging
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from config.defaults import DEFAULTS
from core.errors import LlmError
from utils.llm import call_llm, get_client

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _client(chunks=("Hello", " world"), stop_reason="end_turn", error=None):
    client = MagicMock()
    if error is not None:
        client.messages.stream.side_effect = error
        return client
    stream = client.messages.stream.return_value.__enter__.return_value
    stream.text_stream = list(chunks)
    stream.get_final_message.return_value = MagicMock(stop_reason=stop_reason)
    return client


def test_returns_concatenated_text():
    client = _client()
    assert call_llm("sys", "user", client=client, settings=dict(DEFAULTS)) == "Hello world"


def test_request_shape():
    client = _client()
    call_llm("sys", "user", temperature=0.3, client=client, settings=dict(DEFAULTS))
    kwargs = client.messages.stream.call_args.kwargs
    assert kwargs["system"] == "sys"
    assert kwargs["messages"] == [{"role": "user", "content": "user"}]
    assert kwargs["model"] == DEFAULTS["model"]
    assert kwargs["max_tokens"] == DEFAULTS["max_tokens"]
    assert kwargs["temperature"] == 0.3


def test_temperature_omitted_when_none():
    client = _client()
    call_llm("sys", "user", client=client, settings=dict(DEFAULTS))
    assert "temperature" not in client.messages.stream.call_args.kwargs


def test_status_error_carries_status_and_body():
    response = httpx.Response(529, request=_REQUEST)
    error = anthropic.APIStatusError("overloaded", response=response, body={"type": "overloaded_error"})
    with pytest.raises(LlmError) as exc:
        call_llm("sys", "user", client=_client(error=error), settings=dict(DEFAULTS))
    assert exc.value.status == 529
    assert exc.value.body == {"type": "overloaded_error"}
    assert "529" in str(exc.value)


def test_timeout_becomes_llm_error():
    error = anthropic.APITimeoutError(request=_REQUEST)
    with pytest.raises(LlmError, match="timed out"):
        call_llm("sys", "user", client=_client(error=error), settings=dict(DEFAULTS))


def test_empty_reply_is_llm_error():
    with pytest.raises(LlmError, match="empty"):
        call_llm("sys", "user", client=_client(chunks=["  ", "\n"]), settings=dict(DEFAULTS))


def test_truncation_logged(caplog):
    client = _client(stop_reason="max_tokens")
    with caplog.at_level(logging.WARNING, logger="utils.llm"):
        assert call_llm("sys", "user", client=client, settings=dict(DEFAULTS)) == "Hello world"
    assert "max_tokens" in caplog.text


def test_get_client_requires_api_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(RuntimeError, match="ANTHROPIC_API_KEY"):
        get_client(dict(DEFAULTS))


def test_get_client_uses_settings(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    settings = dict(DEFAULTS, request_timeout=30, max_retries=5)
    client = get_client(settings)
    assert isinstance(client, anthropic.Anthropic)
    assert client.max_retries == 5
