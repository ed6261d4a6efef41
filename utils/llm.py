"""Claude API client for the generation pipeline."""

import logging
import os

import anthropic

from config.defaults import load_settings
from core.errors import LlmError

logger = logging.getLogger(__name__)


def get_client(settings=None):
    """Return an Anthropic client. Raises if no API key is set."""
    settings = settings or load_settings()
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError(
            "ANTHROPIC_API_KEY environment variable is not set. "
            "Get a key at https://console.anthropic.com/ and run:\n"
            "  export ANTHROPIC_API_KEY='your-key-here'"
        )
    return anthropic.Anthropic(
        api_key=api_key,
        timeout=settings["request_timeout"],
        max_retries=settings["max_retries"],
    )


def call_llm(system_prompt, user_message, temperature=None, max_tokens=None,
             model=None, client=None, settings=None):
    """Send one system prompt + user message to Claude and return the raw text.

    Args:
        system_prompt: System prompt string.
        user_message: User message string.
        temperature: Sampling temperature (provider default if None).
        max_tokens: Response ceiling (DEFAULTS["max_tokens"] if None).
        model: Model id (DEFAULTS["model"] if None).
        client: Pre-built Anthropic client, mainly for tests.

    Raises:
        LlmError: on any provider, transport or timeout failure, or an empty reply.
    """
    settings = settings or load_settings()
    client = client or get_client(settings)

    request = {
        "model": model or settings["model"],
        "max_tokens": max_tokens or settings["max_tokens"],
        "system": system_prompt,
        "messages": [{"role": "user", "content": user_message}],
    }
    if temperature is not None:
        request["temperature"] = temperature

    logger.debug("LLM request: model=%s system=%.200s", request["model"], system_prompt)

    try:
        # Use streaming to avoid SDK timeout for large max_tokens
        text = ""
        with client.messages.stream(**request) as stream:
            for chunk in stream.text_stream:
                text += chunk
            response_msg = stream.get_final_message()
    except anthropic.APIStatusError as e:
        body = getattr(e, "body", None)
        logger.error("Claude API error %s: %s", e.status_code, body)
        raise LlmError(
            f"Claude API error: {e.status_code} {e.message}",
            status=e.status_code,
            body=body,
        ) from e
    except anthropic.APITimeoutError as e:
        raise LlmError("Claude API request timed out") from e
    except anthropic.APIError as e:
        raise LlmError(f"Claude API request failed: {e}") from e

    if response_msg.stop_reason == "max_tokens":
        logger.warning("Claude response hit the max_tokens limit (%s); output is truncated",
                       request["max_tokens"])

    if not text.strip():
        raise LlmError("Claude API returned an empty response", body=text)

    logger.debug("LLM response (%d chars): %.200s", len(text), text)
    return text
