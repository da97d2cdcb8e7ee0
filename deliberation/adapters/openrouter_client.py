"""OpenRouter API client for making LLM requests."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any

import httpx

from ..models import Failure, ModelMessage, ModelOutcome, Success
from ..settings import (
    MAX_RETRIES,
    OPENROUTER_API_KEY,
    OPENROUTER_API_URL,
    OPENROUTER_MODELS_URL,
    REQUEST_TIMEOUT,
)

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]
Messages = Sequence[ModelMessage | dict[str, Any]]


class OpenRouterError(Exception):
    """Error from OpenRouter API (raised only outside the query path)."""


class _RateLimited(Exception):
    """Internal signal: the provider answered HTTP 429."""


def backoff_delay(attempt: int) -> int:
    """Seconds to wait before retrying after rate-limited attempt ``attempt`` (0-based)."""
    return 2**attempt


def _headers() -> dict[str, str]:
    return {
        "Authorization": f"Bearer {OPENROUTER_API_KEY}",
        "Content-Type": "application/json",
    }


def _render_messages(messages: Messages) -> list[dict[str, Any]]:
    return [m.to_payload() if isinstance(m, ModelMessage) else dict(m) for m in messages]


@asynccontextmanager
async def _client_scope(
    client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the injected client, or open a short-lived one for this call."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


def _http_failure(status_code: int, body: str) -> Failure:
    return Failure(f"HTTP {status_code}: {body[:200]}")


async def _complete_once(
    client: httpx.AsyncClient, model: str, payload: dict[str, Any]
) -> ModelOutcome:
    response = await client.post(OPENROUTER_API_URL, headers=_headers(), json=payload)

    if response.status_code == 429:
        raise _RateLimited()
    if response.status_code >= 400:
        return _http_failure(response.status_code, response.text)

    try:
        data = response.json()
        message = data["choices"][0]["message"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        return Failure(f"Malformed response payload: {e!r}")

    content = message.get("content")
    if content is None:
        return Failure("Response contained no content")

    metadata = {
        "reasoning_details": message.get("reasoning_details"),
        "usage": data.get("usage"),
        "id": data.get("id"),
    }
    return Success(text=content, raw_metadata=metadata)


async def _stream_once(
    client: httpx.AsyncClient,
    model: str,
    payload: dict[str, Any],
    on_chunk: ChunkCallback | None,
) -> ModelOutcome:
    full_content = ""
    usage = None

    async with client.stream(
        "POST", OPENROUTER_API_URL, headers=_headers(), json=payload
    ) as response:
        if response.status_code == 429:
            raise _RateLimited()
        if response.status_code >= 400:
            await response.aread()
            return _http_failure(response.status_code, response.text)

        async for line in response.aiter_lines():
            if not line:
                continue
            # SSE comments (": OPENROUTER PROCESSING") and other fields are keep-alives
            if not line.startswith("data: "):
                continue

            data_str = line[6:]  # Remove "data: " prefix

            if data_str == "[DONE]":
                break

            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                continue

            if data.get("error"):
                error = data["error"]
                reason = error.get("message", error) if isinstance(error, dict) else error
                return Failure(f"Stream error: {reason}")

            if data.get("usage"):
                usage = data["usage"]

            choices = data.get("choices") or [{}]
            content = (choices[0].get("delta") or {}).get("content") or ""
            if content:
                full_content += content
                if on_chunk is not None:
                    on_chunk(content)

    return Success(text=full_content, raw_metadata={"usage": usage})


async def _run_with_retries(
    model: str,
    attempt_fn: Callable[[], Any],
    timeout: float,
    max_retries: int,
) -> ModelOutcome:
    """
    Run ``attempt_fn`` under a per-attempt deadline, retrying only on HTTP 429.

    Never raises for provider errors; every terminal condition becomes a Failure.
    """
    for attempt in range(max_retries + 1):
        try:
            outcome = await asyncio.wait_for(attempt_fn(), timeout=timeout)
        except _RateLimited:
            if attempt < max_retries:
                delay = backoff_delay(attempt)
                logger.info("Rate limited by %s, retrying in %ss", model, delay)
                await asyncio.sleep(delay)
                continue
            outcome = Failure(f"Rate limited after {attempt + 1} attempts")
        except asyncio.TimeoutError:
            outcome = Failure(f"Timeout after {timeout}s")
        except Exception as e:
            outcome = Failure(f"Request failed: {e!r}")

        if isinstance(outcome, Failure):
            logger.warning("Error querying model %s: %s", model, outcome.reason)
        return outcome

    # Unreachable: the final attempt always returns above
    return Failure("Max retries exceeded")


async def query_model(
    model: str,
    messages: Messages,
    timeout: float = REQUEST_TIMEOUT,
    max_retries: int = MAX_RETRIES,
    client: httpx.AsyncClient | None = None,
) -> ModelOutcome:
    """
    Query a single model via OpenRouter API.

    Args:
        model: OpenRouter model identifier (e.g., "openai/gpt-4o")
        messages: ModelMessage instances or dicts with 'role' and 'content'
        timeout: Deadline in seconds for each attempt
        max_retries: Additional attempts allowed after an HTTP 429
        client: Optional shared httpx client

    Returns:
        Success with the completion text, or Failure with a reason
    """
    payload = {"model": model, "messages": _render_messages(messages)}

    async with _client_scope(client, timeout) as http:
        return await _run_with_retries(
            model, lambda: _complete_once(http, model, payload), timeout, max_retries
        )


async def query_model_streaming(
    model: str,
    messages: Messages,
    timeout: float = REQUEST_TIMEOUT,
    on_chunk: ChunkCallback | None = None,
    max_retries: int = MAX_RETRIES,
    client: httpx.AsyncClient | None = None,
) -> ModelOutcome:
    """
    Query a model with a streaming response.

    ``on_chunk`` receives each content fragment in the order the provider
    emits it. On success the returned text is the concatenation of every
    fragment delivered.
    """
    payload = {"model": model, "messages": _render_messages(messages), "stream": True}

    async with _client_scope(client, timeout) as http:
        return await _run_with_retries(
            model, lambda: _stream_once(http, model, payload, on_chunk), timeout, max_retries
        )


async def list_available_models(
    timeout: float = 30.0, client: httpx.AsyncClient | None = None
) -> list[dict[str, Any]]:
    """
    Fetch the model catalogue from OpenRouter.

    Returns:
        List of dicts with 'id', 'name', 'context_length' and 'pricing'

    Raises:
        OpenRouterError: If the catalogue cannot be fetched or parsed
    """
    async with _client_scope(client, timeout) as http:
        try:
            response = await http.get(OPENROUTER_MODELS_URL, headers=_headers())
            response.raise_for_status()
            data = response.json()["data"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise OpenRouterError(f"Failed to fetch models: {e}") from e

    return [
        {
            "id": model["id"],
            "name": model.get("name", model["id"]),
            "context_length": model.get("context_length"),
            "pricing": model.get("pricing"),
        }
        for model in data
    ]
