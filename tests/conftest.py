"""
Pytest configuration and fixtures for deliberation tests.

This module provides mock responses and fixtures for testing the council
without making actual API calls.
"""

import asyncio
from collections.abc import Callable
from contextlib import contextmanager
from typing import Any
from unittest.mock import patch

import pytest

from deliberation.adapters.json_storage import JsonConversationStore
from deliberation.models import Failure, ModelOutcome, Success

# =============================================================================
# Sample Model Responses
# =============================================================================

SAMPLE_MODELS = [
    "openai/gpt-5.2",
    "google/gemini-3-pro-preview",
    "anthropic/claude-sonnet-4.5",
]

CHAIRMAN = "google/gemini-3-pro-preview"

SAMPLE_INITIAL_RESPONSES = {
    "openai/gpt-5.2": "Python is the best language for beginners due to its readable syntax.",
    "google/gemini-3-pro-preview": "JavaScript is ideal for beginners because it runs in browsers.",
    "anthropic/claude-sonnet-4.5": "Python offers the gentlest learning curve for new programmers.",
}

SAMPLE_RANKING_TEXT = """Response A provides good practical advice with clear reasoning.
Response B offers a different perspective but lacks depth.
Response C is comprehensive but could be more concise.

FINAL RANKING:
1. Response A
2. Response C
3. Response B"""

SAMPLE_RANKING_TEXT_NO_HEADER = """Response A is best.
Response C is second.
Response B is third."""

SAMPLE_SYNTHESIS = "Python is the consensus recommendation for beginners."


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sample_models() -> list[str]:
    """Return sample model identifiers."""
    return SAMPLE_MODELS.copy()


@pytest.fixture
def sample_ranking_text() -> str:
    """Return sample ranking text with FINAL RANKING header."""
    return SAMPLE_RANKING_TEXT


@pytest.fixture
def sample_ranking_text_no_header() -> str:
    """Return sample ranking text without proper header."""
    return SAMPLE_RANKING_TEXT_NO_HEADER


@pytest.fixture
def store(tmp_path) -> JsonConversationStore:
    """A conversation store rooted in a temporary directory."""
    return JsonConversationStore(tmp_path / "conversations")


@pytest.fixture
def no_backoff():
    """
    Patch the retry sleep so rate-limit tests run instantly.

    The mock records the requested delays.
    """
    with patch("deliberation.adapters.openrouter_client.asyncio.sleep") as mock:

        async def instant(delay):
            return None

        mock.side_effect = instant
        yield mock


# =============================================================================
# Helper Functions
# =============================================================================


def is_ranking_prompt(messages) -> bool:
    """True when the messages are a Stage 2 ranking request."""
    return "FINAL RANKING:" in messages[0].to_payload()["content"]


def is_synthesis_prompt(messages) -> bool:
    """True when the messages are the Stage 3 chairman request."""
    return "Chairman" in str(messages[0].to_payload()["content"])


def make_fake_streaming(
    stage1: dict[str, str | None] | None = None,
    stage2: dict[str, str | None] | None = None,
    synthesis: str | None = SAMPLE_SYNTHESIS,
    chunk_size: int = 8,
    calls: list | None = None,
) -> Callable[..., Any]:
    """
    Build a side_effect for query_model_streaming.

    Responses are chosen by prompt kind and model; None means the model
    fails. Text is delivered to on_chunk in ``chunk_size`` fragments.
    """
    stage1 = SAMPLE_INITIAL_RESPONSES if stage1 is None else stage1
    stage2 = {m: SAMPLE_RANKING_TEXT for m in SAMPLE_MODELS} if stage2 is None else stage2

    async def fake(model, messages, timeout=None, on_chunk=None, max_retries=None, **kwargs):
        if calls is not None:
            calls.append((model, messages))
        if is_synthesis_prompt(messages):
            text = synthesis
        elif is_ranking_prompt(messages):
            text = stage2.get(model)
        else:
            text = stage1.get(model)

        await asyncio.sleep(0)
        if text is None:
            return Failure(f"{model} unavailable")
        for start in range(0, len(text), chunk_size):
            if on_chunk is not None:
                on_chunk(text[start : start + chunk_size])
            await asyncio.sleep(0)
        return Success(text=text)

    return fake


def make_outcome(text: str | None) -> ModelOutcome:
    """Create a Success, or a Failure when text is None."""
    if text is None:
        return Failure("model unavailable")
    return Success(text=text)


@contextmanager
def patch_streaming(side_effect):
    """
    Patch query_model_streaming everywhere the engine calls it.

    Stage 1/2 go through the fan-out; Stage 3 and preprocessing call the
    client directly from the stages module.
    """
    with patch("deliberation.engine.fanout.query_model_streaming", side_effect=side_effect) as fanout_mock:
        with patch("deliberation.engine.stages.query_model_streaming", side_effect=side_effect) as stages_mock:
            yield fanout_mock, stages_mock
