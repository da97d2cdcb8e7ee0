"""
Parallel fan-out of one prompt to several council models.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence

from ..adapters.openrouter_client import Messages, query_model, query_model_streaming
from ..models import Failure, ModelOutcome, Success
from ..settings import MAX_RETRIES, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

StageChunkCallback = Callable[[str, str], None]


async def run_stage(
    models: Sequence[str],
    messages: Messages,
    on_chunk: StageChunkCallback | None = None,
    timeout: float = REQUEST_TIMEOUT,
    stage_timeout: float | None = None,
    max_retries: int = MAX_RETRIES,
    stream: bool = True,
) -> list[tuple[str, str]]:
    """
    Query every model concurrently with the same messages.

    All calls start together and the stage waits for every one of them to
    succeed or fail; a failed model is simply left out. When ``stage_timeout``
    is set, models still running at the deadline are cancelled and counted as
    failed.

    Args:
        models: OpenRouter model identifiers
        messages: Messages sent to each model
        on_chunk: Called as (model, text) for each streamed fragment
        timeout: Per-attempt deadline for each model
        stage_timeout: Optional deadline for the whole stage
        max_retries: Rate-limit retries per model
        stream: Use the streaming endpoint (required for on_chunk)

    Returns:
        (model, response_text) for each successful model, in completion order
    """

    async def query_single_model(model: str) -> tuple[str, ModelOutcome]:
        if stream:

            def forward(text: str) -> None:
                if on_chunk is not None:
                    on_chunk(model, text)

            outcome = await query_model_streaming(
                model, messages, timeout=timeout, on_chunk=forward, max_retries=max_retries
            )
        else:
            outcome = await query_model(model, messages, timeout=timeout, max_retries=max_retries)
        return model, outcome

    if not models:
        return []

    tasks = [asyncio.create_task(query_single_model(model)) for model in models]
    results: list[tuple[str, str]] = []

    try:
        for completed in asyncio.as_completed(tasks, timeout=stage_timeout):
            model, outcome = await completed
            if isinstance(outcome, Success):
                results.append((model, outcome.text))
            elif isinstance(outcome, Failure):
                logger.debug("Dropping %s from stage: %s", model, outcome.reason)
            else:
                raise TypeError(f"Unexpected outcome type: {type(outcome).__name__}")
    except asyncio.TimeoutError:
        still_running = [model for model, task in zip(models, tasks) if not task.done()]
        logger.warning(
            "Stage deadline of %ss reached; dropping %s", stage_timeout, ", ".join(still_running)
        )
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    return results
