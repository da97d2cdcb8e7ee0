"""
Stage functions for ranking-mode council deliberation.

Contains the Stage 1-2-3 steps (collect, rank, synthesize) plus the optional
history preprocessing that runs before Stage 1 and conversation titling.
Each step takes optional chunk callbacks so the orchestrator can stream
partial output.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any

from ..adapters.json_storage import ConversationStore
from ..adapters.openrouter_client import query_model, query_model_streaming
from ..models import (
    Attachment,
    CustomPrompts,
    Failure,
    LabelMap,
    ModelMessage,
    Stage1Result,
    Stage2Result,
    Stage3Result,
    Success,
    response_label,
)
from ..settings import CHAIRMAN_MODEL, COUNCIL_MODELS, REQUEST_TIMEOUT, TITLE_MODEL
from .fanout import StageChunkCallback, run_stage
from .messages import build_user_messages
from .parsers import parse_ranking_from_text
from .prompts import (
    build_title_prompt,
    fill_prompt_template,
    get_date_context,
    get_effective_prompt,
)

logger = logging.getLogger(__name__)

PREPROCESS_TIMEOUT = 60.0
TITLE_TIMEOUT = 30.0
DEFAULT_TITLE = "New Conversation"
SYNTHESIS_ERROR = "Error: Unable to generate final synthesis."

ChunkCallback = Callable[[str], None]


async def stage1_collect_responses(
    user_query: str,
    council_models: Sequence[str] | None = None,
    on_chunk: StageChunkCallback | None = None,
    attachments: Sequence[Attachment] | None = None,
    custom_prompts: CustomPrompts | None = None,
    timeout: float = REQUEST_TIMEOUT,
    stage_timeout: float | None = None,
) -> list[Stage1Result]:
    """
    Stage 1: Collect individual responses from all council models.

    Args:
        user_query: The user's question (possibly preprocessed)
        council_models: Models to query (defaults to the configured council)
        on_chunk: Receives (model, text) for each streamed fragment
        attachments: Files referenced in the user's message
        custom_prompts: Optional per-stage template overrides

    Returns:
        Stage1Result per successful model, in completion order
    """
    models = COUNCIL_MODELS if council_models is None else council_models
    prompt = fill_prompt_template(
        get_effective_prompt("stage1", custom_prompts),
        {"question": user_query, "dateContext": get_date_context()},
    )
    messages = build_user_messages(prompt, attachments)

    responses = await run_stage(
        models, messages, on_chunk=on_chunk, timeout=timeout, stage_timeout=stage_timeout
    )
    return [Stage1Result(model=model, response=text) for model, text in responses]


def format_responses_for_ranking(stage1_results: Sequence[Stage1Result]) -> str:
    """Render Stage 1 responses under their anonymized labels."""
    return "\n\n".join(
        f"{response_label(i)}:\n{result.response}" for i, result in enumerate(stage1_results)
    )


async def stage2_collect_rankings(
    user_query: str,
    stage1_results: Sequence[Stage1Result],
    council_models: Sequence[str] | None = None,
    on_chunk: StageChunkCallback | None = None,
    custom_prompts: CustomPrompts | None = None,
    timeout: float = REQUEST_TIMEOUT,
    stage_timeout: float | None = None,
) -> tuple[list[Stage2Result], LabelMap]:
    """
    Stage 2: Each model ranks the anonymized responses.

    Args:
        user_query: The original user query
        stage1_results: Results from Stage 1

    Returns:
        Tuple of (rankings list, label_to_model mapping)
    """
    # Labels follow the order Stage 1 results were produced (Response A, Response B, ...)
    label_to_model = LabelMap.from_results(stage1_results)
    if not stage1_results:
        return [], label_to_model

    models = COUNCIL_MODELS if council_models is None else council_models
    ranking_prompt = fill_prompt_template(
        get_effective_prompt("stage2", custom_prompts),
        {
            "question": user_query,
            "responses": format_responses_for_ranking(stage1_results),
            "dateContext": get_date_context(),
        },
    )
    messages = [ModelMessage.user(ranking_prompt)]

    responses = await run_stage(
        models, messages, on_chunk=on_chunk, timeout=timeout, stage_timeout=stage_timeout
    )

    stage2_results = [
        Stage2Result(
            model=model,
            ranking=text,
            parsed_ranking=tuple(parse_ranking_from_text(text, label_to_model.labels)),
        )
        for model, text in responses
    ]
    return stage2_results, label_to_model


def build_chairman_prompt(
    user_query: str,
    stage1_results: Sequence[Stage1Result],
    stage2_results: Sequence[Stage2Result],
    custom_prompts: CustomPrompts | None = None,
) -> str:
    """
    Build the Stage 3 chairman synthesis prompt.

    The chairman sees true model identities, not the anonymized labels.
    """
    stage1_text = "\n\n".join(
        f"Model: {result.model}\nResponse: {result.response}" for result in stage1_results
    )
    stage2_text = "\n\n".join(
        f"Model: {result.model}\nRanking: {result.ranking}" for result in stage2_results
    )
    return fill_prompt_template(
        get_effective_prompt("stage3", custom_prompts),
        {
            "question": user_query,
            "stage1Responses": stage1_text,
            "rankings": stage2_text,
            "dateContext": get_date_context(),
        },
    )


async def stage3_synthesize_final(
    user_query: str,
    stage1_results: Sequence[Stage1Result],
    stage2_results: Sequence[Stage2Result],
    chairman_model: str | None = None,
    on_chunk: ChunkCallback | None = None,
    custom_prompts: CustomPrompts | None = None,
    timeout: float = REQUEST_TIMEOUT,
) -> Stage3Result:
    """
    Stage 3: Chairman synthesizes final response.

    Never raises for provider errors: a failed chairman call yields a
    Stage3Result carrying an error message instead.

    Args:
        user_query: The original user query
        stage1_results: Individual model responses from Stage 1
        stage2_results: Rankings from Stage 2
        chairman_model: Model that writes the synthesis
        on_chunk: Receives each streamed fragment of the synthesis

    Returns:
        Stage3Result with the chairman's answer
    """
    chairman = CHAIRMAN_MODEL if chairman_model is None else chairman_model
    chairman_prompt = build_chairman_prompt(
        user_query, stage1_results, stage2_results, custom_prompts
    )
    messages = [ModelMessage.user(chairman_prompt)]

    outcome = await query_model_streaming(chairman, messages, timeout=timeout, on_chunk=on_chunk)

    if isinstance(outcome, Success):
        return Stage3Result(model=chairman, response=outcome.text)
    if isinstance(outcome, Failure):
        # Fallback if chairman fails
        logger.warning("Chairman %s failed: %s", chairman, outcome.reason)
        return Stage3Result(model=chairman, response=SYNTHESIS_ERROR)
    raise TypeError(f"Unexpected outcome type: {type(outcome).__name__}")


def _attachment_name(attachment: Any) -> str:
    if isinstance(attachment, Attachment):
        return attachment.filename
    return attachment.get("filename", "")


def format_conversation_history(messages: Sequence[dict[str, Any]]) -> str:
    """
    Render stored conversation messages as plain text for preprocessing.

    User turns contribute their text and attachment filenames (never file
    contents). Assistant turns contribute the chairman's answer, or the
    first Stage 1 response when no synthesis was stored.
    """
    lines = []
    for message in messages:
        role = message.get("role")
        if role == "user":
            lines.append(f"User: {message.get('content') or ''}")
            attachments = message.get("attachments") or []
            if attachments:
                names = ", ".join(_attachment_name(a) for a in attachments)
                lines.append(f"[User included {len(attachments)} attachment(s): {names}]")
        elif role == "assistant":
            if message.get("stage3"):
                lines.append(f"Assistant: {message['stage3'].get('response') or ''}")
            elif message.get("stage1"):
                lines.append(f"Assistant: {message['stage1'][0].get('response') or ''}")
    return "\n".join(lines)


def format_attachment_listing(header: str, attachments: Sequence[Attachment]) -> str:
    if not attachments:
        return ""
    listing = "\n".join(f"- {a.filename} ({a.content_type})" for a in attachments)
    return f"{header}\n{listing}"


async def preprocess_conversation_history(
    conversation_id: str,
    store: ConversationStore,
    preprocess_model: str,
    current_message: str,
    attachments: Sequence[Attachment] | None = None,
    custom_prompts: CustomPrompts | None = None,
    on_chunk: ChunkCallback | None = None,
) -> str:
    """
    Condense conversation history into an enhanced version of the current message.

    Any failure (unknown conversation, storage error, model error or empty
    output) falls back to the original message; preprocessing never fails
    the turn.

    Returns:
        Enhanced message with conversation context, or ``current_message``
    """
    try:
        conversation = store.get_conversation(conversation_id)
        if conversation is None:
            logger.warning("Conversation %s not found for preprocessing", conversation_id)
            return current_message

        conversation_attachments = store.get_conversation_attachments(conversation_id)
        history = conversation.get("messages", [])

        context_prompt = fill_prompt_template(
            get_effective_prompt("preprocessing", custom_prompts),
            {
                "conversationHistory": format_conversation_history(history),
                "currentMessage": current_message,
                "conversationAttachments": format_attachment_listing(
                    "CONVERSATION ATTACHMENTS:\n"
                    f"The user has uploaded {len(conversation_attachments)} file(s) "
                    "for this conversation:",
                    conversation_attachments,
                ),
                "currentAttachments": format_attachment_listing(
                    "CURRENT MESSAGE ATTACHMENTS:", list(attachments or [])
                ),
            },
        )
        messages = [ModelMessage.user(context_prompt)]
        outcome = await query_model_streaming(
            preprocess_model, messages, timeout=PREPROCESS_TIMEOUT, on_chunk=on_chunk
        )
    except Exception:
        logger.exception("Error during preprocessing, using original message")
        return current_message

    if isinstance(outcome, Failure) or not outcome.text.strip():
        logger.warning("Preprocessing failed, using original message")
        return current_message

    logger.info(
        "Preprocessing successful: %d -> %d chars, %d history messages",
        len(current_message),
        len(outcome.text),
        len(history),
    )
    return outcome.text


async def generate_conversation_title(user_query: str, model: str | None = None) -> str:
    """
    Generate a short title for a conversation based on the first user message.

    Args:
        user_query: The first user message
        model: Cheap model to use (defaults to the configured title model)

    Returns:
        A short title (3-5 words)
    """
    title_prompt = build_title_prompt(user_query)
    messages = [ModelMessage.user(title_prompt)]

    outcome = await query_model(
        TITLE_MODEL if model is None else model, messages, timeout=TITLE_TIMEOUT
    )

    if isinstance(outcome, Failure):
        # Fallback to a generic title
        return DEFAULT_TITLE

    # Clean up the title - remove quotes, limit length
    title = outcome.text.strip().strip("\"'") or DEFAULT_TITLE

    # Truncate if too long
    if len(title) > 50:
        title = title[:47] + "..."

    return title
