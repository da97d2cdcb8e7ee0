"""
Main orchestration for council deliberation.

Sequences optional preprocessing, Stage 1 (collect), Stage 2 (rank) and
Stage 3 (synthesize), or a single-model shortcut, and reports progress as a
stream of DeliberationEvents. The streaming and non-streaming entry points
share one pipeline, so replaying the event stream always reproduces the
non-streaming result.
"""

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field

from ..adapters.json_storage import ConversationStore
from ..models import (
    MAX_COUNCIL_SIZE,
    Attachment,
    CouncilMetadata,
    CouncilOutcome,
    CustomPrompts,
    DeliberationEvent,
    EventType,
    Stage,
    Stage3Result,
)
from ..settings import CHAIRMAN_MODEL, COUNCIL_MODELS, REQUEST_TIMEOUT
from .aggregation import calculate_aggregate_rankings
from .fanout import StageChunkCallback
from .stages import (
    preprocess_conversation_history,
    stage1_collect_responses,
    stage2_collect_rankings,
    stage3_synthesize_final,
)

logger = logging.getLogger(__name__)

ALL_MODELS_FAILED = "All models failed to respond. Please try again."

EventSink = Callable[[DeliberationEvent], Awaitable[None] | None]


@dataclass(frozen=True)
class CouncilRequest:
    """
    Everything one turn of deliberation needs.

    Setting ``single_model`` skips the council entirely. Preprocessing runs
    only when ``preprocess_model``, ``conversation_id`` and ``store`` are all
    provided.
    """

    query: str
    council_models: Sequence[str] = field(default_factory=lambda: list(COUNCIL_MODELS))
    chairman_model: str = field(default_factory=lambda: CHAIRMAN_MODEL)
    single_model: str | None = None
    preprocess_model: str | None = None
    conversation_id: str | None = None
    store: ConversationStore | None = None
    attachments: Sequence[Attachment] = ()
    custom_prompts: CustomPrompts | None = None
    timeout: float = REQUEST_TIMEOUT
    stage_timeout: float | None = None

    def __post_init__(self):
        if len(set(self.council_models)) > MAX_COUNCIL_SIZE:
            raise ValueError(
                f"A council can have at most {MAX_COUNCIL_SIZE} distinct models, "
                f"got {len(set(self.council_models))}"
            )

    @property
    def preprocessing_enabled(self) -> bool:
        return bool(self.preprocess_model and self.conversation_id and self.store is not None)


def _chunk_forwarder(
    stage: Stage, emit: Callable[[DeliberationEvent], None]
) -> StageChunkCallback:
    """Turn (model, text) fragments into chunk events carrying per-model accumulated text."""
    buffers: dict[str, str] = {}

    def forward(model: str, text: str) -> None:
        buffers[model] = buffers.get(model, "") + text
        emit(DeliberationEvent.chunk(stage, model, text, buffers[model]))

    return forward


def _emit_total_failure(emit: Callable[[DeliberationEvent], None], stage: Stage) -> None:
    fallback = Stage3Result(model="error", response=ALL_MODELS_FAILED)
    emit(DeliberationEvent.error(ALL_MODELS_FAILED, stage=stage, data=fallback))


async def _run_single(request: CouncilRequest, emit: Callable[[DeliberationEvent], None]) -> None:
    # Equivalent to Stage 1 with a one-model council; no ranking or synthesis
    emit(DeliberationEvent.stage_start(Stage.STAGE1))
    stage1_results = await stage1_collect_responses(
        request.query,
        [request.single_model],
        on_chunk=_chunk_forwarder(Stage.STAGE1, emit),
        attachments=request.attachments,
        custom_prompts=request.custom_prompts,
        timeout=request.timeout,
    )

    if not stage1_results:
        _emit_total_failure(emit, Stage.STAGE1)
        return

    emit(DeliberationEvent.stage_complete(Stage.STAGE1, tuple(stage1_results)))
    emit(DeliberationEvent.done())


async def _run_council(request: CouncilRequest, emit: Callable[[DeliberationEvent], None]) -> None:
    council_models = list(dict.fromkeys(request.council_models))
    query = request.query

    if request.preprocessing_enabled:
        forward = _chunk_forwarder(Stage.PREPROCESS, emit)
        emit(DeliberationEvent.stage_start(Stage.PREPROCESS))
        query = await preprocess_conversation_history(
            request.conversation_id,
            request.store,
            request.preprocess_model,
            request.query,
            attachments=request.attachments,
            custom_prompts=request.custom_prompts,
            on_chunk=lambda text: forward(request.preprocess_model, text),
        )
        emit(DeliberationEvent.stage_complete(Stage.PREPROCESS, query))

    # Stage 1: Collect individual responses
    emit(DeliberationEvent.stage_start(Stage.STAGE1))
    stage1_results = await stage1_collect_responses(
        query,
        council_models,
        on_chunk=_chunk_forwarder(Stage.STAGE1, emit),
        attachments=request.attachments,
        custom_prompts=request.custom_prompts,
        timeout=request.timeout,
        stage_timeout=request.stage_timeout,
    )

    # If no models responded successfully, the turn ends here
    if not stage1_results:
        _emit_total_failure(emit, Stage.STAGE1)
        return
    emit(DeliberationEvent.stage_complete(Stage.STAGE1, tuple(stage1_results)))

    # Stage 2: Collect rankings
    emit(DeliberationEvent.stage_start(Stage.STAGE2))
    stage2_results, label_to_model = await stage2_collect_rankings(
        query,
        stage1_results,
        council_models,
        on_chunk=_chunk_forwarder(Stage.STAGE2, emit),
        custom_prompts=request.custom_prompts,
        timeout=request.timeout,
        stage_timeout=request.stage_timeout,
    )
    aggregate_rankings = calculate_aggregate_rankings(stage2_results, label_to_model)
    metadata = CouncilMetadata(
        label_to_model=label_to_model, aggregate_rankings=tuple(aggregate_rankings)
    )
    emit(DeliberationEvent.stage_complete(Stage.STAGE2, (tuple(stage2_results), metadata)))

    # Stage 3: Synthesize final answer
    forward = _chunk_forwarder(Stage.STAGE3, emit)
    emit(DeliberationEvent.stage_start(Stage.STAGE3))
    stage3_result = await stage3_synthesize_final(
        query,
        stage1_results,
        stage2_results,
        request.chairman_model,
        on_chunk=lambda text: forward(request.chairman_model, text),
        custom_prompts=request.custom_prompts,
        timeout=request.timeout,
    )
    emit(DeliberationEvent.stage_complete(Stage.STAGE3, stage3_result))
    emit(DeliberationEvent.done())


async def deliberate(request: CouncilRequest, emit: Callable[[DeliberationEvent], None]) -> None:
    """
    Run one turn, passing every event to ``emit`` in order.

    The last event is either ``done`` or a single ``error``.
    """
    try:
        if request.single_model:
            await _run_single(request, emit)
        else:
            await _run_council(request, emit)
    except Exception as e:
        logger.exception("Deliberation failed")
        emit(DeliberationEvent.error(str(e) or type(e).__name__))


def reconstruct_outcome(events: Iterable[DeliberationEvent]) -> CouncilOutcome:
    """Rebuild the complete turn result from its event stream."""
    stage1: tuple = ()
    stage2: tuple = ()
    stage3 = None
    metadata = CouncilMetadata()
    preprocessed = None
    error = None

    for event in events:
        if event.type is EventType.STAGE_COMPLETE:
            if event.stage is Stage.PREPROCESS:
                preprocessed = event.data
            elif event.stage is Stage.STAGE1:
                stage1 = tuple(event.data)
            elif event.stage is Stage.STAGE2:
                stage2, metadata = event.data
            elif event.stage is Stage.STAGE3:
                stage3 = event.data
            else:
                raise ValueError(f"Unknown stage: {event.stage}")
        elif event.type is EventType.ERROR:
            error = event.message
            if isinstance(event.data, Stage3Result):
                stage3 = event.data
        elif event.type in (EventType.STAGE_START, EventType.CHUNK, EventType.DONE):
            continue
        else:
            raise ValueError(f"Unknown event type: {event.type}")

    return CouncilOutcome(
        stage1=stage1,
        stage2=tuple(stage2),
        stage3=stage3,
        metadata=metadata,
        preprocessed_query=preprocessed,
        error=error,
    )


def _as_request(request: CouncilRequest | str) -> CouncilRequest:
    return CouncilRequest(query=request) if isinstance(request, str) else request


async def run_full_council(request: CouncilRequest | str) -> CouncilOutcome:
    """
    Run the complete council process and return the final result.

    Args:
        request: A CouncilRequest, or just the user's question for the
                 configured council and chairman

    Returns:
        CouncilOutcome, which unpacks as (stage1_results, stage2_results,
        stage3_result, metadata)
    """
    events: list[DeliberationEvent] = []
    await deliberate(_as_request(request), events.append)
    return reconstruct_outcome(events)


_END = object()


async def run_council_streaming(
    request: CouncilRequest | str,
) -> AsyncIterator[DeliberationEvent]:
    """
    Run the council process, yielding events as they happen.

    Chunk events from different models interleave arbitrarily; key partial
    text by model. Closing the iterator early stops the turn.
    """
    queue: asyncio.Queue = asyncio.Queue()

    async def produce() -> None:
        try:
            await deliberate(_as_request(request), queue.put_nowait)
        finally:
            queue.put_nowait(_END)

    producer = asyncio.create_task(produce())
    try:
        while True:
            event = await queue.get()
            if event is _END:
                break
            yield event
        await producer
    finally:
        if not producer.done():
            producer.cancel()


async def stream_council(request: CouncilRequest | str, sink: EventSink) -> CouncilOutcome:
    """
    Deliver each event of a turn to ``sink`` (sync or async) and return the result.
    """
    events: list[DeliberationEvent] = []
    async for event in run_council_streaming(request):
        events.append(event)
        result = sink(event)
        if inspect.isawaitable(result):
            await result
    return reconstruct_outcome(events)
