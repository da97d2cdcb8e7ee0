"""
Data types shared by the deliberation engine.

Every value here is created fresh for a single user turn and is immutable
once built. Provider outcomes and deliberation events are closed sets of
variants rather than loosely-typed dicts.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

REMOTE_URL_PREFIXES = ("http://", "https://", "data:")


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# =============================================================================
# Message content
# =============================================================================


@dataclass(frozen=True)
class TextPart:
    text: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImagePart:
    url: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": self.url}}


@dataclass(frozen=True)
class FilePart:
    url: str
    content_type: str = "application/pdf"

    def to_payload(self) -> dict[str, Any]:
        return {"type": "file", "file": {"type": self.content_type, "url": self.url}}


ContentPart = Union[TextPart, ImagePart, FilePart]


@dataclass(frozen=True)
class ModelMessage:
    """A single chat message sent to a provider."""

    role: Role
    content: str | tuple[ContentPart, ...]

    def __post_init__(self) -> None:
        if isinstance(self.content, tuple) and not self.content:
            raise ValueError("Message content parts must contain at least one part")

    @classmethod
    def user(cls, content: str | Iterable[ContentPart]) -> ModelMessage:
        if not isinstance(content, str):
            content = tuple(content)
        return cls(Role.USER, content)

    def to_payload(self) -> dict[str, Any]:
        """Render the message in OpenRouter chat-completion format."""
        if isinstance(self.content, str):
            content: Any = self.content
        else:
            content = [part.to_payload() for part in self.content]
        return {"role": self.role.value, "content": content}


@dataclass(frozen=True)
class Attachment:
    """Reference to a file the user attached; the bytes live elsewhere."""

    url: str
    filename: str
    content_type: str
    size: int = 0

    @property
    def is_remote(self) -> bool:
        return bool(self.url) and self.url.startswith(REMOTE_URL_PREFIXES)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Attachment:
        return cls(
            url=data.get("url", ""),
            filename=data.get("filename", ""),
            content_type=data.get("content_type") or data.get("contentType", ""),
            size=int(data.get("size", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
        }


# =============================================================================
# Provider outcomes
# =============================================================================


@dataclass(frozen=True)
class Success:
    text: str
    raw_metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Failure:
    reason: str


ModelOutcome = Union[Success, Failure]


# =============================================================================
# Stage results
# =============================================================================


@dataclass(frozen=True)
class Stage1Result:
    model: str
    response: str

    def to_dict(self) -> dict[str, Any]:
        return {"model": self.model, "response": self.response}


@dataclass(frozen=True)
class Stage2Result:
    model: str
    ranking: str
    parsed_ranking: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "ranking": self.ranking,
            "parsed_ranking": list(self.parsed_ranking),
        }


@dataclass(frozen=True)
class Stage3Result:
    model: str
    response: str

    def to_dict(self) -> dict[str, Any]:
        return {"model": self.model, "response": self.response}


@dataclass(frozen=True)
class AggregateRanking:
    model: str
    average_rank: float
    rankings_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "average_rank": self.average_rank,
            "rankings_count": self.rankings_count,
        }


# One letter per response, "Response A" to "Response Z"
MAX_COUNCIL_SIZE = 26


def response_label(index: int) -> str:
    """Return the anonymized label for the response at ``index`` (0 -> "Response A")."""
    return f"Response {chr(65 + index)}"


class LabelMap(Mapping[str, str]):
    """
    Immutable bijection between anonymized labels and model identifiers.

    Labels are assigned in the order the Stage 1 results were produced:
    the first result is "Response A", the second "Response B", and so on.
    """

    __slots__ = ("_label_to_model",)

    def __init__(self, models: Iterable[str] = ()):
        models = list(models)
        if len(set(models)) != len(models):
            raise ValueError("Each model may only appear once in a label map")
        if len(models) > MAX_COUNCIL_SIZE:
            raise ValueError(f"At most {MAX_COUNCIL_SIZE} responses can be labelled")
        self._label_to_model = {response_label(i): model for i, model in enumerate(models)}

    @classmethod
    def from_results(cls, stage1_results: Iterable[Stage1Result]) -> LabelMap:
        return cls(result.model for result in stage1_results)

    def __getitem__(self, label: str) -> str:
        return self._label_to_model[label]

    def __iter__(self) -> Iterator[str]:
        return iter(self._label_to_model)

    def __len__(self) -> int:
        return len(self._label_to_model)

    def __repr__(self) -> str:
        return f"LabelMap({self._label_to_model!r})"

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(self._label_to_model)

    def resolve(self, label: str) -> str | None:
        return self._label_to_model.get(label)

    def label_for(self, model: str) -> str | None:
        for label, candidate in self._label_to_model.items():
            if candidate == model:
                return label
        return None

    def to_dict(self) -> dict[str, str]:
        return dict(self._label_to_model)


@dataclass(frozen=True)
class CouncilMetadata:
    label_to_model: LabelMap = field(default_factory=LabelMap)
    aggregate_rankings: tuple[AggregateRanking, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "label_to_model": self.label_to_model.to_dict(),
            "aggregate_rankings": [entry.to_dict() for entry in self.aggregate_rankings],
        }


@dataclass(frozen=True)
class CouncilOutcome:
    """Complete result of one turn; unpacks as (stage1, stage2, stage3, metadata)."""

    stage1: tuple[Stage1Result, ...] = ()
    stage2: tuple[Stage2Result, ...] = ()
    stage3: Stage3Result | None = None
    metadata: CouncilMetadata = field(default_factory=CouncilMetadata)
    preprocessed_query: str | None = None
    error: str | None = None

    def __iter__(self) -> Iterator[Any]:
        return iter((self.stage1, self.stage2, self.stage3, self.metadata))

    @property
    def failed(self) -> bool:
        return self.error is not None


# =============================================================================
# Prompt customization
# =============================================================================


@dataclass(frozen=True)
class CustomPrompts:
    """User-supplied replacements for the default stage templates."""

    stage1: str | None = None
    stage2: str | None = None
    stage3: str | None = None
    preprocessing: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> CustomPrompts | None:
        if not data:
            return None
        return cls(
            stage1=data.get("stage1"),
            stage2=data.get("stage2"),
            stage3=data.get("stage3"),
            preprocessing=data.get("preprocessing"),
        )

    def get(self, stage: str) -> str | None:
        return getattr(self, stage, None)


# =============================================================================
# Deliberation events
# =============================================================================


class Stage(str, Enum):
    PREPROCESS = "preprocess"
    STAGE1 = "stage1"
    STAGE2 = "stage2"
    STAGE3 = "stage3"


class EventType(str, Enum):
    STAGE_START = "stage_start"
    CHUNK = "chunk"
    STAGE_COMPLETE = "stage_complete"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class DeliberationEvent:
    """
    One entry in the append-only event stream of a turn.

    ``data`` on a ``stage_complete`` event holds the stage result:
    the preprocessed query (str) for preprocess, a tuple of Stage1Result for
    stage 1, a ``(tuple[Stage2Result], CouncilMetadata)`` pair for stage 2 and
    a Stage3Result for stage 3.
    """

    type: EventType
    stage: Stage | None = None
    model: str | None = None
    text: str = ""
    accumulated_text: str = ""
    data: Any = None
    message: str = ""

    @classmethod
    def stage_start(cls, stage: Stage) -> DeliberationEvent:
        return cls(EventType.STAGE_START, stage=stage)

    @classmethod
    def chunk(cls, stage: Stage, model: str, text: str, accumulated_text: str) -> DeliberationEvent:
        return cls(
            EventType.CHUNK, stage=stage, model=model, text=text, accumulated_text=accumulated_text
        )

    @classmethod
    def stage_complete(cls, stage: Stage, data: Any) -> DeliberationEvent:
        return cls(EventType.STAGE_COMPLETE, stage=stage, data=data)

    @classmethod
    def error(cls, message: str, stage: Stage | None = None, data: Any = None) -> DeliberationEvent:
        return cls(EventType.ERROR, stage=stage, message=message, data=data)

    @classmethod
    def done(cls) -> DeliberationEvent:
        return cls(EventType.DONE)

    def to_dict(self) -> dict[str, Any]:
        """Flatten the event for JSON transport (e.g. server-sent events)."""
        payload: dict[str, Any] = {"type": self.type.value}
        if self.stage is not None:
            payload["stage"] = self.stage.value
        if self.type is EventType.CHUNK:
            payload.update(
                {"model": self.model, "text": self.text, "accumulated_text": self.accumulated_text}
            )
        elif self.type is EventType.STAGE_COMPLETE:
            payload["data"] = _serialize(self.data)
        elif self.type is EventType.ERROR:
            payload["message"] = self.message
            if self.data is not None:
                payload["data"] = _serialize(self.data)
        return payload


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value
