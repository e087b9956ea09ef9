"""
Wire-level chat messages: a role plus an ordered list of typed content parts.

Parts are a closed tagged union keyed on `type`. Tool and data parts carry their name in
the tag (`tool-searchResources`, `data-progress`); anything unrecognized is kept as an
UnknownPart so the codec can handle it explicitly.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator, model_validator
from pydantic.alias_generators import to_camel

PartState = Literal["streaming", "done"]
ToolState = Literal["input-streaming", "input-available", "output-available", "output-error"]
Role = Literal["user", "assistant", "system"]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextPart(_WireModel):
    type: Literal["text"] = "text"
    text: str = ""
    state: Optional[PartState] = None


class ReasoningPart(_WireModel):
    type: Literal["reasoning"] = "reasoning"
    text: str = ""
    state: Optional[PartState] = None
    provider_metadata: Optional[dict[str, Any]] = None


class ToolPart(_WireModel):
    """A tool invocation; `type` is `tool-<name>`."""

    type: str
    tool_call_id: str
    state: ToolState
    input: Any = None
    output: Any = None
    error_text: Optional[str] = None
    provider_executed: Optional[bool] = None

    @field_validator("type")
    @classmethod
    def _tool_prefix(cls, v: str) -> str:
        if not v.startswith("tool-") or len(v) <= len("tool-"):
            raise ValueError("tool part type must look like 'tool-<name>'")
        return v

    @model_validator(mode="after")
    def _state_fields(self) -> "ToolPart":
        if self.output is not None and self.state != "output-available":
            raise ValueError("output is only allowed in state 'output-available'")
        if self.error_text is not None and self.state != "output-error":
            raise ValueError("errorText is only allowed in state 'output-error'")
        return self

    @property
    def tool_name(self) -> str:
        return self.type[len("tool-"):]

    @classmethod
    def named(cls, name: str, **fields: Any) -> "ToolPart":
        return cls(type=f"tool-{name}", **fields)


class DataPart(_WireModel):
    """Named custom payload; `type` is `data-<name>`."""

    type: str
    id: Optional[str] = None
    data: Any = None

    @field_validator("type")
    @classmethod
    def _data_prefix(cls, v: str) -> str:
        if not v.startswith("data-") or len(v) <= len("data-"):
            raise ValueError("data part type must look like 'data-<name>'")
        return v

    @property
    def data_name(self) -> str:
        return self.type[len("data-"):]


class SourceUrlPart(_WireModel):
    type: Literal["source-url"] = "source-url"
    source_id: str
    url: str
    title: Optional[str] = None
    provider_metadata: Optional[dict[str, Any]] = None


class SourceDocumentPart(_WireModel):
    type: Literal["source-document"] = "source-document"
    source_id: str
    media_type: str
    title: str
    filename: Optional[str] = None
    provider_metadata: Optional[dict[str, Any]] = None


class FilePart(_WireModel):
    type: Literal["file"] = "file"
    media_type: str
    filename: Optional[str] = None
    url: str


class StepStartPart(_WireModel):
    type: Literal["step-start"] = "step-start"


class UnknownPart(BaseModel):
    """Any part shape we do not model. Keeps every field it arrived with."""

    model_config = ConfigDict(extra="allow")

    type: str = "unknown"

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


_FIXED_TAGS = {"text", "reasoning", "source-url", "source-document", "file", "step-start"}


def part_tag(value: Any) -> str:
    """Discriminator for the part union; works on raw dicts and on model instances."""
    if isinstance(value, UnknownPart):
        return "unknown"
    raw = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if not isinstance(raw, str):
        return "unknown"
    if raw.startswith("tool-"):
        return "tool"
    if raw.startswith("data-"):
        return "data"
    if raw in _FIXED_TAGS:
        return raw
    return "unknown"


MessagePart = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[ReasoningPart, Tag("reasoning")],
        Annotated[ToolPart, Tag("tool")],
        Annotated[DataPart, Tag("data")],
        Annotated[SourceUrlPart, Tag("source-url")],
        Annotated[SourceDocumentPart, Tag("source-document")],
        Annotated[FilePart, Tag("file")],
        Annotated[StepStartPart, Tag("step-start")],
        Annotated[UnknownPart, Tag("unknown")],
    ],
    Discriminator(part_tag),
]


class UIMessage(_WireModel):
    id: str
    role: Role
    parts: list[MessagePart] = Field(default_factory=list)
    metadata: Optional[dict[str, Any]] = None

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"id": self.id, "role": self.role, "parts": [p.to_wire() for p in self.parts]}
        if self.metadata is not None:
            body["metadata"] = self.metadata
        return body


class MessageMetadata(_WireModel):
    """Metadata attached to assistant replies."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    model: Optional[str] = None
    tokens: Optional[int] = None
    processing_time: Optional[int] = None  # milliseconds


def extract_text(message: Optional[UIMessage]) -> Optional[str]:
    """Text of the first non-empty text part, or None."""
    if message is None:
        return None
    for part in message.parts:
        if isinstance(part, TextPart) and part.text:
            return part.text
    return None


def message_text(message: UIMessage) -> str:
    """All text parts joined, for model history."""
    return "".join(p.text for p in message.parts if isinstance(p, TextPart))
