"""
Message codec: wire UIMessage <-> persisted message document.

Each part is stored as a tagged dict (`_type`) holding only the fields that tag needs.
Structured payloads (tool input/output, data, provider metadata) are stored as JSON
strings under `{"data": ...}` so the document schema stays flat. Message metadata is an
opaque JSON string under `metadata.custom`.

Unrecognized parts are written as text parts holding a JSON dump of the original and
flagged with `lossy: True`; that path is logged as a warning every time.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

from api.schemas.message_schemas import (
    DataPart,
    FilePart,
    MessagePart,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
    UIMessage,
    UnknownPart,
)
from api.utils.logger import configure_logging

logger = configure_logging()


def _wrap(value: Any, key: str = "data") -> Optional[dict[str, str]]:
    if value is None:
        return None
    return {key: json.dumps(value)}


def _unwrap(blob: Optional[dict], key: str = "data") -> Any:
    if not blob or blob.get(key) is None:
        return None
    return json.loads(blob[key])


def _compact(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if v is not None}


# ---- encoders (part -> document fields) ----

def _encode_text(part: TextPart) -> dict[str, Any]:
    return {"_type": "text", "text": part.text, "state": part.state}


def _encode_reasoning(part: ReasoningPart) -> dict[str, Any]:
    return {
        "_type": "reasoning",
        "text": part.text,
        "state": part.state,
        "provider_metadata": _wrap(part.provider_metadata),
    }


def _encode_tool(part: ToolPart) -> dict[str, Any]:
    return {
        "_type": "tool",
        "name": part.tool_name,
        "tool_call_id": part.tool_call_id,
        "state": part.state,
        "input": _wrap(part.input),
        "output": _wrap(part.output),
        "error_text": part.error_text,
        "provider_executed": part.provider_executed,
    }


def _encode_data(part: DataPart) -> dict[str, Any]:
    return {
        "_type": "data",
        "name": part.data_name,
        "data_id": part.id,
        "data": _wrap(part.data, key="content"),
    }


def _encode_source_url(part: SourceUrlPart) -> dict[str, Any]:
    return {
        "_type": "source_url",
        "source_id": part.source_id,
        "url": part.url,
        "title": part.title,
        "provider_metadata": _wrap(part.provider_metadata),
    }


def _encode_source_document(part: SourceDocumentPart) -> dict[str, Any]:
    return {
        "_type": "source_document",
        "source_id": part.source_id,
        "media_type": part.media_type,
        "title": part.title,
        "filename": part.filename,
        "provider_metadata": _wrap(part.provider_metadata),
    }


def _encode_file(part: FilePart) -> dict[str, Any]:
    return {"_type": "file", "media_type": part.media_type, "filename": part.filename, "url": part.url}


def _encode_step_start(part: StepStartPart) -> dict[str, Any]:
    return {"_type": "step_start"}


def _encode_unknown(part: UnknownPart) -> dict[str, Any]:
    raw = part.to_wire()
    logger.warning(
        "event=message_part_unrecognized part_type=%s stored_as=text lossy=true", raw.get("type")
    )
    return {"_type": "text", "text": json.dumps(raw, default=str), "state": "done", "lossy": True}


_ENCODERS: dict[type, Callable[[Any], dict[str, Any]]] = {
    TextPart: _encode_text,
    ReasoningPart: _encode_reasoning,
    ToolPart: _encode_tool,
    DataPart: _encode_data,
    SourceUrlPart: _encode_source_url,
    SourceDocumentPart: _encode_source_document,
    FilePart: _encode_file,
    StepStartPart: _encode_step_start,
    UnknownPart: _encode_unknown,
}


def encode_part(part: MessagePart, index: int) -> dict[str, Any]:
    encoder = _ENCODERS.get(type(part))
    if encoder is None:
        part, encoder = UnknownPart.model_validate(part.to_wire()), _encode_unknown
    doc = {"_key": f"part-{index}", **encoder(part)}
    return _compact(doc)


# ---- decoders (document -> part) ----

def _decode_text(doc: dict) -> TextPart:
    return TextPart(text=doc.get("text") or "", state=doc.get("state"))


def _decode_reasoning(doc: dict) -> ReasoningPart:
    return ReasoningPart(
        text=doc.get("text") or "",
        state=doc.get("state"),
        provider_metadata=_unwrap(doc.get("provider_metadata")),
    )


def _decode_tool(doc: dict) -> ToolPart:
    state = doc.get("state")
    return ToolPart.named(
        doc.get("name") or "unknown",
        tool_call_id=doc.get("tool_call_id") or "",
        state=state,
        input=_unwrap(doc.get("input")),
        output=_unwrap(doc.get("output")) if state == "output-available" else None,
        error_text=doc.get("error_text") if state == "output-error" else None,
        provider_executed=doc.get("provider_executed"),
    )


def _decode_data(doc: dict) -> DataPart:
    return DataPart(
        type=f"data-{doc.get('name') or 'unknown'}",
        id=doc.get("data_id"),
        data=_unwrap(doc.get("data"), key="content"),
    )


def _decode_source_url(doc: dict) -> SourceUrlPart:
    return SourceUrlPart(
        source_id=doc.get("source_id") or "",
        url=doc.get("url") or "",
        title=doc.get("title"),
        provider_metadata=_unwrap(doc.get("provider_metadata")),
    )


def _decode_source_document(doc: dict) -> SourceDocumentPart:
    return SourceDocumentPart(
        source_id=doc.get("source_id") or "",
        media_type=doc.get("media_type") or "",
        title=doc.get("title") or "",
        filename=doc.get("filename"),
        provider_metadata=_unwrap(doc.get("provider_metadata")),
    )


def _decode_file(doc: dict) -> FilePart:
    return FilePart(media_type=doc.get("media_type") or "", filename=doc.get("filename"), url=doc.get("url") or "")


def _decode_step_start(doc: dict) -> StepStartPart:
    return StepStartPart()


_DECODERS: dict[str, Callable[[dict], MessagePart]] = {
    "text": _decode_text,
    "reasoning": _decode_reasoning,
    "tool": _decode_tool,
    "data": _decode_data,
    "source_url": _decode_source_url,
    "source_document": _decode_source_document,
    "file": _decode_file,
    "step_start": _decode_step_start,
}


def decode_part(doc: dict) -> MessagePart:
    decoder = _DECODERS.get(doc.get("_type"))
    if decoder is None:
        # document written by something else; keep what we can see
        logger.warning("event=message_part_undecodable part_tag=%s", doc.get("_type"))
        return UnknownPart.model_validate({k: v for k, v in doc.items() if not k.startswith("_")})
    return decoder(doc)


# ---- metadata ----

def encode_metadata(metadata: Optional[dict[str, Any]]) -> Optional[str]:
    if metadata is None:
        return None
    return json.dumps(metadata, default=str)


def decode_metadata(raw: Optional[str]) -> Optional[dict[str, Any]]:
    """Parse the opaque metadata string; unreadable metadata reads as no metadata."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("event=message_metadata_unparseable length=%s", len(raw))
        return None
    return value if isinstance(value, dict) else None


# ---- messages ----

def encode_message(
    message: UIMessage,
    session_id: str,
    metadata: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """
    Build the persisted document for a message. Explicit `metadata` (e.g. model/tokens
    for assistant replies) takes precedence over the message's own metadata.
    """
    custom = encode_metadata(metadata if metadata is not None else message.metadata)
    return {
        "message_id": message.id,
        "session_id": session_id,
        "role": message.role,
        "metadata": {"custom": custom} if custom else None,
        "parts": [encode_part(part, i) for i, part in enumerate(message.parts)],
    }


def decode_message(document: Optional[dict[str, Any]]) -> UIMessage:
    if not document:
        return UIMessage(id="", role="user", parts=[])
    meta_blob = document.get("metadata") or {}
    return UIMessage(
        id=document.get("message_id") or "",
        role=document.get("role") or "user",
        metadata=decode_metadata(meta_blob.get("custom")),
        parts=[decode_part(p) for p in document.get("parts") or []],
    )


def is_lossy(document: dict[str, Any]) -> bool:
    return any(p.get("lossy") for p in document.get("parts") or [])
