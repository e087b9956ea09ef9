import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union
from uuid import uuid4

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool
from langchain_ollama import ChatOllama

from api.schemas.message_schemas import (
    MessagePart,
    ReasoningPart,
    StepStartPart,
    TextPart,
    ToolPart,
    UIMessage,
    message_text,
)
from api.utils.logger import configure_logging
from infra.llm.base import GenerationResult, TextGenerator

logger = configure_logging()


def to_langchain_messages(system_prompt: str, messages: Sequence[UIMessage]) -> List[BaseMessage]:
    """System prompt followed by the text of each wire message, mapped by role."""
    out: List[BaseMessage] = [SystemMessage(content=system_prompt)]
    for message in messages:
        text = message_text(message)
        if not text:
            continue
        if message.role == "user":
            out.append(HumanMessage(content=text))
        elif message.role == "assistant":
            out.append(AIMessage(content=text))
        else:
            out.append(SystemMessage(content=text))
    return out


def _content_text(content: Any) -> str:
    # content is a str for Ollama, but may be a list of blocks for other chat models
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return ""


class OllamaGenerator(TextGenerator):
    """
    Streaming chat generation on ChatOllama with an optional tool loop.

    Each model step emits a step-start part, then reasoning (when the model returns it),
    text, and one tool part per tool call. Tool results are fed back for the next step, up
    to `max_steps`; the last step runs without tools so the model has to answer.
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.7,
        base_url: str = "http://localhost:11434",
        tools: Optional[Sequence[BaseTool]] = None,
        max_steps: int = 3,
        chat_model: Any = None,
    ):
        self.model = model
        self._chat = chat_model or ChatOllama(model=model, temperature=temperature, base_url=base_url)
        self.tools = list(tools or [])
        self._tools_by_name: Dict[str, BaseTool] = {t.name: t for t in self.tools}
        self._with_tools = self._chat.bind_tools(self.tools) if self.tools else self._chat
        self.max_steps = max(1, max_steps)

    async def stream(self, system_prompt: str, messages: List[UIMessage]) -> AsyncIterator[Union[str, GenerationResult]]:
        history = to_langchain_messages(system_prompt, messages)
        parts: List[MessagePart] = []
        texts: List[str] = []
        total_tokens: Optional[int] = None
        model_id = self.model

        for step in range(self.max_steps):
            runnable = self._with_tools if step < self.max_steps - 1 else self._chat
            parts.append(StepStartPart())

            aggregate = None
            async for chunk in runnable.astream(history):
                aggregate = chunk if aggregate is None else aggregate + chunk
                delta = _content_text(chunk.content)
                if delta:
                    yield delta
            if aggregate is None:
                break

            usage = getattr(aggregate, "usage_metadata", None) or {}
            if usage.get("total_tokens") is not None:
                total_tokens = (total_tokens or 0) + usage["total_tokens"]
            meta = aggregate.response_metadata or {}
            model_id = meta.get("model_name") or meta.get("model") or model_id

            reasoning = (aggregate.additional_kwargs or {}).get("reasoning_content")
            if reasoning:
                parts.append(ReasoningPart(text=reasoning, state="done"))
            text = _content_text(aggregate.content)
            if text:
                parts.append(TextPart(text=text, state="done"))
                texts.append(text)

            tool_calls = list(getattr(aggregate, "tool_calls", None) or [])
            if not tool_calls:
                break

            for call in tool_calls:
                call["id"] = call.get("id") or f"call_{uuid4().hex[:12]}"
            history.append(AIMessage(content=aggregate.content, tool_calls=tool_calls))
            for call in tool_calls:
                part, tool_message = await self._run_tool(call)
                parts.append(part)
                history.append(tool_message)

        logger.debug("event=generation_finished model=%s tokens=%s parts=%s", model_id, total_tokens, len(parts))
        yield GenerationResult(text="".join(texts), model_id=model_id, total_tokens=total_tokens, parts=parts)

    async def _run_tool(self, call: Dict[str, Any]) -> Tuple[ToolPart, ToolMessage]:
        name = call.get("name") or "unknown"
        call_id = call["id"]
        args = call.get("args") or {}
        tool = self._tools_by_name.get(name)

        try:
            if tool is None:
                raise LookupError(f"Unknown tool: {name}")
            output = await tool.ainvoke(args)
        except Exception as e:
            logger.warning("event=tool_call_failed tool=%s call_id=%s error=%s", name, call_id, e)
            part = ToolPart.named(name, tool_call_id=call_id, state="output-error", input=args, error_text=str(e))
            return part, ToolMessage(content=f"Error: {e}", tool_call_id=call_id, status="error")

        part = ToolPart.named(name, tool_call_id=call_id, state="output-available", input=args, output=output)
        return part, ToolMessage(content=json.dumps(output, default=str), tool_call_id=call_id)
