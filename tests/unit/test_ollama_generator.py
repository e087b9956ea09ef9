"""Unit tests for OllamaGenerator and the searchResources tool (ChatOllama mocked)."""
from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage, ToolMessage

from api.schemas.message_schemas import ReasoningPart, StepStartPart, TextPart, ToolPart, UIMessage
from api.services.context_retriever import ContextRetriever
from infra.llm.base import GenerationResult
from infra.llm.ollama import OllamaGenerator, to_langchain_messages
from infra.llm.tools import SEARCH_RESOURCES, build_search_resources_tool


class ScriptedRunnable:
    """Streams one scripted list of chunks per astream call and records the history it saw."""

    def __init__(self, steps):
        self.steps = list(steps)
        self.histories = []

    async def astream(self, history):
        self.histories.append(list(history))
        for chunk in self.steps.pop(0):
            yield chunk


def _chat_model(steps):
    runnable = ScriptedRunnable(steps)
    chat = MagicMock()
    chat.astream = runnable.astream
    chat.bind_tools.return_value = runnable
    return chat, runnable


def _user(text: str) -> UIMessage:
    return UIMessage(id="u", role="user", parts=[TextPart(text=text)])


async def _collect(generator, messages):
    deltas, result = [], None
    async for item in generator.stream("You are a tutor.", messages):
        if isinstance(item, GenerationResult):
            result = item
        else:
            deltas.append(item)
    return deltas, result


@pytest.mark.unit
class TestToLangchainMessages:
    def test_maps_roles_and_skips_empty(self):
        messages = [
            _user("What is a closure?"),
            UIMessage(id="a", role="assistant", parts=[StepStartPart(), TextPart(text="A function "), TextPart(text="with scope.")]),
            UIMessage(id="e", role="user", parts=[StepStartPart()]),
        ]
        out = to_langchain_messages("system", messages)
        assert [type(m) for m in out] == [SystemMessage, HumanMessage, AIMessage]
        assert out[2].content == "A function with scope."


@pytest.mark.unit
class TestOllamaGenerator:
    @pytest.mark.asyncio
    async def test_streams_deltas_then_result(self):
        chat, runnable = _chat_model(
            [
                [
                    AIMessageChunk(content="Closures "),
                    AIMessageChunk(content="keep scope."),
                    AIMessageChunk(
                        content="",
                        response_metadata={"model_name": "qwen2.5:7b"},
                        usage_metadata={"input_tokens": 30, "output_tokens": 12, "total_tokens": 42},
                    ),
                ]
            ]
        )
        with patch("infra.llm.ollama.ChatOllama", return_value=chat):
            generator = OllamaGenerator(model="configured-model")

        deltas, result = await _collect(generator, [_user("What is a closure?")])

        assert deltas == ["Closures ", "keep scope."]
        assert result.text == "Closures keep scope."
        assert result.model_id == "qwen2.5:7b"
        assert result.total_tokens == 42
        assert result.parts == [StepStartPart(), TextPart(text="Closures keep scope.", state="done")]
        assert isinstance(runnable.histories[0][0], SystemMessage)

    @pytest.mark.asyncio
    async def test_reasoning_content_becomes_reasoning_part(self):
        chat, _ = _chat_model(
            [[AIMessageChunk(content="Answer.", additional_kwargs={"reasoning_content": "thinking it over"})]]
        )
        generator = OllamaGenerator(model="m", chat_model=chat)

        _, result = await _collect(generator, [_user("q")])

        assert result.parts == [
            StepStartPart(),
            ReasoningPart(text="thinking it over", state="done"),
            TextPart(text="Answer.", state="done"),
        ]
        assert result.model_id == "m"
        assert result.total_tokens is None

    @pytest.mark.asyncio
    async def test_tool_call_loop(self, fake_store, search_result):
        fake_store.results["resource"] = [
            search_result("r1#0", 0.77, "MDN: closures", url="https://developer.mozilla.org", chunkIndex=0)
        ]
        tool = build_search_resources_tool(ContextRetriever(fake_store))
        chat, runnable = _chat_model(
            [
                [
                    AIMessageChunk(
                        content="",
                        tool_call_chunks=[
                            {"name": SEARCH_RESOURCES, "args": '{"query": "closures", "topK": 2}', "id": "call_1", "index": 0}
                        ],
                    )
                ],
                [AIMessageChunk(content="See MDN for more.")],
            ]
        )
        generator = OllamaGenerator(model="m", tools=[tool], chat_model=chat)
        chat.bind_tools.assert_called_once_with([tool])

        deltas, result = await _collect(generator, [_user("Any resources on closures?")])

        assert deltas == ["See MDN for more."]
        step1, tool_part, step2, text = result.parts
        assert step1 == StepStartPart() and step2 == StepStartPart()
        assert isinstance(tool_part, ToolPart)
        assert tool_part.tool_name == SEARCH_RESOURCES
        assert tool_part.state == "output-available"
        assert tool_part.input == {"query": "closures", "topK": 2}
        assert tool_part.output["totalResults"] == 1
        assert tool_part.output["resources"][0]["url"] == "https://developer.mozilla.org"
        assert text == TextPart(text="See MDN for more.", state="done")

        second_history = runnable.histories[1]
        assert isinstance(second_history[-1], ToolMessage)
        assert json.loads(second_history[-1].content)["totalResults"] == 1

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_error_part(self, fake_store):
        tool = build_search_resources_tool(ContextRetriever(fake_store))
        chat, _ = _chat_model(
            [
                [AIMessageChunk(content="", tool_call_chunks=[{"name": "deleteCourse", "args": "{}", "id": "c9", "index": 0}])],
                [AIMessageChunk(content="Sorry, I can't do that.")],
            ]
        )
        generator = OllamaGenerator(model="m", tools=[tool], chat_model=chat)

        _, result = await _collect(generator, [_user("delete it")])

        tool_part = result.parts[1]
        assert tool_part.state == "output-error"
        assert "Unknown tool" in tool_part.error_text
        assert tool_part.output is None

    @pytest.mark.asyncio
    async def test_last_step_runs_without_tools(self, fake_store):
        tool = build_search_resources_tool(ContextRetriever(fake_store))
        call = {"name": SEARCH_RESOURCES, "args": '{"query": "x"}', "id": "c", "index": 0}
        with_tools = ScriptedRunnable([[AIMessageChunk(content="", tool_call_chunks=[call])]])
        plain = ScriptedRunnable([[AIMessageChunk(content="done")]])
        chat = MagicMock()
        chat.astream = plain.astream
        chat.bind_tools.return_value = with_tools
        generator = OllamaGenerator(model="m", tools=[tool], max_steps=2, chat_model=chat)

        _, result = await _collect(generator, [_user("q")])

        assert len(with_tools.histories) == 1
        assert len(plain.histories) == 1
        assert [type(p) for p in result.parts] == [StepStartPart, ToolPart, StepStartPart, TextPart]

    @pytest.mark.asyncio
    async def test_model_errors_propagate(self):
        chat = MagicMock()

        async def broken(history):
            raise ConnectionError("ollama unreachable")
            yield  # pragma: no cover

        chat.astream = broken
        generator = OllamaGenerator(model="m", chat_model=chat)
        with pytest.raises(ConnectionError):
            await _collect(generator, [_user("q")])


@pytest.mark.unit
class TestSearchResourcesTool:
    @pytest.mark.asyncio
    async def test_formats_ranked_resources(self, fake_store, search_result):
        fake_store.results["resource"] = [
            search_result("r1#0", 0.9, "Closures explained", url="https://example.com/closures", chunkIndex=3),
            search_result("r2#0", 0.4, ""),
        ]
        tool = build_search_resources_tool(ContextRetriever(fake_store))

        output = await tool.ainvoke({"query": "closures", "topK": 2})

        assert output["query"] == "closures"
        assert output["totalResults"] == 2
        first, second = output["resources"]
        assert (first["rank"], first["url"], first["chunkIndex"]) == (1, "https://example.com/closures", 3)
        assert second["content"] == "No content available"
        assert second["url"] == "No URL available"
        assert fake_store.queries[0]["where"] == {"type": "resource"}
        assert fake_store.queries[0]["k"] == 2

    @pytest.mark.asyncio
    async def test_search_failure_returns_error_payload(self, fake_store):
        fake_store.error = ConnectionError("index down")
        tool = build_search_resources_tool(ContextRetriever(fake_store))

        output = await tool.ainvoke({"query": "closures"})

        assert output["error"] == "Failed to search learning resources"
        assert output["resources"] == []
