"""
Unit Tests for the OpenAI Reasoning Service

The AsyncOpenAI client is replaced by a mock; no network access.
"""

import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from eduvane_orchestrator.exceptions import PerceptionError, ReasoningError, StreamError
from eduvane_orchestrator.models import InterpretationContext, PipelineMode, UserRole
from eduvane_orchestrator.openai_service import OpenAIReasoningService, parse_json_payload


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeStream:
    """Async iterable of streamed chat chunks, optionally failing midway."""

    def __init__(self, pieces, error=None):
        self.pieces = pieces
        self.error = error

    async def __aiter__(self):
        for piece in self.pieces:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))])
        if self.error:
            raise self.error


class TestOpenAIReasoningService:

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock()
        return client

    @pytest.fixture
    def service(self, client):
        return OpenAIReasoningService(llm_client=client)

    def test_requires_api_key_without_client(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            OpenAIReasoningService()

    # ---------- perception ----------

    @pytest.mark.asyncio
    async def test_perceive_plain_text_skips_model(self, service, client):
        encoded = base64.b64encode(b"x + 1 = 3").decode()
        assert await service.perceive(encoded, "text/plain") == "x + 1 = 3"
        client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_perceive_rejects_unsupported_type(self, service, client):
        with pytest.raises(PerceptionError):
            await service.perceive("AAAA", "application/zip")
        client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_perceive_image_uses_vision_model(self, service, client):
        client.chat.completions.create.return_value = completion("2x + 3 = 7")
        text = await service.perceive("AAAA", "image/png")

        assert text == "2x + 3 = 7"
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == service.vision_model
        part = kwargs["messages"][1]["content"][0]
        assert part["type"] == "image_url"
        assert part["image_url"]["url"] == "data:image/png;base64,AAAA"

    @pytest.mark.asyncio
    async def test_perceive_pdf_sends_file_part(self, service, client):
        client.chat.completions.create.return_value = completion("essay text")
        await service.perceive("JVBE", "application/pdf")
        part = client.chat.completions.create.await_args.kwargs["messages"][1]["content"][0]
        assert part["type"] == "file"

    @pytest.mark.asyncio
    async def test_perceive_failure_is_wrapped(self, service, client):
        client.chat.completions.create.side_effect = RuntimeError("timeout")
        with pytest.raises(PerceptionError):
            await service.perceive("AAAA", "image/jpeg")

    # ---------- interpretation ----------

    @pytest.mark.asyncio
    async def test_interpret_parses_fenced_json(self, service, client):
        client.chat.completions.create.return_value = completion(
            '```json\n{"subject": "Biology", "topic": "Cells", "intent": "both"}\n```'
        )
        context = await service.interpret("Describe a cell")
        assert context.subject == "Biology"
        assert context.intent == "both"

    @pytest.mark.asyncio
    async def test_interpret_degrades_to_default(self, service, client):
        client.chat.completions.create.side_effect = RuntimeError("rate limited")
        context = await service.interpret("anything")
        assert context == InterpretationContext.default()

    # ---------- reasoning ----------

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", [PipelineMode.FAST, PipelineMode.DEEP])
    async def test_reason_selects_model_by_mode(self, service, client, mode):
        client.chat.completions.create.return_value = completion(json.dumps({
            "score": {"value": 8, "label": "8/10", "reasoning": "Solid"},
            "feedback": [{"type": "strength", "text": "Correct answer"}],
        }))
        context = InterpretationContext(subject="Mathematics", topic="Algebra")
        result = await service.reason(None, None, "2x+3=7, x=2", context, "solve 2x+3=7", mode, role=UserRole.STUDENT)

        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == service.model_for(mode)
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "Active Role: STUDENT" in kwargs["messages"][1]["content"][0]["text"]
        assert result.subject == "Mathematics"
        assert result.score.label == "8/10"
        assert result.raw_text == "2x+3=7, x=2"

    @pytest.mark.asyncio
    async def test_reason_attaches_image(self, service, client):
        client.chat.completions.create.return_value = completion("{}")
        await service.reason("AAAA", "image/png", "text", InterpretationContext(), None, PipelineMode.FAST)
        content = client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
        assert content[0]["type"] == "image_url"
        assert content[1]["type"] == "text"

    @pytest.mark.asyncio
    async def test_reason_failure_is_wrapped(self, service, client):
        client.chat.completions.create.side_effect = RuntimeError("boom")
        with pytest.raises(ReasoningError):
            await service.reason(None, None, "text", InterpretationContext(), None, PipelineMode.DEEP)

    # ---------- learning tasks ----------

    @pytest.mark.asyncio
    async def test_stream_learning_task(self, service, client):
        client.chat.completions.create.return_value = FakeStream(["Question 1", None, "Question 2"])
        session = service.create_session()

        fragments = [f async for f in service.stream_learning_task("make a quiz", UserRole.TEACHER, session)]

        assert fragments == ["Question 1", "Question 2"]
        sent = client.chat.completions.create.await_args.kwargs["messages"][-1]["content"]
        assert sent == "[Active User Role: TEACHER] make a quiz"
        assert session.messages[-1] == {"role": "assistant", "content": "Question 1Question 2"}

    @pytest.mark.asyncio
    async def test_stream_uses_session_memory(self, service, client):
        client.chat.completions.create.return_value = FakeStream(["ok"])
        session = service.create_session()
        session.add_exchange("earlier question", "earlier answer")

        [f async for f in service.stream_learning_task("next", None, session)]

        messages = client.chat.completions.create.await_args.kwargs["messages"]
        assert messages[1] == {"role": "user", "content": "earlier question"}
        assert messages[-1]["content"] == "[Active User Role: Ambiguous] next"

    @pytest.mark.asyncio
    async def test_stream_failure_raises_stream_error(self, service, client):
        client.chat.completions.create.return_value = FakeStream(["partial"], error=RuntimeError("dropped"))
        session = service.create_session()

        received = []
        with pytest.raises(StreamError):
            async for fragment in service.stream_learning_task("make a quiz", None, session):
                received.append(fragment)

        assert received == ["partial"]
        assert session.messages == []


class TestParseJsonPayload:

    def test_prose_wrapped_object(self):
        assert parse_json_payload('Here you go: {"a": 1} hope it helps') == {"a": 1}

    def test_empty_reply(self):
        assert parse_json_payload(None) == {}

    def test_non_object_json(self):
        assert parse_json_payload("[1, 2]") == {}

    def test_garbage_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_json_payload("no json here")
