"""Tests for question generation and the providers behind it."""

import json

import httpx
import pytest

from quizgen.app.exceptions import GenerationError
from quizgen.app.providers.mock import MockProvider
from quizgen.app.providers.openai import OpenAIProvider, _parse_sse_line
from quizgen.app.providers.base import BaseProvider
from quizgen.app.services.generation import (
    build_generation_payload,
    build_grading_payload,
    build_system_prompt,
    grade_answer,
    parse_grading_verdict,
    start_generation,
)


def sse(content: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]})


class TestPromptBuilding:
    def test_fixed_correct_answers(self):
        prompt = build_system_prompt("multiple-choice", 7, options_count=5, correct_answers_count=2)
        assert prompt.startswith("You are an expert quiz creator generating 7 questions.")
        assert "The questions must be multiple choice." in prompt
        assert "exactly 5 options" in prompt
        assert "exactly 2 correct answer(s)" in prompt

    def test_random_correct_answers(self):
        prompt = build_system_prompt(
            "mixed", 3, random_correct_answers=True, min_correct_answers=1, max_correct_answers=3
        )
        assert "between 1 and 3 correct answers" in prompt

    def test_extra_instructions_appended(self):
        prompt = build_system_prompt("true-false", 2, extra_instructions="Use British spelling.")
        assert prompt.endswith("Use British spelling.")

    def test_payload_includes_previous_output(self):
        payload = build_generation_payload(
            model="gpt-4o-mini",
            system_prompt="sys",
            user_input="cells",
            file_content="",
            previous_output={"questions": [{"question": "Q1"}]},
        )
        assert payload["model"] == "gpt-4o-mini"
        assert payload["messages"][0] == {"role": "system", "content": "sys"}
        assert "Questions generated so far" in payload["messages"][1]["content"]
        assert '"Q1"' in payload["messages"][1]["content"]


class TestStartGeneration:
    @pytest.mark.asyncio
    async def test_first_chunk_then_rest(self):
        provider = MockProvider(chunk_size=8)
        payload = build_generation_payload("m", build_system_prompt("true-false", 3), "x")

        generation = await start_generation(provider, payload)
        text = "".join([chunk async for chunk in generation.chunks()])

        assert len(generation.first_chunk) == 8
        assert len(json.loads(text)["questions"]) == 3

    @pytest.mark.asyncio
    async def test_failure_before_output(self):
        provider = MockProvider(fail_before_output=True)
        with pytest.raises(GenerationError):
            await start_generation(provider, {"messages": []})

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        class EmptyProvider(MockProvider):
            async def stream_questions(self, payload):
                for chunk in ("", ""):
                    yield chunk

        with pytest.raises(GenerationError):
            await start_generation(EmptyProvider(), {"messages": []})

    @pytest.mark.asyncio
    async def test_upstream_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = OpenAIProvider("https://llm.test/v1", "key", http_client=client)

        with pytest.raises(GenerationError):
            await start_generation(provider, {"model": "m", "messages": []})
        await client.aclose()


class TestOpenAIProvider:
    def test_parse_sse_line(self):
        assert _parse_sse_line(sse("abc")) == "abc"
        assert _parse_sse_line("data: [DONE]") is None
        assert _parse_sse_line(": keep-alive") is None
        assert _parse_sse_line("data: {broken") is None
        assert _parse_sse_line('data: {"choices": []}') is None

    @pytest.mark.asyncio
    async def test_streams_content_deltas(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            lines = [sse('{"questions": '), "", sse("[]}"), "", "data: [DONE]", ""]
            return httpx.Response(200, text="\n".join(lines))

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = OpenAIProvider("https://llm.test/v1/", "sk-test", http_client=client)

        chunks = [c async for c in provider.stream_questions({"model": "m", "messages": []})]

        assert "".join(chunks) == '{"questions": []}'
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["body"]["stream"] is True
        assert seen["auth"] == "Bearer sk-test"
        await client.aclose()


class ReplyProvider(BaseProvider):
    """Provider that streams a fixed reply."""

    def __init__(self, reply: str):
        super().__init__("http://reply.provider", "key")
        self.reply = reply

    async def stream_questions(self, payload):
        yield self.reply


class TestAnswerGrading:
    def test_provider_needs_only_stream_questions(self):
        assert ReplyProvider("true").base_url == "http://reply.provider"

    def test_grading_payload(self):
        payload = build_grading_payload("gpt-4o-mini", "paris", "Paris")

        assert payload["temperature"] == 0.1
        assert payload["messages"][0]["content"].startswith("You are a quiz grader.")
        assert payload["messages"][1]["content"] == 'Correct answer: "Paris"\nUser answer: "paris"'

    def test_parse_verdict(self):
        assert parse_grading_verdict("true") is True
        assert parse_grading_verdict(" False.\n") is False
        assert parse_grading_verdict('{"isCorrect": true}') is True
        assert parse_grading_verdict('{"isCorrect": false}') is False

    def test_unreadable_verdict(self):
        with pytest.raises(GenerationError):
            parse_grading_verdict("maybe")
        with pytest.raises(GenerationError):
            parse_grading_verdict('{"isCorrect": "yes"}')

    @pytest.mark.asyncio
    async def test_mock_grades_case_insensitively(self):
        provider = MockProvider(chunk_size=2)

        assert await grade_answer(provider, " paris ", "Paris", model="m") is True
        assert await grade_answer(provider, "Lyon", "Paris", model="m") is False
        assert provider.calls[0]["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_json_verdict_from_provider(self):
        assert await grade_answer(ReplyProvider('{"isCorrect": true}'), "a", "b", model="m") is True

    @pytest.mark.asyncio
    async def test_provider_failure(self):
        with pytest.raises(GenerationError):
            await grade_answer(MockProvider(fail_before_output=True), "a", "b", model="m")
