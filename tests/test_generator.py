import base64

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from media_studio.config import Settings
from media_studio.errors import AIUnavailable, SafetyRefusal
from media_studio.generator import GenerativeClient, build_human_message
from media_studio.messaging import ChatMessage, NegotiationPayload


class FakeLLM:
    """Minimal chat model double: records bound kwargs and the messages sent."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.bound = {}
        self.sent = []

    def bind(self, **kwargs):
        self.bound.update(kwargs)
        return self

    async def ainvoke(self, messages):
        self.sent.append(messages)
        if self.error is not None:
            raise self.error
        return self.response


def _settings(**overrides):
    values = dict(
        openai_api_key=None,
        model_name="gpt-4o-mini",
        temperature=0.7,
        request_timeout=30.0,
        max_retries=1,
        history_window=6,
        font_dir=None,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
async def test_generate_returns_answer_text():
    llm = FakeLLM(AIMessage(content="Spec synced."))
    history = [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]

    text = await GenerativeClient(llm).generate("make it bold", system="director", history=history)

    assert text == "Spec synced."
    messages = llm.sent[0]
    assert isinstance(messages[0], SystemMessage)
    assert isinstance(messages[1], HumanMessage)
    assert isinstance(messages[2], AIMessage)
    assert messages[-1].content == "make it bold"
    assert llm.bound == {}


@pytest.mark.asyncio
async def test_schema_requests_json_mode():
    llm = FakeLLM(AIMessage(content="{}"))

    await GenerativeClient(llm).generate("update", schema=NegotiationPayload)

    assert llm.bound == {"response_format": {"type": "json_object"}}
    prompt = llm.sent[0][-1].content
    assert prompt.startswith("update")
    assert "updatedSpec" in prompt


@pytest.mark.asyncio
async def test_transport_failure_is_ai_unavailable():
    client = GenerativeClient(FakeLLM(error=TimeoutError("read timed out")))
    with pytest.raises(AIUnavailable):
        await client.generate("hello")


@pytest.mark.asyncio
async def test_empty_answer_is_ai_unavailable():
    client = GenerativeClient(FakeLLM(AIMessage(content="   ")))
    with pytest.raises(AIUnavailable):
        await client.generate("hello")


@pytest.mark.asyncio
async def test_content_filter_is_safety_refusal():
    response = AIMessage(content="", response_metadata={"finish_reason": "content_filter"})
    with pytest.raises(SafetyRefusal):
        await GenerativeClient(FakeLLM(response)).generate("hello")


@pytest.mark.asyncio
async def test_explicit_refusal_is_safety_refusal():
    response = AIMessage(content="", additional_kwargs={"refusal": "I can't help with that."})
    with pytest.raises(SafetyRefusal, match="can't help"):
        await GenerativeClient(FakeLLM(response)).generate("hello")


def test_image_is_sent_as_data_url():
    message = build_human_message("describe", b"\x89PNG")
    image_part, text_part = message.content
    assert image_part["image_url"]["url"] == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()
    assert text_part == {"type": "text", "text": "describe"}


def test_plain_text_message():
    assert build_human_message("describe").content == "describe"


def test_no_api_key_means_no_client():
    assert GenerativeClient.from_settings(_settings()) is None


def test_api_key_builds_chat_model():
    client = GenerativeClient.from_settings(_settings(openai_api_key="sk-test", model_name="gpt-4o"))
    assert client is not None
    assert client.llm.model_name == "gpt-4o"
