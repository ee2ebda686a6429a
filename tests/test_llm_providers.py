from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vidsum.errors import ConfigurationError
from vidsum.llm_providers import (
    GeminiProvider,
    LLMGenerationError,
    OpenAIProvider,
    get_llm_provider,
)


def _chunk(content, finish_reason=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=content), finish_reason=finish_reason)]
    )


async def _stream(*chunks):
    for chunk in chunks:
        yield chunk


def test_unsupported_provider(make_settings):
    with pytest.raises(ConfigurationError) as excinfo:
        get_llm_provider(make_settings(llm_provider="llama"))
    assert excinfo.value.message == "Unsupported LLM provider: llama"


def test_gemini_requires_key(make_settings):
    with pytest.raises(ConfigurationError) as excinfo:
        get_llm_provider(make_settings(gemini_api_key=None))
    assert "GEMINI_API_KEY" in excinfo.value.message
    assert excinfo.value.status_code == 500


def test_openai_requires_model(make_settings):
    with pytest.raises(ConfigurationError):
        get_llm_provider(make_settings(llm_provider="openai", openai_api_key="sk", openai_model=None))


@patch("vidsum.llm_providers.genai")
def test_gemini_generate_content(genai, make_settings):
    model = genai.GenerativeModel.return_value
    model.generate_content.return_value = SimpleNamespace(
        text="A summary", prompt_feedback=SimpleNamespace(block_reason=0)
    )

    provider = get_llm_provider(make_settings(gemini_api_key="g-key"))

    assert isinstance(provider, GeminiProvider)
    genai.configure.assert_called_once_with(api_key="g-key")
    genai.GenerativeModel.assert_called_once_with("gemini-2.0-flash")
    assert provider.generate_content("system", "content") == "A summary"
    assert model.generate_content.call_args.args[0] == "system\n\ncontent"


@patch("vidsum.llm_providers.genai")
def test_gemini_errors_are_wrapped(genai):
    genai.GenerativeModel.return_value.generate_content.side_effect = RuntimeError("quota")
    provider = GeminiProvider("g-key", "gemini-2.0-flash")

    with pytest.raises(LLMGenerationError) as excinfo:
        provider.generate_content("system", "content")
    assert excinfo.value.message == "Gemini summarization error: quota"


@patch("vidsum.llm_providers.AsyncOpenAI")
@patch("vidsum.llm_providers.OpenAI")
def test_openai_generate_content(openai_cls, async_openai_cls, make_settings):
    llm = openai_cls.return_value
    llm.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="Summary"), finish_reason="stop")]
    )

    provider = get_llm_provider(
        make_settings(
            llm_provider="openai",
            openai_api_key="sk",
            openai_model="gpt-4o-mini",
            openai_base_url="https://llm.example.com/v1",
        )
    )

    assert isinstance(provider, OpenAIProvider)
    openai_cls.assert_called_once_with(api_key="sk", base_url="https://llm.example.com/v1")
    assert provider.generate_content("system", "content") == "Summary"
    assert llm.chat.completions.create.call_args.kwargs["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "content"},
    ]


@patch("vidsum.llm_providers.AsyncOpenAI")
@patch("vidsum.llm_providers.OpenAI")
def test_openai_content_filter(openai_cls, async_openai_cls):
    openai_cls.return_value.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=None), finish_reason="content_filter")]
    )
    provider = OpenAIProvider("sk", "gpt-4o-mini")

    with pytest.raises(LLMGenerationError):
        provider.generate_content("system", "content")


@patch("vidsum.llm_providers.AsyncOpenAI")
@patch("vidsum.llm_providers.OpenAI")
async def test_openai_stream(openai_cls, async_openai_cls):
    async_llm = async_openai_cls.return_value
    async_llm.chat.completions.create = AsyncMock(
        return_value=_stream(_chunk("Hel"), _chunk("lo"), _chunk(None, "stop"), _chunk("ignored"))
    )
    provider = OpenAIProvider("sk", "gpt-4o-mini")

    pieces = [piece async for piece in provider.generate_content_stream("system", "content")]

    assert pieces == ["Hel", "lo"]
    assert async_llm.chat.completions.create.call_args.kwargs["stream"] is True


@patch("vidsum.llm_providers.AsyncOpenAI")
@patch("vidsum.llm_providers.OpenAI")
async def test_openai_stream_content_filter(openai_cls, async_openai_cls):
    async_openai_cls.return_value.chat.completions.create = AsyncMock(
        return_value=_stream(_chunk("Hel"), _chunk(None, "content_filter"))
    )
    provider = OpenAIProvider("sk", "gpt-4o-mini")

    with pytest.raises(LLMGenerationError) as excinfo:
        async for _ in provider.generate_content_stream("system", "content"):
            pass
    assert excinfo.value.message == "OpenAI summarization error: content chunk blocked (Content Filter)."


@patch("vidsum.llm_providers.genai")
async def test_gemini_stream(genai):
    def chunk(text):
        part = SimpleNamespace(text=text)
        candidate = SimpleNamespace(
            finish_reason=SimpleNamespace(name="STOP"),
            content=SimpleNamespace(parts=[part]),
            safety_ratings=[],
        )
        return SimpleNamespace(prompt_feedback=None, candidates=[candidate])

    genai.GenerativeModel.return_value.generate_content.return_value = [chunk("One "), chunk("two")]
    provider = GeminiProvider("g-key", "gemini-2.0-flash")

    pieces = [piece async for piece in provider.generate_content_stream("system", "content")]

    assert pieces == ["One ", "two"]


def _gemini_chunk(text="", finish_reason="STOP", prompt_feedback=None, safety_ratings=()):
    candidate = SimpleNamespace(
        finish_reason=SimpleNamespace(name=finish_reason),
        content=SimpleNamespace(parts=[SimpleNamespace(text=text)]),
        safety_ratings=list(safety_ratings),
    )
    return SimpleNamespace(prompt_feedback=prompt_feedback, candidates=[candidate])


class _BlockedResponse:
    prompt_feedback = None

    @property
    def text(self):
        raise ValueError("The response was blocked.")


@patch("vidsum.llm_providers.genai")
def test_gemini_blocked_prompt(genai):
    genai.GenerativeModel.return_value.generate_content.return_value = SimpleNamespace(
        text="", prompt_feedback=SimpleNamespace(block_reason=SimpleNamespace(name="SAFETY"))
    )
    provider = GeminiProvider("g-key", "gemini-2.0-flash")

    with pytest.raises(LLMGenerationError) as excinfo:
        provider.generate_content("system", "content")
    assert excinfo.value.message == "Gemini summarization error: prompt blocked (SAFETY)"


@patch("vidsum.llm_providers.genai")
def test_gemini_blocked_candidates(genai):
    genai.GenerativeModel.return_value.generate_content.return_value = _BlockedResponse()
    provider = GeminiProvider("g-key", "gemini-2.0-flash")

    with pytest.raises(LLMGenerationError) as excinfo:
        provider.generate_content("system", "content")
    assert excinfo.value.message == "Gemini summarization error: The response was blocked."
    assert excinfo.value.status_code == 500


@patch("vidsum.llm_providers.genai")
async def test_gemini_stream_blocked_prompt(genai):
    feedback = SimpleNamespace(block_reason=SimpleNamespace(name="OTHER"))
    genai.GenerativeModel.return_value.generate_content.return_value = [
        _gemini_chunk(prompt_feedback=feedback)
    ]
    provider = GeminiProvider("g-key", "gemini-2.0-flash")

    with pytest.raises(LLMGenerationError) as excinfo:
        async for _ in provider.generate_content_stream("system", "content"):
            pass
    assert excinfo.value.message == "Gemini summarization error: prompt blocked. Reason: OTHER"


@patch("vidsum.llm_providers.genai")
async def test_gemini_stream_safety_stop(genai):
    rating = SimpleNamespace(
        category=SimpleNamespace(name="HARM_CATEGORY_HARASSMENT"),
        probability=SimpleNamespace(name="HIGH"),
    )
    genai.GenerativeModel.return_value.generate_content.return_value = [
        _gemini_chunk("Fine so far "),
        _gemini_chunk(finish_reason="SAFETY", safety_ratings=[rating]),
    ]
    provider = GeminiProvider("g-key", "gemini-2.0-flash")

    pieces = []
    with pytest.raises(LLMGenerationError) as excinfo:
        async for piece in provider.generate_content_stream("system", "content"):
            pieces.append(piece)

    assert pieces == ["Fine so far "]
    assert excinfo.value.message == (
        "Gemini summarization error: content chunk blocked (Safety). "
        "Ratings: [HARM_CATEGORY_HARASSMENT: HIGH]"
    )
