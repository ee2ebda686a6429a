from abc import ABC, abstractmethod
import asyncio
import logging
from typing import AsyncIterator

import google.generativeai as genai
from google.generativeai.types import HarmCategory, HarmBlockThreshold # For safety settings
from openai import OpenAI, AsyncOpenAI # Import AsyncOpenAI for streaming

from vidsum.config import Settings
from vidsum.errors import ConfigurationError, SummarizerError

logger = logging.getLogger(__name__)


class LLMGenerationError(SummarizerError):
    status_code = 500


class LLMProvider(ABC):
    name = "LLM"

    @abstractmethod
    def generate_content(self, prompt: str, content: str) -> str:
        """
        Generate content based on system prompt and input content (non-streaming).
        Args:
            prompt: System prompt/instructions
            content: Input content to process
        Returns:
            Generated content from LLM
        """
        pass

    @abstractmethod
    async def generate_content_stream(self, prompt: str, content: str) -> AsyncIterator[str]:
        """
        Generate content based on system prompt and input content (streaming).
        Args:
            prompt: System prompt/instructions
            content: Input content to process
        Yields:
            Generated content chunks from LLM
        """
        if False:
            yield ""


class GeminiProvider(LLMProvider):
    name = "Gemini"

    def __init__(self, api_key: str | None, model_name: str | None) -> None:
        if not api_key:
            raise ConfigurationError(
                "Missing GEMINI_API_KEY. Set it as an environment variable or in config.local.json"
            )
        if not model_name:
            raise ConfigurationError("GEMINI_MODEL is not set.")
        self.model_name = model_name

        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(self.model_name)

        # Transcripts of arbitrary videos trip the default filters often enough
        # to return empty responses.
        self.safety_settings = {
            HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
        }

    def generate_content(self, prompt: str, content: str) -> str:
        full_prompt = f"{prompt}\n\n{content}"
        try:
            response = self.model.generate_content(
                full_prompt, safety_settings=self.safety_settings
            )
        except Exception as e:
            logger.error(f"Gemini non-streaming error: {e}")
            raise LLMGenerationError(f"Gemini summarization error: {e}") from e

        feedback = getattr(response, "prompt_feedback", None)
        if feedback and feedback.block_reason:
            raise LLMGenerationError(
                f"Gemini summarization error: prompt blocked ({feedback.block_reason.name})"
            )
        try:
            return response.text
        except ValueError as e:
            # response.text raises when every candidate was blocked
            raise LLMGenerationError(f"Gemini summarization error: {e}") from e

    async def generate_content_stream(self, prompt: str, content: str) -> AsyncIterator[str]:
        # The Gemini SDK's stream is a synchronous iterator.
        # We run the blocking part (getting the next item) in a thread pool.
        full_prompt = f"{prompt}\n\n{content}"
        loop = asyncio.get_running_loop()
        try:
            sync_iterator = await loop.run_in_executor(
                None,
                lambda: iter(
                    self.model.generate_content(
                        full_prompt, stream=True, safety_settings=self.safety_settings
                    )
                ),
            )
        except Exception as e:
            logger.error(f"Error setting up Gemini stream: {e}")
            raise LLMGenerationError(f"Gemini summarization error: {e}") from e

        sentinel = object()
        while True:
            try:
                response_chunk = await loop.run_in_executor(None, next, sync_iterator, sentinel)
            except Exception as e:
                logger.error(f"Error during Gemini stream chunk processing: {e}")
                raise LLMGenerationError(f"Gemini summarization error: {e}") from e
            if response_chunk is sentinel:
                break

            feedback = response_chunk.prompt_feedback
            if feedback and feedback.block_reason:
                message = (
                    "Gemini summarization error: prompt blocked. "
                    f"Reason: {feedback.block_reason.name}"
                )
                logger.error(message)
                raise LLMGenerationError(message)

            chunk_text = ""
            for candidate in response_chunk.candidates:
                if getattr(candidate.finish_reason, "name", "") == "SAFETY":
                    ratings = ", ".join(
                        f"{rating.category.name}: {rating.probability.name}"
                        for rating in candidate.safety_ratings
                    )
                    message = (
                        "Gemini summarization error: content chunk blocked (Safety). "
                        f"Ratings: [{ratings}]"
                    )
                    logger.error(message)
                    raise LLMGenerationError(message)

                if candidate.content and candidate.content.parts:
                    for part in candidate.content.parts:
                        if getattr(part, "text", None):
                            chunk_text += part.text

            if chunk_text:
                yield chunk_text


class OpenAIProvider(LLMProvider):
    name = "OpenAI"

    def __init__(self, api_key: str | None, model_name: str | None, base_url: str | None = None):
        if not api_key:
            raise ConfigurationError(
                "Missing OPENAI_API_KEY. Set it as an environment variable or in config.local.json"
            )
        if not model_name:
            raise ConfigurationError("OPENAI_MODEL is not set.")
        self.model_name = model_name

        # Synchronous client for non-streaming methods
        self.llm = OpenAI(api_key=api_key, base_url=base_url)
        # Asynchronous client for streaming methods
        self.async_llm = AsyncOpenAI(api_key=api_key, base_url=base_url)

    def _messages(self, prompt: str, content: str) -> list[dict]:
        return [
            {"role": "system", "content": prompt},
            {"role": "user", "content": content},
        ]

    def generate_content(self, prompt: str, content: str) -> str:
        try:
            response = self.llm.chat.completions.create(
                model=self.model_name,
                messages=self._messages(prompt, content),
            )
        except Exception as e:
            logger.error(f"OpenAI non-streaming error: {e}")
            raise LLMGenerationError(f"OpenAI summarization error: {e}") from e

        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise LLMGenerationError("OpenAI summarization error: response blocked by content filter")
        return choice.message.content or ""

    async def generate_content_stream(self, prompt: str, content: str) -> AsyncIterator[str]:
        try:
            stream = await self.async_llm.chat.completions.create(
                model=self.model_name,
                messages=self._messages(prompt, content),
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta and delta.content is not None:
                    yield delta.content
                finish_reason = chunk.choices[0].finish_reason
                if finish_reason == "content_filter":
                    raise LLMGenerationError(
                        "OpenAI summarization error: content chunk blocked (Content Filter)."
                    )
                if finish_reason:
                    break
        except LLMGenerationError as e:
            logger.error(e.message)
            raise
        except Exception as e:
            logger.error(f"Error during OpenAI stream: {e}")
            raise LLMGenerationError(f"OpenAI summarization error: {e}") from e


def get_llm_provider(settings: Settings) -> LLMProvider:
    provider_name = (settings.llm_provider or "gemini").lower()
    logger.info(f"Initializing LLM provider: {provider_name}")
    if provider_name == "gemini":
        return GeminiProvider(settings.gemini_api_key, settings.gemini_model)
    elif provider_name == "openai":
        return OpenAIProvider(
            settings.openai_api_key, settings.openai_model, settings.openai_base_url
        )
    else:
        logger.error(f"Unsupported LLM provider: {provider_name}")
        raise ConfigurationError(f"Unsupported LLM provider: {provider_name}")
