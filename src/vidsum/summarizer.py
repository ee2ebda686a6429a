import asyncio
import functools
import logging
import os
from dataclasses import dataclass

from vidsum.config import Settings
from vidsum.errors import SummarizerError
from vidsum.llm_providers import LLMGenerationError, LLMProvider
from vidsum.transcript_provider import TranscriptFetcher
from vidsum.transcripts import Transcript, truncate_transcript
from vidsum.video_urls import VideoTarget

logger = logging.getLogger(__name__)

PROMPTS_DIR = os.path.join(os.path.dirname(__file__), "prompts")

TRUNCATED_INSTRUCTION = (
    "The transcript was truncated due to length. Summarize the provided portion faithfully."
)
FULL_INSTRUCTION = "Summarize the transcript faithfully."


def read_prompt(filename):
    """Helper function to read a prompt file."""
    filepath = os.path.join(PROMPTS_DIR, f"{filename}.md")
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Prompt file not found: {filepath}")
    with open(filepath, "r", encoding="utf-8") as f:
        return f.read()


SYSTEM_PROMPT = read_prompt("summarize")


@dataclass
class PreparedTranscript:
    transcript: Transcript
    text: str
    text_for_model: str
    truncated: bool


@dataclass
class SummaryResult:
    target: VideoTarget
    summary: str
    transcript: str
    truncated: bool
    lang: str | None = None
    mode: str | None = None

    def to_dict(self) -> dict:
        return {
            "videoId": self.target.video_id,
            "url": self.target.url,
            "platform": self.target.platform,
            "summary": self.summary,
            "transcript": self.transcript,
            "truncated": self.truncated,
            "lang": self.lang,
            "mode": self.mode,
        }


def build_user_content(transcript_text: str, truncated: bool) -> str:
    instruction = TRUNCATED_INSTRUCTION if truncated else FULL_INSTRUCTION
    return f"{instruction}\n\nTRANSCRIPT:\n{transcript_text}"


async def prepare_transcript(
    target: VideoTarget, fetcher: TranscriptFetcher, settings: Settings
) -> PreparedTranscript:
    transcript = await fetcher.fetch(target)
    text = transcript.to_text()
    text_for_model, truncated = truncate_transcript(text, settings.max_transcript_chars)
    if truncated:
        logger.info(
            f"Transcript for {target.url} truncated from {len(text)} to {len(text_for_model)} chars"
        )
    return PreparedTranscript(transcript, text, text_for_model, truncated)


async def summarize_video(
    target: VideoTarget,
    fetcher: TranscriptFetcher,
    provider: LLMProvider,
    settings: Settings,
) -> SummaryResult:
    """
    Fetches the transcript for a video and asks the LLM for a summary of it.

    The returned transcript is always the full canonical text; only the copy
    sent to the model is cut down to ``settings.max_transcript_chars``.

    Raises:
        SummarizerError: for invalid configuration, missing transcripts,
            provider failures and LLM failures, each with its HTTP status.
    """
    prepared = await prepare_transcript(target, fetcher, settings)

    loop = asyncio.get_running_loop()
    try:
        summary = await loop.run_in_executor(
            None,
            functools.partial(
                provider.generate_content,
                SYSTEM_PROMPT,
                build_user_content(prepared.text_for_model, prepared.truncated),
            ),
        )
    except SummarizerError:
        raise
    except Exception as e:
        logger.error(f"{provider.name} summarization failed for {target.url}: {e}")
        raise LLMGenerationError(f"{provider.name} summarization error: {e}") from e

    return SummaryResult(
        target=target,
        summary=summary,
        transcript=prepared.text,
        truncated=prepared.truncated,
        lang=prepared.transcript.lang,
        mode=prepared.transcript.mode,
    )
