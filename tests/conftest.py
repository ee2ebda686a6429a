from dataclasses import replace

import pytest

from vidsum.app import create_app
from vidsum.config import Settings
from vidsum.llm_providers import LLMProvider
from vidsum.transcript_provider import TranscriptFetcher
from vidsum.transcripts import Transcript


def chunks(*items):
    """Provider-style chunked content from (text, offset_ms) pairs."""
    return [{"text": text, "offset": offset, "duration": 1000, "lang": "en"} for text, offset in items]


class FakeTranscriptClient:
    """
    Scripted stand-in for TranscriptClient.

    ``responses`` maps (mode, lang) to a list of bodies or exceptions consumed
    in order; the last entry repeats. Unscripted steps return empty content.
    """

    def __init__(self, responses=None, jobs=None):
        self.responses = responses or {}
        self.jobs = jobs or {}
        self.requests = []
        self.job_polls = []

    @staticmethod
    def _next(queue, default):
        if not queue:
            return default
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def request_transcript(self, url, mode, lang=None):
        self.requests.append((url, mode, lang))
        return self._next(self.responses.get((mode, lang)), {"content": []})

    def get_job(self, job_id):
        self.job_polls.append(job_id)
        return self._next(self.jobs.get(job_id), {"status": "queued"})


class FakeCaptionSource:
    def __init__(self, transcript=None):
        self.transcript = transcript or Transcript(segments=[], source="youtube")
        self.calls = []

    def __call__(self, video_id, lang=None):
        self.calls.append((video_id, lang))
        return self.transcript


class FakeLLMProvider(LLMProvider):
    name = "FakeLLM"

    def __init__(self, summary="## Overview\n- First point [0:01]", error=None):
        self.summary = summary
        self.error = error
        self.calls = []

    def generate_content(self, prompt, content):
        self.calls.append((prompt, content))
        if self.error:
            raise self.error
        return self.summary

    async def generate_content_stream(self, prompt, content):
        self.calls.append((prompt, content))
        if self.error:
            raise self.error
        for word in self.summary.split(" "):
            yield word + " "


@pytest.fixture
def settings():
    return Settings(
        transcript_api_key="test-key",
        job_poll_interval_seconds=0,
        transcript_retry_delay_seconds=0,
        job_max_polls=5,
    )


@pytest.fixture
def transcript_client():
    return FakeTranscriptClient()


@pytest.fixture
def caption_source():
    return FakeCaptionSource()


@pytest.fixture
def fetcher(settings, transcript_client, caption_source):
    return TranscriptFetcher(settings, client=transcript_client, caption_source=caption_source)


@pytest.fixture
def llm_provider():
    return FakeLLMProvider()


@pytest.fixture
def app(settings, fetcher, llm_provider):
    return create_app(settings, transcript_fetcher=fetcher, llm_provider=llm_provider)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_settings(settings):
    def _make(**overrides):
        return replace(settings, **overrides)

    return _make
