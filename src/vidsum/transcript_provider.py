import asyncio
import functools
import logging

import requests
from cachetools import TTLCache

from vidsum.config import Settings
from vidsum.errors import ConfigurationError
from vidsum.transcripts import (
    Transcript,
    TranscriptJobTimeoutError,
    TranscriptNotFoundError,
    TranscriptProviderError,
    fetch_youtube_captions,
    normalize_content,
)
from vidsum.video_urls import Platform, VideoTarget

logger = logging.getLogger(__name__)

TRANSCRIPT_CACHE_MAX_SIZE = 128
TRANSCRIPT_CACHE_TTL_SECONDS = 60 * 60  # an hour

MODE_NATIVE = "native"
MODE_AUTO = "auto"
MODE_GENERATE = "generate"

JOB_COMPLETED = "completed"
JOB_FAILED = "failed"


class TranscriptClient:
    """Thin client for the transcript provider's REST API."""

    def __init__(self, api_key: str, base_url: str, timeout: float = 30.0, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"x-api-key": api_key, "Accept": "application/json"})

    def _get(self, path: str, params: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise TranscriptProviderError(f"could not reach transcript provider ({e})")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"content": body}

        if response.status_code >= 400:
            message = (
                body.get("message")
                or body.get("details")
                or body.get("error")
                or f"HTTP {response.status_code}"
            )
            raise TranscriptProviderError(
                message, upstream_status=response.status_code, code=body.get("error")
            )
        return body

    def request_transcript(self, url: str, mode: str, lang: str | None = None) -> dict:
        """
        Requests a transcript for a video URL.

        Returns:
            dict: either the finished transcript (``content``, ``lang``,
            ``availableLangs``) or an asynchronous job reference (``jobId``).
        """
        params = {"url": url, "mode": mode, "text": "false"}
        if lang:
            params["lang"] = lang
        return self._get("/transcript", params=params)

    def get_job(self, job_id: str) -> dict:
        return self._get(f"/transcript/{job_id}")


class TranscriptFetcher:
    """
    Retrieves a transcript for a video, falling back across request modes and
    languages until one of them produces text.
    """

    def __init__(
        self,
        settings: Settings,
        client: TranscriptClient | None = None,
        caption_source=fetch_youtube_captions,
        cache: TTLCache | None = None,
    ):
        self.settings = settings
        self.client = client
        self.caption_source = caption_source
        self.cache = (
            cache
            if cache is not None
            else TTLCache(maxsize=TRANSCRIPT_CACHE_MAX_SIZE, ttl=TRANSCRIPT_CACHE_TTL_SECONDS)
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "TranscriptFetcher":
        client = None
        if settings.transcript_api_key:
            client = TranscriptClient(
                settings.transcript_api_key,
                settings.transcript_api_base_url,
                timeout=settings.http_timeout_seconds,
            )
        return cls(settings, client=client)

    def plan(self, platform: str) -> list[tuple[str, str | None]]:
        """Ordered (mode, lang) steps to try; lang None lets the provider choose."""
        first = MODE_NATIVE if platform == Platform.YOUTUBE else MODE_AUTO
        steps = [
            (first, self.settings.transcript_lang or None),
            (first, None),
            (MODE_GENERATE, None),
        ]
        unique = []
        for step in steps:
            if step not in unique:
                unique.append(step)
        return unique

    async def fetch(self, target: VideoTarget) -> Transcript:
        cache_key = (target.url, self.settings.transcript_lang)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Transcript cache hit for {target.url}")
            return cached

        transcript = await self._fetch_uncached(target)
        self.cache[cache_key] = transcript
        return transcript

    def ensure_configured(self, target: VideoTarget) -> None:
        """Raises ConfigurationError when the target needs a provider key and none is set."""
        if self.client is None and target.platform != Platform.YOUTUBE:
            raise ConfigurationError(
                "Missing TRANSCRIPT_API_KEY. Set it as an environment variable or in config.local.json"
            )

    async def _fetch_uncached(self, target: VideoTarget) -> Transcript:
        self.ensure_configured(target)

        if self.client is not None:
            for mode, lang in self.plan(target.platform):
                transcript = await self._run_step(target.url, mode, lang)
                if transcript is not None and not transcript.is_empty:
                    logger.info(
                        f"Got {len(transcript.segments)} segments for {target.url} "
                        f"(mode={mode}, lang={transcript.lang or lang or 'any'})"
                    )
                    return transcript
                logger.info(
                    f"Empty transcript for {target.url} with mode={mode}, lang={lang or 'any'}; falling back"
                )

        if target.platform == Platform.YOUTUBE and target.video_id:
            logger.info(f"Trying YouTube captions directly for {target.video_id}")
            loop = asyncio.get_running_loop()
            try:
                transcript = await loop.run_in_executor(
                    None,
                    functools.partial(
                        self.caption_source, target.video_id, self.settings.transcript_lang
                    ),
                )
            except requests.RequestException as e:
                logger.error(f"YouTube captions request failed for {target.video_id}: {e}")
                raise TranscriptProviderError(f"could not reach YouTube ({e})")
            if not transcript.is_empty:
                return transcript

        logger.error(f"No transcript found for {target.url} after all fallbacks")
        raise TranscriptNotFoundError(target.url)

    async def _run_step(self, url: str, mode: str, lang: str | None) -> Transcript | None:
        """
        Runs one (mode, lang) request with retries and static backoff.

        Returns None when the provider reports the transcript as unavailable or
        its generation job failed, so the caller moves on to the next step.
        """
        attempts = max(1, self.settings.transcript_retry_attempts)
        loop = asyncio.get_running_loop()

        for attempt in range(1, attempts + 1):
            try:
                if attempts > 1:
                    logger.info(
                        f"Attempt {attempt}/{attempts} to fetch transcript for {url} "
                        f"(mode={mode}, lang={lang or 'any'})"
                    )
                body = await loop.run_in_executor(
                    None,
                    functools.partial(self.client.request_transcript, url, mode, lang),
                )
                if body.get("jobId"):
                    body = await self._wait_for_job(body["jobId"])
                    if body is None:
                        return None
                return self._to_transcript(body, mode)

            except TranscriptProviderError as e:
                if e.is_unavailable:
                    return None
                if not e.is_transient:
                    logger.error(f"Transcript provider rejected request for {url}: {e.message}")
                    raise
                logger.warning(f"Attempt {attempt}/{attempts} failed for {url}: {e.message}")
                if attempt == attempts:
                    logger.error(
                        f"Error fetching transcript for {url} after {attempts} attempts: {e.message}"
                    )
                    raise
                delay = self.settings.transcript_retry_delay_seconds
                logger.info(f"Retrying in {delay} seconds...")
                await asyncio.sleep(delay)
        return None

    async def _wait_for_job(self, job_id: str) -> dict | None:
        loop = asyncio.get_running_loop()
        polls = max(1, self.settings.job_max_polls)
        for poll in range(1, polls + 1):
            await asyncio.sleep(self.settings.job_poll_interval_seconds)
            job = await loop.run_in_executor(
                None, functools.partial(self.client.get_job, job_id)
            )
            status = job.get("status")
            if status == JOB_COMPLETED:
                logger.info(f"Transcript job {job_id} completed after {poll} checks")
                return job
            if status == JOB_FAILED:
                logger.warning(f"Transcript job {job_id} failed: {job.get('error')}")
                return None
            logger.debug(f"Transcript job {job_id} is {status} ({poll}/{polls})")
        raise TranscriptJobTimeoutError(job_id, polls)

    @staticmethod
    def _to_transcript(body: dict, mode: str) -> Transcript:
        langs = body.get("availableLangs") or []
        return Transcript(
            segments=normalize_content(body.get("content")),
            lang=body.get("lang"),
            mode=mode,
            available_langs=[str(lang) for lang in langs] if isinstance(langs, list) else [],
        )
