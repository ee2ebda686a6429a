import logging
import math
import re
from dataclasses import dataclass, field

import requests
from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    YouTubeTranscriptApi,
)

from vidsum.errors import SummarizerError

logger = logging.getLogger(__name__)

MAX_TRANSCRIPT_CHARS = 180_000

_WHITESPACE_RE = re.compile(r"\s+")


class TranscriptError(SummarizerError):
    status_code = 502


class TranscriptNotFoundError(TranscriptError):
    """Raised when no transcript could be obtained for a video by any means."""

    status_code = 404

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            "No transcript available for this video. It may be disabled or unavailable."
        )


class TranscriptProviderError(TranscriptError):
    """Raised when the transcript provider answers with an error or cannot be reached."""

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        code: str | None = None,
    ):
        self.upstream_status = upstream_status
        self.code = code
        super().__init__(
            f"Error fetching transcript: {message}",
            status_code=429 if upstream_status == 429 else 502,
        )

    @property
    def is_unavailable(self) -> bool:
        return self.upstream_status == 404 or self.code == "transcript-unavailable"

    @property
    def is_transient(self) -> bool:
        return (
            self.upstream_status is None
            or self.upstream_status == 429
            or self.upstream_status >= 500
        )


class TranscriptJobTimeoutError(TranscriptError):
    status_code = 504

    def __init__(self, job_id: str, polls: int):
        self.job_id = job_id
        super().__init__(
            f"Transcript job {job_id} did not finish after {polls} status checks"
        )


# --- Canonical transcript model ---


@dataclass(frozen=True)
class TranscriptSegment:
    text: str
    offset: float | None = None  # seconds from start, None for untimed text
    duration: float = 0.0


@dataclass
class Transcript:
    segments: list[TranscriptSegment]
    lang: str | None = None
    mode: str | None = None
    available_langs: list[str] = field(default_factory=list)
    source: str = "provider"

    @property
    def is_empty(self) -> bool:
        return not any(s.text.strip() for s in self.segments)

    def to_text(self) -> str:
        lines = []
        for segment in self.segments:
            if segment.offset is None:
                lines.append(segment.text)
            else:
                lines.append(f"[{format_timestamp(segment.offset)}] {segment.text}")
        return "\n".join(lines)


def format_timestamp(total_seconds: float) -> str:
    seconds = max(0, math.floor(total_seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def truncate_transcript(text: str, max_chars: int = MAX_TRANSCRIPT_CHARS):
    if len(text) > max_chars:
        return text[:max_chars], True
    return text, False


# --- Normalization of provider content ---


def _seconds(value) -> float:
    """Converts a provider millisecond value to seconds; junk counts as zero."""
    try:
        ms = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(ms) or math.isinf(ms):
        return 0.0
    return ms / 1000


def _clean(text) -> str:
    if not isinstance(text, str):
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_content(content) -> list[TranscriptSegment]:
    """
    Normalizes the provider's transcript content into segments.

    The provider returns either a list of timed chunks
    (``{"text", "offset", "duration"}`` with times in milliseconds) or a
    single flat string. Flat text has no timing, so each non-blank line
    becomes an untimed segment.
    """
    if isinstance(content, str):
        return [
            TranscriptSegment(text=line)
            for line in (_clean(raw) for raw in content.splitlines())
            if line
        ]

    if not isinstance(content, list):
        return []

    segments = []
    for chunk in content:
        if not isinstance(chunk, dict):
            continue
        text = _clean(chunk.get("text"))
        if not text:
            continue
        segments.append(
            TranscriptSegment(
                text=text,
                offset=_seconds(chunk.get("offset")),
                duration=_seconds(chunk.get("duration")),
            )
        )
    return segments


# --- Direct YouTube captions ---


def fetch_youtube_captions(video_id: str, lang: str | None = None) -> Transcript:
    """
    Fetches published captions straight from YouTube.

    The preferred language is tried first, then whatever transcript YouTube
    lists first. An empty transcript is returned when captions are disabled or
    missing. Network failures and other retrieval errors are raised as
    TranscriptProviderError.
    """
    api = YouTubeTranscriptApi()
    try:
        try:
            fetched = api.fetch(video_id, languages=[lang or "en"])
        except NoTranscriptFound:
            logger.info(
                f"No '{lang}' captions for {video_id}, falling back to the first listed track"
            )
            listed = list(api.list(video_id))
            if not listed:
                return Transcript(segments=[], source="youtube")
            fetched = listed[0].fetch()
    except (TranscriptsDisabled, NoTranscriptFound) as e:
        logger.info(f"YouTube captions unavailable for {video_id}: {type(e).__name__}")
        return Transcript(segments=[], source="youtube")
    except CouldNotRetrieveTranscript as e:
        raise TranscriptProviderError(str(e).splitlines()[0] if str(e) else type(e).__name__)
    except requests.RequestException as e:
        raise TranscriptProviderError(f"could not reach YouTube ({e})")

    segments = []
    for snippet in fetched:
        text = _clean(snippet.text)
        if text:
            segments.append(
                TranscriptSegment(
                    text=text,
                    offset=float(snippet.start),
                    duration=float(snippet.duration),
                )
            )
    return Transcript(
        segments=segments,
        lang=getattr(fetched, "language_code", None),
        mode="captions",
        source="youtube",
    )
