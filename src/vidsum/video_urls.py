import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

from vidsum.errors import SummarizerError


class Platform:
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"


YOUTUBE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")
_YOUTUBE_PATH_RE = re.compile(r"/(?:embed|shorts)/([a-zA-Z0-9_-]{11})")
_TIKTOK_PATH_RE = re.compile(r"/video/(\d+)")
_INSTAGRAM_PATH_RE = re.compile(r"/(?:p|reel|reels|tv)/([a-zA-Z0-9_-]+)")


class InvalidVideoUrlError(SummarizerError):
    status_code = 400

    def __init__(self, message: str = "Please provide a valid YouTube, TikTok, or Instagram URL"):
        super().__init__(message)


@dataclass(frozen=True)
class VideoTarget:
    url: str
    platform: str
    video_id: str | None = None


def _parse_http_url(value: str):
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return parsed


def extract_youtube_video_id(value: str) -> str | None:
    value = (value or "").strip()
    parsed = _parse_http_url(value)
    if parsed is None:
        # not a URL, maybe a bare video id
        return value if YOUTUBE_ID_RE.match(value) else None

    host = parsed.hostname.lower()
    if "youtube.com" in host:
        if parsed.path.startswith("/watch"):
            video_id = parse_qs(parsed.query).get("v", [None])[0]
            if video_id and YOUTUBE_ID_RE.match(video_id):
                return video_id
            return None
        match = _YOUTUBE_PATH_RE.search(parsed.path)
        if match:
            return match.group(1)
    if host == "youtu.be":
        parts = [p for p in parsed.path.split("/") if p]
        if parts and YOUTUBE_ID_RE.match(parts[0]):
            return parts[0]
    return None


def detect_platform(value: str) -> str | None:
    value = (value or "").strip()
    parsed = _parse_http_url(value)
    if parsed is None:
        return Platform.YOUTUBE if YOUTUBE_ID_RE.match(value) else None

    host = parsed.hostname.lower()
    if "youtube.com" in host or host == "youtu.be":
        return Platform.YOUTUBE
    if "tiktok.com" in host:
        return Platform.TIKTOK
    if "instagram.com" in host:
        return Platform.INSTAGRAM
    return None


def is_supported_video_url(value: str) -> bool:
    return detect_platform(value) is not None


def parse_video_url(value: str) -> VideoTarget:
    """
    Validates a user-supplied video link and resolves it to a request target.

    YouTube links (and bare video ids) are canonicalised to a watch URL so the
    transcript cache sees one key per video. TikTok and Instagram links are
    passed through as given, with the post id extracted when the path has one.

    Raises:
        InvalidVideoUrlError: if the link is not a supported video URL.
    """
    value = (value or "").strip()
    platform = detect_platform(value)
    if platform is None:
        raise InvalidVideoUrlError()

    if platform == Platform.YOUTUBE:
        video_id = extract_youtube_video_id(value)
        if not video_id:
            raise InvalidVideoUrlError()
        return VideoTarget(
            url=f"https://www.youtube.com/watch?v={video_id}",
            platform=platform,
            video_id=video_id,
        )

    path = urlparse(value).path
    pattern = _TIKTOK_PATH_RE if platform == Platform.TIKTOK else _INSTAGRAM_PATH_RE
    match = pattern.search(path)
    return VideoTarget(
        url=value, platform=platform, video_id=match.group(1) if match else None
    )
