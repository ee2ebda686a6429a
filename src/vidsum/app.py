import json
import logging
import sys

from quart import Quart, Response, jsonify, render_template, request

from vidsum.auth import init_basic_auth
from vidsum.config import Settings, load_settings
from vidsum.errors import SummarizerError
from vidsum.formatting import render_rich_summary, strip_html
from vidsum.llm_providers import LLMProvider, get_llm_provider
from vidsum.summarizer import (
    SYSTEM_PROMPT,
    build_user_content,
    prepare_transcript,
    summarize_video,
)
from vidsum.transcript_provider import TranscriptFetcher
from vidsum.video_urls import InvalidVideoUrlError, is_supported_video_url, parse_video_url

logger = logging.getLogger(__name__)

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
)

UNSUPPORTED_URL_HELP = "Enter a supported video link (YouTube, TikTok, Instagram)"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Configures the package logger once; repeated calls only adjust the level."""
    package_logger = logging.getLogger("vidsum")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    return package_logger


class BadRequestError(SummarizerError):
    status_code = 400


class Services:
    """Builds the transcript fetcher and LLM provider on first use."""

    def __init__(
        self,
        settings: Settings,
        transcript_fetcher: TranscriptFetcher | None = None,
        llm_provider: LLMProvider | None = None,
    ):
        self.settings = settings
        self._fetcher = transcript_fetcher
        self._llm_provider = llm_provider

    @property
    def fetcher(self) -> TranscriptFetcher:
        if self._fetcher is None:
            self._fetcher = TranscriptFetcher.from_settings(self.settings)
        return self._fetcher

    @property
    def llm_provider(self) -> LLMProvider:
        if self._llm_provider is None:
            self._llm_provider = get_llm_provider(self.settings)
        return self._llm_provider


async def read_url_from_json() -> str:
    raw = await request.get_data(as_text=True)
    try:
        data = json.loads(raw) if raw.strip() else {}
    except ValueError:
        raise BadRequestError("Invalid JSON body")
    url = data.get("url") if isinstance(data, dict) else None
    if not url or not isinstance(url, str):
        raise BadRequestError("Missing 'url' in request body")
    return url


def sse_event(data: dict, event: str | None = None) -> str:
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(data)}\n\n"


def create_app(
    settings: Settings | None = None,
    transcript_fetcher: TranscriptFetcher | None = None,
    llm_provider: LLMProvider | None = None,
) -> Quart:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = Quart(__name__)
    services = Services(settings, transcript_fetcher, llm_provider)
    app.extensions["vidsum"] = services
    init_basic_auth(app, settings)

    @app.errorhandler(405)
    async def method_not_allowed(error):
        return jsonify({"error": "Method Not Allowed"}), 405

    @app.route("/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.route("/", methods=["GET", "POST"])
    async def index():
        if request.method == "GET":
            return await render_template("index.html", url="", result=None, error=None)

        form = await request.form
        url = (form.get("url") or "").strip()
        if not is_supported_video_url(url):
            page = await render_template(
                "index.html",
                url=url,
                result=None,
                helper=UNSUPPORTED_URL_HELP,
                error=InvalidVideoUrlError().message,
            )
            return page, InvalidVideoUrlError.status_code

        try:
            target = parse_video_url(url)
            result = await summarize_video(
                target, services.fetcher, services.llm_provider, settings
            )
        except SummarizerError as e:
            logger.warning(f"Summarize form failed for {url!r}: {e.message}")
            page = await render_template("index.html", url=url, result=None, error=e.message)
            return page, e.status_code
        except Exception as e:
            logger.exception(f"Unexpected error in summarize form for {url!r}: {e}")
            page = await render_template(
                "index.html", url=url, result=None, error=f"An error occurred: {str(e)}"
            )
            return page, 500

        summary_html = render_rich_summary(result.summary)
        return await render_template(
            "index.html",
            url=url,
            result=result,
            summary_html=summary_html,
            summary_text=strip_html(summary_html),
            error=None,
        )

    @app.route("/summarize", methods=["POST"])
    @app.route("/api/summarize", methods=["POST"])
    async def summarize():
        try:
            url = await read_url_from_json()
            target = parse_video_url(url)
            services.fetcher.ensure_configured(target)
            logger.info(f"Summarizing {target.platform} video {target.url}")
            result = await summarize_video(
                target, services.fetcher, services.llm_provider, settings
            )
            return jsonify(result.to_dict())

        except SummarizerError as e:
            logger.error(f"/summarize failed ({e.status_code}): {e.message}")
            return jsonify({"error": e.message}), e.status_code
        except Exception as e:
            logger.exception(f"Unexpected error in /summarize: {e}")
            return jsonify({"error": f"An error occurred: {str(e)}"}), 500

    @app.route("/api/summarize/stream", methods=["POST"])
    async def summarize_stream():
        try:
            url = await read_url_from_json()
            target = parse_video_url(url)
            fetcher = services.fetcher
            fetcher.ensure_configured(target)
            provider = services.llm_provider
        except SummarizerError as e:
            return jsonify({"error": e.message}), e.status_code

        async def stream_generator():
            try:
                yield sse_event(
                    {
                        "videoId": target.video_id,
                        "platform": target.platform,
                        "url": target.url,
                    },
                    event="metadata",
                )

                prepared = await prepare_transcript(target, fetcher, settings)
                yield sse_event(
                    {
                        "lang": prepared.transcript.lang,
                        "mode": prepared.transcript.mode,
                        "truncated": prepared.truncated,
                    },
                    event="transcript",
                )

                async for chunk in provider.generate_content_stream(
                    SYSTEM_PROMPT,
                    build_user_content(prepared.text_for_model, prepared.truncated),
                ):
                    yield sse_event({"chunk": chunk})

                yield sse_event({"message": "Summary stream finished"}, event="stream_end")

            except SummarizerError as e:
                logger.error(f"Error during /summarize stream ({e.status_code}): {e.message}")
                yield sse_event({"error": e.message, "status_code": e.status_code}, event="error")
            except Exception as e:
                logger.exception(f"Unexpected error during /summarize stream: {e}")
                yield sse_event(
                    {
                        "error": "An unexpected error occurred during streaming.",
                        "status_code": 500,
                    },
                    event="error",
                )

        response = Response(stream_generator(), mimetype="text/event-stream")
        response.headers["Cache-Control"] = "no-cache"
        return response

    return app


def main():
    settings = load_settings()
    app = create_app(settings)
    logger.info(f"Starting Quart app on {settings.host}:{settings.port}...")
    app.run(host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
