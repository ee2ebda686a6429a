import base64
import hmac
import logging

from quart import Quart, Response, request

from vidsum.config import Settings

logger = logging.getLogger(__name__)


def unauthorized_response() -> Response:
    return Response(
        "Unauthorized",
        status=401,
        headers={
            "WWW-Authenticate": 'Basic realm="Restricted"',
            "Cache-Control": "no-store",
        },
    )


def expected_authorization(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def is_authorized(auth_header: str | None, settings: Settings) -> bool:
    if not settings.basic_auth_enabled:
        return True
    if not auth_header or not auth_header.startswith("Basic "):
        return False
    expected = expected_authorization(settings.basic_auth_user, settings.basic_auth_pass)
    return hmac.compare_digest(auth_header.encode("utf-8"), expected.encode("utf-8"))


def init_basic_auth(app: Quart, settings: Settings) -> None:
    """Puts every route behind HTTP basic auth when both credentials are configured."""
    if not settings.basic_auth_enabled:
        logger.info("Basic auth disabled (BASIC_AUTH_USER/BASIC_AUTH_PASS not set)")
        return

    @app.before_request
    async def require_basic_auth():
        if not is_authorized(request.headers.get("Authorization"), settings):
            logger.warning(f"Rejected unauthenticated {request.method} {request.path}")
            return unauthorized_response()
        return None
