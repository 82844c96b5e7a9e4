"""FastAPI application for the mock completion server.

Routes ``/v1/completions`` and ``/v1/chat/completions`` to the completion
synthesizer and adapts streaming sessions to server-sent events. Also
serves a few diagnostic endpoints (``/tokens``, ``/hello``, ``/echo``,
``/health``).

The token corpus is loaded once in ``create_app()`` and kept on
``app.state``; handlers only ever read it.
"""

from __future__ import annotations

import logging
import random
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, Security
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from sonnet_mock import __version__
from sonnet_mock.corpus import TokenCorpus, load_corpus
from sonnet_mock.errors import AuthenticationError
from sonnet_mock.render import (
    ERROR_INVALID_API_KEY,
    ERROR_MISSING_API_KEY,
    render_error,
)
from sonnet_mock.schemas.completion import ChatCompletion
from sonnet_mock.schemas.config import ServerConfig
from sonnet_mock.schemas.request import CompletionRequest
from sonnet_mock.settings import load_server_config
from sonnet_mock.stream import StreamSession, StreamTiming
from sonnet_mock.synthesis import synthesize

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
SSE_MEDIA_TYPE = "text/event-stream"

_bearer = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def bearer_auth(api_key: str | None):
    """Build a dependency that checks the Bearer token against ``api_key``.

    With no key configured every request is accepted.
    """

    async def verify_api_key(
        credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    ) -> None:
        if api_key is None:
            return
        if credentials is None:
            raise AuthenticationError("missing_api_key", ERROR_MISSING_API_KEY)
        if not secrets.compare_digest(
            credentials.credentials.encode("utf-8"), api_key.encode("utf-8")
        ):
            raise AuthenticationError("invalid_api_key", ERROR_INVALID_API_KEY)

    return verify_api_key


# ---------------------------------------------------------------------------
# SSE adaptation
# ---------------------------------------------------------------------------


async def sse_events(session: StreamSession) -> AsyncIterator[str]:
    """Frame each session frame as a ``data:`` event."""
    async for frame in session.frames():
        yield frame.to_sse()


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


def _json_error(body: str, status_code: int, headers: dict[str, str] | None = None) -> Response:
    return Response(body, status_code=status_code, media_type=JSON_MEDIA_TYPE, headers=headers)


async def _auth_error_handler(request: Request, exc: AuthenticationError) -> Response:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.code)
    return _json_error(exc.body, 401, headers={"WWW-Authenticate": "Bearer"})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return _json_error(
        render_error(f"Invalid request body: {details}", "invalid_request_error", "invalid_request"),
        400,
    )


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if exc.status_code == 404:
        return PlainTextResponse("Not Found", status_code=404)
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


async def _internal_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _json_error(
        render_error("Internal server error", "server_error", "internal_error"),
        500,
    )


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


def create_app(
    config: ServerConfig | None = None,
    corpus: TokenCorpus | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server settings. Resolved from defaults and the
            environment when omitted, which is how uvicorn workers
            build the app (``factory=True``).
        corpus: Pre-built corpus. Loaded from ``config`` when omitted.
    """
    if config is None:
        config = load_server_config()
    if corpus is None:
        corpus = load_corpus(config.corpus_path, config.tokenizer)
    timing = StreamTiming.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "sonnet-mock %s serving %d tokens from %s (auth %s)",
            __version__,
            corpus.total_count,
            corpus.source,
            "on" if config.api_key else "off",
        )
        yield

    app = FastAPI(
        title="sonnet-mock",
        description="Mock OpenAI-compatible completion server",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.corpus = corpus

    app.add_exception_handler(AuthenticationError, _auth_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _internal_error_handler)

    # ── Completions ──────────────────────────────────────────────

    async def completions(body: CompletionRequest) -> Response:
        """Return a full completion, or stream one when ``stream`` is true."""
        rng = random.Random(config.random_seed)
        result = synthesize(
            corpus,
            body.max_tokens,
            stream=bool(body.stream),
            include_usage=body.include_usage,
            timing=timing,
            overflow=config.overflow,
            max_repeat_tokens=config.max_repeat_tokens,
            rng=rng,
        )
        if isinstance(result, StreamSession):
            return StreamingResponse(
                sse_events(result),
                media_type=SSE_MEDIA_TYPE,
                headers={"Cache-Control": "no-cache"},
            )
        return Response(result, media_type=JSON_MEDIA_TYPE)

    v1 = APIRouter(prefix="/v1", dependencies=[Depends(bearer_auth(config.api_key or None))])
    documented = {
        200: {
            "model": ChatCompletion,
            "description": "A chat.completion body, or an SSE stream of "
            "chat.completion.chunk frames when stream is true",
        },
    }
    for path in ("/completions", "/chat/completions"):
        v1.add_api_route(
            path,
            completions,
            methods=["POST"],
            response_class=Response,
            responses=documented,
        )
    app.include_router(v1)

    # ── Diagnostics ──────────────────────────────────────────────

    @app.get("/tokens", response_class=PlainTextResponse)
    async def max_tokens() -> str:
        """Size of the corpus in tokens."""
        return f"Max tokens: {corpus.total_count}"

    @app.get("/hello", response_class=PlainTextResponse)
    async def hello() -> str:
        return "Hello world!"

    @app.post("/echo")
    async def echo(request: Request) -> Response:
        body = await request.body()
        return Response(body, media_type=request.headers.get("content-type", "text/plain"))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
