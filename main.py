# main.py
# Serwis wysyłający aktualizacje live activity (APNs) dla aplikacji Pomodoro
# w zaplanowanych odstępach czasu.

import asyncio
import logging

import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from lapush.deps import REQUIRED_VARS, PushState, Settings, get_settings
from lapush.push.apns import build_delivery_client
from lapush.push.credentials import CredentialManager, ES256KeyFileSigner, run_refresh_loop
from lapush.push.registry import CancellationRegistry, PushTokenRegistry
from lapush.push.routes import router as push_router
from lapush.push.scheduler import Scheduler
from lapush.utils import configure_logging, short_token

app = FastAPI(title="Live Activity Push Scheduler")

logger = logging.getLogger("uvicorn")

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Invalid payload for %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=409,
        content={"error": "Invalid payload"},
    )

app.include_router(push_router)

_refresh_task: asyncio.Task | None = None
_http_client: httpx.AsyncClient | None = None


def load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError:
        logger.error("Missing environment variable")
        logger.error("Required environment variables: %s", " ".join(REQUIRED_VARS))
        raise


def build_push_state(settings: Settings, http_client: httpx.AsyncClient) -> PushState:
    signer = ES256KeyFileSigner(settings.TOKEN_KEY_PATH)
    # CredentialError propaguje się dalej: bez tokenu nie startujemy
    credentials = CredentialManager(settings.TEAM_ID, settings.AUTH_KEY_ID, signer)
    push_tokens = PushTokenRegistry()
    cancellations = CancellationRegistry()
    scheduler = Scheduler(
        credentials,
        push_tokens,
        cancellations,
        build_delivery_client(settings, http_client),
        due_floor=settings.DUE_FLOOR_SECONDS,
        token_grace=settings.PUSH_TOKEN_GRACE_SECONDS,
    )
    return PushState(
        credentials=credentials,
        push_tokens=push_tokens,
        cancellations=cancellations,
        scheduler=scheduler,
    )


@app.on_event("startup")
async def startup():
    global _refresh_task, _http_client
    settings = load_settings()
    configure_logging(settings.LOG_LEVEL)

    _http_client = httpx.AsyncClient(http2=True, timeout=settings.APNS_TIMEOUT_SECONDS)
    try:
        state = build_push_state(settings, _http_client)
    except Exception:
        logger.exception("Failed to generate APNs authentication token")
        await _http_client.aclose()
        _http_client = None
        raise
    app.state.push = state
    logger.info("✅ Initial auth token ready (%s)", short_token(state.credentials.current()))

    _refresh_task = asyncio.create_task(
        run_refresh_loop(state.credentials, settings.AUTH_TOKEN_REFRESH_SECONDS)
    )

@app.on_event("shutdown")
async def shutdown():
    global _refresh_task, _http_client
    if _refresh_task:
        _refresh_task.cancel()
        try:
            await _refresh_task
        except asyncio.CancelledError:
            pass
        _refresh_task = None
    state = getattr(app.state, "push", None)
    if state is not None:
        await state.scheduler.shutdown()
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
    logger.info("✅ Shut down")


# prosty healthcheck
@app.get("/health")
async def health():
    logger.info("Health check")
    return {"status": "ok"}


if __name__ == "__main__":
    settings = load_settings()
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)
