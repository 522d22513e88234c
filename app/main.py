"""FastAPI application entrypoint for the Fab City Assistant API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from fabcity import __version__
from fabcity.config import AssistantConfig, load_assistant_config
from fabcity.resources import EmbedProber, ResourceKind
from fabcity.tracing import log_event
from fabcity.webhook import ChatRequest, WebhookError, WebhookRelay, build_chat_payload

BASE_DIR = Path(__file__).resolve().parent
STATIC_DIR = BASE_DIR / "static"
STATIC_DIR.mkdir(parents=True, exist_ok=True)

WIDGET_BASE_URL = "https://fabcity-widget.onrender.com"

_LOGGER = logging.getLogger("api")


def service_info() -> Dict[str, Any]:
    """Describe the API for humans hitting the root URL."""

    return {
        "service": "FabCity Assistant API",
        "status": "running",
        "version": __version__,
        "endpoints": {
            "chat": "POST /api/chat - Send a message to the AI assistant",
            "checkEmbed": "GET /api/check-embed?url=<url>&type=<kind> - Predict whether a resource can be framed",
            "logs": "POST /api/logs - Forward a chat session log",
            "health": "GET /health - Liveness probe",
        },
        "widget": {
            "url": WIDGET_BASE_URL,
            "script": f"{WIDGET_BASE_URL}/fabcity-widget.js",
            "css": f"{WIDGET_BASE_URL}/fabcity-widget.css",
        },
        "documentation": {
            "chat": {
                "method": "POST",
                "endpoint": "/api/chat",
                "body": {
                    "message": "string (required) - User message",
                    "sessionId": "string (required) - Unique session identifier",
                    "domain": "string (required) - Domain where widget is embedded",
                    "location": "object (optional) - User location data",
                },
                "locationObject": {
                    "latitude": "number - User latitude coordinate",
                    "longitude": "number - User longitude coordinate",
                    "accuracy": "number (optional) - Location accuracy in meters",
                },
                "example": {
                    "message": "What is Fab City?",
                    "sessionId": "session_1234567890_abc123",
                    "domain": "example.com",
                    "location": {"latitude": -37.8136, "longitude": 144.9631, "accuracy": 20},
                },
            }
        },
    }


def create_app(
    config: Optional[AssistantConfig] = None,
    *,
    prober: Optional[EmbedProber] = None,
    relay: Optional[WebhookRelay] = None,
) -> FastAPI:
    """Build the API with its collaborators; tests inject fakes here."""

    config = config or load_assistant_config()
    prober = prober or EmbedProber(timeout=config.probe_timeout)
    relay = relay or WebhookRelay(
        config.chat_webhook_url,
        config.log_webhook_url,
        timeout=config.webhook_timeout,
    )

    app = FastAPI(title="FabCity Assistant API", version=__version__)
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/")
    async def get_service_info() -> Dict[str, Any]:
        return service_info()

    @app.get("/health")
    async def get_health() -> Dict[str, str]:
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/fabcity-widget.js", include_in_schema=False)
    async def get_widget_bundle() -> FileResponse:
        """Return the compiled widget bundle from the static directory."""

        bundle_path = STATIC_DIR / "fabcity-widget.js"
        if not bundle_path.exists():
            raise HTTPException(status_code=404, detail="fabcity-widget.js not found")
        return FileResponse(bundle_path, media_type="application/javascript")

    # Sync handler: FastAPI runs it in the threadpool, so the blocking HEAD
    # request does not stall the event loop.
    @app.get("/api/check-embed")
    def check_embed(
        url: Optional[str] = Query(default=None),
        kind: Optional[str] = Query(default="web", alias="type"),
    ) -> JSONResponse:
        """Predict whether ``url`` will render inside the viewer iframe."""

        if not url or not url.strip():
            return JSONResponse(status_code=400, content={"error": "Missing url parameter"})

        try:
            result = prober.probe(url.strip(), ResourceKind.parse(kind))
        except Exception as exc:
            log_event(_LOGGER, logging.ERROR, "api.check_embed.error", exc_info=True, url=url, error=repr(exc))
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to process embed check", "details": str(exc)},
            )
        return JSONResponse(content=result.to_dict())

    @app.post("/api/chat")
    async def post_chat(request: ChatRequest) -> Any:
        """Relay a chat message to the automation webhook."""

        missing = request.missing_field()
        if missing is not None:
            return JSONResponse(status_code=400, content={"error": f"{missing} is required"})

        payload = build_chat_payload(request)
        try:
            return await relay.send_chat(payload)
        except (WebhookError, httpx.HTTPError, ValueError) as exc:
            log_event(
                _LOGGER,
                logging.ERROR,
                "api.chat.error",
                exc_info=True,
                domain=request.domain,
                session_id=request.session_id,
                error=str(exc),
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to get response from AI", "message": str(exc)},
            )

    @app.post("/api/logs")
    async def post_logs(request: Request) -> Response:
        """Forward a session log sent with ``navigator.sendBeacon``."""

        try:
            payload = await request.json()
            forwarded = await relay.forward_log(payload)
        except (httpx.HTTPError, ValueError) as exc:
            log_event(_LOGGER, logging.ERROR, "api.logs.error", exc_info=True, error=str(exc))
            return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

        if not forwarded:
            return JSONResponse(status_code=502, content={"error": "Failed to forward log to n8n"})
        return Response(status_code=204)

    return app


app = create_app()
