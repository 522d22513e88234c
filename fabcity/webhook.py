"""Relay of chat messages and session logs to the n8n automation webhooks."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .tracing import log_event


class WebhookError(RuntimeError):
    """Raised when the upstream webhook answers with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChatLocation(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``. Presence checks happen in the route."""

    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    domain: Optional[str] = None
    location: Optional[ChatLocation] = None

    def missing_field(self) -> Optional[str]:
        """Return the label of the first required field left empty."""

        for label, value in (("Message", self.message), ("Session ID", self.session_id), ("Domain", self.domain)):
            if not value:
                return label
        return None


def build_chat_payload(request: ChatRequest) -> Dict[str, Any]:
    """Shape the upstream payload; location is only sent when it has coordinates."""

    payload: Dict[str, Any] = {
        "message": request.message,
        "sessionId": request.session_id,
        "domain": request.domain,
    }
    location = request.location
    if location is not None and location.latitude and location.longitude:
        payload["location"] = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "accuracy": location.accuracy or None,
        }
    return payload


class WebhookRelay:
    """Forward JSON payloads to the chat and log webhooks."""

    def __init__(
        self,
        chat_url: str,
        log_url: str,
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.chat_url = chat_url
        self.log_url = log_url
        self._timeout = timeout
        self._transport = transport
        self._logger = logger or logging.getLogger("webhook")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def send_chat(self, payload: Dict[str, Any]) -> Any:
        """Post ``payload`` to the chat webhook and return its decoded JSON."""

        async with self._client() as client:
            response = await client.post(self.chat_url, json=payload)
        log_event(
            self._logger,
            logging.INFO,
            "webhook.chat",
            status_code=response.status_code,
            domain=payload.get("domain"),
            session_id=payload.get("sessionId"),
            has_location="location" in payload,
        )
        if not response.is_success:
            raise WebhookError(
                f"n8n webhook responded with status: {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    async def forward_log(self, payload: Any) -> bool:
        """Post a session log; ``False`` when the webhook rejected it."""

        async with self._client() as client:
            response = await client.post(self.log_url, json=payload)
        if not response.is_success:
            log_event(self._logger, logging.WARNING, "webhook.log.rejected", status_code=response.status_code)
            return False
        return True


__all__ = ["ChatLocation", "ChatRequest", "WebhookError", "WebhookRelay", "build_chat_payload"]
