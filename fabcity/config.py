"""Configuration helpers for the Fab City Assistant services."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

_LOGGER = logging.getLogger(__name__)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "configs" / "assistant.json"

DEFAULT_CHAT_WEBHOOK_URL = "https://automations.manymangoes.com.au/webhook/6b51b51f-4928-48fd-b5fd-b39c34f523d1/chat"
DEFAULT_LOG_WEBHOOK_URL = "https://automations.manymangoes.com.au/webhook/cfb922b5-3f55-4ccf-94c2-6b83e10d37b9"
DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:5173",
    "https://fcity.manymangoes.com.au",
    "https://fabcity.manymangoes.com.au",
)


def _split_origins(value: Any) -> List[str]:
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value or [])
    return [str(item).strip().rstrip("/") for item in items if str(item).strip()]


@dataclass(slots=True)
class AssistantConfig:
    """Runtime settings for the API server and the embed-check client."""

    chat_webhook_url: str = DEFAULT_CHAT_WEBHOOK_URL
    log_webhook_url: str = DEFAULT_LOG_WEBHOOK_URL
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    api_url: str = "http://localhost:3001"
    probe_timeout: float = 10.0
    webhook_timeout: float = 60.0
    port: int = 3001

    @classmethod
    def load(cls, path: Path | None = None) -> "AssistantConfig":
        """Load configuration from disk and apply environment overrides."""

        config_path = path or _DEFAULT_CONFIG_PATH
        data: Dict[str, Any] = {}

        if config_path.exists():
            try:
                data = json.loads(config_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                _LOGGER.warning("Unable to decode assistant config at %s: %s", config_path, exc)
                data = {}

        env_map = {
            "N8N_WEBHOOK_URL": "chat_webhook_url",
            "N8N_LOG_WEBHOOK_URL": "log_webhook_url",
            "FABCITY_ALLOWED_ORIGINS": "allowed_origins",
            "FABCITY_API_URL": "api_url",
            "FABCITY_PROBE_TIMEOUT": "probe_timeout",
            "PORT": "port",
        }
        for env_name, key in env_map.items():
            value = os.environ.get(env_name)
            if value is not None and value.strip():
                data[key] = value.strip()

        config = cls()
        if "chat_webhook_url" in data:
            config.chat_webhook_url = str(data["chat_webhook_url"])
        if "log_webhook_url" in data:
            config.log_webhook_url = str(data["log_webhook_url"])
        if "allowed_origins" in data:
            config.allowed_origins = _split_origins(data["allowed_origins"])
        if "api_url" in data:
            config.api_url = str(data["api_url"]).rstrip("/")
        for key, caster in (("probe_timeout", float), ("webhook_timeout", float), ("port", int)):
            if key not in data:
                continue
            try:
                setattr(config, key, caster(data[key]))
            except (TypeError, ValueError):
                _LOGGER.warning("Ignoring invalid %s value %r", key, data[key])
        return config


def load_assistant_config(path: Path | None = None) -> AssistantConfig:
    """Helper to load the assistant configuration."""

    return AssistantConfig.load(path)


__all__ = [
    "AssistantConfig",
    "DEFAULT_ALLOWED_ORIGINS",
    "DEFAULT_CHAT_WEBHOOK_URL",
    "DEFAULT_LOG_WEBHOOK_URL",
    "load_assistant_config",
]
