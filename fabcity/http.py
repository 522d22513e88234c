"""HTTP helper utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

import requests

from .tracing import log_event

DEFAULT_USER_AGENT = "FabCityAssistant/1.0 (+embed-check)"


@dataclass(slots=True)
class HttpResponse:
    url: str
    status_code: int
    headers: Dict[str, str]


def head(url: str, timeout: float = 10, headers: Dict[str, str] | None = None) -> HttpResponse:
    """Perform a HTTP HEAD request following redirects.

    Raises :class:`requests.RequestException` on transport failures; callers
    decide how to degrade.
    """

    logger = logging.getLogger("http")
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)
    log_event(logger, logging.DEBUG, "http.request", method="HEAD", url=url, timeout=timeout)
    response = requests.head(url, timeout=timeout, headers=request_headers, allow_redirects=True)
    elapsed_ms = (
        round(response.elapsed.total_seconds() * 1000, 2)
        if getattr(response, "elapsed", None)
        else None
    )
    log_event(
        logger,
        logging.INFO,
        "http.response",
        method="HEAD",
        url=str(response.url),
        status_code=response.status_code,
        elapsed_ms=elapsed_ms,
    )
    return HttpResponse(
        url=str(response.url),
        status_code=response.status_code,
        headers=dict(response.headers),
    )


__all__ = ["DEFAULT_USER_AGENT", "HttpResponse", "head"]
