"""Server-side embeddability probe.

A ``HEAD`` request is issued against the candidate URL and the response
headers are run through a small decision policy that predicts whether the
origin will refuse to render inside a third-party iframe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

import requests

from .. import http
from ..tracing import log_event, trace
from .kinds import ResourceKind
from .rewrite import MAX_EMBED_BYTES, rewrite

_BLOCKING_FRAME_OPTIONS = frozenset({"deny", "sameorigin"})
_PERMISSIVE_ANCESTORS = frozenset({"*", "'self'"})


@dataclass(slots=True)
class EmbedCheckResult:
    """Advisory verdict for one URL. Never cached."""

    blocked: bool
    original_url: str
    embed_url: Optional[str] = None
    reason: Optional[str] = None
    file_size: Optional[int] = None
    reachable: bool = True

    def to_dict(self) -> Dict[str, object]:
        return {
            "blocked": self.blocked,
            "originalUrl": self.original_url,
            "embedUrl": self.embed_url or self.original_url,
        }


@dataclass(slots=True)
class HeaderVerdict:
    blocked: bool
    reason: Optional[str]
    file_size: Optional[int]


def _lower_keys(headers: Mapping[str, str]) -> Dict[str, str]:
    return {str(key).lower(): str(value) for key, value in headers.items()}


def parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        size = int(str(value).strip())
    except ValueError:
        return None
    return size if size >= 0 else None


def parse_frame_ancestors(csp: Optional[str]) -> Optional[List[str]]:
    """Return the lowercased source list of the ``frame-ancestors`` directive.

    ``None`` means the policy does not restrict framing at all. Several
    policies joined with commas (repeated headers) are searched in order.
    """

    if not csp:
        return None
    for policy in csp.split(","):
        for directive in policy.split(";"):
            tokens = directive.strip().lower().split()
            if tokens and tokens[0] == "frame-ancestors":
                return [token.replace('"', "'") for token in tokens[1:]]
    return None


def frame_ancestors_block(sources: List[str]) -> bool:
    """Conservative reading of a ``frame-ancestors`` source list.

    Only a wildcard or ``'self'`` is accepted; explicit host lists are treated
    as blocking even when they might name this application's own origin.
    """

    if "'none'" in sources or not sources:
        return True
    return not any(source in _PERMISSIVE_ANCESTORS for source in sources)


def evaluate_headers(url: str, headers: Mapping[str, str]) -> HeaderVerdict:
    """Apply the embed policy to the response ``headers`` of ``url``."""

    lowered = _lower_keys(headers)
    file_size = parse_content_length(lowered.get("content-length"))

    if file_size is not None and file_size > MAX_EMBED_BYTES:
        return HeaderVerdict(blocked=True, reason="size", file_size=file_size)

    content_type = lowered.get("content-type", "").lower()
    if url.lower().endswith(".pdf") or "application/pdf" in content_type:
        return HeaderVerdict(blocked=False, reason="pdf", file_size=file_size)

    frame_options = lowered.get("x-frame-options", "").strip().lower()
    if frame_options in _BLOCKING_FRAME_OPTIONS:
        return HeaderVerdict(blocked=True, reason="x-frame-options", file_size=file_size)

    sources = parse_frame_ancestors(lowered.get("content-security-policy"))
    if sources is not None and frame_ancestors_block(sources):
        return HeaderVerdict(blocked=True, reason="frame-ancestors", file_size=file_size)

    return HeaderVerdict(blocked=False, reason=None, file_size=file_size)


class EmbedProber:
    """Issue ``HEAD`` requests and turn the answers into :class:`EmbedCheckResult`."""

    def __init__(self, timeout: float = 10.0, logger: Optional[logging.Logger] = None) -> None:
        self._timeout = timeout
        self._logger = logger or logging.getLogger("embed.prober")

    def probe(self, url: str, kind: ResourceKind | str = ResourceKind.WEB) -> EmbedCheckResult:
        kind = ResourceKind.parse(kind)
        with trace("embed.probe", logger=self._logger, url=url, kind=kind) as span:
            try:
                response = http.head(url, timeout=self._timeout)
            except requests.RequestException as exc:
                # Fail open: the viewer still gets to try the iframe.
                log_event(
                    self._logger,
                    logging.WARNING,
                    "probe.unreachable",
                    url=url,
                    error=str(exc),
                    exception=exc.__class__.__name__,
                )
                span.update(blocked=False, reason="unreachable")
                return EmbedCheckResult(
                    blocked=False,
                    original_url=url,
                    embed_url=rewrite(url, kind),
                    reason="unreachable",
                    reachable=False,
                )

            verdict = evaluate_headers(url, response.headers)
            span.update(blocked=verdict.blocked, reason=verdict.reason, file_size=verdict.file_size)
            return EmbedCheckResult(
                blocked=verdict.blocked,
                original_url=url,
                embed_url=rewrite(url, kind, file_size=verdict.file_size),
                reason=verdict.reason,
                file_size=verdict.file_size,
            )


__all__ = [
    "EmbedCheckResult",
    "EmbedProber",
    "HeaderVerdict",
    "evaluate_headers",
    "frame_ancestors_block",
    "parse_content_length",
    "parse_frame_ancestors",
]
