"""Opportunistic DNS warm-up for citation links."""

from __future__ import annotations

import asyncio
import logging
import re
import socket
from typing import Callable, List, Optional, Set

from ..tracing import log_event
from .kinds import hostname

_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_BARE_URL_RE = re.compile(r"https?://[^\s)\]>\"']+")
_YOUTUBE_EMBED_HOST = "www.youtube.com"

_LOGGER = logging.getLogger("viewer.prefetch")

# Strong references to in-flight lookups; the loop only keeps weak ones.
_PENDING: Set[asyncio.Task] = set()


def resolve_in_background(domain: str) -> Optional[asyncio.Task]:
    """Schedule a non-blocking lookup of ``domain`` on the running loop.

    Lookup failures, including hosts that cannot be IDNA encoded, are logged
    at debug level and never surface from the task.
    """

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None

    async def _lookup() -> None:
        try:
            await loop.getaddrinfo(domain, 443, type=socket.SOCK_STREAM)
        except (OSError, UnicodeError) as exc:
            log_event(_LOGGER, logging.DEBUG, "prefetch.failed", domain=domain, error=str(exc))

    task = loop.create_task(_lookup())
    _PENDING.add(task)
    task.add_done_callback(_PENDING.discard)
    return task


class DomainPrefetcher:
    """Remember which domains were warmed so each is looked up once.

    Only domains are cached here, never embeddability verdicts.
    """

    def __init__(self, hint: Optional[Callable[[str], None]] = None) -> None:
        self._hint = hint or resolve_in_background
        self._domains: Set[str] = set()

    @property
    def domains(self) -> Set[str]:
        return set(self._domains)

    def _warm(self, domain: str) -> None:
        self._domains.add(domain)
        log_event(_LOGGER, logging.DEBUG, "prefetch.domain", domain=domain)
        self._hint(domain)

    def prefetch(self, url: str) -> None:
        domain = hostname(url)
        if not domain or domain in self._domains:
            return
        self._warm(domain)
        if ("youtube.com" in domain or "youtu.be" in domain) and _YOUTUBE_EMBED_HOST not in self._domains:
            self._warm(_YOUTUBE_EMBED_HOST)

    def prefetch_message(self, text: str) -> None:
        for url in extract_urls(text):
            self.prefetch(url)


def extract_urls(text: str) -> List[str]:
    """Return markdown link targets and bare URLs found in ``text``, in order."""

    if not text:
        return []
    urls: List[str] = [match.group(2) for match in _MARKDOWN_LINK_RE.finditer(text)]
    for match in _BARE_URL_RE.finditer(text):
        url = match.group(0).rstrip(".,;:!?")
        if url not in urls:
            urls.append(url)
    return urls


__all__ = ["DomainPrefetcher", "extract_urls", "resolve_in_background"]
