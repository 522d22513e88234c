"""Resolution of a clicked citation into something the viewer can show.

The orchestrator owns a single :class:`ViewerState` and walks it through
``checking -> loading -> ready`` or into one of the fallback phases
(``blocked``/``failed``) where the resource is handed to the side panel popup.
Only the latest click counts: each :meth:`ResourceOrchestrator.resolve` call
bumps a generation counter and any probe answer or timer that belongs to an
older generation is dropped.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol
from urllib.parse import urlsplit

import httpx

from ..tracing import log_event
from .kinds import ResourceKind, classify
from .popup import PopupManager, WindowHandle
from .prefetch import DomainPrefetcher
from .prober import EmbedCheckResult
from .rewrite import rewrite, with_text_fragment

LOAD_TIMEOUT_SECONDS = 20.0

# Kinds that are framed without asking the embed-check endpoint first.
_TRUSTED_KINDS = frozenset({ResourceKind.PDF, ResourceKind.GOOGLEDRIVE})
_SCRIPTABLE_SCHEMES = frozenset({"javascript", "vbscript", "data", "file"})


class Phase(str, enum.Enum):
    IDLE = "idle"
    CHECKING = "checking"
    LOADING = "loading"
    READY = "ready"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class ResourceDescriptor:
    """What a citation click points at, derived fresh for every click."""

    original_url: str
    kind: ResourceKind
    embed_url: str
    title: str

    @classmethod
    def from_citation(cls, url: str, citation_text: str = "") -> "ResourceDescriptor":
        kind = classify(url)
        embed_url = rewrite(url, kind)
        if embed_url == url:
            # Scroll-to-text only makes sense on the cited document itself.
            embed_url = with_text_fragment(url, citation_text)
        title = (citation_text or "").strip() or url
        return cls(original_url=url, kind=kind, embed_url=embed_url, title=title)

    @property
    def probe_url(self) -> str:
        return self.embed_url.split("#", 1)[0]


@dataclass(slots=True, frozen=True)
class ViewerState:
    phase: Phase = Phase.IDLE
    resource: Optional[ResourceDescriptor] = None
    frame_src: Optional[str] = None
    popup_opened: bool = False
    popup_blocked: bool = False
    failure_reason: Optional[str] = None


class EmbedChecker(Protocol):
    async def check(self, url: str, kind: ResourceKind) -> EmbedCheckResult: ...


class FrameHost(Protocol):
    """The iframe slot of the viewer pane."""

    def mount(self, src: str) -> None: ...

    def unmount(self) -> None: ...


def looks_unsafe(url: str) -> bool:
    """Cheap blacklist for links that must never be framed or auto-opened.

    Only the ``unsafe`` marker and script or local-file schemes count; schemeless
    or otherwise malformed links still go through the probe.
    """

    lowered = url.lower()
    if "unsafe" in lowered:
        return True
    try:
        scheme = urlsplit(url).scheme.lower()
    except ValueError:
        return False
    return scheme in _SCRIPTABLE_SCHEMES


class HttpEmbedChecker:
    """Ask the backend's ``/api/check-embed`` endpoint about a URL.

    Any transport error, non-200 answer or undecodable body yields a
    permissive result so the viewer always gets to try the iframe.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/api/check-embed"
        self._timeout = timeout
        self._client = client
        self._logger = logger or logging.getLogger("viewer.checker")

    async def _get(self, params: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(self._endpoint, params=params)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(self._endpoint, params=params)

    def _permissive(self, url: str, reason: str) -> EmbedCheckResult:
        return EmbedCheckResult(blocked=False, original_url=url, reason=reason, reachable=False)

    async def check(self, url: str, kind: ResourceKind) -> EmbedCheckResult:
        params = {"url": url, "type": ResourceKind.parse(kind).value}
        try:
            response = await self._get(params)
        except httpx.HTTPError as exc:
            log_event(self._logger, logging.WARNING, "checker.unreachable", url=url, error=str(exc))
            return self._permissive(url, "checker-unreachable")

        if response.status_code != 200:
            log_event(self._logger, logging.WARNING, "checker.status", url=url, status_code=response.status_code)
            return self._permissive(url, "checker-status")

        try:
            payload = response.json()
        except ValueError:
            log_event(self._logger, logging.WARNING, "checker.decode", url=url)
            return self._permissive(url, "checker-decode")

        return EmbedCheckResult(
            blocked=bool(payload.get("blocked", False)),
            original_url=payload.get("originalUrl") or url,
            embed_url=payload.get("embedUrl"),
        )


class ResourceOrchestrator:
    """Drive one viewer through classification, probing, loading and fallback."""

    def __init__(
        self,
        checker: EmbedChecker,
        frames: FrameHost,
        popups: PopupManager,
        *,
        prefetcher: Optional[DomainPrefetcher] = None,
        load_timeout: float = LOAD_TIMEOUT_SECONDS,
        on_change: Optional[Callable[[ViewerState], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._checker = checker
        self._frames = frames
        self._popups = popups
        self._prefetcher = prefetcher or DomainPrefetcher()
        self._load_timeout = load_timeout
        self._on_change = on_change
        self._logger = logger or logging.getLogger("viewer.orchestrator")
        self._state = ViewerState()
        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> ViewerState:
        return self._state

    @property
    def popup_handle(self) -> Optional[WindowHandle]:
        return self._popups.handle if self._popups.is_open else None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def resolve(self, url: str, citation_text: str = "") -> ViewerState:
        """Resolve a citation click; a later call supersedes this one."""

        if not url or not url.strip():
            log_event(self._logger, logging.WARNING, "viewer.empty_url")
            return self._state

        url = url.strip()
        generation = self._restart()
        self._prefetcher.prefetch(url)
        resource = ResourceDescriptor.from_citation(url, citation_text)
        if resource.probe_url != url:
            self._prefetcher.prefetch(resource.probe_url)
        self._transition(generation, Phase.CHECKING, resource=resource)

        if looks_unsafe(url):
            self._transition(generation, Phase.BLOCKED, failure_reason="unsafe")
            return self._state

        if resource.kind in _TRUSTED_KINDS:
            self._mount(generation, resource)
            return self._state

        try:
            verdict = await self._checker.check(resource.probe_url, resource.kind)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "viewer.check_failed",
                exc_info=True,
                url=resource.probe_url,
                error=repr(exc),
            )
            verdict = EmbedCheckResult(blocked=False, original_url=resource.probe_url, reachable=False)

        if generation != self._generation:
            log_event(self._logger, logging.DEBUG, "viewer.stale_verdict", url=url)
            return self._state

        if verdict.blocked:
            self._fall_back(generation, Phase.BLOCKED, verdict.reason or "blocked")
        else:
            self._mount(generation, resource)
        return self._state

    def handle_frame_load(self, src: str, content_visible: Optional[bool] = None) -> None:
        """Record the iframe ``load`` event.

        ``content_visible`` is ``None`` when the frame is cross-origin and its
        document cannot be inspected, ``False`` when it is reachable but blank.
        """

        if not self._is_current_frame(src):
            log_event(self._logger, logging.DEBUG, "viewer.stale_load", src=src)
            return
        if content_visible is False:
            self._fall_back(self._generation, Phase.FAILED, "blank")
            return
        self._cancel_timer()
        self._transition(self._generation, Phase.READY)

    def handle_frame_error(self, src: str) -> None:
        if not self._is_current_frame(src):
            return
        self._fall_back(self._generation, Phase.FAILED, "error")

    def close(self) -> None:
        """Discard the current resource, iframe and popup."""

        self._generation += 1
        self._cancel_timer()
        if self._state.frame_src is not None:
            self._frames.unmount()
        self._popups.close()
        self._state = ViewerState()
        log_event(self._logger, logging.INFO, "viewer.closed")
        self._notify()

    # ------------------------------------------------------------------
    # Manual fallback actions
    # ------------------------------------------------------------------
    def reopen_popup(self) -> Optional[WindowHandle]:
        resource = self._state.resource
        if resource is None or looks_unsafe(resource.original_url):
            return None
        handle = self._popups.focus_or_reopen(resource.original_url)
        self._state = dataclasses.replace(
            self._state, popup_opened=handle is not None, popup_blocked=handle is None
        )
        self._notify()
        return handle

    def open_externally(self) -> Optional[WindowHandle]:
        resource = self._state.resource
        if resource is None or looks_unsafe(resource.original_url):
            return None
        return self._popups.open_in_new_tab(resource.original_url)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _restart(self) -> int:
        self._generation += 1
        self._cancel_timer()
        if self._state.frame_src is not None:
            self._frames.unmount()
        # The popup survives so the next blocked resource can reuse it.
        self._state = ViewerState()
        return self._generation

    def _mount(self, generation: int, resource: ResourceDescriptor) -> None:
        self._popups.close()
        self._frames.mount(resource.embed_url)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._load_timeout, self._on_load_timeout, generation)
        self._transition(generation, Phase.LOADING, frame_src=resource.embed_url)

    def _fall_back(self, generation: int, phase: Phase, reason: str) -> None:
        self._cancel_timer()
        if self._state.frame_src is not None:
            self._frames.unmount()
        handle = self._popups.open_side_panel(self._state.resource.original_url)
        self._transition(
            generation,
            phase,
            frame_src=None,
            popup_opened=handle is not None,
            popup_blocked=handle is None,
            failure_reason=reason,
        )

    def _on_load_timeout(self, generation: int) -> None:
        self._timer = None
        if generation != self._generation or self._state.phase is not Phase.LOADING:
            return
        log_event(self._logger, logging.WARNING, "viewer.load_timeout", src=self._state.frame_src)
        self._fall_back(generation, Phase.FAILED, "timeout")

    def _is_current_frame(self, src: str) -> bool:
        return self._state.phase is Phase.LOADING and src == self._state.frame_src

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _transition(self, generation: int, phase: Phase, **changes: object) -> None:
        if generation != self._generation:
            return
        self._state = dataclasses.replace(self._state, phase=phase, **changes)
        resource = self._state.resource
        log_event(
            self._logger,
            logging.INFO,
            "viewer.phase",
            phase=phase,
            url=resource.original_url if resource else None,
            kind=resource.kind if resource else None,
            reason=self._state.failure_reason,
        )
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self._state)


__all__ = [
    "EmbedChecker",
    "FrameHost",
    "HttpEmbedChecker",
    "LOAD_TIMEOUT_SECONDS",
    "Phase",
    "ResourceDescriptor",
    "ResourceOrchestrator",
    "ViewerState",
    "looks_unsafe",
]
