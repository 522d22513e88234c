"""Side panel popup used when a resource cannot be shown inline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from ..tracing import log_event

SIDE_PANEL_NAME = "fabcity-resource-sidepanel"
SIDE_PANEL_WIDTH = 600
CLOSE_POLL_INTERVAL = 0.4
NEW_TAB_FEATURES = "noopener,noreferrer"


class CrossOriginNavigationError(Exception):
    """Raised by a window handle that may not be navigated any more."""


class WindowHandle(Protocol):
    @property
    def closed(self) -> bool: ...

    def navigate(self, url: str) -> None: ...

    def focus(self) -> None: ...

    def close(self) -> None: ...


class WindowOpener(Protocol):
    def open(self, url: str, name: str, features: str) -> Optional[WindowHandle]:
        """Open a window; ``None`` means the popup blocker refused."""


@dataclass(slots=True)
class ScreenGeometry:
    avail_width: int = 1920
    avail_height: int = 1080


class PopupManager:
    """Keep at most one side panel window alive and reuse it across resources."""

    def __init__(
        self,
        opener: WindowOpener,
        screen: Optional[ScreenGeometry] = None,
        *,
        width: int = SIDE_PANEL_WIDTH,
        poll_interval: float = CLOSE_POLL_INTERVAL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._opener = opener
        self._screen = screen or ScreenGeometry()
        self._width = width
        self._poll_interval = poll_interval
        self._logger = logger or logging.getLogger("viewer.popup")
        self._handle: Optional[WindowHandle] = None
        self._watcher: Optional[asyncio.Task] = None

    @property
    def handle(self) -> Optional[WindowHandle]:
        return self._handle

    @property
    def is_open(self) -> bool:
        return self._handle is not None and not self._handle.closed

    def features(self) -> str:
        width = min(self._width, self._screen.avail_width)
        left = max(self._screen.avail_width - width, 0)
        return (
            f"width={width},height={self._screen.avail_height},left={left},top=0,"
            "menubar=no,toolbar=no,location=yes,status=no,resizable=yes,scrollbars=yes"
        )

    def open_side_panel(self, url: str) -> Optional[WindowHandle]:
        """Show ``url`` in the side panel, reusing the live window if any.

        Returns ``None`` when the browser blocked the popup. No retry is made;
        the caller offers a manual action instead.
        """

        if self.is_open:
            handle = self._handle
            try:
                handle.navigate(url)
                handle.focus()
            except CrossOriginNavigationError:
                log_event(self._logger, logging.DEBUG, "popup.reopen", url=url)
                handle.close()
                self._handle = None
            else:
                log_event(self._logger, logging.INFO, "popup.reused", url=url)
                return handle

        handle = self._opener.open(url, SIDE_PANEL_NAME, self.features())
        if handle is None:
            log_event(self._logger, logging.WARNING, "popup.blocked", url=url)
            self._handle = None
            return None

        self._handle = handle
        handle.focus()
        log_event(self._logger, logging.INFO, "popup.opened", url=url)
        self._watch()
        return handle

    def focus_or_reopen(self, url: str) -> Optional[WindowHandle]:
        """Manual "show it again" action from the fallback card."""

        if self.is_open:
            self._handle.focus()
            return self._handle
        return self.open_side_panel(url)

    def open_in_new_tab(self, url: str) -> Optional[WindowHandle]:
        """User initiated escape hatch; never called automatically."""

        log_event(self._logger, logging.INFO, "popup.new_tab", url=url)
        return self._opener.open(url, "_blank", NEW_TAB_FEATURES)

    def close(self) -> None:
        self._stop_watch()
        handle, self._handle = self._handle, None
        if handle is not None and not handle.closed:
            handle.close()
            log_event(self._logger, logging.INFO, "popup.closed")

    def _watch(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Without a loop nobody polls; ``is_open`` still checks ``closed``.
            return
        if self._watcher is None or self._watcher.done():
            self._watcher = loop.create_task(self._poll_closed())

    def _stop_watch(self) -> None:
        if self._watcher is not None and not self._watcher.done():
            self._watcher.cancel()
        self._watcher = None

    async def _poll_closed(self) -> None:
        while self._handle is not None:
            await asyncio.sleep(self._poll_interval)
            if self._handle is not None and self._handle.closed:
                log_event(self._logger, logging.DEBUG, "popup.dismissed")
                self._handle = None


__all__ = [
    "CLOSE_POLL_INTERVAL",
    "CrossOriginNavigationError",
    "PopupManager",
    "SIDE_PANEL_NAME",
    "SIDE_PANEL_WIDTH",
    "ScreenGeometry",
    "WindowHandle",
    "WindowOpener",
]
