"""Split-pane presentation of the resource viewer.

The shell keeps only layout concerns (visibility, fullscreen, viewport) and
renders the orchestrator's :class:`ViewerState` into a flat view model the
widget template can display.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from .orchestrator import Phase, ResourceOrchestrator, ViewerState
from .rewrite import MAX_EMBED_BYTES, truncate_url

MOBILE_BREAKPOINT = 768


class ViewMode(str, enum.Enum):
    EMPTY = "empty"
    CHECKING = "checking"
    IFRAME = "iframe"
    FALLBACK = "fallback"


class ViewerAction(str, enum.Enum):
    FOCUS_POPUP = "focus_popup"
    OPEN_POPUP = "open_popup"
    OPEN_NEW_TAB = "open_new_tab"


@dataclass(slots=True, frozen=True)
class PaneLayout:
    """Share of the widget given to each pane; heights when ``stacked``."""

    chat_size: str
    viewer_size: str
    stacked: bool


@dataclass(slots=True, frozen=True)
class ViewerView:
    mode: ViewMode
    title: str = ""
    display_url: str = ""
    src: Optional[str] = None
    loading: bool = False
    message: str = ""
    actions: Tuple[ViewerAction, ...] = ()


_REASON_MESSAGES = {
    "size": f"This file is larger than {MAX_EMBED_BYTES // (1024 * 1024)} MB and cannot be previewed here.",
    "x-frame-options": "This site does not allow itself to be displayed inside other pages.",
    "frame-ancestors": "This site does not allow itself to be displayed inside other pages.",
    "unsafe": "This link was flagged as unsafe and will not be opened automatically.",
    "timeout": "The resource took too long to load in the viewer.",
    "error": "The resource failed to load in the viewer.",
    "blank": "The resource loaded an empty page in the viewer.",
}
_DEFAULT_REASON = "The resource may be blocked, unsafe, or unsupported in the viewer."


def fallback_message(state: ViewerState) -> str:
    reason = _REASON_MESSAGES.get(state.failure_reason or "", _DEFAULT_REASON)
    if state.popup_opened:
        return f"{reason} It has been opened in a side panel window."
    if state.popup_blocked:
        return f"{reason} Your browser blocked the side panel; use the buttons below to open it."
    return reason


class ViewerShell:
    """Chat | viewer split layout with a fullscreen toggle."""

    def __init__(self, orchestrator: ResourceOrchestrator, *, viewport_width: int = 1280) -> None:
        self._orchestrator = orchestrator
        self.viewport_width = viewport_width
        self.visible = False
        self.fullscreen = False

    @property
    def is_mobile(self) -> bool:
        return self.viewport_width < MOBILE_BREAKPOINT

    async def open(self, url: str, citation_text: str = "") -> ViewerState:
        self.visible = True
        self.fullscreen = False
        return await self._orchestrator.resolve(url, citation_text)

    def close(self) -> None:
        self.visible = False
        self.fullscreen = False
        self._orchestrator.close()

    def toggle_fullscreen(self) -> bool:
        if self.visible:
            self.fullscreen = not self.fullscreen
        return self.fullscreen

    def set_viewport_width(self, width: int) -> None:
        self.viewport_width = width

    def layout(self) -> PaneLayout:
        if not self.visible:
            return PaneLayout(chat_size="100%", viewer_size="0%", stacked=self.is_mobile)
        if self.fullscreen:
            return PaneLayout(chat_size="0%", viewer_size="100%", stacked=self.is_mobile)
        return PaneLayout(chat_size="50%", viewer_size="50%", stacked=self.is_mobile)

    def render(self) -> ViewerView:
        state = self._orchestrator.state
        resource = state.resource
        if not self.visible or resource is None:
            return ViewerView(mode=ViewMode.EMPTY, message="Click on a citation or link to view it here")

        title = resource.title if resource.title != resource.original_url else truncate_url(resource.title, 50)
        display_url = truncate_url(resource.original_url)

        if state.phase is Phase.CHECKING:
            return ViewerView(mode=ViewMode.CHECKING, title=title, display_url=display_url)

        if state.phase in (Phase.LOADING, Phase.READY):
            return ViewerView(
                mode=ViewMode.IFRAME,
                title=title,
                display_url=display_url,
                src=state.frame_src,
                loading=state.phase is Phase.LOADING,
                actions=(ViewerAction.OPEN_NEW_TAB,),
            )

        actions: Tuple[ViewerAction, ...]
        if state.failure_reason == "unsafe":
            actions = ()
        elif state.popup_opened:
            actions = (ViewerAction.FOCUS_POPUP, ViewerAction.OPEN_NEW_TAB)
        else:
            actions = (ViewerAction.OPEN_POPUP, ViewerAction.OPEN_NEW_TAB)
        return ViewerView(
            mode=ViewMode.FALLBACK,
            title=title,
            display_url=display_url,
            message=fallback_message(state),
            actions=actions,
        )

    def perform(self, action: ViewerAction | str) -> None:
        """Run a fallback-card button."""

        action = ViewerAction(action)
        if action is ViewerAction.OPEN_NEW_TAB:
            self._orchestrator.open_externally()
        else:
            self._orchestrator.reopen_popup()


__all__ = [
    "MOBILE_BREAKPOINT",
    "PaneLayout",
    "ViewMode",
    "ViewerAction",
    "ViewerShell",
    "ViewerView",
    "fallback_message",
]
