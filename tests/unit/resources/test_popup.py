"""Tests for :mod:`fabcity.resources.popup`."""

from __future__ import annotations

import asyncio

import pytest

from fabcity.resources.popup import SIDE_PANEL_NAME, PopupManager


def test_side_panel_is_docked_to_the_right(popups: PopupManager, opener) -> None:
    """Given a 1920 px screen When a side panel opens Then it is 600 px wide, full height and right aligned."""

    handle = popups.open_side_panel("https://example.com/a")

    assert handle is not None
    url, name, features = opener.calls[0]
    assert url == "https://example.com/a"
    assert name == SIDE_PANEL_NAME
    assert "width=600" in features
    assert "height=1040" in features
    assert "left=1320" in features
    assert "top=0" in features
    assert handle.focus_count == 1


def test_live_window_is_reused(popups: PopupManager, opener) -> None:
    """Given an open side panel When another URL is shown Then the same window is navigated and focused."""

    first = popups.open_side_panel("https://example.com/a")
    second = popups.open_side_panel("https://example.com/b")

    assert second is first
    assert len(opener.windows) == 1
    assert first.history == ["https://example.com/a", "https://example.com/b"]
    assert first.focus_count == 2


def test_cross_origin_window_is_replaced(popups: PopupManager, opener) -> None:
    """Given a window that refuses navigation When another URL is shown Then it is closed and a fresh one opened."""

    opener.cross_origin = True
    first = popups.open_side_panel("https://example.com/a")
    second = popups.open_side_panel("https://other.example.org/b")

    assert second is not first
    assert first.closed is True
    assert len(opener.open_windows) == 1


def test_blocked_popup_is_not_retried(popups: PopupManager, opener) -> None:
    """Given a popup blocker When the side panel is requested Then None is returned after a single attempt."""

    opener.blocked = True

    assert popups.open_side_panel("https://example.com/a") is None
    assert len(opener.calls) == 1
    assert popups.handle is None


def test_new_tab_is_a_separate_manual_action(popups: PopupManager, opener) -> None:
    """Given the manual action When a new tab is requested Then it opens with noopener."""

    popups.open_in_new_tab("https://example.com/a")

    assert opener.calls == [("https://example.com/a", "_blank", "noopener,noreferrer")]
    assert popups.handle is None


def test_close_shuts_the_window(popups: PopupManager, opener) -> None:
    """Given an open side panel When closed Then the window is closed and the handle forgotten."""

    handle = popups.open_side_panel("https://example.com/a")
    popups.close()

    assert handle.closed is True
    assert popups.is_open is False


@pytest.mark.anyio
async def test_poll_clears_handle_after_user_closes(popups: PopupManager) -> None:
    """Given a running loop When the user closes the window Then the poll forgets the handle."""

    handle = popups.open_side_panel("https://example.com/a")
    handle.closed = True
    await asyncio.sleep(0.05)

    assert popups.handle is None
    popups.close()


@pytest.mark.anyio
async def test_focus_or_reopen(popups: PopupManager, opener) -> None:
    """Given a dismissed window When the fallback card asks to show it again Then a new window opens."""

    first = popups.open_side_panel("https://example.com/a")
    assert popups.focus_or_reopen("https://example.com/a") is first

    first.closed = True
    second = popups.focus_or_reopen("https://example.com/a")

    assert second is not first
    assert len(opener.windows) == 2
    popups.close()
