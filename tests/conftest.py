"""Shared pytest fixtures for the Fab City Assistant test-suite."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fabcity.resources.kinds import ResourceKind
from fabcity.resources.popup import CrossOriginNavigationError, PopupManager, ScreenGeometry
from fabcity.resources.prefetch import DomainPrefetcher
from fabcity.resources.prober import EmbedCheckResult


class FakeWindow:
    """Browser window stand-in recording navigation."""

    def __init__(self, url: str, name: str, features: str, *, cross_origin: bool = False) -> None:
        self.url = url
        self.name = name
        self.features = features
        self.history: List[str] = [url]
        self.closed = False
        self.focus_count = 0
        self.cross_origin = cross_origin

    def navigate(self, url: str) -> None:
        if self.cross_origin:
            raise CrossOriginNavigationError(url)
        self.url = url
        self.history.append(url)

    def focus(self) -> None:
        self.focus_count += 1

    def close(self) -> None:
        self.closed = True


class FakeOpener:
    """``window.open`` stand-in; ``blocked=True`` simulates a popup blocker."""

    def __init__(self, *, blocked: bool = False, cross_origin: bool = False) -> None:
        self.blocked = blocked
        self.cross_origin = cross_origin
        self.windows: List[FakeWindow] = []
        self.calls: List[tuple] = []

    def open(self, url: str, name: str, features: str) -> Optional[FakeWindow]:
        self.calls.append((url, name, features))
        if self.blocked:
            return None
        window = FakeWindow(url, name, features, cross_origin=self.cross_origin)
        self.windows.append(window)
        return window

    @property
    def open_windows(self) -> List[FakeWindow]:
        return [window for window in self.windows if not window.closed]


class FakeFrames:
    """Iframe slot stand-in tracking the mounted source."""

    def __init__(self) -> None:
        self.src: Optional[str] = None
        self.mounted: List[str] = []
        self.unmount_count = 0

    def mount(self, src: str) -> None:
        self.src = src
        self.mounted.append(src)

    def unmount(self) -> None:
        self.src = None
        self.unmount_count += 1


class StubChecker:
    """Embed checker answering from a URL -> blocked table."""

    def __init__(self, verdicts: Dict[str, bool] | None = None, *, error: Exception | None = None) -> None:
        self.verdicts = verdicts or {}
        self.error = error
        self.calls: List[tuple] = []

    async def check(self, url: str, kind: ResourceKind) -> EmbedCheckResult:
        self.calls.append((url, kind))
        if self.error is not None:
            raise self.error
        return EmbedCheckResult(blocked=self.verdicts.get(url, False), original_url=url)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def frames() -> FakeFrames:
    return FakeFrames()


@pytest.fixture
def popups(opener: FakeOpener) -> PopupManager:
    """Popup manager on a 1920x1040 screen with a fast close poll."""

    return PopupManager(opener, ScreenGeometry(avail_width=1920, avail_height=1040), poll_interval=0.01)


@pytest.fixture
def prefetched() -> List[str]:
    return []


@pytest.fixture
def prefetcher(prefetched: List[str]) -> DomainPrefetcher:
    """Prefetcher that records domains instead of resolving them."""

    return DomainPrefetcher(hint=prefetched.append)


@pytest.fixture
def response_headers() -> Dict[str, Dict[str, str]]:
    """HEAD response headers keyed by URL, used by the ``fake_head`` fixture."""

    return {}


@pytest.fixture
def fake_head(monkeypatch: pytest.MonkeyPatch, response_headers: Dict[str, Dict[str, str]]) -> List[str]:
    """Stub :func:`fabcity.http.head` with ``response_headers``; returns the requested URLs."""

    import requests

    from fabcity.http import HttpResponse

    requested: List[str] = []

    def _head(url: str, timeout: float = 10, headers=None) -> HttpResponse:  # noqa: D401 - stub
        requested.append(url)
        if url not in response_headers:
            raise requests.ConnectionError(f"unreachable: {url}")
        return HttpResponse(url=url, status_code=200, headers=response_headers[url])

    monkeypatch.setattr("fabcity.http.head", _head)
    return requested
