"""Tests for :mod:`fabcity.resources.orchestrator`."""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List

import pytest

from fabcity.resources.kinds import ResourceKind
from fabcity.resources.orchestrator import (
    Phase,
    ResourceDescriptor,
    ResourceOrchestrator,
    ViewerState,
    looks_unsafe,
)
from fabcity.resources.prober import EmbedCheckResult

PAGE_A = "https://alpha.example.com/page"
PAGE_B = "https://beta.example.com/page"
BLOCKED_A = "https://blocked-a.example.com/page"
BLOCKED_B = "https://blocked-b.example.com/page"
PDF_URL = "https://fab.city/files/manifesto.pdf"
DRIVE_URL = "https://drive.google.com/file/d/1AbCdEfGhIjKlMnOpQrStUvWxYz012345/view?usp=sharing"


class GatedChecker:
    """Checker whose answers are held until the test releases them."""

    def __init__(self, verdicts: Dict[str, bool]) -> None:
        self.verdicts = verdicts
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[str] = []

    def gate(self, url: str) -> asyncio.Event:
        return self.gates.setdefault(url, asyncio.Event())

    async def check(self, url: str, kind: ResourceKind) -> EmbedCheckResult:
        self.calls.append(url)
        if url in self.gates:
            await self.gates[url].wait()
        return EmbedCheckResult(blocked=self.verdicts.get(url, False), original_url=url)


@pytest.fixture
def changes() -> List[ViewerState]:
    return []


@pytest.fixture
def make_orchestrator(frames, popups, prefetcher, changes) -> Callable[..., ResourceOrchestrator]:
    def _make(checker, **kwargs) -> ResourceOrchestrator:
        kwargs.setdefault("load_timeout", 5.0)
        return ResourceOrchestrator(
            checker,
            frames,
            popups,
            prefetcher=prefetcher,
            on_change=changes.append,
            **kwargs,
        )

    return _make


def test_descriptor_defaults_title_and_adds_fragment() -> None:
    """Given an unrewritten web URL and citation text When described Then the iframe URL scrolls to the text."""

    described = ResourceDescriptor.from_citation(PAGE_A, "Fab City")
    bare = ResourceDescriptor.from_citation(PAGE_A)

    assert described.kind is ResourceKind.WEB
    assert described.embed_url == f"{PAGE_A}#:~:text=Fab%20City"
    assert described.probe_url == PAGE_A
    assert described.title == "Fab City"
    assert bare.title == PAGE_A


def test_descriptor_skips_fragment_for_rewritten_urls() -> None:
    """Given a YouTube link When described Then the embed URL carries no text fragment."""

    described = ResourceDescriptor.from_citation("https://youtu.be/dQw4w9WgXcQ", "intro")

    assert described.embed_url == "https://www.youtube.com/embed/dQw4w9WgXcQ?autoplay=0&rel=0"


def test_looks_unsafe() -> None:
    """Given flagged, scripted or schemeless links When screened Then only the first two are unsafe."""

    assert looks_unsafe("https://example.com/unsafe-download")
    assert looks_unsafe("file://localhost/etc/passwd")
    assert looks_unsafe("javascript:alert(1)")
    assert not looks_unsafe(PAGE_A)
    assert not looks_unsafe("example.com/doc")
    assert not looks_unsafe("http://[::1")


@pytest.mark.anyio
async def test_embeddable_page_loads_and_becomes_ready(make_orchestrator, frames, prefetched, changes) -> None:
    """Given a page that allows framing When resolved and loaded Then the phases run checking -> loading -> ready."""

    checker = GatedChecker({})
    orchestrator = make_orchestrator(checker)

    state = await orchestrator.resolve(PAGE_A)

    assert state.phase is Phase.LOADING
    assert frames.src == PAGE_A
    assert state.frame_src == PAGE_A
    assert checker.calls == [PAGE_A]
    assert prefetched == ["alpha.example.com"]

    orchestrator.handle_frame_load(PAGE_A)

    assert orchestrator.state.phase is Phase.READY
    assert [change.phase for change in changes] == [Phase.CHECKING, Phase.LOADING, Phase.READY]


@pytest.mark.anyio
@pytest.mark.parametrize("url", [PDF_URL, DRIVE_URL])
async def test_trusted_kinds_skip_the_probe(make_orchestrator, frames, url: str) -> None:
    """Given a PDF or Drive link When resolved Then no probe is made and the rewritten URL is framed."""

    checker = GatedChecker({})
    orchestrator = make_orchestrator(checker)

    state = await orchestrator.resolve(url)

    assert checker.calls == []
    assert state.phase is Phase.LOADING
    assert frames.src == state.resource.embed_url
    assert frames.src != url


@pytest.mark.anyio
async def test_blocked_resource_opens_side_panel(make_orchestrator, frames, opener) -> None:
    """Given a resource the server reports blocked When resolved Then no iframe is mounted and the popup opens."""

    orchestrator = make_orchestrator(GatedChecker({BLOCKED_A: True}))

    state = await orchestrator.resolve(BLOCKED_A, "Citation")

    assert state.phase is Phase.BLOCKED
    assert frames.mounted == []
    assert state.popup_opened is True
    assert [call[0] for call in opener.calls] == [BLOCKED_A]
    assert orchestrator.popup_handle is opener.windows[0]
    orchestrator.close()


@pytest.mark.anyio
async def test_blocked_popup_is_surfaced_not_retried(make_orchestrator, opener) -> None:
    """Given a popup blocker When a blocked resource resolves Then the state records it after one attempt."""

    opener.blocked = True
    orchestrator = make_orchestrator(GatedChecker({BLOCKED_A: True}))

    state = await orchestrator.resolve(BLOCKED_A)

    assert state.phase is Phase.BLOCKED
    assert state.popup_opened is False
    assert state.popup_blocked is True
    assert len(opener.calls) == 1


@pytest.mark.anyio
async def test_checker_error_fails_open(make_orchestrator, frames) -> None:
    """Given a checker that raises When resolved Then the iframe is still attempted."""

    class BrokenChecker:
        async def check(self, url, kind):
            raise RuntimeError("boom")

    orchestrator = make_orchestrator(BrokenChecker())

    state = await orchestrator.resolve(PAGE_A)

    assert state.phase is Phase.LOADING
    assert frames.src == PAGE_A


@pytest.mark.anyio
async def test_load_timeout_falls_back(make_orchestrator, frames, opener) -> None:
    """Given an iframe that never loads When the timeout elapses Then the viewer fails over to the popup."""

    orchestrator = make_orchestrator(GatedChecker({}), load_timeout=0.05)

    await orchestrator.resolve(PAGE_A)
    await asyncio.sleep(0.1)

    state = orchestrator.state
    assert state.phase is Phase.FAILED
    assert state.failure_reason == "timeout"
    assert state.frame_src is None
    assert frames.src is None
    assert [call[0] for call in opener.calls] == [PAGE_A]

    orchestrator.handle_frame_load(PAGE_A)
    assert orchestrator.state.phase is Phase.FAILED
    assert len(opener.calls) == 1
    orchestrator.close()


@pytest.mark.anyio
async def test_load_cancels_timeout(make_orchestrator) -> None:
    """Given a frame that loads in time When the timeout would have fired Then the viewer stays ready."""

    orchestrator = make_orchestrator(GatedChecker({}), load_timeout=0.05)

    await orchestrator.resolve(PAGE_A)
    orchestrator.handle_frame_load(PAGE_A)
    await asyncio.sleep(0.1)

    assert orchestrator.state.phase is Phase.READY


@pytest.mark.anyio
async def test_frame_error_and_blank_content_fail(make_orchestrator, opener) -> None:
    """Given an iframe error or a blank same-origin document When reported Then the viewer fails over."""

    orchestrator = make_orchestrator(GatedChecker({}))

    await orchestrator.resolve(PAGE_A)
    orchestrator.handle_frame_error(PAGE_A)
    assert orchestrator.state.phase is Phase.FAILED
    assert orchestrator.state.failure_reason == "error"

    await orchestrator.resolve(PAGE_B)
    orchestrator.handle_frame_load(PAGE_B, content_visible=False)
    assert orchestrator.state.phase is Phase.FAILED
    assert orchestrator.state.failure_reason == "blank"
    orchestrator.close()


@pytest.mark.anyio
async def test_stale_frame_events_are_ignored(make_orchestrator) -> None:
    """Given a load event for a different source When reported Then the current phase is untouched."""

    orchestrator = make_orchestrator(GatedChecker({}))

    await orchestrator.resolve(PAGE_B)
    orchestrator.handle_frame_load(PAGE_A)
    orchestrator.handle_frame_error(PAGE_A)

    assert orchestrator.state.phase is Phase.LOADING


@pytest.mark.anyio
async def test_last_click_wins(make_orchestrator, frames) -> None:
    """Given a slow probe for A When B is clicked before A settles Then only B is ever framed."""

    checker = GatedChecker({})
    gate_a = checker.gate(PAGE_A)
    orchestrator = make_orchestrator(checker)

    task_a = asyncio.create_task(orchestrator.resolve(PAGE_A))
    await asyncio.sleep(0)
    assert orchestrator.state.phase is Phase.CHECKING

    await orchestrator.resolve(PAGE_B)
    gate_a.set()
    await task_a

    state = orchestrator.state
    assert state.resource.original_url == PAGE_B
    assert state.phase is Phase.LOADING
    assert frames.mounted == [PAGE_B]


@pytest.mark.anyio
async def test_new_click_cancels_previous_timeout(make_orchestrator) -> None:
    """Given a loading PDF When a blocked page is clicked Then the PDF's timeout no longer fires."""

    orchestrator = make_orchestrator(GatedChecker({BLOCKED_A: True}), load_timeout=0.05)

    await orchestrator.resolve(PDF_URL)
    await orchestrator.resolve(BLOCKED_A)
    await asyncio.sleep(0.1)

    assert orchestrator.state.phase is Phase.BLOCKED
    assert orchestrator.state.resource.original_url == BLOCKED_A
    orchestrator.close()


@pytest.mark.anyio
async def test_sequential_blocked_resources_reuse_one_window(make_orchestrator, opener) -> None:
    """Given two blocked resources in a row When resolved Then a single popup window shows both."""

    orchestrator = make_orchestrator(GatedChecker({BLOCKED_A: True, BLOCKED_B: True}))

    await orchestrator.resolve(BLOCKED_A)
    await orchestrator.resolve(BLOCKED_B)

    assert len(opener.windows) == 1
    assert len(opener.open_windows) == 1
    assert opener.windows[0].history == [BLOCKED_A, BLOCKED_B]
    orchestrator.close()


@pytest.mark.anyio
async def test_framed_resource_closes_stale_popup(make_orchestrator, opener, frames) -> None:
    """Given a popup left by a blocked resource When an embeddable one is clicked Then the popup closes."""

    orchestrator = make_orchestrator(GatedChecker({BLOCKED_A: True}))

    await orchestrator.resolve(BLOCKED_A)
    await orchestrator.resolve(PAGE_A)

    assert opener.open_windows == []
    assert orchestrator.popup_handle is None
    assert frames.src == PAGE_A


@pytest.mark.anyio
async def test_close_resets_everything(make_orchestrator, frames, opener) -> None:
    """Given a loading resource When the viewer closes Then the iframe unmounts and the state is idle."""

    orchestrator = make_orchestrator(GatedChecker({}), load_timeout=0.05)

    await orchestrator.resolve(PAGE_A)
    orchestrator.close()
    await asyncio.sleep(0.1)

    assert orchestrator.state == ViewerState()
    assert frames.src is None
    assert frames.unmount_count == 1


@pytest.mark.anyio
async def test_unsafe_links_are_never_framed_or_opened(make_orchestrator, frames, opener) -> None:
    """Given a flagged link When resolved Then it is blocked without probing, framing or opening it."""

    checker = GatedChecker({})
    orchestrator = make_orchestrator(checker)

    state = await orchestrator.resolve("https://example.com/unsafe.pdf")

    assert state.phase is Phase.BLOCKED
    assert state.failure_reason == "unsafe"
    assert checker.calls == []
    assert frames.mounted == []
    assert opener.calls == []
    assert orchestrator.open_externally() is None


@pytest.mark.anyio
async def test_manual_actions_use_original_url(make_orchestrator, opener) -> None:
    """Given a blocked resource When the manual actions run Then they target the original URL."""

    opener.blocked = True
    orchestrator = make_orchestrator(GatedChecker({BLOCKED_A: True}))
    await orchestrator.resolve(BLOCKED_A)

    opener.blocked = False
    handle = orchestrator.reopen_popup()
    orchestrator.open_externally()

    assert handle is not None
    assert orchestrator.state.popup_opened is True
    assert orchestrator.state.popup_blocked is False
    assert opener.calls[-1] == (BLOCKED_A, "_blank", "noopener,noreferrer")
    orchestrator.close()


@pytest.mark.anyio
async def test_empty_url_is_ignored(make_orchestrator, changes) -> None:
    """Given an empty URL When resolved Then nothing changes."""

    orchestrator = make_orchestrator(GatedChecker({}))

    state = await orchestrator.resolve("  ")

    assert state.phase is Phase.IDLE
    assert changes == []


@pytest.mark.anyio
async def test_schemeless_url_is_checked_and_framed(make_orchestrator, frames) -> None:
    """Given a link without a scheme When resolved Then it is checked and framed like any web page."""

    checker = GatedChecker({})
    orchestrator = make_orchestrator(checker)

    state = await orchestrator.resolve("example.com/doc")

    assert checker.calls == ["example.com/doc"]
    assert state.resource.kind is ResourceKind.WEB
    assert state.phase is Phase.LOADING
    assert frames.mounted == ["example.com/doc"]
    orchestrator.close()


@pytest.mark.anyio
async def test_blocked_schemeless_url_still_gets_popup(make_orchestrator, opener) -> None:
    """Given a schemeless link reported blocked When resolved Then the side panel is attempted."""

    orchestrator = make_orchestrator(GatedChecker({"example.com/doc": True}))

    state = await orchestrator.resolve("example.com/doc")

    assert state.phase is Phase.BLOCKED
    assert state.popup_opened is True
    assert [call[0] for call in opener.calls] == ["example.com/doc"]
    orchestrator.close()


@pytest.mark.anyio
async def test_unparsable_url_still_reaches_checker(make_orchestrator) -> None:
    """Given a URL urllib cannot split When resolved Then it is classified as web and checked."""

    checker = GatedChecker({})
    orchestrator = make_orchestrator(checker)

    state = await orchestrator.resolve("http://[::1")

    assert checker.calls == ["http://[::1"]
    assert state.phase is Phase.LOADING
    orchestrator.close()
