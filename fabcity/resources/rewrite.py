"""Rewriting of citation URLs into iframe friendly targets.

Every function in this module degrades to returning its input: a URL that
cannot be rewritten is still worth trying in the viewer, and the load
watchdog in :mod:`fabcity.resources.orchestrator` catches anything that then
fails to render.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional
from urllib.parse import parse_qs, parse_qsl, quote, urlencode, urlsplit, urlunsplit

from .kinds import ResourceKind, hostname

_LOGGER = logging.getLogger(__name__)

MAX_EMBED_BYTES = 25 * 1024 * 1024

YOUTUBE_EMBED_TEMPLATE = "https://www.youtube.com/embed/{video_id}?autoplay=0&rel=0"
VIMEO_EMBED_TEMPLATE = "https://player.vimeo.com/video/{video_id}"
DRIVE_PREVIEW_TEMPLATE = "https://drive.google.com/file/d/{file_id}/preview"
DOCUMENT_VIEWER_TEMPLATE = "https://docs.google.com/viewer?url={url}&embedded=true"
OFFICE_VIEWER_TEMPLATE = "https://view.officeapps.live.com/op/embed.aspx?src={url}"
DROPBOX_CONTENT_HOST = "dl.dropboxusercontent.com"

# Characters encodeURIComponent leaves alone.
_URI_COMPONENT_SAFE = "-_.!~*'()"

_YOUTUBE_ID_RE = re.compile(r"[A-Za-z0-9_-]{11}")
_YOUTUBE_PATH_RE = re.compile(r"/(?:embed|v|shorts)/([A-Za-z0-9_-]{11})(?=[/?#]|$)")
_YOUTUBE_LOOSE_RES = (
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})(?=[/?#&]|$)"),
    re.compile(r"[?&]v=([A-Za-z0-9_-]{11})(?=[&#]|$)"),
)
_VIMEO_RE = re.compile(r"vimeo\.com/(\d+)", re.IGNORECASE)

_DRIVE_ID = r"([A-Za-z0-9_-]{19,50})"
_GOOGLE_DOC_RE = re.compile(r"/(?:document|spreadsheets|presentation)/d/([A-Za-z0-9_-]+)")
_DRIVE_ID_RES = (
    re.compile(r"/file/d/" + _DRIVE_ID + r"(?=[/?#]|$)"),
    re.compile(r"[?&]id=" + _DRIVE_ID + r"(?=[&#]|$)"),
    re.compile(r"/d/" + _DRIVE_ID + r"(?=[/?#]|$)"),
    re.compile(r"/uc\?(?:[^#]*&)?id=" + _DRIVE_ID + r"(?=[&#]|$)"),
)
_DRIVE_ACTION_RE = re.compile(r"/(?:view|edit|share)(?=/|$)")
_SHARING_PARAMS = frozenset({"usp"})


def within_embed_limit(file_size: Optional[int]) -> bool:
    """Unknown sizes are never held against a resource."""

    return file_size is None or file_size <= MAX_EMBED_BYTES


def encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def _drop_query_params(query: str, names: Iterable[str]) -> str:
    names = set(names)
    pairs = parse_qsl(query, keep_blank_values=True)
    kept = [(key, value) for key, value in pairs if key not in names]
    if len(kept) == len(pairs):
        return query
    return urlencode(kept)


def extract_youtube_id(url: str) -> Optional[str]:
    """Return the 11 character video id of a YouTube link, if any."""

    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        parts = None

    if parts is not None:
        host = (parts.hostname or "").lower()
        if "youtu.be" in host:
            candidate = parts.path.lstrip("/").split("/")[0]
            if _YOUTUBE_ID_RE.fullmatch(candidate):
                return candidate
        values = parse_qs(parts.query).get("v")
        if values and _YOUTUBE_ID_RE.fullmatch(values[0]):
            return values[0]
        match = _YOUTUBE_PATH_RE.search(parts.path)
        if match:
            return match.group(1)

    for pattern in _YOUTUBE_LOOSE_RES:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def extract_drive_file_id(url: str) -> Optional[str]:
    """Return the Google Drive/Docs file id embedded in ``url``, if any."""

    if not url:
        return None
    match = _GOOGLE_DOC_RE.search(url)
    if match and "docs.google.com" in hostname(url):
        return match.group(1)
    for pattern in _DRIVE_ID_RES:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def rewrite_youtube(url: str) -> str:
    video_id = extract_youtube_id(url)
    if video_id is None:
        return url
    return YOUTUBE_EMBED_TEMPLATE.format(video_id=video_id)


def rewrite_vimeo(url: str) -> str:
    match = _VIMEO_RE.search(url)
    if match is None:
        return url
    return VIMEO_EMBED_TEMPLATE.format(video_id=match.group(1))


def rewrite_google_drive(url: str) -> str:
    """Normalise Drive, Docs, Sheets and Slides links to the Drive preview page.

    Docs editors are deliberately not used: the Drive ``/preview`` endpoint is
    the one Google allows inside third-party frames.
    """

    file_id = extract_drive_file_id(url)
    if file_id:
        return DRIVE_PREVIEW_TEMPLATE.format(file_id=file_id)

    parts = urlsplit(url)
    path = _DRIVE_ACTION_RE.sub("/preview", parts.path, count=1)
    if path == parts.path and "/preview" not in path:
        return url
    query = _drop_query_params(parts.query, _SHARING_PARAMS)
    return urlunsplit(parts._replace(path=path, query=query))


def rewrite_pdf(url: str, file_size: Optional[int] = None) -> str:
    host = hostname(url)
    already_viewable = host == "drive.google.com" or "docs.google.com/viewer" in url
    if already_viewable or not within_embed_limit(file_size):
        return url
    return DOCUMENT_VIEWER_TEMPLATE.format(url=encode_component(url))


def rewrite_office(url: str, file_size: Optional[int] = None) -> str:
    if not within_embed_limit(file_size):
        return url
    return OFFICE_VIEWER_TEMPLATE.format(url=encode_component(url))


def rewrite_dropbox(url: str) -> str:
    parts = urlsplit(url)
    netloc = parts.netloc
    if (parts.hostname or "").lower() in {"dropbox.com", "www.dropbox.com"}:
        netloc = DROPBOX_CONTENT_HOST
    pairs = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != "dl"]
    if ("raw", "1") not in pairs:
        pairs.append(("raw", "1"))
    return urlunsplit(parts._replace(netloc=netloc, query=urlencode(pairs)))


def rewrite(
    url: str,
    kind: ResourceKind | str,
    *,
    file_size: Optional[int] = None,
    wrap_pdf: bool = True,
) -> str:
    """Return the URL to load in the viewer iframe for ``url`` of ``kind``.

    ``file_size`` gates the document viewer wrappers for PDFs and Office files;
    ``wrap_pdf=False`` keeps PDFs on their origin for the browser's own viewer.
    """

    if not url:
        return url
    kind = ResourceKind.parse(kind)
    try:
        if kind is ResourceKind.YOUTUBE:
            return rewrite_youtube(url)
        if kind is ResourceKind.VIMEO:
            return rewrite_vimeo(url)
        if kind is ResourceKind.GOOGLEDRIVE:
            return rewrite_google_drive(url)
        if kind is ResourceKind.PDF:
            return rewrite_pdf(url, file_size) if wrap_pdf else url
        if kind is ResourceKind.OFFICE:
            return rewrite_office(url, file_size)
        if kind is ResourceKind.DROPBOX:
            return rewrite_dropbox(url)
    except ValueError as exc:
        _LOGGER.warning("Could not rewrite %s URL %s: %s", kind.value, url, exc)
    return url


def with_text_fragment(url: str, text: str) -> str:
    """Append a scroll-to-text fragment for ``text`` to ``url``."""

    text = (text or "").strip()
    if not url or not text or ":~:" in url:
        return url
    directive = f":~:text={encode_component(text)}"
    if "#" in url:
        return f"{url}{directive}"
    return f"{url}#{directive}"


def truncate_url(url: str, max_length: int = 60) -> str:
    """Shorten ``url`` for display, preferring ``host/path`` when it fits."""

    if not url:
        return ""
    if len(url) <= max_length:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        parts = None
    if parts is not None and parts.hostname:
        compact = f"{parts.hostname}{parts.path}"
        if len(compact) <= max_length:
            return compact
    return url[: max_length - 3] + "..."


__all__ = [
    "DOCUMENT_VIEWER_TEMPLATE",
    "DRIVE_PREVIEW_TEMPLATE",
    "MAX_EMBED_BYTES",
    "OFFICE_VIEWER_TEMPLATE",
    "encode_component",
    "extract_drive_file_id",
    "extract_youtube_id",
    "rewrite",
    "truncate_url",
    "with_text_fragment",
    "within_embed_limit",
]
