"""Classification of citation URLs into resource kinds."""

from __future__ import annotations

import enum
import re
from typing import Optional
from urllib.parse import urlsplit


class ResourceKind(str, enum.Enum):
    """Kinds of resource the viewer knows how to present."""

    PDF = "pdf"
    IMAGE = "image"
    VIDEO = "video"
    OFFICE = "office"
    YOUTUBE = "youtube"
    VIMEO = "vimeo"
    GOOGLEDRIVE = "googledrive"
    DROPBOX = "dropbox"
    TEXT = "text"
    WEB = "web"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ResourceKind":
        """Return the kind named by ``value``, falling back to :attr:`WEB`."""

        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.WEB


_EXT_TAIL = r"(?:\?|#|$)"
_PDF_RE = re.compile(r"\.pdf" + _EXT_TAIL, re.IGNORECASE)
_IMAGE_RE = re.compile(r"\.(?:jpg|jpeg|png|gif|webp|svg|bmp|ico)" + _EXT_TAIL, re.IGNORECASE)
_VIDEO_RE = re.compile(r"\.(?:mp4|webm|ogg|mov|avi|mkv)" + _EXT_TAIL, re.IGNORECASE)
_OFFICE_RE = re.compile(r"\.(?:doc|docx|xls|xlsx|ppt|pptx|odt|ods|odp)" + _EXT_TAIL, re.IGNORECASE)
_TEXT_RE = re.compile(r"\.(?:txt|md|rtf)" + _EXT_TAIL, re.IGNORECASE)

_YOUTUBE_MARKERS = ("youtube.com/watch", "youtube.com/embed/", "youtube.com/v/", "youtu.be/")
_VIMEO_RE = re.compile(r"vimeo\.com/\d+", re.IGNORECASE)
_GOOGLE_HOSTS = ("drive.google.com", "docs.google.com", "sheets.google.com", "slides.google.com")

_EXTENSION_RULES = (
    (_PDF_RE, ResourceKind.PDF),
    (_IMAGE_RE, ResourceKind.IMAGE),
    (_VIDEO_RE, ResourceKind.VIDEO),
    (_OFFICE_RE, ResourceKind.OFFICE),
    (_TEXT_RE, ResourceKind.TEXT),
)


def hostname(url: Optional[str]) -> str:
    """Return the lowercase host of ``url`` or an empty string."""

    if not url:
        return ""
    try:
        return (urlsplit(url.strip()).hostname or "").lower()
    except ValueError:
        return ""


def is_google_drive(url: Optional[str]) -> bool:
    host = hostname(url)
    return any(google_host in host for google_host in _GOOGLE_HOSTS)


def is_youtube(url: Optional[str]) -> bool:
    if not url:
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in _YOUTUBE_MARKERS)


def is_vimeo(url: Optional[str]) -> bool:
    return bool(url) and _VIMEO_RE.search(url) is not None


def is_dropbox(url: Optional[str]) -> bool:
    return "dropbox.com" in hostname(url)


def is_pdf(url: Optional[str]) -> bool:
    """Return ``True`` for PDF links that are not hosted on Google Drive."""

    if not url or is_google_drive(url):
        return False
    return _PDF_RE.search(url) is not None


def classify(url: Optional[str]) -> ResourceKind:
    """Map ``url`` to a :class:`ResourceKind`.

    The checks run from the most specific hosts to plain file extensions; the
    first match wins and anything unrecognised is treated as a web page.
    """

    if not isinstance(url, str) or not url.strip():
        return ResourceKind.WEB
    url = url.strip()

    if is_youtube(url):
        return ResourceKind.YOUTUBE
    if is_vimeo(url):
        return ResourceKind.VIMEO
    if is_google_drive(url):
        return ResourceKind.GOOGLEDRIVE
    if is_dropbox(url):
        if _PDF_RE.search(url):
            return ResourceKind.PDF
        if _IMAGE_RE.search(url):
            return ResourceKind.IMAGE
        return ResourceKind.DROPBOX

    for pattern, kind in _EXTENSION_RULES:
        if pattern.search(url):
            return kind
    return ResourceKind.WEB


__all__ = [
    "ResourceKind",
    "classify",
    "hostname",
    "is_dropbox",
    "is_google_drive",
    "is_pdf",
    "is_vimeo",
    "is_youtube",
]
