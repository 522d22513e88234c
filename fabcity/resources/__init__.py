"""Resource embeddability resolution and fallback viewing.

Leaf-first: :mod:`.kinds` classifies a URL, :mod:`.rewrite` turns it into an
iframe target, :mod:`.prober` judges framing headers on the server, and
:mod:`.orchestrator` drives the viewer state machine with :mod:`.popup` as the
fallback and :mod:`.viewer` as the presentation shell.
"""

from .kinds import ResourceKind, classify
from .orchestrator import (
    HttpEmbedChecker,
    Phase,
    ResourceDescriptor,
    ResourceOrchestrator,
    ViewerState,
)
from .popup import CrossOriginNavigationError, PopupManager, ScreenGeometry
from .prefetch import DomainPrefetcher, extract_urls
from .prober import EmbedCheckResult, EmbedProber, evaluate_headers
from .rewrite import MAX_EMBED_BYTES, rewrite, truncate_url
from .viewer import ViewerShell, ViewMode

__all__ = [
    "CrossOriginNavigationError",
    "DomainPrefetcher",
    "EmbedCheckResult",
    "EmbedProber",
    "HttpEmbedChecker",
    "MAX_EMBED_BYTES",
    "Phase",
    "PopupManager",
    "ResourceDescriptor",
    "ResourceKind",
    "ResourceOrchestrator",
    "ScreenGeometry",
    "ViewMode",
    "ViewerShell",
    "ViewerState",
    "classify",
    "evaluate_headers",
    "extract_urls",
    "rewrite",
    "truncate_url",
]
