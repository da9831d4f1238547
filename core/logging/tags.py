"""Standard logging tags for consistent log filtering.

These tags are used throughout the codebase to enable log filtering
and grepping of the receiver log.

Usage:
    from core.logging.tags import TAG_PRELOAD, TAG_INGEST
    logger.info(f"{TAG_PRELOAD} Verified %s in %.1fms", ref, elapsed)
"""

# =============================================================================
# Performance and Metrics
# =============================================================================

TAG_PERF = "[PERF]"
"""Performance metrics (preload timing, reveal drift)."""

# =============================================================================
# Pipeline Tags
# =============================================================================

TAG_INGEST = "[INGEST]"
"""Candidate submission, de-duplication and latest-wins collapsing."""

TAG_PRELOAD = "[PRELOAD]"
"""Fetch/decode verification of candidate images."""

TAG_TRANSITION = "[TRANSITION]"
"""Reveal effect and controller state changes."""

TAG_BUFFER = "[BUFFER]"
"""Double buffer writes and role swaps."""

TAG_RENDER = "[RENDER]"
"""Rendering surface operations."""

# =============================================================================
# Source Tags
# =============================================================================

TAG_POLL = "[POLL]"
"""Periodic default-source polling."""

TAG_PUSH = "[PUSH]"
"""Push channel and its TCP transport."""

# =============================================================================
# Status Tags
# =============================================================================

TAG_FALLBACK = "[FALLBACK]"
"""Fallback operations when primary path fails."""

TAG_LIFECYCLE = "[LIFECYCLE]"
"""Component start/stop."""

__all__ = [
    "TAG_PERF",
    "TAG_INGEST",
    "TAG_PRELOAD",
    "TAG_TRANSITION",
    "TAG_BUFFER",
    "TAG_RENDER",
    "TAG_POLL",
    "TAG_PUSH",
    "TAG_FALLBACK",
    "TAG_LIFECYCLE",
]
