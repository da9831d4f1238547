"""Timing constants for the receiver.

All timing values are in milliseconds unless otherwise noted.
"""

# =============================================================================
# Update Cycle
# =============================================================================

REFRESH_INTERVAL_DEFAULT_MS = 3000
"""Default period of the default-source poll."""

REVEAL_DURATION_DEFAULT_MS = 1500
"""Default length of the radar reveal; the swap commits when it elapses."""

REFRESH_INTERVAL_MIN_MS = 100
"""Shortest accepted poll period. Faster polling only feeds the mailbox."""

# =============================================================================
# Preload
# =============================================================================

PRELOAD_TIMEOUT_DEFAULT_S = 10.0
"""Network connect/read timeout for a single preload, in seconds."""

PRELOAD_MAX_BYTES_DEFAULT = 32 * 1024 * 1024
"""Largest image body accepted by the preloader."""

PRELOAD_CHUNK_BYTES = 64 * 1024
"""Streaming chunk size; cancellation is checked between chunks."""

# =============================================================================
# Push Transport
# =============================================================================

PUSH_PORT_DEFAULT = 8765
"""Default TCP port of the push listener."""

PUSH_MAX_LINE_BYTES = 64 * 1024
"""Longest accepted JSON line from a push client."""
