# ---------------------------------------------------------------------------
# Public library API – import-light facade
# ---------------------------------------------------------------------------

# Core state (no I/O)
from .core import ConversationStore, LifecycleSweeper, RateLimiter, Summarizer  # noqa: F401

# Per-message composition
from .orchestrator import ChatOrchestrator  # noqa: F401

from .errors import CompletionError, InvariantViolation, PrinceLabError  # noqa: F401

__all__ = [
    "ChatOrchestrator",
    "ConversationStore",
    "LifecycleSweeper",
    "RateLimiter",
    "Summarizer",
    "CompletionError",
    "InvariantViolation",
    "PrinceLabError",
]
