from .memory import ConversationRecord, ConversationStore, Turn  # noqa: F401
from .rate_limiter import RateDecision, RateLimiter  # noqa: F401
from .summarizer import Summarizer  # noqa: F401
from .sweeper import LifecycleSweeper  # noqa: F401

__all__ = [
    "ConversationRecord",
    "ConversationStore",
    "Turn",
    "RateDecision",
    "RateLimiter",
    "Summarizer",
    "LifecycleSweeper",
]
