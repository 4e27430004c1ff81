from .cancellation import CancellationController, CancellationToken
from .chat_session import ChatSession
from .orchestrator import GenerateFn, GenerationOrchestrator

__all__ = [
    "CancellationController",
    "CancellationToken",
    "ChatSession",
    "GenerateFn",
    "GenerationOrchestrator",
]
