"""State shared between the session facade and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from chat_core.domain.message_log import MessageLog
from chat_core.session.cancellation import CancellationController, CancellationToken


@dataclass
class SessionState:
    """Aggregate owned by one ChatSession; only the orchestrator writes it while generating."""

    messages: MessageLog
    draft_input: str = ""
    is_generating: bool = False
    last_error: Optional[Exception] = None
    cancellation: CancellationController = field(default_factory=CancellationController)

    @property
    def active_token(self) -> Optional[CancellationToken]:
        return self.cancellation.active_token
