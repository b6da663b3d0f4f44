"""State definition for the chat-turn graph."""

from __future__ import annotations

from typing import List, Optional, TypedDict

from assist_core.domain.conversation import CallerIdentity, ConversationSession, Message
from assist_core.domain.models import Attachment, ContextBundle, ModelChoice, ModelInvocationOutcome


class TurnState(TypedDict, total=False):
    """State shared across the assemble / generate / persist nodes."""

    trace_id: str
    identity: CallerIdentity
    session: ConversationSession
    model: ModelChoice
    user_message: Optional[str]
    note_ids: List[str]
    attachments: List[Attachment]
    context: ContextBundle
    outcome: ModelInvocationOutcome
    assistant_text: str
    assistant_message: Message
