from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Protocol, Iterable
from .models import Attachment, Role


@dataclass
class CallerIdentity:
    subject: str


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    timestamp: datetime
    attachments: Optional[List[Attachment]] = None


@dataclass
class ConversationSession:
    id: str
    owner: str
    date_key: str
    messages: List[Message]
    last_message_at: datetime
    search_text: str = ""

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None


@dataclass
class Note:
    id: str
    owner: str
    title: str
    content: str
    tags: List[str] = field(default_factory=list)


def search_text_for(messages: Iterable[Message]) -> str:
    """按追加顺序重新计算会话的搜索文本。"""
    return " ".join(m.content for m in messages)


class ConversationStore(Protocol):
    def get_session(self, session_id: str) -> ConversationSession:
        ...

    def find_session(self, owner: str, date_key: str) -> Optional[ConversationSession]:
        ...

    def get_or_create_session(self, owner: str, date_key: str) -> ConversationSession:
        ...

    def list_sessions(self, owner: str) -> List[ConversationSession]:
        ...

    def most_recent_session(self, owner: str) -> Optional[ConversationSession]:
        ...

    def append_message(self, session_id: str, message: Message, expected_count: int) -> ConversationSession:
        ...


class NoteStore(Protocol):
    def get_notes_by_ids(self, note_ids: List[str], owner: str) -> List[Note]:
        ...


class BlobStore(Protocol):
    def get_url(self, storage_id: str) -> Optional[str]:
        ...

    def upload(self, data: bytes, content_type: str) -> str:
        ...
