import json
import os
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
from uuid import uuid4

from assist_core.config.settings import settings
from assist_core.domain.conversation import ConversationStore, ConversationSession, Message
from assist_core.domain.exceptions import BusinessError, ConversationNotFound, StoreConflictError
from assist_core.domain.models import Attachment

_SESSION_ID_RE = re.compile(r"^s-[0-9a-f]{32}$")


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(raw: str) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


class JsonConversationStore(ConversationStore):
    """每个会话一个 JSON 文档，消息内嵌，按 owner + date_key 唯一。

    追加消息是“读 -> 校验条数 -> 写”，同一进程内由锁串行化；
    调用方传入的 expected_count 与当前条数不一致时抛 StoreConflictError，不做重试。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._sessions_root = self._root / "sessions"
        self._sessions_root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def get_session(self, session_id: str) -> ConversationSession:
        # 会话 ID 直接作为文件名，格式不符一律视为不存在
        if not _SESSION_ID_RE.match(session_id or ""):
            raise ConversationNotFound(session_id)
        path = self._sessions_root / f"{session_id}.json"
        if not path.exists():
            raise ConversationNotFound(session_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return self._to_session(data)

    def find_session(self, owner: str, date_key: str) -> Optional[ConversationSession]:
        for session in self._iter_sessions():
            if session.owner == owner and session.date_key == date_key:
                return session
        return None

    def get_or_create_session(self, owner: str, date_key: str) -> ConversationSession:
        with self._lock:
            existing = self.find_session(owner, date_key)
            if existing:
                return existing
            session = ConversationSession(
                id=f"s-{uuid4().hex}",
                owner=owner,
                date_key=date_key,
                messages=[],
                last_message_at=datetime.now(timezone.utc),
                search_text="",
            )
            self._write_session(session)
            return session

    def list_sessions(self, owner: str) -> List[ConversationSession]:
        items = [s for s in self._iter_sessions() if s.owner == owner]
        items.sort(key=lambda s: s.date_key, reverse=True)
        return items

    def most_recent_session(self, owner: str) -> Optional[ConversationSession]:
        items = self.list_sessions(owner)
        if not items:
            return None
        return max(items, key=lambda s: s.last_message_at)

    def append_message(self, session_id: str, message: Message, expected_count: int) -> ConversationSession:
        with self._lock:
            session = self.get_session(session_id)
            if len(session.messages) != expected_count:
                raise StoreConflictError(
                    code="STORE_CONFLICT",
                    message=f"Chat {session_id} changed while the reply was generated",
                    http_status=409,
                    expected=expected_count,
                    actual=len(session.messages),
                )
            if session.messages:
                session.search_text = f"{session.search_text} {message.content}"
            else:
                session.search_text = message.content
            session.messages.append(message)
            now = datetime.now(timezone.utc)
            session.last_message_at = max(now, message.timestamp)
            self._write_session(session)
            return session

    def _iter_sessions(self) -> List[ConversationSession]:
        items: List[ConversationSession] = []
        for path in sorted(self._sessions_root.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                items.append(self._to_session(data))
            except (OSError, json.JSONDecodeError, KeyError):
                continue
        return items

    def _write_session(self, session: ConversationSession) -> None:
        path = self._sessions_root / f"{session.id}.json"
        tmp_path = self._sessions_root / f"{session.id}.{uuid4().hex}.json.tmp"
        obj = {
            "id": session.id,
            "owner": session.owner,
            "date_key": session.date_key,
            "last_message_at": _iso(session.last_message_at),
            "search_text": session.search_text,
            "messages": [self._message_to_dict(m) for m in session.messages],
        }
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _message_to_dict(message: Message) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "role": message.role,
            "content": message.content,
            "timestamp": _iso(message.timestamp),
        }
        if message.attachments:
            payload["attachments"] = [a.to_dict() for a in message.attachments]
        return payload

    def _to_session(self, data: Dict[str, Any]) -> ConversationSession:
        messages = [
            Message(
                role=m["role"],
                content=m.get("content") or "",
                timestamp=_parse_dt(m["timestamp"]),
                attachments=[Attachment.from_dict(a) for a in m["attachments"]] if m.get("attachments") else None,
            )
            for m in data.get("messages") or []
        ]
        return ConversationSession(
            id=data["id"],
            owner=data["owner"],
            date_key=data["date_key"],
            messages=messages,
            last_message_at=_parse_dt(data["last_message_at"]),
            search_text=data.get("search_text") or "",
        )
