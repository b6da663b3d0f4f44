"""对外 API 服务模块。

提供简化的函数接口供上层应用（UI / HTTP 层）调用。
"""

from typing import Optional, Dict, Any, List

from assist_core.config.settings import settings
from assist_core.domain.conversation import CallerIdentity, ConversationSession, Message
from assist_core.domain.exceptions import Unauthenticated
from assist_core.domain.models import Attachment
from assist_core.agents.chat_agent import NotesChatAgent
from assist_core.infrastructure.storage.json_store import JsonConversationStore
from assist_core.infrastructure.storage.note_store import JsonNoteStore
from assist_core.infrastructure.storage.blob_store import LocalBlobStore
from assist_core.infrastructure.logging.logger import logger
from assist_core.providers.gemini_client import GeminiClient
from assist_core.scraping.scraper import ContentScraper


_agent: Optional[NotesChatAgent] = None
_gemini: Optional[GeminiClient] = None


def get_default_agent() -> NotesChatAgent:
    """获取默认的笔记助手 Agent 实例（单例）。"""
    global _agent
    if _agent is None:
        _agent = NotesChatAgent(
            store=JsonConversationStore(root=settings.storage_root),
            scraper=ContentScraper(settings),
            note_store=JsonNoteStore(root=settings.storage_root),
            blob_store=LocalBlobStore(root=settings.storage_root),
        )
    return _agent


def get_gemini_client() -> GeminiClient:
    global _gemini
    if _gemini is None:
        _gemini = GeminiClient(settings)
    return _gemini


def _identity(user_id: Optional[str]) -> Optional[CallerIdentity]:
    return CallerIdentity(subject=user_id) if user_id else None


def _attachments(raw: Optional[List[Dict[str, Any]]]) -> List[Attachment]:
    return [Attachment.from_dict(a) for a in raw or []]


def _message_dict(m: Message) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "role": m.role,
        "content": m.content,
        "timestamp": m.timestamp.isoformat(),
    }
    if m.attachments:
        data["attachments"] = [a.to_dict() for a in m.attachments]
    return data


def _session_dict(s: ConversationSession) -> Dict[str, Any]:
    return {
        "id": s.id,
        "date": s.date_key,
        "last_message_at": s.last_message_at.isoformat(),
        "messages": [_message_dict(m) for m in s.messages],
    }


def generate_response(
    user_id: Optional[str],
    chat_id: str,
    user_message: Optional[str] = None,
    model: Optional[str] = None,
    note_ids: Optional[List[str]] = None,
    attachments: Optional[List[Dict[str, Any]]] = None,
) -> str:
    """为会话生成一条助手回复。

    Args:
        user_id: 调用方身份（由认证服务提供）
        chat_id: 会话ID
        user_message: 用户消息（可选，不提供则使用会话最后一条消息）
        model: "grok" 或 "claude"
        note_ids: 引用的笔记ID
        attachments: 附件字典列表，字段同 Attachment

    Returns:
        助手回复文本

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    try:
        return get_default_agent().generate_response(
            _identity(user_id),
            chat_id,
            user_message=user_message,
            model=model,
            note_ids=note_ids,
            attachments=_attachments(attachments),
        )
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "conversation_id": chat_id,
            "error": str(e),
        }})
        raise


def send_message(
    user_id: Optional[str],
    chat_id: str,
    content: str,
    attachments: Optional[List[Dict[str, Any]]] = None,
) -> None:
    get_default_agent().send_message(_identity(user_id), chat_id, content, _attachments(attachments))


def get_or_create_chat(user_id: Optional[str], date_key: Optional[str] = None) -> str:
    return get_default_agent().get_or_create_chat(_identity(user_id), date_key).id


def get_chat_by_date(user_id: Optional[str], date_key: str) -> Optional[Dict[str, Any]]:
    session = get_default_agent().get_chat_by_date(_identity(user_id), date_key)
    return _session_dict(session) if session else None


def list_chats(user_id: Optional[str]) -> List[Dict[str, Any]]:
    return [_session_dict(s) for s in get_default_agent().list_chats(_identity(user_id))]


def get_chat_counts(user_id: Optional[str]) -> Dict[str, int]:
    return get_default_agent().get_chat_counts(_identity(user_id))


def get_messages(user_id: Optional[str], chat_id: str) -> List[Dict[str, Any]]:
    return [_message_dict(m) for m in get_default_agent().get_messages(_identity(user_id), chat_id)]


def scrape_link(url: str) -> Dict[str, Any]:
    """抓取单个链接，供前端预填链接附件的标题与内容。"""
    return ContentScraper(settings).scrape(url).to_dict()


def transcribe_audio(audio_data: str, mime_type: str = "audio/webm", api_key: Optional[str] = None) -> Dict[str, str]:
    try:
        return {"transcript": get_gemini_client().transcribe(audio_data, mime_type=mime_type, api_key=api_key)}
    except Exception as e:
        logger.error(f"Transcription failed: {e}", extra={"extra": {"error": str(e)}})
        raise


def breakdown_todo(todo_content: str) -> Dict[str, List[str]]:
    return {"subtasks": get_gemini_client().breakdown_todo(todo_content)}


def upload_image(user_id: Optional[str], data: bytes, content_type: str) -> str:
    """保存图片并返回存储引用，用于 image 附件。"""
    if not user_id:
        raise Unauthenticated()
    return LocalBlobStore(root=settings.storage_root).upload(data, content_type)


def get_storage_url(user_id: Optional[str], storage_id: str) -> Optional[str]:
    if not user_id:
        raise Unauthenticated()
    return LocalBlobStore(root=settings.storage_root).get_url(storage_id)
