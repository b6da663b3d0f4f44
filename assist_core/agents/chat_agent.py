"""笔记助手对话编排。

NotesChatAgent 把一轮对话串起来：
身份校验 -> 模型选择与密钥检查 -> 读取会话 -> LangGraph 流程
（组装上下文 -> 调用后端 -> 写入助手消息）-> 返回回复文本。

任何一步失败都直接抛出，不会留下半条助手消息。
"""

import time
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Union
from uuid import uuid4

from assist_core.config.settings import settings
from assist_core.context.assembler import AssemblerConfig, ContextAssembler, Scraper, require_identity
from assist_core.domain.conversation import (
    BlobStore,
    CallerIdentity,
    ConversationSession,
    ConversationStore,
    Message,
    NoteStore,
)
from assist_core.domain.exceptions import ConversationNotFound
from assist_core.domain.models import Attachment, ModelChoice
from assist_core.flows.graph import build_graph
from assist_core.flows.state import TurnState
from assist_core.infrastructure.logging.logger import logger
from assist_core.prompts import load_system_prompt
from assist_core.providers import create_adapter, resolve_model_choice
from assist_core.providers.fallback import TieredFallbackInvoker


class NotesChatAgent:
    def __init__(
        self,
        store: ConversationStore,
        scraper: Scraper,
        note_store: Optional[NoteStore] = None,
        blob_store: Optional[BlobStore] = None,
        invoker: Optional[TieredFallbackInvoker] = None,
        assembler_config: Optional[AssemblerConfig] = None,
        cfg=settings,
    ):
        self._store = store
        self._settings = cfg
        if assembler_config is None:
            system_prompt = load_system_prompt(fallback=getattr(cfg, "system_prompt", None))
            assembler_config = AssemblerConfig.from_settings(cfg, system_prompt=system_prompt)
        self._assembler = ContextAssembler(
            store=store,
            scraper=scraper,
            note_store=note_store,
            blob_store=blob_store,
            config=assembler_config,
        )
        self._invoker = invoker or TieredFallbackInvoker(cfg)
        self._graph = build_graph(self._assembler, self._invoker, store, cfg)

    @property
    def store(self) -> ConversationStore:
        return self._store

    def generate_response(
        self,
        identity: Optional[CallerIdentity],
        conversation_id: str,
        user_message: Optional[str] = None,
        model: Union[str, ModelChoice, None] = None,
        note_ids: Optional[List[str]] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> str:
        """生成一轮助手回复并写入会话。

        Args:
            identity: 调用方身份，缺失时抛 Unauthenticated
            conversation_id: 会话ID
            user_message: 用户消息（可选，不提供则使用会话最后一条消息）
            model: "grok" 或 "claude"，默认取配置
            note_ids: 作为上下文引用的笔记ID
            attachments: 本轮显式附件

        Returns:
            助手回复文本
        """
        start_time = time.time()
        trace_id = f"tr-{uuid4().hex}"
        identity = require_identity(identity)

        choice = resolve_model_choice(model, self._settings)
        # 密钥缺失时在任何网络调用之前失败
        create_adapter(choice, self._settings).ensure_configured()

        session = self._assembler.load_session(identity, conversation_id)
        self._assembler.resolve_user_message(session, user_message)
        log_ctx = {"trace_id": trace_id, "conversation_id": session.id, "model": choice.value}
        logger.info("Generating response", extra={"extra": log_ctx})

        state: TurnState = {
            "trace_id": trace_id,
            "identity": identity,
            "session": session,
            "model": choice,
            "user_message": user_message,
            "note_ids": list(note_ids or []),
            "attachments": list(attachments or []),
        }
        result = self._graph.invoke(state)

        logger.info(
            "Completed chat turn",
            extra={"extra": {**log_ctx, "elapsed_seconds": round(time.time() - start_time, 2)}},
        )
        return result["assistant_text"]

    # ---- 会话读写 ----

    def get_or_create_chat(self, identity: Optional[CallerIdentity], date_key: Optional[str] = None) -> ConversationSession:
        identity = require_identity(identity)
        key = date_key or date.today().isoformat()
        return self._store.get_or_create_session(identity.subject, key)

    def get_chat_by_date(self, identity: Optional[CallerIdentity], date_key: str) -> Optional[ConversationSession]:
        if identity is None:
            return None
        return self._store.find_session(identity.subject, date_key)

    def list_chats(self, identity: Optional[CallerIdentity]) -> List[ConversationSession]:
        if identity is None:
            return []
        return self._store.list_sessions(identity.subject)

    def get_chat_counts(self, identity: Optional[CallerIdentity]) -> Dict[str, int]:
        return {s.date_key: 1 for s in self.list_chats(identity)}

    def get_messages(self, identity: Optional[CallerIdentity], conversation_id: str) -> List[Message]:
        if identity is None:
            return []
        try:
            return self._assembler.load_session(identity, conversation_id).messages
        except ConversationNotFound:
            return []

    def send_message(
        self,
        identity: Optional[CallerIdentity],
        conversation_id: str,
        content: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> ConversationSession:
        """追加一条用户消息（附件原样保存，仅用于展示）。"""
        session = self._assembler.load_session(identity, conversation_id)
        message = Message(
            role="user",
            content=content,
            timestamp=datetime.now(timezone.utc),
            attachments=list(attachments) if attachments else None,
        )
        return self._store.append_message(session.id, message, expected_count=len(session.messages))
