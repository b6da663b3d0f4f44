"""上下文组装。

把一轮对话需要的所有输入整理成与后端无关的 ContextBundle：
历史窗口、图片地址、链接抓取结果、笔记引用块和用户原始消息。

链接抓取是本轮唯一的并发部分：最多 max_scrape_urls 个链接同时抓取，
每个任务各自持有结果，全部结束后再按提交顺序汇总。
"""

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Pattern, Protocol

from assist_core.config.settings import settings
from assist_core.domain.conversation import (
    BlobStore,
    CallerIdentity,
    ConversationSession,
    ConversationStore,
    NoteStore,
)
from assist_core.domain.exceptions import ConversationNotFound, NoUserMessage, Unauthenticated
from assist_core.domain.models import Attachment, ContextBundle, HistoryMessage, ScrapeResult
from assist_core.infrastructure.logging.logger import logger

URL_PATTERN = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+")
NOTES_HEADER = "\n\n---\n\n**User's Notes for Reference:**\n\n"


class Scraper(Protocol):
    def scrape(self, url: str) -> ScrapeResult:
        ...


@dataclass
class AssemblerConfig:
    """组装过程中用到的常量，构造时注入，测试可以替换。"""

    url_pattern: Pattern[str] = URL_PATTERN
    max_detected_urls: int = 3
    max_scrape_urls: int = 3
    history_window: int = 20
    notes_header: str = NOTES_HEADER
    include_failed_scrapes: bool = True
    system_prompt: str = ""

    @classmethod
    def from_settings(cls, cfg=settings, system_prompt: str = "") -> "AssemblerConfig":
        return cls(
            max_detected_urls=getattr(cfg, "max_detected_urls", 3),
            max_scrape_urls=getattr(cfg, "max_scrape_urls", 3),
            history_window=getattr(cfg, "max_context_messages", 20),
            include_failed_scrapes=getattr(cfg, "include_failed_scrapes", True),
            system_prompt=system_prompt,
        )


def require_identity(identity: Optional[CallerIdentity]) -> CallerIdentity:
    if identity is None or not getattr(identity, "subject", None):
        raise Unauthenticated()
    return identity


class ContextAssembler:
    def __init__(
        self,
        store: ConversationStore,
        scraper: Scraper,
        note_store: Optional[NoteStore] = None,
        blob_store: Optional[BlobStore] = None,
        config: Optional[AssemblerConfig] = None,
    ):
        self._store = store
        self._scraper = scraper
        self._note_store = note_store
        self._blob_store = blob_store
        self._config = config or AssemblerConfig.from_settings()

    @property
    def config(self) -> AssemblerConfig:
        return self._config

    def load_session(self, identity: Optional[CallerIdentity], conversation_id: str) -> ConversationSession:
        """读取会话，只允许访问调用方自己的会话。"""
        identity = require_identity(identity)
        session = self._store.get_session(conversation_id)
        if session.owner != identity.subject:
            raise ConversationNotFound(conversation_id)
        return session

    def resolve_user_message(self, session: ConversationSession, user_message: Optional[str]) -> str:
        if user_message:
            return user_message
        last = session.last_message
        text = last.content if last else ""
        if not text:
            raise NoUserMessage(conversation_id=session.id)
        return text

    def assemble(
        self,
        identity: Optional[CallerIdentity],
        session: ConversationSession,
        user_message: Optional[str] = None,
        note_ids: Optional[List[str]] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> ContextBundle:
        identity = require_identity(identity)
        text = self.resolve_user_message(session, user_message)
        note_context = self.render_notes(identity, note_ids or [])

        image_urls, queue = self._resolve_attachments(attachments or [])
        queue = self.merge_detected_urls(queue, text)
        scrapes = self.scrape_all(queue[: self._config.max_scrape_urls])

        window = session.messages[-self._config.history_window:] if self._config.history_window else []
        history = [HistoryMessage(role=m.role, content=m.content) for m in window]
        logger.info(
            "Assembled context",
            extra={"extra": {
                "conversation_id": session.id,
                "history": len(history),
                "images": len(image_urls),
                "scraped": len(scrapes),
                "notes": bool(note_context),
            }},
        )
        return ContextBundle(
            history=history,
            image_urls=image_urls,
            scrapes=scrapes,
            note_context=note_context,
            user_message=text,
            system_prompt=self._config.system_prompt,
        )

    def render_notes(self, identity: CallerIdentity, note_ids: List[str]) -> str:
        if not note_ids or self._note_store is None:
            return ""
        notes = self._note_store.get_notes_by_ids(note_ids, identity.subject)
        if not notes:
            return ""
        parts = [self._config.notes_header]
        for note in notes:
            parts.append(f"### {note.title}\n{note.content}\n\n---\n\n")
        return "".join(parts)

    def _resolve_attachments(self, attachments: List[Attachment]):
        image_urls: List[str] = []
        queue: List[str] = []
        for attachment in attachments:
            if attachment.type == "link" and attachment.url:
                queue.append(attachment.url)
            elif attachment.type == "image" and attachment.storage_id:
                url = self._blob_store.get_url(attachment.storage_id) if self._blob_store else None
                if url:
                    image_urls.append(url)
                else:
                    logger.warning("Dropped unresolved image", extra={"extra": {"storage_id": attachment.storage_id}})
        return image_urls, queue

    def merge_detected_urls(self, queue: List[str], text: str) -> List[str]:
        """把消息里识别出的链接追加到抓取队列，显式附件优先，精确字符串去重。"""
        merged = list(queue)
        detected = self._config.url_pattern.findall(text or "")
        for url in detected[: self._config.max_detected_urls]:
            if url not in merged:
                merged.append(url)
        return merged

    def scrape_all(self, urls: List[str]) -> List[ScrapeResult]:
        if not urls:
            return []
        with ThreadPoolExecutor(max_workers=len(urls), thread_name_prefix="scrape") as pool:
            futures = [pool.submit(self._scraper.scrape, url) for url in urls]
        # with 退出时所有任务都已结束
        results: List[ScrapeResult] = []
        for url, future in zip(urls, futures):
            try:
                result = future.result()
            except Exception as e:
                logger.warning("Scrape task failed", extra={"extra": {"url": url, "error": str(e)}})
                continue
            if result is None or not result.content:
                continue
            if not result.success and not self._config.include_failed_scrapes:
                continue
            results.append(result)
        return results
