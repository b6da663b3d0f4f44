"""Anthropic Provider 适配器（多模态后端）。

本模块负责：

1. 接收统一的 ContextBundle。
2. 将其转换为 Anthropic Messages API 的请求格式。
3. 从响应的 content 列表中取第一个 text block 作为回复。

有图片或抓取结果时最后一条用户消息是 content block 列表：
先放图片（URL 来源），再放一段文本（用户消息 + 抓取内容）；
否则发送纯文本，并把笔记上下文拼在前面。
"""

from typing import Any, Dict, List, Union

from assist_core.config.settings import settings
from assist_core.domain.exceptions import ConfigurationError
from assist_core.domain.models import ContextBundle, ProviderRequest
from assist_core.providers.base import NO_RESPONSE_PLACEHOLDER, render_scrapes
from assist_core.providers.registry import ANTHROPIC_CONFIG

ANTHROPIC_VERSION = "2023-06-01"

MessageContent = Union[str, List[Dict[str, Any]]]


class AnthropicClient:
    """Anthropic 提供方客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - build_request / extract_text: 请求构造与响应解析。
    """

    name = "anthropic"

    def __init__(self, cfg=settings, model: str = "notes-chat"):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = cfg
        self._model_cfg = ANTHROPIC_CONFIG.models[model]

    @property
    def variants(self) -> List[str]:
        return list(self._model_cfg.variants)

    def ensure_configured(self) -> None:
        if not getattr(self._settings, "anthropic_api_key", None):
            raise ConfigurationError("ANTHROPIC_API_KEY not configured", provider=self.name)

    def build_request(self, context: ContextBundle, variant: str) -> ProviderRequest:
        self.ensure_configured()
        base = getattr(self._settings, "anthropic_base_url", None) or ANTHROPIC_CONFIG.base_url
        payload: Dict[str, Any] = {
            "model": variant,
            "max_tokens": self._model_cfg.max_tokens,
            "messages": self._build_messages(context),
        }
        if context.system_prompt:
            payload["system"] = context.system_prompt
        return ProviderRequest(
            url=f"{base}/messages",
            json=payload,
            headers={
                "x-api-key": self._settings.anthropic_api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
        )

    def extract_text(self, raw: Dict[str, Any]) -> str:
        blocks = raw.get("content") if isinstance(raw, dict) else None
        if not isinstance(blocks, list):
            return NO_RESPONSE_PLACEHOLDER
        for block in blocks:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                return text if isinstance(text, str) and text else NO_RESPONSE_PLACEHOLDER
        return NO_RESPONSE_PLACEHOLDER

    def _build_messages(self, context: ContextBundle) -> List[Dict[str, Any]]:
        msgs: List[Dict[str, Any]] = [{"role": m.role, "content": m.content} for m in context.history]
        msgs.append({"role": "user", "content": self.compose_user_content(context)})
        return msgs

    @staticmethod
    def compose_user_content(context: ContextBundle) -> MessageContent:
        if not context.image_urls and not context.scrapes:
            if context.note_context:
                return context.note_context + context.user_message
            return context.user_message

        blocks: List[Dict[str, Any]] = []
        for image_url in context.image_urls:
            blocks.append({"type": "image", "source": {"type": "url", "url": image_url}})
        blocks.append({"type": "text", "text": context.user_message + render_scrapes(context.scrapes)})
        return blocks
