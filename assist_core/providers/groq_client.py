"""Groq Provider 适配器（纯文本后端）。

接口风格与 OpenAI 一致，使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

该后端不支持图片：笔记上下文、“图片未处理”的提示和抓取内容
统一拼进最后一条用户消息的文本里，历史窗口原样发送。
"""

from typing import Any, Dict, List

from assist_core.config.settings import settings
from assist_core.domain.exceptions import ConfigurationError
from assist_core.domain.models import ContextBundle, ProviderRequest
from assist_core.providers.base import NO_RESPONSE_PLACEHOLDER, render_scrapes
from assist_core.providers.registry import GROQ_CONFIG


class GroqClient:
    """Groq Provider 客户端实现。"""

    name = "groq"

    def __init__(self, cfg=settings, model: str = "notes-chat"):
        self._settings = cfg
        self._model_cfg = GROQ_CONFIG.models[model]

    @property
    def variants(self) -> List[str]:
        return list(self._model_cfg.variants)

    def ensure_configured(self) -> None:
        if not getattr(self._settings, "groq_api_key", None):
            raise ConfigurationError("GROQ_API_KEY not configured", provider=self.name)

    def build_request(self, context: ContextBundle, variant: str) -> ProviderRequest:
        self.ensure_configured()
        base = getattr(self._settings, "groq_base_url", None) or GROQ_CONFIG.base_url
        return ProviderRequest(
            url=f"{base}/chat/completions",
            json=self._build_payload(context, variant),
            headers={
                "Authorization": f"Bearer {self._settings.groq_api_key}",
                "Content-Type": "application/json",
            },
        )

    def extract_text(self, raw: Dict[str, Any]) -> str:
        choices = raw.get("choices") if isinstance(raw, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return NO_RESPONSE_PLACEHOLDER
        msg = choices[0].get("message")
        if not isinstance(msg, dict):
            return NO_RESPONSE_PLACEHOLDER
        content = msg.get("content")
        if isinstance(content, str) and content:
            return content
        return NO_RESPONSE_PLACEHOLDER

    # ---- 辅助方法 ----

    def _build_payload(self, context: ContextBundle, variant: str) -> dict:
        msgs: List[Dict[str, Any]] = []
        if context.system_prompt:
            msgs.append({"role": "system", "content": context.system_prompt})
        for m in context.history:
            msgs.append({"role": m.role, "content": m.content})
        msgs.append({"role": "user", "content": self.compose_user_turn(context)})
        return {
            "model": variant,
            "messages": msgs,
            "temperature": self._model_cfg.default_temperature,
            "max_tokens": self._model_cfg.max_tokens,
        }

    @staticmethod
    def compose_user_turn(context: ContextBundle) -> str:
        text = context.note_context + context.user_message if context.note_context else context.user_message
        if context.image_urls:
            text += (
                f"\n\n[Note: {len(context.image_urls)} image(s) attached but vision processing "
                "not available with current model]"
            )
        return text + render_scrapes(context.scrapes)
