"""Gemini Provider 适配器。

负责两个独立于聊天流程的能力：
- 语音转写：按 flash -> pro -> flash 别名三级回退。
- 待办拆解：把一条待办拆成 3-6 个子任务。

两者都走 TieredFallbackInvoker，区别只在变体列表与请求体。
- URL: {base_url}/models/{variant}:generateContent?key=<api_key>
"""

import json
import re
from typing import Any, Dict, List, Optional

from assist_core.config.settings import settings
from assist_core.domain.exceptions import BusinessError, ConfigurationError
from assist_core.domain.models import ProviderRequest
from assist_core.infrastructure.logging.logger import logger
from assist_core.providers.fallback import TieredFallbackInvoker
from assist_core.providers.registry import GEMINI_CONFIG, ModelConfig

TRANSCRIBE_PROMPT = (
    "Transcribe the spoken words in this audio clearly and accurately. "
    "Only return the transcription, no commentary or additional text."
)

BREAKDOWN_PROMPT = """You are a task breakdown assistant. Break down the following task into 3-6 specific, actionable subtasks.

Task: {todo}

Rules:
- Each subtask should be concrete and actionable
- Keep subtasks brief (max 60 characters)
- Return ONLY a JSON array of strings
- No explanations, just the array
- Example format: ["First step", "Second step", "Third step"]

Subtasks:"""

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class GeminiClient:
    name = "gemini"

    def __init__(self, cfg=settings, invoker: Optional[TieredFallbackInvoker] = None):
        self._settings = cfg
        self._invoker = invoker or TieredFallbackInvoker(cfg)

    def _api_key(self, override: Optional[str] = None) -> str:
        key = override or getattr(self._settings, "gemini_api_key", None)
        if not key:
            raise ConfigurationError("GEMINI_API_KEY not configured", provider=self.name)
        return key

    def _build_request(self, api_key: str, variant: str, parts: List[Dict[str, Any]], model_cfg: ModelConfig) -> ProviderRequest:
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        generation_config: Dict[str, Any] = {
            "temperature": model_cfg.default_temperature,
            "maxOutputTokens": model_cfg.max_tokens,
        }
        if model_cfg.logical_name == "transcribe":
            generation_config["topP"] = 0.95
        return ProviderRequest(
            url=f"{base}/models/{variant}:generateContent",
            json={"contents": [{"parts": parts}], "generationConfig": generation_config},
            headers={"Content-Type": "application/json"},
            params={"key": api_key},
        )

    @staticmethod
    def extract_text(raw: Dict[str, Any]) -> str:
        candidates = raw.get("candidates") if isinstance(raw, dict) else None
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
            return ""
        text = parts[0].get("text")
        return text if isinstance(text, str) else ""

    def transcribe(self, audio_data: str, mime_type: str = "audio/webm", api_key: Optional[str] = None) -> str:
        """转写 base64 编码的音频，返回去掉首尾空白的文本；无文本时返回空串。"""

        key = self._api_key(api_key)
        model_cfg = GEMINI_CONFIG.models["transcribe"]
        parts = [
            {"text": TRANSCRIBE_PROMPT},
            {"inline_data": {"mime_type": mime_type, "data": audio_data}},
        ]
        logger.info("Transcribing audio", extra={"extra": {"size": len(audio_data), "mime_type": mime_type}})
        outcome = self._invoker.invoke(
            self.name,
            model_cfg.variants,
            lambda variant: self._build_request(key, variant, parts, model_cfg),
        )
        text = self.extract_text(outcome.raw)
        if not text:
            logger.warning("No text in transcription response", extra={"extra": {"variant": outcome.variant}})
            return ""
        return text.strip()

    def breakdown_todo(self, todo_content: str) -> List[str]:
        """把待办拆成子任务列表。"""

        key = self._api_key()
        model_cfg = GEMINI_CONFIG.models["todo-breakdown"]
        parts = [{"text": BREAKDOWN_PROMPT.format(todo=todo_content)}]
        outcome = self._invoker.invoke(
            self.name,
            model_cfg.variants,
            lambda variant: self._build_request(key, variant, parts, model_cfg),
        )
        text = self.extract_text(outcome.raw)
        if not text:
            raise BusinessError(code="BREAKDOWN_FAILED", message="No response from Gemini", http_status=502)
        match = _JSON_ARRAY_RE.search(text)
        if not match:
            raise BusinessError(code="BREAKDOWN_FAILED", message="Could not parse subtasks from response", http_status=502)
        try:
            subtasks = json.loads(match.group(0))
        except json.JSONDecodeError:
            raise BusinessError(code="BREAKDOWN_FAILED", message="Could not parse subtasks from response", http_status=502)
        if not isinstance(subtasks, list) or not subtasks:
            raise BusinessError(code="BREAKDOWN_FAILED", message="Invalid subtasks format", http_status=502)
        return [s.strip() for s in subtasks if isinstance(s, str) and s.strip()]
