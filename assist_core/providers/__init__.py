"""LLM Provider 集成层。

该包下的模块负责：
- 定义聊天适配器协议 (base)。
- 维护 Provider 与模型变体配置 (registry)。
- 分级回退调用 (fallback)。
- 提供各厂商的具体实现 (anthropic_client、groq_client)。
"""

from typing import Dict, Type, Union

from assist_core.config.settings import settings
from assist_core.domain.exceptions import ValidationError
from assist_core.domain.models import ModelChoice
from assist_core.providers.base import ChatAdapter
from assist_core.providers.anthropic_client import AnthropicClient
from assist_core.providers.groq_client import GroqClient

ADAPTERS: Dict[ModelChoice, Type] = {
    ModelChoice.GROK: GroqClient,
    ModelChoice.CLAUDE: AnthropicClient,
}


def resolve_model_choice(choice: Union[str, ModelChoice, None], cfg=None) -> ModelChoice:
    """把调用方传入的模型选择规范化，未指定时取配置默认值。"""

    cfg = cfg or settings
    raw = choice.value if isinstance(choice, ModelChoice) else choice
    name = (raw or getattr(cfg, "default_model", ModelChoice.CLAUDE.value)).strip().lower()
    try:
        return ModelChoice(name)
    except ValueError:
        raise ValidationError(code="UNKNOWN_MODEL", message=f"Unsupported model: {raw!r}")


def create_adapter(choice: Union[str, ModelChoice, None] = None, cfg=None) -> ChatAdapter:
    """根据模型选择创建适配器实例。"""

    cfg = cfg or settings
    return ADAPTERS[resolve_model_choice(choice, cfg)](cfg)
