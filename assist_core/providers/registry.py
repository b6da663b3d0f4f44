"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "notes-chat"。
- variants：厂商实际提供的模型 ID，按优先级排列。分级回退只在
  前一个变体返回“不存在”时才尝试下一个。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置，便于后续升级或切换。"""

from dataclasses import dataclass
from typing import Dict, List


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    variants: List[str]
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


# Anthropic：多模态聊天
ANTHROPIC_CONFIG = ProviderConfig(
    name="anthropic",
    base_url="https://api.anthropic.com/v1",
    models={
        "notes-chat": ModelConfig(
            logical_name="notes-chat",
            variants=["claude-3-5-sonnet-20240620"],
            max_tokens=2048,
            default_temperature=0.7,
        )
    },
)

# Groq：纯文本聊天（OpenAI 兼容）
GROQ_CONFIG = ProviderConfig(
    name="groq",
    base_url="https://api.groq.com/openai/v1",
    models={
        "notes-chat": ModelConfig(
            logical_name="notes-chat",
            variants=["llama-3.3-70b-versatile"],
            max_tokens=2048,
            default_temperature=0.7,
        )
    },
)

# Gemini：语音转写（三级回退）与待办拆解
GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    models={
        "transcribe": ModelConfig(
            logical_name="transcribe",
            variants=["gemini-1.5-flash-001", "gemini-1.5-pro", "gemini-1.5-flash"],
            max_tokens=2048,
            default_temperature=0.1,
        ),
        "todo-breakdown": ModelConfig(
            logical_name="todo-breakdown",
            variants=["gemini-pro"],
            max_tokens=500,
            default_temperature=0.7,
        ),
    },
)
