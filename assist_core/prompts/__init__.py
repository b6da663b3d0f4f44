"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取三段提示词
（style / community / rules），用分隔线拼接成完整的 system prompt。
"""

from pathlib import Path
from typing import Optional


PROMPTS_DIR = Path(__file__).resolve().parent
PROMPT_PARTS = ("style.md", "community.md", "rules.md")
PART_SEPARATOR = "\n\n---\n\n"
DEFAULT_SYSTEM_PROMPT = "You are a helpful writing assistant. Help users write clearly and concisely."


def load_system_prompt(locale: str = "en", fallback: Optional[str] = None) -> str:
    """加载并拼接系统提示词。

    三段都缺失或为空时，依次退回 fallback（通常来自配置）和内置的最小提示词。
    """

    parts = []
    for fname in PROMPT_PARTS:
        path = PROMPTS_DIR / locale / fname
        if path.exists():
            text = path.read_text(encoding="utf-8")
            if text.strip():
                parts.append(text.strip())
    if parts:
        return PART_SEPARATOR.join(parts)
    return fallback or DEFAULT_SYSTEM_PROMPT
