"""Provider 抽象接口。

上层 NotesChatAgent 不直接依赖具体厂商的请求格式，而是依赖此协议：

- 每个厂商实现一个 ChatAdapter（如 AnthropicClient、GroqClient）。
- 负责：将 ContextBundle 转成具体 API 请求，并从响应 JSON 中抽取纯文本。
- 真正的 HTTP 发送由 TieredFallbackInvoker 统一完成。

这样可以在不改 Agent 代码的前提下接入更多厂商。
"""

from typing import Any, Dict, List, Protocol
from assist_core.domain.models import ContextBundle, ProviderRequest, ScrapeResult

NO_RESPONSE_PLACEHOLDER = "I apologize, but I could not generate a response."


class ChatAdapter(Protocol):
    """聊天后端适配器协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - variants: 按优先级排列的模型变体。
    - ensure_configured(): 密钥缺失时抛 ConfigurationError。
    - build_request(context, variant): 构造一次 HTTP 请求。
    - extract_text(raw): 从响应中抽取文本，抽不到时返回占位文本。
    """

    name: str

    @property
    def variants(self) -> List[str]:
        ...

    def ensure_configured(self) -> None:
        ...

    def build_request(self, context: ContextBundle, variant: str) -> ProviderRequest:
        ...

    def extract_text(self, raw: Dict[str, Any]) -> str:
        ...


def render_scrapes(scrapes: List[ScrapeResult]) -> str:
    """把抓取结果渲染成附加在用户消息后的引用块。"""

    if not scrapes:
        return ""
    parts = ["\n\n---\n\n**Referenced Content:**\n\n"]
    for scraped in scrapes:
        parts.append(f"### {scraped.title}\n*Source: {scraped.url}*\n\n{scraped.content}\n\n---\n\n")
    return "".join(parts)
