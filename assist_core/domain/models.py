"""统一的对话与结果数据模型。

本模块定义了编排层内部在不同 Provider 之间共享的标准数据结构：

- Attachment: 用户消息携带的附件（图片或链接）。
- ScrapeResult: 一次网页抓取的结果，只在当前请求内有效。
- ContextBundle: 上下文组装的输出，不含任何后端相关的格式。
- ProviderRequest: 适配器构造好的 HTTP 请求。
- ModelInvocationOutcome: 一次模型调用的结果。

所有 Provider 适配器都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional, Any, Dict, List


# 会话中保存的消息角色
Role = Literal["user", "assistant"]

AttachmentType = Literal["image", "link"]


class ModelChoice(str, Enum):
    """调用方可选的聊天后端。"""

    GROK = "grok"  # 纯文本，兼容性好
    CLAUDE = "claude"  # 多模态


@dataclass
class Attachment:
    """消息附件。

    - type="image": storage_id 为 Blob 存储中的不透明引用。
    - type="link": url 为链接地址，title/scraped_content 为前端预抓取的缓存字段。
    """

    type: AttachmentType
    storage_id: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None
    scraped_content: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        for key in ("storage_id", "url", "title", "scraped_content"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        return cls(
            type=data["type"],
            storage_id=data.get("storage_id"),
            url=data.get("url"),
            title=data.get("title"),
            scraped_content=data.get("scraped_content"),
        )


@dataclass
class ScrapeResult:
    url: str
    title: str
    content: str
    favicon: Optional[str] = None
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "success": self.success,
        }
        if self.favicon:
            data["favicon"] = self.favicon
        return data


@dataclass
class HistoryMessage:
    """发给后端的历史消息（只保留角色与文本）。"""

    role: Role
    content: str


@dataclass
class ContextBundle:
    """一轮对话的完整上下文。

    - history: 最近的历史消息窗口（保持原顺序）。
    - image_urls: 已解析出的图片访问地址。
    - scrapes: 抓取结果，顺序不保证。
    - note_context: 渲染好的笔记引用块，可能为空字符串。
    - user_message: 本轮用户原始消息文本。
    """

    history: List[HistoryMessage]
    image_urls: List[str]
    scrapes: List[ScrapeResult]
    note_context: str
    user_message: str
    system_prompt: str = ""


@dataclass
class ProviderRequest:
    """适配器生成的一次 HTTP 请求描述。"""

    url: str
    json: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


@dataclass
class ModelInvocationOutcome:
    """一次模型调用的结果。

    - provider: 逻辑 Provider 名（如 "anthropic"）。
    - variant: 实际成功的模型变体名。
    - raw: 原始响应 JSON，用于调试或日志记录。
    - text: 适配器抽取出的纯文本，由适配器回填。
    """

    provider: str
    variant: str
    status_code: int
    raw: Dict[str, Any]
    text: str = ""
    attempted: List[str] = field(default_factory=list)
