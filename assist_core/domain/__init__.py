"""领域层模型与协议。

包含：
- models: 附件、抓取结果、上下文包与 Provider 请求/结果模型。
- conversation: 会话与消息的存储模型及 ConversationStore / NoteStore / BlobStore 抽象。
- exceptions: 业务异常类型定义。
"""
