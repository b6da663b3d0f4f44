"""Assist Core 顶层包。

该包提供笔记应用聊天助手的核心实现，
包括配置加载、领域模型、上下文组装、后端路由与分级回退调用、
网页抓取、LangGraph 对话流程与本地持久化存储。
"""

from assist_core.agents.chat_agent import NotesChatAgent

__all__ = ["NotesChatAgent"]
