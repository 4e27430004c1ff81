"""Chat Core 顶层包。

该包提供对话会话管理器的核心实现，包括有序消息日志、
生成编排（一次性或流式）、协作式取消、失败回滚、
重新生成与清空等能力，以及可选的 OpenAI 兼容 Provider 适配。
"""

from chat_core.domain.models import ChatMessage, GenerationResult, GenerationStatus
from chat_core.session import ChatSession

__all__ = ["ChatMessage", "ChatSession", "GenerationResult", "GenerationStatus"]
