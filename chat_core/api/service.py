"""对外 API 服务模块。

提供简化的函数接口供上层 UI 调用：创建会话、把会话状态转换为可渲染的字典。
"""

from typing import Any, Dict, Optional

from chat_core.config.settings import settings
from chat_core.domain.models import ChatMessage
from chat_core.providers import create_generator
from chat_core.providers.base import GenerationOperation
from chat_core.session import ChatSession
from chat_core.session.orchestrator import GenerateFn


_generator: Optional[GenerationOperation] = None


def get_default_generator() -> GenerationOperation:
    """获取默认的生成操作实例（单例）。"""
    global _generator
    if _generator is None:
        _generator = create_generator(settings)
    return _generator


def create_session(
    system_prompt: Optional[str] = None,
    generate: Optional[GenerateFn] = None,
    **options: Any,
) -> ChatSession:
    """创建一个对话会话。

    Args:
        system_prompt: 系统提示词（可选）
        generate: 生成操作（可选，不提供则使用配置中的 OpenAI 兼容 Provider）
        options: 透传给 ChatSession 的其他参数（on_message、on_error、id_generator 等）

    Returns:
        新的 ChatSession，每个会话拥有独立的消息日志与取消令牌
    """
    return ChatSession(
        generate or get_default_generator(),
        system_prompt=system_prompt,
        **options,
    )


def message_to_dict(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "created_at": message.created_at.isoformat() if message.created_at else None,
        "meta": message.meta,
    }


def session_snapshot(session: ChatSession) -> Dict[str, Any]:
    """把会话的可读状态转换为字典，供渲染层使用。

    Returns:
        包含 messages、input、is_generating、error 的字典
    """
    error = session.last_error
    return {
        "session_id": session.id,
        "messages": [message_to_dict(m) for m in session.messages],
        "input": session.draft_input,
        "is_generating": session.is_generating,
        "error": None
        if error is None
        else {"code": getattr(error, "code", None), "message": str(error)},
    }
