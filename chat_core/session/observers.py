"""会话观察者注册表。

三类回调：
- message: 新消息入库（用户消息、append_message、生成结束的助手消息）。
- error: 生成失败。
- update: 生成中的助手占位消息内容发生变化（每个片段一次）。

回调抛出的异常只记录日志，不影响会话状态机。
"""

from typing import Callable, Dict, List

from chat_core.domain.models import ChatMessage
from chat_core.infrastructure.logging.logger import logger

MessageListener = Callable[[ChatMessage], None]
ErrorListener = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class Observers:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable]] = {"message": [], "error": [], "update": []}

    def add(self, kind: str, listener: Callable) -> Unsubscribe:
        listeners = self._listeners[kind]
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def notify_message(self, message: ChatMessage) -> None:
        self._emit("message", message)

    def notify_error(self, error: Exception) -> None:
        self._emit("error", error)

    def notify_update(self, message: ChatMessage) -> None:
        self._emit("update", message)

    def _emit(self, kind: str, value) -> None:
        for listener in list(self._listeners[kind]):
            try:
                listener(value)
            except Exception:
                logger.exception(
                    "Session listener failed",
                    extra={"extra": {"listener_kind": kind, "listener": repr(listener)}},
                )
