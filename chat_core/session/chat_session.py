"""对话会话：面向 UI 的会话管理入口。

ChatSession 持有消息日志、草稿输入、生成状态与错误，并对外暴露
send_message / append_message / clear_messages / stop / reload 等操作。
真正的生成流程委托给 GenerationOrchestrator。

所有方法都应在运行该会话的事件循环中调用；只有 stop() 允许从其他线程调用。
"""

import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from chat_core.config.settings import Settings, settings as default_settings
from chat_core.domain.identifiers import IdSource, as_id_generator
from chat_core.domain.message_log import MessageLog
from chat_core.domain.models import ChatMessage, GenerationOutcome, Role
from chat_core.infrastructure.logging.logger import logger
from chat_core.session.cancellation import CancellationToken
from chat_core.session.observers import ErrorListener, MessageListener, Observers, Unsubscribe
from chat_core.session.orchestrator import GenerateFn, GenerationOrchestrator
from chat_core.session.state import SessionState


class ChatSession:
    def __init__(
        self,
        generate: Optional[GenerateFn] = None,
        *,
        initial_messages: Optional[Iterable[ChatMessage]] = None,
        system_prompt: Optional[str] = None,
        id_generator: Optional[IdSource] = None,
        on_message: Optional[MessageListener] = None,
        on_error: Optional[ErrorListener] = None,
        settings: Optional[Settings] = None,
        generation_timeout: Optional[float] = None,
    ):
        self._settings = settings or default_settings
        self.id = f"s-{uuid4().hex}"
        self._generate = generate
        self._observers = Observers()
        if on_message is not None:
            self._observers.add("message", on_message)
        if on_error is not None:
            self._observers.add("error", on_error)

        ids = as_id_generator(id_generator, prefix=self._settings.id_prefix)
        initial = list(initial_messages or [])
        if system_prompt and not any(m.role == "system" for m in initial):
            initial.insert(0, ChatMessage(role="system", content=system_prompt))
        self._state = SessionState(messages=MessageLog(id_generator=ids, messages=initial))

        timeout = generation_timeout if generation_timeout is not None else self._settings.generation_timeout
        self._orchestrator: Optional[GenerationOrchestrator] = None
        if generate is not None:
            self._orchestrator = GenerationOrchestrator(
                state=self._state,
                generate=generate,
                observers=self._observers,
                session_id=self.id,
                timeout=timeout,
            )
        self._last_outcome: Optional[GenerationOutcome] = None

    # ---- 只读视图 ----

    @property
    def messages(self) -> List[ChatMessage]:
        return self._state.messages.snapshot()

    @property
    def draft_input(self) -> str:
        return self._state.draft_input

    @property
    def is_generating(self) -> bool:
        return self._state.is_generating

    @property
    def last_error(self) -> Optional[Exception]:
        return self._state.last_error

    @property
    def active_token(self) -> Optional[CancellationToken]:
        return self._state.active_token

    @property
    def last_outcome(self) -> Optional[GenerationOutcome]:
        """最近一次生成的终态，尚未生成过时为 None。"""
        return self._last_outcome

    # ---- 观察者 ----

    def add_message_listener(self, listener: MessageListener) -> Unsubscribe:
        return self._observers.add("message", listener)

    def add_error_listener(self, listener: ErrorListener) -> Unsubscribe:
        return self._observers.add("error", listener)

    def add_update_listener(self, listener: MessageListener) -> Unsubscribe:
        return self._observers.add("update", listener)

    # ---- 写操作 ----

    def set_draft_input(self, text: str) -> None:
        self._state.draft_input = text

    async def send_message(self, text: Optional[str] = None) -> Optional[GenerationOutcome]:
        """发送一条用户消息并触发生成。

        text 为 None 时使用去掉首尾空白的草稿输入；显式传入的 text 原样保存与发送，
        去掉首尾空白只用于判断是否为空。正在生成或输入为空时直接返回 None，
        重入调用会被丢弃而不是排队。
        """

        content = self._state.draft_input.strip() if text is None else text
        if not content.strip() or self._state.is_generating:
            self._log(
                logging.DEBUG,
                "Ignored send_message",
                reason="busy" if self._state.is_generating else "empty",
            )
            return None

        if self._orchestrator is None:
            # 未配置生成操作：只记录用户消息
            self._state.draft_input = ""
            self._state.last_error = None
            self.append_message("user", content)
            return None

        outcome = await self._orchestrator.run(content)
        self._last_outcome = outcome
        return outcome

    def append_message(
        self,
        role: Role,
        content: str,
        *,
        meta: Optional[Dict[str, Any]] = None,
        created_at=None,
    ) -> ChatMessage:
        """追加一条消息但不触发生成，返回入库后的消息。"""

        stored = self._state.messages.append(
            ChatMessage(role=role, content=content, created_at=created_at, meta=dict(meta or {}))
        )
        self._observers.notify_message(stored)
        return stored

    def clear_messages(self) -> None:
        """清空对话，仅保留 system 消息。

        生成进行中时先请求取消：编排器会在下一个片段边界停止，
        对已被清除的占位消息的写入不再生效。
        """

        if self._state.is_generating:
            self._state.cancellation.request_cancel()
            self._log(logging.INFO, "Cleared messages during generation; cancellation requested")
        self._state.messages.reset(keep_system=True)
        self._state.last_error = None

    def stop(self) -> bool:
        """请求停止当前生成，返回是否存在可取消的生成。"""

        requested = self._state.cancellation.request_cancel()
        if requested:
            self._log(logging.INFO, "Stop requested")
        return requested

    async def reload(self) -> Optional[GenerationOutcome]:
        """基于最后一条用户消息重新生成回答。"""

        if self._orchestrator is None or self._state.is_generating:
            return None
        log = self._state.messages
        idx = log.last_index_of("user")
        if idx == -1:
            return None
        last_user = log[idx]
        log.truncate_after(last_user.id)
        self._log(logging.INFO, "Reloading from last user message", user_message_id=last_user.id)
        # 重新发送会再追加一条内容相同的用户消息
        return await self.send_message(last_user.content)

    def close(self) -> None:
        self.stop()

    async def __aenter__(self) -> "ChatSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"session_id": self.id}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
