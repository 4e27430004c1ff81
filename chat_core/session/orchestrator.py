"""生成编排器：会话管理器的核心状态机。

Idle → AwaitingResult → (Streaming) → Completed | Failed | Cancelled → Idle

一次 run() 对应一次 send_message：追加用户消息与空的助手占位消息，
调用外部生成操作，再把完整字符串或异步片段流写回占位消息。

- 取消：协作式，只在片段边界检查令牌；保留已累积的部分内容。
- 失败：删除占位消息、记录 last_error、通知 error 观察者；异常不向调用方传播。
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from chat_core.domain.exceptions import (
    BusinessError,
    GenerationFailure,
    GenerationTimeout,
    InvalidGenerationResult,
)
from chat_core.domain.models import (
    ChatMessage,
    GenerationOutcome,
    GenerationResult,
    GenerationStatus,
    ResultKind,
)
from chat_core.infrastructure.logging.logger import logger
from chat_core.session.cancellation import CancellationToken
from chat_core.session.observers import Observers
from chat_core.session.state import SessionState

GenerateFn = Callable[[List[ChatMessage]], Awaitable[GenerationResult]]


class GenerationOrchestrator:
    def __init__(
        self,
        state: SessionState,
        generate: GenerateFn,
        observers: Observers,
        session_id: str,
        timeout: Optional[float] = None,
    ):
        self._state = state
        self._generate = generate
        self._observers = observers
        self._session_id = session_id
        self._timeout = timeout

    async def run(self, text: str) -> GenerationOutcome:
        """执行一次完整的生成流程，调用前由会话负责重入与空输入检查。"""

        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "session_id": self._session_id,
        }
        state = self._state

        # 1. 进入生成状态：从追加用户消息开始 is_generating 即为真
        state.draft_input = ""
        state.last_error = None
        state.is_generating = True
        token = state.cancellation.acquire()
        user_msg = state.messages.append(ChatMessage(role="user", content=text))
        history = state.messages.snapshot()
        placeholder = state.messages.append(ChatMessage(role="assistant", content=""))
        self._observers.notify_message(user_msg)
        self._log(
            logging.INFO,
            "Started generation",
            log_ctx,
            user_message_id=user_msg.id,
            assistant_message_id=placeholder.id,
            history_size=len(history),
        )

        # 2. 调用生成操作并把结果写回占位消息
        try:
            status, fragments = await self._run_with_timeout(placeholder.id, history, token, log_ctx)
        except asyncio.CancelledError:
            # 外部取消了承载本协程的 task：结束生成状态后继续向上传播
            self._finish(token)
            self._log(
                logging.WARNING,
                "Generation task cancelled",
                log_ctx,
                assistant_message_id=placeholder.id,
            )
            raise
        except Exception as exc:
            return self._fail(placeholder.id, token, exc, log_ctx)

        # 3. 成功或取消：保留内容并通知观察者
        self._finish(token)
        final = state.messages.get(placeholder.id)
        if final is not None:
            self._observers.notify_message(final)
        self._log(
            logging.INFO,
            "Completed generation",
            log_ctx,
            status=status.value,
            assistant_message_id=placeholder.id,
            fragments=fragments,
            content_length=len(final.content) if final else 0,
            placeholder_present=final is not None,
            elapsed_seconds=round(time.time() - start_time, 3),
        )
        return GenerationOutcome(status=status, message=final)

    async def _run_with_timeout(
        self,
        assistant_id: str,
        history: List[ChatMessage],
        token: CancellationToken,
        log_ctx: Dict[str, Any],
    ) -> Tuple[GenerationStatus, int]:
        drive = self._drive(assistant_id, history, token, log_ctx)
        if self._timeout is None:
            return await drive
        try:
            return await asyncio.wait_for(drive, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationTimeout(
                code="GENERATION_TIMEOUT",
                message=f"Generation exceeded {self._timeout}s",
                cause=exc,
            ) from exc

    async def _drive(
        self,
        assistant_id: str,
        history: List[ChatMessage],
        token: CancellationToken,
        log_ctx: Dict[str, Any],
    ) -> Tuple[GenerationStatus, int]:
        result = await self._generate(history)
        if not isinstance(result, GenerationResult):
            raise InvalidGenerationResult(
                code="INVALID_GENERATION_RESULT",
                message=f"Expected GenerationResult, got {type(result).__name__}",
            )

        if result.kind is ResultKind.COMPLETE:
            # 完整结果不经过消费循环，不检查取消令牌
            if not isinstance(result.text, str):
                raise InvalidGenerationResult(
                    code="INVALID_COMPLETE_TEXT",
                    message=f"Expected str text, got {type(result.text).__name__}",
                )
            self._write(assistant_id, result.text)
            return GenerationStatus.COMPLETED, 1

        self._log(logging.INFO, "Streaming generation", log_ctx, assistant_message_id=assistant_id)
        return await self._consume(assistant_id, result.fragments, token, log_ctx)

    async def _consume(
        self,
        assistant_id: str,
        fragments,
        token: CancellationToken,
        log_ctx: Dict[str, Any],
    ) -> Tuple[GenerationStatus, int]:
        """逐个消费片段；每次等待下一个片段之前、写入之前各检查一次取消令牌。

        除正常耗尽外的任何退出（取消或异常）都会关闭片段流。
        """

        iterator: AsyncIterator[str] = fragments.__aiter__()
        accumulated = ""
        count = 0
        exhausted = False
        try:
            while True:
                if token.cancelled:
                    break
                try:
                    fragment = await iterator.__anext__()
                except StopAsyncIteration:
                    exhausted = True
                    return GenerationStatus.COMPLETED, count
                if token.cancelled:
                    break
                if not isinstance(fragment, str):
                    raise InvalidGenerationResult(
                        code="INVALID_FRAGMENT",
                        message=f"Expected str fragment, got {type(fragment).__name__}",
                    )
                accumulated += fragment
                count += 1
                self._write(assistant_id, accumulated)
        finally:
            if not exhausted:
                await self._close(iterator, log_ctx)

        self._log(
            logging.INFO,
            "Generation cancelled",
            log_ctx,
            assistant_message_id=assistant_id,
            fragments=count,
        )
        return GenerationStatus.CANCELLED, count

    def _write(self, assistant_id: str, content: str) -> None:
        if self._state.messages.replace_content(assistant_id, content):
            self._observers.notify_update(self._state.messages.get(assistant_id))

    async def _close(self, iterator: AsyncIterator[str], log_ctx: Dict[str, Any]) -> None:
        # 通知上游生产者停止；上游是否真的停止不由这里决定
        aclose = getattr(iterator, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as exc:
            self._log(logging.WARNING, "Closing fragment stream failed", log_ctx, error=str(exc))

    def _fail(
        self,
        assistant_id: str,
        token: CancellationToken,
        exc: Exception,
        log_ctx: Dict[str, Any],
    ) -> GenerationOutcome:
        failure = self._as_failure(exc)
        self._state.messages.remove(assistant_id)
        self._state.last_error = failure
        self._finish(token)
        self._log(
            logging.ERROR,
            "Generation failed",
            log_ctx,
            assistant_message_id=assistant_id,
            code=failure.code,
            error=str(failure),
            cause=type(failure.cause).__name__ if failure.cause else None,
        )
        self._observers.notify_error(failure)
        return GenerationOutcome(status=GenerationStatus.FAILED, error=failure)

    @staticmethod
    def _as_failure(exc: Exception) -> GenerationFailure:
        if isinstance(exc, GenerationFailure):
            return exc
        code = exc.code if isinstance(exc, BusinessError) else "GENERATION_FAILED"
        return GenerationFailure(code=code, message=str(exc) or type(exc).__name__, cause=exc)

    def _finish(self, token: CancellationToken) -> None:
        self._state.is_generating = False
        self._state.cancellation.release(token)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
