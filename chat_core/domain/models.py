"""会话消息与生成结果数据模型。

本模块定义了会话管理器内部共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- GenerationResult: 生成操作的显式标签化结果，要么是完整字符串，
  要么是异步片段流。
- GenerationOutcome: 一次生成结束时的终态汇报。

编排器只根据 GenerationResult.kind 分派，不在运行时猜测结果的形状。
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterable, Dict, Literal, Optional


# 消息角色类型（与 OpenAI 等厂商的 role 字段对应）
Role = Literal["system", "user", "assistant"]

ROLES = ("system", "user", "assistant")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatMessage:
    """一条对话消息。

    - id: 不透明的唯一标识，创建时分配，之后不再改变；为空表示尚未入库。
    - role: 消息角色，如 system/user/assistant。
    - content: 纯文本内容。生成中的助手占位消息会在这里单调增长。
    - created_at: 创建时间（UTC），为空时由 MessageLog 补齐。
    - meta: 附加元数据，仅供上层 UI 使用。
    """

    role: Role
    content: str
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "ChatMessage":
        """返回一份快照，供外部读者使用。"""

        return replace(self, meta=dict(self.meta))

    def to_payload(self) -> Dict[str, str]:
        """只保留发给 Provider 的 role/content 字段。"""

        return {"role": self.role, "content": self.content}


class ResultKind(str, Enum):
    COMPLETE = "complete"
    STREAM = "stream"


@dataclass(frozen=True)
class GenerationResult:
    """生成操作的返回值：Complete(text) | Stream(fragments)。"""

    kind: ResultKind
    text: Optional[str] = None
    fragments: Optional[AsyncIterable[str]] = None

    @classmethod
    def complete(cls, text: str) -> "GenerationResult":
        return cls(kind=ResultKind.COMPLETE, text=text)

    @classmethod
    def stream(cls, fragments: AsyncIterable[str]) -> "GenerationResult":
        return cls(kind=ResultKind.STREAM, fragments=fragments)


class GenerationStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class GenerationOutcome:
    """一次生成的终态。

    status 为 completed/cancelled 时 message 为最终助手消息的快照；
    为 failed 时 message 为空，error 为包装后的 GenerationFailure。
    """

    status: GenerationStatus
    message: Optional[ChatMessage] = None
    error: Optional[Exception] = None
