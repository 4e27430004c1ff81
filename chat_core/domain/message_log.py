"""有序消息日志：会话状态的唯一事实来源。

MessageLog 只负责维护消息顺序与不变量，不关心生成状态：

- system 消息至多一条，且只能位于下标 0。
- 消息 ID 在整个会话生命周期内唯一，被删除的 ID 也不会再次使用。
- 对外只返回消息快照，真正可变的记录只保存在日志内部。
"""

from typing import Iterable, Iterator, List, Optional, Set

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.identifiers import IdGenerator, as_id_generator
from chat_core.domain.models import ROLES, ChatMessage, Role, utcnow


class MessageLog:
    def __init__(
        self,
        id_generator: Optional[IdGenerator] = None,
        messages: Optional[Iterable[ChatMessage]] = None,
    ):
        self._ids = id_generator or as_id_generator(None)
        self._messages: List[ChatMessage] = []
        self._seen_ids: Set[str] = set()
        for message in messages or ():
            self.append(message)

    # ---- 写操作 ----

    def append(self, message: ChatMessage) -> ChatMessage:
        """在尾部追加一条消息，必要时补齐 id 与 created_at，返回入库记录的快照。"""

        if message.role not in ROLES:
            raise ValidationError(code="INVALID_ROLE", message=f"Unknown role: {message.role!r}")
        if message.role == "system" and self._messages:
            raise ValidationError(
                code="SYSTEM_MESSAGE_POSITION",
                message="A system message is only allowed as the first message",
            )
        if message.id is not None and message.id in self._seen_ids:
            raise ValidationError(code="DUPLICATE_MESSAGE_ID", message=message.id)

        record = message.copy()
        if record.id is None:
            record.id = self._next_id()
        if record.created_at is None:
            record.created_at = utcnow()
        self._seen_ids.add(record.id)
        self._messages.append(record)
        return record.copy()

    def replace_content(self, message_id: str, new_content: str) -> bool:
        """原地替换某条消息的 content；找不到时不做任何事并返回 False。"""

        record = self._find(message_id)
        if record is None:
            return False
        record.content = new_content
        return True

    def remove(self, message_id: str) -> bool:
        """删除指定消息（仅用于占位消息回滚）。ID 仍记为已使用。"""

        for idx, record in enumerate(self._messages):
            if record.id == message_id:
                del self._messages[idx]
                return True
        return False

    def truncate_after(self, message_id: str) -> bool:
        """保留到 message_id（含）为止的消息，丢弃其后的全部消息。"""

        for idx, record in enumerate(self._messages):
            if record.id == message_id:
                del self._messages[idx + 1:]
                return True
        return False

    def reset(self, keep_system: bool = True) -> None:
        """清空日志；keep_system 为真时保留下标 0 处的 system 消息。"""

        system = self._system_record() if keep_system else None
        self._messages = [system] if system is not None else []

    # ---- 读操作 ----

    def get(self, message_id: str) -> Optional[ChatMessage]:
        record = self._find(message_id)
        return record.copy() if record is not None else None

    def snapshot(self) -> List[ChatMessage]:
        return [m.copy() for m in self._messages]

    def last_index_of(self, role: Role) -> int:
        """从尾部向前线性扫描，返回最后一条 role 消息的下标，不存在时返回 -1。

        复杂度 O(n)；会话长度有限，不额外维护索引。
        """

        for idx in range(len(self._messages) - 1, -1, -1):
            if self._messages[idx].role == role:
                return idx
        return -1

    @property
    def system_message(self) -> Optional[ChatMessage]:
        record = self._system_record()
        return record.copy() if record is not None else None

    def _system_record(self) -> Optional[ChatMessage]:
        if self._messages and self._messages[0].role == "system":
            return self._messages[0]
        return None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.snapshot())

    def __getitem__(self, index: int) -> ChatMessage:
        return self._messages[index].copy()

    def __contains__(self, message_id: object) -> bool:
        return any(m.id == message_id for m in self._messages)

    def _find(self, message_id: str) -> Optional[ChatMessage]:
        for record in self._messages:
            if record.id == message_id:
                return record
        return None

    def _next_id(self) -> str:
        new_id = self._ids.next()
        if new_id in self._seen_ids:
            raise ValidationError(
                code="DUPLICATE_MESSAGE_ID",
                message=f"Id generator returned an id already used in this log: {new_id}",
            )
        return new_id
