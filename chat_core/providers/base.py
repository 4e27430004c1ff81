"""生成操作抽象接口。

会话层不直接依赖具体厂商的 HTTP SDK，而是依赖此协议：

- 输入：调用时刻完整的有序消息历史。
- 输出：GenerationResult，一次性字符串或异步片段流。
- 失败：任意时刻抛异常，由编排器统一按生成失败处理。

这样可以在不改会话代码的前提下接入更多厂商，测试时也可以直接传入普通协程函数。
"""

from typing import List, Protocol

from chat_core.domain.models import ChatMessage, GenerationResult


class GenerationOperation(Protocol):
    """生成操作协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - __call__(messages): 返回 GenerationResult 的协程。
    """

    name: str

    async def __call__(self, messages: List[ChatMessage]) -> GenerationResult:
        ...
