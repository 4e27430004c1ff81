"""生成操作集成层。

该包下的模块负责：
- 定义生成操作抽象接口 (base)。
- 提供具体实现 (如 openai_compatible)。
"""

from typing import Optional

from chat_core.config.settings import Settings, settings
from chat_core.providers.base import GenerationOperation
from chat_core.providers.openai_compatible import OpenAICompatibleGenerator


def create_generator(config: Optional[Settings] = None) -> GenerationOperation:
    """根据配置创建生成操作实例，默认取全局配置。"""

    return OpenAICompatibleGenerator(config or settings)


__all__ = ["GenerationOperation", "OpenAICompatibleGenerator", "create_generator"]
