"""领域层模型与协议。

包含：
- models: ChatMessage / GenerationResult / GenerationOutcome 模型。
- identifiers: 消息 ID 生成器。
- message_log: 有序消息日志及其不变量。
- exceptions: 业务异常类型定义。
"""
