"""OpenAI 兼容 Provider 适配器。

本模块负责：

1. 接收会话传入的有序消息历史。
2. 将其转换为 /chat/completions 接口的请求格式。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 把响应包装为 GenerationResult：流式时为增量片段流，非流式时为完整字符串。

异常全部使用 domain.exceptions 中的业务异常，编排器会统一按生成失败处理。
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from chat_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from chat_core.domain.models import ChatMessage, GenerationResult


class OpenAICompatibleGenerator:
    """OpenAI 兼容接口的生成操作实现。

    - name: Provider 名称（供日志/调试使用）。
    - __call__: 会话编排器调用的统一入口。
    """

    name = "openai-compatible"

    def __init__(self, settings):
        # Settings 里包含 base_url、api_key、模型名、超时等配置
        self._settings = settings

    async def __call__(self, messages: List[ChatMessage]) -> GenerationResult:
        if not getattr(self._settings, "llm_api_key", None):
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(code="MISSING_API_KEY", message="LLM_API_KEY not set")
        payload = self._build_payload(messages)
        if getattr(self._settings, "llm_stream", True):
            return GenerationResult.stream(self._stream(payload))
        return GenerationResult.complete(await self._complete(payload))

    async def _complete(self, payload: Dict[str, Any]) -> str:
        """执行一次非流式调用，返回第一个候选回答的文本。"""

        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(self._url(), json=payload, headers=self._headers())
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="LLM rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            raise ApiError(code="EMPTY_CHOICES", message="Response contained no choices", http_status=502)
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    async def _stream(self, payload: Dict[str, Any]) -> AsyncIterator[str]:
        """执行一次流式调用，逐个 yield 文本增量。"""

        payload = dict(payload, stream=True)
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    self._url(),
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="LLM rate limit", http_status=429)
                    if resp.status_code >= 400:
                        body = await resp.aread()
                        raise ApiError(
                            code="API_ERROR",
                            message=body.decode("utf-8", errors="replace"),
                            http_status=resp.status_code,
                        )
                    async for line in resp.aiter_lines():
                        data_str = self._sse_data(line)
                        if data_str is None:
                            continue
                        if data_str == "[DONE]":
                            return
                        try:
                            chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        text = self._delta_text(chunk)
                        if text:
                            yield text
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    def _build_payload(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        return {
            "model": self._settings.llm_model,
            "messages": [m.to_payload() for m in messages],
            "temperature": self._settings.llm_temperature,
        }

    def _url(self) -> str:
        return f"{self._settings.llm_base_url.rstrip('/')}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.llm_api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _sse_data(line: str) -> Optional[str]:
        if not line:
            return None
        if line.startswith("data:"):
            line = line[5:]
        data_str = line.strip()
        return data_str or None

    @staticmethod
    def _delta_text(chunk: Dict[str, Any]) -> str:
        choices = chunk.get("choices") or []
        if not choices:
            return ""
        delta = choices[0].get("delta") or {}
        return delta.get("content") or ""
