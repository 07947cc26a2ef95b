"""
模型接口客户端 (Model Endpoint Client)

将对话记录、computer 工具声明、系统提示序列化为一次 Messages 请求，
并把返回的 JSON 解码为 ModelReply。

- 非 2xx 状态 / 网络失败 → TransportError（包含状态码与响应体）
- 返回内容格式错误 → ProtocolError
- 不做重试，失败由调用方重新开启会话
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .blocks import ModelReply, parse_reply
from .errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
MESSAGES_PATH = "/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
COMPUTER_USE_BETA = "computer-use-2025-01-24"
COMPUTER_TOOL_TYPE = "computer_20250124"
COMPUTER_TOOL_NAME = "computer"
DEFAULT_MAX_TOKENS = 4096

# 超时配置（秒），模型回复可能较慢
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 180.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_POOL_TIMEOUT = 10.0


def build_computer_tool(display_width: int, display_height: int, display_number: int = 1) -> Dict[str, Any]:
    """构建 computer 工具声明"""
    return {
        "type": COMPUTER_TOOL_TYPE,
        "name": COMPUTER_TOOL_NAME,
        "display_width_px": display_width,
        "display_height_px": display_height,
        "display_number": display_number,
    }


class AnthropicClient:
    """
    Messages 接口的异步客户端

    Parameters:
    - api_key: 接口密钥（x-api-key）
    - model: 模型名称
    - base_url: 接口地址，默认官方地址
    - max_tokens: 单次回复的输出上限
    - transport: 可选的 httpx 传输层（测试时注入 MockTransport）
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens

        timeout = httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT,
            read=DEFAULT_READ_TIMEOUT,
            write=DEFAULT_WRITE_TIMEOUT,
            pool=DEFAULT_POOL_TIMEOUT,
        )
        self._client = httpx.AsyncClient(
            base_url=(base_url or DEFAULT_BASE_URL).rstrip("/"),
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "anthropic-beta": COMPUTER_USE_BETA,
                "content-type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def build_payload(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        system: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "tools": tools,
        }
        if system:
            payload["system"] = system
        return payload

    async def create_message(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        system: Optional[str] = None,
    ) -> ModelReply:
        """
        发送一次请求

        Args:
            messages: 完整对话记录
            tools: 工具声明列表
            system: 可选的系统提示

        Returns:
            ModelReply: 解码后的回复

        Raises:
            TransportError: 非成功状态或网络错误
            ProtocolError: 返回内容格式错误
        """
        payload = self.build_payload(messages, tools, system)
        logger.debug(f"发送请求: model={self.model}, messages={len(messages)}")

        try:
            response = await self._client.post(MESSAGES_PATH, json=payload)
        except httpx.RequestError as e:
            logger.error(f"请求失败: {e!r}")
            raise TransportError(None, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            logger.error(f"接口返回错误: {response.status_code} - {response.text}")
            raise TransportError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(f"Response body is not valid JSON: {e}") from e

        reply = parse_reply(data)
        logger.debug(
            f"收到回复: blocks={len(reply.content)}, tool_uses={len(reply.tool_uses)}, "
            f"stop_reason={reply.stop_reason}"
        )
        return reply

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AnthropicClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
