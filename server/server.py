"""
HTTP Service - REST API Interface
  HTTP Request → HTTPService → TaskHandler → Agent

Endpoints:
- POST /chat: 执行任务，以 SSE 流式返回进度事件
- POST /screenshot: 获取当前屏幕 JPEG
- GET /health: 存活检查
"""

import logging
import secrets
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from config import config

from .handlers import TaskHandler, build_request_config
from .logging_config import setup_logging
from .messages import (
    MSG_NEED_QUERY,
    MSG_SCREENSHOT_FAILED,
    MSG_UNAUTHORIZED,
    format_exec_error,
    format_invalid_request,
)
from .utils import encode_sse, get_local_ip

logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


class HTTPService:
    """
    HTTP REST API service for remote execution.

    - Validates Bearer token authentication
    - Delegates task execution to TaskHandler
    - Returns SSE-streamed responses
    """

    def __init__(self, access_token: str, handler: Optional[TaskHandler] = None):
        self.access_token = access_token
        self.handler = handler or TaskHandler()
        self.app = FastAPI(title="Computer Pilot")
        self._setup_routes()

    def _setup_routes(self):
        self.app.post("/chat")(self._handle_chat)
        self.app.post("/screenshot")(self._handle_screenshot)
        self.app.get("/health")(self._handle_health)

    def _verify_token(self, request: Request) -> bool:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return False
        token = auth_header[len("Bearer "):]
        return secrets.compare_digest(token.encode("utf-8"), self.access_token.encode("utf-8"))

    @staticmethod
    def _unauthorized() -> Response:
        return Response(content=MSG_UNAUTHORIZED, status_code=401, media_type="text/plain")

    async def _handle_chat(self, request: Request):
        """
        Handle /chat endpoint.

        Request body:
        {
            "user_query": "open the browser",
            "model": "claude-sonnet-4-5-20250929",   # optional override
            "api_key": "sk-ant-xxx",                  # optional override
            "max_iterations": 10,                     # optional override
            "display_width": 1280,                    # optional override
            "display_height": 800,                    # optional override
            "system_prompt": "..."                    # optional override
        }
        """
        if not self._verify_token(request):
            logger.warning("❌ POST /chat - 认证失败 - 无效的 Bearer token")
            return self._unauthorized()

        try:
            data = await request.json()
            if not isinstance(data, dict):
                raise ValueError("request body must be a JSON object")
            user_query = str(data.get("user_query") or "").strip()
            request_config = build_request_config(data)
        except ValueError as e:
            logger.error(f"❌ POST /chat - 请求解析失败: {e}")
            return Response(
                content=encode_sse({"type": "error", "message": format_invalid_request(str(e))}),
                status_code=400,
                media_type="text/event-stream",
            )

        if not user_query:
            logger.warning("❌ POST /chat - user_query 为空")
            return Response(
                content=encode_sse({"type": "error", "message": MSG_NEED_QUERY}),
                status_code=400,
                media_type="text/event-stream",
            )

        logger.info(f"📨 POST /chat - 收到请求: {user_query[:80]}")

        async def stream_response():
            # 客户端断开时生成器被关闭，进而取消正在执行的会话
            messages = self.handler.execute_task(user_query, request_config)
            try:
                async for stream_msg in messages:
                    yield encode_sse(stream_msg.to_dict())
            finally:
                await messages.aclose()

        return StreamingResponse(stream_response(), media_type="text/event-stream", headers=SSE_HEADERS)

    async def _handle_screenshot(self, request: Request):
        """Return the current screen as JPEG."""
        if not self._verify_token(request):
            return self._unauthorized()

        try:
            image_data = await self.handler.capture_screenshot()
        except Exception as e:
            logger.error(f"❌ 截图失败: {e}", exc_info=True)
            return Response(
                content=f"{MSG_SCREENSHOT_FAILED}: {format_exec_error(str(e))}",
                status_code=500,
                media_type="text/plain",
            )
        return Response(content=image_data, media_type="image/jpeg")

    async def _handle_health(self):
        return JSONResponse({"status": "ok"})

    def get_app(self) -> FastAPI:
        return self.app


def create_app(access_token: Optional[str] = None, handler: Optional[TaskHandler] = None) -> FastAPI:
    """Create the FastAPI application, using the configured token when none is given."""
    return HTTPService(access_token or config.server.access_token, handler).get_app()


def main():
    """Run HTTP server with SSE for chat and HTTP polling for screenshots."""
    setup_logging(config.server.log_level)
    config.validate()

    host, port = config.server.host, config.server.port
    local_ip = get_local_ip()
    print("=" * 80)
    print(f"Chat SSE: POST http://{local_ip}:{port}/chat")
    print(f"Screenshot: POST http://{local_ip}:{port}/screenshot")
    print(f"Health: GET http://{local_ip}:{port}/health")
    print("")
    print(f"Access Token: {config.server.access_token}")
    print("All POST endpoints require 'Authorization: Bearer <token>'")
    print("=" * 80)

    uvicorn.run(create_app(), host=host, port=port, log_level=config.server.log_level.lower())


if __name__ == "__main__":
    main()
