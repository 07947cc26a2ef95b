"""
业务处理层（核心协调者）
负责：
1. 合并请求配置与环境配置，构建 AgentConfig
2. 创建 ActionExecutor 与 Agent
3. 把 Agent 的进度事件转换为流式消息
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Dict, Optional

from agent.agent import Agent
from agent.events import CompletedEvent, ErrorEvent, ProgressEvent
from computer.gui_action import ActionExecutor, GuiAction
from config import config

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[], ActionExecutor]

# 请求体中允许覆盖的 AgentConfig 字段
OVERRIDABLE_FIELDS = (
    "model",
    "api_key",
    "max_iterations",
    "display_width",
    "display_height",
    "system_prompt",
)


@dataclass
class StreamMessage:
    """流式消息"""
    role: str
    output: dict
    is_complete: bool = False
    is_error: bool = False
    error_message: str = ""

    @classmethod
    def from_event(cls, event: ProgressEvent) -> "StreamMessage":
        is_error = isinstance(event, ErrorEvent)
        return cls(
            role=event.type,
            output=event.to_dict(),
            is_complete=isinstance(event, CompletedEvent),
            is_error=is_error,
            error_message=event.content if is_error else "",
        )

    @classmethod
    def error(cls, message: str) -> "StreamMessage":
        return cls(
            role="error",
            output={"type": "error", "content": message},
            is_error=True,
            error_message=message,
        )

    def to_dict(self) -> dict:
        return {
            "type": "message",
            "role": self.role,
            "output": self.output,
            "is_complete": self.is_complete,
            "is_error": self.is_error,
        }


class TaskHandler:
    """
    任务处理器

    Parameters:
    - executor_factory: 创建 ActionExecutor 的工厂，默认使用 GuiAction
    """

    def __init__(self, executor_factory: Optional[ExecutorFactory] = None):
        self.executor_factory = executor_factory or GuiAction
        self._executor: Optional[ActionExecutor] = None

    @property
    def executor(self) -> ActionExecutor:
        # 延迟创建，避免无桌面环境下导入时就加载 pyautogui
        if self._executor is None:
            self._executor = self.executor_factory()
        return self._executor

    async def execute_task(
        self,
        query: str,
        request_config: Optional[Dict[str, Any]] = None,
    ) -> AsyncGenerator[StreamMessage, None]:
        """
        执行任务（完整流程）

        Args:
            query: 用户查询
            request_config: 请求级配置覆盖

        Yields:
            StreamMessage: 流式消息，最后一条 is_complete 或 is_error 为 True
        """
        logger.info(f"⚙️  开始执行任务: {query[:100]}")

        try:
            agent_config = config.get_agent_config(request_config)
            agent = Agent(agent_config, self.executor)
        except Exception as e:
            logger.error(f"❌ 创建 Agent 失败: {e}", exc_info=True)
            yield StreamMessage.error(str(e))
            return

        events = agent.stream(query)
        try:
            async for event in events:
                stream_msg = StreamMessage.from_event(event)
                logger.debug(
                    f"📤 流消息 - role: {stream_msg.role}, "
                    f"is_complete: {stream_msg.is_complete}, is_error: {stream_msg.is_error}"
                )
                yield stream_msg
        except asyncio.CancelledError:
            logger.info("🛑 客户端断开，任务已取消")
            raise
        except Exception as e:
            logger.error(f"❌ Agent 执行错误: {e}", exc_info=True)
            yield StreamMessage.error(str(e))
            return
        finally:
            await events.aclose()

        if agent.result is not None:
            logger.info(f"✅ 任务结束: {agent.result.outcome.value}, 迭代 {agent.result.iterations} 次")

    async def capture_screenshot(self) -> bytes:
        """在线程池中截取当前屏幕，返回 JPEG 数据"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.executor.capture_screen)


def build_request_config(data: Dict[str, Any]) -> Dict[str, Any]:
    """从请求体中提取配置覆盖项"""
    request_config = {}
    for key in OVERRIDABLE_FIELDS:
        if key in data and data[key] is not None:
            request_config[key] = data[key]
            if key == "api_key":
                logger.debug("   API key 覆盖")
            else:
                logger.debug(f"   {key} 覆盖: {data[key]}")
    return request_config
