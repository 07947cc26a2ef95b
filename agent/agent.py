"""
Agent 主流程编排

实现循环执行架构：
1. 以用户消息初始化 TranscriptStore
2. Loop (直到模型结束或达到最大迭代次数):
   - 调用模型接口（携带完整对话记录与 computer 工具声明）
   - 按顺序逐个执行模型请求的动作（ToolDispatcher → ActionExecutor）
   - 将工具结果作为新的 user 轮次追加到对话记录
3. 返回终止结果 (SessionResult)

模型接口失败是致命的，单个动作失败则作为错误结果交还给模型继续处理。
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Tuple

from computer.gui_action import DEFAULT_SCREEN_SIZE, ActionExecutor

from .blocks import TextBlock, ThinkingBlock, ToolResultBlock, ToolUseBlock, Turn
from .client import DEFAULT_MAX_TOKENS, AnthropicClient, build_computer_tool
from .errors import ProtocolError, TransportError
from .events import (
    TERMINAL_EVENTS,
    ActionEvent,
    CompletedEvent,
    ErrorEvent,
    IterationEvent,
    ProgressEvent,
    TextEvent,
    ThinkingEvent,
)
from .executor import ActionObserver, ToolDispatcher
from .memory import TranscriptStore

logger = logging.getLogger(__name__)

SendCallback = Callable[[ProgressEvent], Awaitable[None]]


@dataclass
class AgentConfig:
    """单个会话的配置"""
    api_key: str
    model: str
    max_iterations: int = 10
    # 为 0 时使用 ActionExecutor 报告的屏幕尺寸
    display_width: int = 0
    display_height: int = 0
    display_number: int = 1
    max_tokens: int = DEFAULT_MAX_TOKENS
    system_prompt: str = ""
    base_url: Optional[str] = None

    def __post_init__(self):
        for name in ("max_iterations", "display_width", "display_height", "display_number", "max_tokens"):
            value = getattr(self, name)
            # bool 是 int 的子类，需要单独排除
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.display_width < 0 or self.display_height < 0:
            raise ValueError("display size must not be negative")


class SessionOutcome(str, Enum):
    COMPLETED = "completed"
    BUDGET_EXCEEDED = "budget_exceeded"
    TRANSPORT_ERROR = "transport_error"
    PROTOCOL_ERROR = "protocol_error"


@dataclass
class AgentSession:
    """会话状态，只由 Agent 修改，结束后丢弃"""
    transcript: TranscriptStore
    max_iterations: int
    tool_schema: Dict[str, Any]
    display_size: Tuple[int, int]
    iteration_count: int = 0
    session_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])


@dataclass
class SessionResult:
    outcome: SessionOutcome
    iterations: int
    transcript: Tuple[Turn, ...]
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome == SessionOutcome.COMPLETED


async def _discard(event: ProgressEvent) -> None:
    pass


class Agent:
    """
    Agent 循环控制器

    Parameters:
    - config: AgentConfig
    - executor: ActionExecutor 实现，负责截图和鼠标键盘操作
    - client: 可选的模型接口客户端；未提供时每个会话按 config 新建一个，
      会话结束即关闭
    - on_action: 可选的动作观察者，每次分发前同步调用
    """

    def __init__(
        self,
        config: AgentConfig,
        executor: ActionExecutor,
        client: Optional[AnthropicClient] = None,
        on_action: Optional[ActionObserver] = None,
    ):
        self.config = config
        self.executor = executor
        self.client = client
        self.dispatcher = ToolDispatcher(executor, on_action=on_action)
        self.session: Optional[AgentSession] = None
        self.result: Optional[SessionResult] = None

    def _create_client(self) -> AnthropicClient:
        return AnthropicClient(
            api_key=self.config.api_key,
            model=self.config.model,
            base_url=self.config.base_url,
            max_tokens=self.config.max_tokens,
        )

    def _new_session(self, user_query: str) -> AgentSession:
        width, height = self.config.display_width, self.config.display_height
        if not width or not height:
            try:
                width, height = self.executor.get_screen_size()
            except Exception as e:
                logger.warning(f"获取屏幕尺寸失败，使用默认值 {DEFAULT_SCREEN_SIZE}: {e!r}")
                width, height = DEFAULT_SCREEN_SIZE
        return AgentSession(
            transcript=TranscriptStore(user_query),
            max_iterations=self.config.max_iterations,
            tool_schema=build_computer_tool(width, height, self.config.display_number),
            display_size=(width, height),
        )

    async def run(self, user_query: str, send_callback: Optional[SendCallback] = None) -> SessionResult:
        """
        执行一个完整会话

        Args:
            user_query: 用户的初始消息
            send_callback: 进度事件回调，按顺序 await 每个事件

        Returns:
            SessionResult: 终止结果与完整对话记录
        """
        emit = send_callback or _discard
        session = self._new_session(user_query)
        self.session = session
        self.result = None
        client = self.client or self._create_client()
        logger.info(
            f"开始执行会话 {session.session_id}: {user_query[:100]} "
            f"(max_iterations={session.max_iterations}, display={session.display_size})"
        )

        try:
            while session.iteration_count < session.max_iterations:
                session.iteration_count += 1
                logger.info(f"第 {session.iteration_count}/{session.max_iterations} 次迭代")
                await emit(IterationEvent(current=session.iteration_count, max=session.max_iterations))

                try:
                    reply = await client.create_message(
                        session.transcript.to_messages(),
                        [session.tool_schema],
                        system=self.config.system_prompt or None,
                    )
                except TransportError as e:
                    return await self._fail(session, SessionOutcome.TRANSPORT_ERROR, str(e), emit)
                except ProtocolError as e:
                    return await self._fail(session, SessionOutcome.PROTOCOL_ERROR, f"Error: {e}", emit)

                assistant_turn = Turn(role="assistant", content=reply.content)

                for block in reply.content:
                    if isinstance(block, TextBlock):
                        await emit(TextEvent(content=block.text))
                    elif isinstance(block, ThinkingBlock):
                        await emit(ThinkingEvent(content=block.thinking))

                tool_uses = reply.tool_uses
                if not tool_uses:
                    session.transcript.append(assistant_turn)
                    return await self._complete(session, emit)

                results = await self._execute_round(tool_uses, emit)

                # 一轮的 assistant 回复与工具结果一起提交，取消时不会留下半轮记录
                session.transcript.append(assistant_turn)
                session.transcript.append(Turn(role="user", content=results))

                # 模型已声明结束时直接完成，不再把本轮结果交给模型
                if reply.is_end_turn:
                    return await self._complete(session, emit)

            message = f"Reached maximum iterations ({session.max_iterations})"
            logger.warning(message)
            return await self._fail(session, SessionOutcome.BUDGET_EXCEEDED, message, emit)

        except asyncio.CancelledError:
            logger.info(f"会话 {session.session_id} 已取消（第 {session.iteration_count} 次迭代）")
            raise
        finally:
            if client is not self.client:
                await client.aclose()

    async def _execute_round(self, tool_uses: List[ToolUseBlock], emit: SendCallback) -> List[ToolResultBlock]:
        """逐个执行本轮的工具调用（严格串行）"""
        loop = asyncio.get_running_loop()
        results: List[ToolResultBlock] = []
        for tool_use in tool_uses:
            await emit(ActionEvent(
                description=f"Executing: {tool_use.action}",
                data={"action": tool_use.action, "params": dict(tool_use.input)},
            ))
            # 动作在线程池中执行；取消时已开始的调用会执行完但结果被丢弃，
            # 仍在等待输入设备锁的调用则被跳过
            cancelled = threading.Event()
            try:
                result = await loop.run_in_executor(
                    None, partial(self.dispatcher.dispatch, tool_use, cancelled)
                )
            except asyncio.CancelledError:
                cancelled.set()
                raise
            logger.info(
                f"动作结果: id={tool_use.id}, action={tool_use.action}, is_error={result.is_error}"
            )
            results.append(result)
        return results

    async def _complete(self, session: AgentSession, emit: SendCallback) -> SessionResult:
        event = CompletedEvent()
        logger.info(f"会话 {session.session_id} 完成，共 {session.iteration_count} 次迭代")
        self.result = SessionResult(
            outcome=SessionOutcome.COMPLETED,
            iterations=session.iteration_count,
            transcript=session.transcript.turns,
            message=event.content,
        )
        await emit(event)
        return self.result

    async def _fail(
        self,
        session: AgentSession,
        outcome: SessionOutcome,
        message: str,
        emit: SendCallback,
    ) -> SessionResult:
        logger.error(f"会话 {session.session_id} 终止: {outcome.value} - {message}")
        self.result = SessionResult(
            outcome=outcome,
            iterations=session.iteration_count,
            transcript=session.transcript.turns,
            message=message,
        )
        await emit(ErrorEvent(content=message))
        return self.result

    async def stream(self, user_query: str) -> AsyncGenerator[ProgressEvent, None]:
        """
        以异步迭代器的形式返回进度事件

        会话在后台任务中执行，事件经由队列逐个交给调用方；
        每个事件发出后，后台任务要等调用方取下一个事件才继续执行，
        不会提前执行调用方尚未看到的动作。
        调用方提前关闭迭代器时后台任务被取消。执行结束后结果保存在 self.result。
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)

        async def send_callback(event: ProgressEvent):
            await queue.put(event)
            await queue.join()

        async def agent_task():
            cancelled = False
            try:
                await self.run(user_query, send_callback)
            except asyncio.CancelledError:
                cancelled = True
                raise
            finally:
                # 取消时调用方已离开，不再发送结束标记
                if not cancelled:
                    await queue.put(None)  # 结束标记

        task = asyncio.create_task(agent_task())
        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                yield item
                queue.task_done()
                if isinstance(item, TERMINAL_EVENTS):
                    break
            # 传播后台任务中的意外异常
            await task
        finally:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
