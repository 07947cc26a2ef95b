"""
Agent 核心模块

会话循环引擎，包含：
- Agent: 主流程编排（循环调用模型并执行动作）
- AnthropicClient: 模型接口客户端
- ToolDispatcher: 工具分发器（把工具调用映射到电脑操控）
- TranscriptStore: 对话记录（单会话生命周期）
"""

from .agent import Agent, AgentConfig, AgentSession, SessionOutcome, SessionResult
from .blocks import (
    ImageBlock,
    ModelReply,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from .client import AnthropicClient, build_computer_tool
from .errors import ActionError, AgentError, ProtocolError, TransportError
from .events import (
    ActionEvent,
    CompletedEvent,
    ErrorEvent,
    IterationEvent,
    ProgressEvent,
    TextEvent,
    ThinkingEvent,
)
from .executor import INPUT_DEVICE_LOCK, ToolDispatcher
from .memory import TranscriptStore

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentSession",
    "SessionOutcome",
    "SessionResult",
    "ImageBlock",
    "ModelReply",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "Turn",
    "AnthropicClient",
    "build_computer_tool",
    "ActionError",
    "AgentError",
    "ProtocolError",
    "TransportError",
    "ActionEvent",
    "CompletedEvent",
    "ErrorEvent",
    "IterationEvent",
    "ProgressEvent",
    "TextEvent",
    "ThinkingEvent",
    "INPUT_DEVICE_LOCK",
    "ToolDispatcher",
    "TranscriptStore",
]
