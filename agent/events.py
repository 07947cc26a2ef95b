"""
进度事件

循环控制器在执行过程中依次产生的事件，调用方可以边收边渲染。
"""

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Dict, Union


@dataclass(frozen=True)
class IterationEvent:
    current: int
    max: int
    type: ClassVar[str] = "iteration"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class TextEvent:
    content: str
    type: ClassVar[str] = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class ThinkingEvent:
    content: str
    type: ClassVar[str] = "thinking"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class ActionEvent:
    description: str
    data: Dict[str, Any] = field(default_factory=dict)
    type: ClassVar[str] = "action"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class ErrorEvent:
    """致命错误，事件序列中的最后一个事件"""
    content: str
    type: ClassVar[str] = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class CompletedEvent:
    """正常结束，事件序列中的最后一个事件"""
    content: str = "Task completed successfully"
    type: ClassVar[str] = "complete"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **asdict(self)}


ProgressEvent = Union[
    IterationEvent, TextEvent, ThinkingEvent, ActionEvent, ErrorEvent, CompletedEvent
]

TERMINAL_EVENTS = (ErrorEvent, CompletedEvent)
