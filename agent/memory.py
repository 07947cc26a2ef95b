"""
对话记录 (Transcript Store)
存储当前会话与模型之间的完整对话

- 生命周期：单个会话内，会话结束即丢弃，不落盘
- 内容：用户初始消息、模型回复、工具执行结果
- 访问时机：每次调用模型接口时完整回放
"""

from typing import Any, Dict, Iterator, List, Optional, Tuple

from .blocks import ToolResultBlock, ToolUseBlock, Turn


class TranscriptStore:
    """
    只追加的对话记录

    已追加的 Turn 不会被修改或删除。
    """

    def __init__(self, seed_message: Optional[str] = None):
        self._turns: List[Turn] = []
        if seed_message is not None:
            self.append(Turn(role="user", content=seed_message))

    def append(self, turn: Turn) -> None:
        if self._turns and self._turns[-1].role == turn.role:
            raise ValueError(f"Consecutive '{turn.role}' turns are not allowed")
        self._turns.append(turn)

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def to_messages(self) -> List[Dict[str, Any]]:
        """转换为接口请求中的 messages 字段"""
        return [turn.to_dict() for turn in self._turns]

    def tool_use_ids(self) -> List[str]:
        """所有出现过的工具调用 id（按顺序）"""
        ids = []
        for turn in self._turns:
            if isinstance(turn.content, str):
                continue
            ids.extend(block.id for block in turn.content if isinstance(block, ToolUseBlock))
        return ids

    def tool_results(self) -> List[ToolResultBlock]:
        results = []
        for turn in self._turns:
            if isinstance(turn.content, str):
                continue
            results.extend(block for block in turn.content if isinstance(block, ToolResultBlock))
        return results

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))
