"""
测试公共夹具

- FakeExecutor: 记录调用的 ActionExecutor，可按动作注入异常
- ScriptedClient: 按顺序返回预设回复的模型接口客户端
"""

import asyncio
import copy
import os
import sys
from typing import Any, Dict, List, Optional

import pytest

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agent.blocks import ModelReply, parse_reply


class FakeExecutor:
    def __init__(self, screen_size=(1280, 800), failures: Optional[Dict[str, Exception]] = None, lock=None):
        self.screen_size = screen_size
        self.failures = failures or {}
        self.calls: List[tuple] = []
        self.lock = lock
        self.lock_held: List[bool] = []

    def _record(self, name: str, *args):
        if self.lock is not None:
            self.lock_held.append(self.lock.locked())
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def capture_screen(self) -> bytes:
        self._record("capture_screen")
        return b"\xff\xd8fake-jpeg"

    def move_mouse(self, x, y):
        self._record("move_mouse", x, y)

    def click_mouse(self, x, y, button):
        self._record("click_mouse", x, y, button)

    def double_click_mouse(self, x, y):
        self._record("double_click_mouse", x, y)

    def drag_mouse(self, x0, y0, x1, y1):
        self._record("drag_mouse", x0, y0, x1, y1)

    def scroll(self, x, y, dx, dy):
        self._record("scroll", x, y, dx, dy)

    def type_text(self, text):
        self._record("type_text", text)

    def send_key(self, name):
        self._record("send_key", name)

    def get_screen_size(self):
        return self.screen_size


class ScriptedClient:
    """replies 中的元素可以是 dict（原始 JSON）、ModelReply 或异常"""

    def __init__(self, replies: List[Any], repeat_last: bool = False):
        self.replies = list(replies)
        self.repeat_last = repeat_last
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def create_message(self, messages, tools, system=None) -> ModelReply:
        self.calls.append({
            "messages": copy.deepcopy(messages),
            "tools": copy.deepcopy(tools),
            "system": system,
        })
        if len(self.replies) > 1 or not self.repeat_last:
            item = self.replies.pop(0)
        else:
            item = self.replies[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, dict):
            return parse_reply(item)
        return item

    async def aclose(self):
        self.closed = True


class BlockingClient:
    """create_message 一直挂起，用于测试取消"""

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False
        self.closed = False

    async def create_message(self, messages, tools, system=None):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise

    async def aclose(self):
        self.closed = True


def tool_use(tool_id: str, action: str, **params) -> Dict[str, Any]:
    return {"type": "tool_use", "id": tool_id, "name": "computer", "input": {"action": action, **params}}


def reply(*blocks, stop_reason: str = "tool_use") -> Dict[str, Any]:
    return {"content": list(blocks), "stop_reason": stop_reason}


def text(value: str) -> Dict[str, Any]:
    return {"type": "text", "text": value}


@pytest.fixture
def executor():
    return FakeExecutor()
