"""
工具分发器 (Tool Dispatcher)
负责把模型的一次工具调用映射为一次 ActionExecutor 调用

- 动作集合固定，未知动作返回 "Unsupported action: <name>"
- 参数按动作校验，执行失败转换为 is_error=True 的工具结果，不向上抛出
- 所有会话共享同一把输入设备锁，保证同一时刻只有一个动作在操控鼠标键盘
"""

import base64
import logging
import threading
from typing import Any, Callable, Dict, Literal, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from computer.gui_action import ActionExecutor, MouseButton

from .blocks import ImageBlock, ImageSource, ToolResultBlock, ToolUseBlock
from .client import COMPUTER_TOOL_NAME
from .errors import ActionError

logger = logging.getLogger(__name__)

# 物理鼠标键盘只有一套，跨会话串行
INPUT_DEVICE_LOCK = threading.Lock()

ActionObserver = Callable[[str, Dict[str, Any]], None]

Coordinate = Tuple[int, int]


class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PointParams(_Params):
    coordinate: Coordinate


class DragParams(_Params):
    start_coordinate: Coordinate
    end_coordinate: Coordinate


class ScrollParams(_Params):
    coordinate: Optional[Coordinate] = None
    scroll_direction: Literal["up", "down"]
    scroll_amount: int = Field(ge=0)


class TextParams(_Params):
    text: str


class KeyParams(_Params):
    text: str = Field(min_length=1)


P = TypeVar("P", bound=_Params)

CLICK_BUTTONS = {
    "left_click": MouseButton.LEFT,
    "right_click": MouseButton.RIGHT,
    "middle_click": MouseButton.MIDDLE,
}


def _validate(model: Type[P], action: str, params: Dict[str, Any]) -> P:
    try:
        return model.model_validate(params)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        raise ActionError(f"Invalid parameters for {action}: {details}") from e


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


class ToolDispatcher:
    """
    Parameters:
    - executor: ActionExecutor 实现（如 GuiAction）
    - on_action: 可选的观察者，每次分发前以 (action, params) 同步调用，
      用于审计或界面展示，不影响执行结果
    - lock: 输入设备锁，默认使用进程级的 INPUT_DEVICE_LOCK
    """

    def __init__(
        self,
        executor: ActionExecutor,
        on_action: Optional[ActionObserver] = None,
        lock: Optional[threading.Lock] = None,
    ):
        self.executor = executor
        self.on_action = on_action
        self._lock = lock or INPUT_DEVICE_LOCK
        self._handlers: Dict[str, Callable[[str, Dict[str, Any]], Any]] = {
            "screenshot": self._screenshot,
            "mouse_move": self._mouse_move,
            "left_click": self._click,
            "right_click": self._click,
            "middle_click": self._click,
            "double_click": self._double_click,
            "left_click_drag": self._left_click_drag,
            "scroll": self._scroll,
            "type": self._type,
            "key": self._key,
        }

    @property
    def supported_actions(self) -> Tuple[str, ...]:
        return tuple(self._handlers)

    def dispatch(
        self,
        invocation: ToolUseBlock,
        cancelled: Optional[threading.Event] = None,
    ) -> ToolResultBlock:
        """
        执行一次工具调用

        Args:
            invocation: 模型返回的 tool_use 内容块
            cancelled: 可选的取消标记，拿到输入设备锁后若已设置则不再操控设备

        Returns:
            ToolResultBlock: 引用 invocation.id 的工具结果
        """
        action = invocation.action
        params = invocation.parameters
        self._notify(action, params)

        if invocation.name != COMPUTER_TOOL_NAME:
            return self._error(invocation, f"Unsupported tool: {invocation.name}")

        handler = self._handlers.get(action)
        if handler is None:
            logger.warning(f"不支持的动作: {action}")
            return self._error(invocation, f"Unsupported action: {action}")

        try:
            with self._lock:
                if cancelled is not None and cancelled.is_set():
                    logger.info(f"会话已取消，跳过动作: {action}")
                    return self._error(invocation, "Error: Cancelled")
                content = handler(action, params)
        except Exception as e:
            logger.error(f"动作执行失败: action={action}, params={params}, error={e!r}")
            return self._error(invocation, f"Error: {_describe(e)}")

        logger.info(f"动作执行完成: {action}")
        return ToolResultBlock(tool_use_id=invocation.id, content=content)

    def _notify(self, action: str, params: Dict[str, Any]) -> None:
        if self.on_action is None:
            return
        try:
            self.on_action(action, params)
        except Exception as e:
            logger.warning(f"动作观察者回调出错，已忽略: {e!r}")

    @staticmethod
    def _error(invocation: ToolUseBlock, message: str) -> ToolResultBlock:
        return ToolResultBlock(tool_use_id=invocation.id, content=message, is_error=True)

    # ==================== 动作实现 ====================

    def _screenshot(self, action: str, params: Dict[str, Any]):
        image = self.executor.capture_screen()
        data = base64.b64encode(image).decode("utf-8")
        return [ImageBlock(source=ImageSource(media_type="image/jpeg", data=data))]

    def _mouse_move(self, action: str, params: Dict[str, Any]) -> str:
        x, y = _validate(PointParams, action, params).coordinate
        self.executor.move_mouse(x, y)
        return "Mouse moved successfully"

    def _click(self, action: str, params: Dict[str, Any]) -> str:
        x, y = _validate(PointParams, action, params).coordinate
        self.executor.click_mouse(x, y, CLICK_BUTTONS[action])
        return "Mouse clicked successfully"

    def _double_click(self, action: str, params: Dict[str, Any]) -> str:
        x, y = _validate(PointParams, action, params).coordinate
        self.executor.double_click_mouse(x, y)
        return "Mouse double-clicked successfully"

    def _left_click_drag(self, action: str, params: Dict[str, Any]) -> str:
        drag = _validate(DragParams, action, params)
        (x0, y0), (x1, y1) = drag.start_coordinate, drag.end_coordinate
        self.executor.drag_mouse(x0, y0, x1, y1)
        return "Mouse drag completed successfully"

    def _scroll(self, action: str, params: Dict[str, Any]) -> str:
        scroll = _validate(ScrollParams, action, params)
        dy = scroll.scroll_amount if scroll.scroll_direction == "down" else -scroll.scroll_amount
        # 未指定坐标时在当前指针位置滚动
        x, y = scroll.coordinate if scroll.coordinate is not None else (None, None)
        self.executor.scroll(x, y, 0, dy)
        return "Mouse scroll completed successfully"

    def _type(self, action: str, params: Dict[str, Any]) -> str:
        text = _validate(TextParams, action, params).text
        self.executor.type_text(text)
        return f"Typed text: {text}"

    def _key(self, action: str, params: Dict[str, Any]) -> str:
        key = _validate(KeyParams, action, params).text
        self.executor.send_key(key)
        return f"Pressed key: {key}"
