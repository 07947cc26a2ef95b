"""
电脑操控 (Action Executor)

ActionExecutor 定义了循环控制器需要的屏幕/鼠标/键盘能力，
GuiAction 是基于 pyautogui 的默认实现。
"""

import logging
import platform
import time
from enum import Enum
from typing import List, Optional, Protocol, Tuple

from .screen_capture import capture_screen

logger = logging.getLogger(__name__)

# 无法读取屏幕尺寸时使用的默认值
DEFAULT_SCREEN_SIZE = (1920, 1080)

# 模型使用的按键名（xdotool 风格）到 pyautogui 按键名的映射
KEY_ALIASES = {
    "return": "enter",
    "kp_enter": "enter",
    "escape": "esc",
    "back_space": "backspace",
    "page_up": "pageup",
    "prior": "pageup",
    "page_down": "pagedown",
    "next": "pagedown",
    "control": "ctrl",
    "control_l": "ctrl",
    "control_r": "ctrlright",
    "alt_l": "alt",
    "alt_r": "altright",
    "shift_l": "shift",
    "shift_r": "shiftright",
    "super": "win",
    "super_l": "win",
    "meta": "win",
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
    "minus": "-",
    "plus": "+",
    "equal": "=",
    "comma": ",",
    "period": ".",
    "slash": "/",
}


class MouseButton(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    MIDDLE = "middle"


class ActionExecutor(Protocol):
    """宿主提供的屏幕与输入设备能力，任何失败都以异常形式抛出"""

    def capture_screen(self) -> bytes: ...

    def move_mouse(self, x: int, y: int) -> None: ...

    def click_mouse(self, x: int, y: int, button: MouseButton) -> None: ...

    def double_click_mouse(self, x: int, y: int) -> None: ...

    def drag_mouse(self, x0: int, y0: int, x1: int, y1: int) -> None: ...

    def scroll(self, x: Optional[int], y: Optional[int], dx: int, dy: int) -> None: ...

    def type_text(self, text: str) -> None: ...

    def send_key(self, name: str) -> None: ...

    def get_screen_size(self) -> Tuple[int, int]: ...


def normalize_keys(name: str, controlled_os: str) -> List[str]:
    """
    将 "ctrl+s"、"Return" 这类按键描述拆分并转换为 pyautogui 按键名

    Raises:
        ValueError: 按键描述为空
    """
    keys = []
    for part in name.split("+"):
        key = part.strip()
        if not key:
            continue
        lowered = key.lower()
        lowered = KEY_ALIASES.get(lowered, lowered)
        # macOS 上 cmd/super 对应 command 键
        if controlled_os == "Darwin" and lowered in ("cmd", "win"):
            lowered = "command"
        keys.append(lowered)
    if not keys:
        raise ValueError(f"Invalid key: {name!r}")
    return keys


class GuiAction:
    """基于 pyautogui 的 ActionExecutor 实现"""

    def __init__(self, controlled_os: Optional[str] = None):
        import pyautogui

        self._gui = pyautogui
        # 系统类型：Darwin(Macos), Windows, Linux
        self.controlled_os = controlled_os or platform.system()

    def capture_screen(self) -> bytes:
        return capture_screen(self.get_screen_size())

    def move_mouse(self, x: int, y: int) -> None:
        self._gui.moveTo(x, y)

    def click_mouse(self, x: int, y: int, button: MouseButton = MouseButton.LEFT) -> None:
        self._gui.click(x, y, button=MouseButton(button).value)

    def double_click_mouse(self, x: int, y: int) -> None:
        self._gui.doubleClick(x, y)

    def drag_mouse(self, x0: int, y0: int, x1: int, y1: int) -> None:
        self._gui.moveTo(x0, y0)
        self._gui.dragTo(x1, y1, duration=0.5, button="left")

    def scroll(self, x: Optional[int], y: Optional[int], dx: int, dy: int) -> None:
        # dy 为正表示向下滚动，pyautogui 中正值表示向上
        if dy:
            self._gui.scroll(-dy, x=x, y=y)
        if dx:
            self._gui.hscroll(dx, x=x, y=y)

    def type_text(self, text: str) -> None:
        import pyperclip

        # 通过剪贴板粘贴输入，支持中文等非 ASCII 字符
        pyperclip.copy(text)
        time.sleep(0.1)
        if self.controlled_os == "Darwin":
            self._gui.hotkey("command", "v")
        else:
            self._gui.hotkey("ctrl", "v")

    def send_key(self, name: str) -> None:
        keys = normalize_keys(name, self.controlled_os)
        if len(keys) == 1:
            self._gui.press(keys[0])
        else:
            self._gui.hotkey(*keys)

    def get_screen_size(self) -> Tuple[int, int]:
        try:
            width, height = self._gui.size()
            return int(width), int(height)
        except Exception as e:
            logger.warning(f"获取屏幕尺寸失败，使用默认值 {DEFAULT_SCREEN_SIZE}: {e}")
            return DEFAULT_SCREEN_SIZE
