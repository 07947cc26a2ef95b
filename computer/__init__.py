"""
电脑操控模块

- ActionExecutor: 循环控制器依赖的屏幕/鼠标/键盘能力
- GuiAction: 基于 pyautogui 的默认实现
"""

from .gui_action import ActionExecutor, GuiAction, MouseButton, normalize_keys
from .screen_capture import capture_screen, encode_jpeg

__all__ = [
    "ActionExecutor",
    "GuiAction",
    "MouseButton",
    "normalize_keys",
    "capture_screen",
    "encode_jpeg",
]
