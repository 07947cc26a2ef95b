import io

from PIL import Image

# 截图大小上限（字节），超过后逐步降低 JPEG 质量
MAX_SCREENSHOT_BYTES = 5 * 1024 * 1024
JPEG_QUALITIES = (85, 75, 65, 55, 45, 35)


def encode_jpeg(image: Image.Image, max_bytes: int = MAX_SCREENSHOT_BYTES) -> bytes:
    # JPEG 不支持透明通道
    image = image.convert("RGB")
    data = b""
    for quality in JPEG_QUALITIES:
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=quality)
        data = buffer.getvalue()
        if len(data) <= max_bytes:
            return data
    # 最低质量仍超限时返回最低质量的结果
    return data


def capture_screen(size=None) -> bytes:
    import pyautogui

    # 截取整个屏幕
    screenshot = pyautogui.screenshot()
    # 截图尺寸与屏幕尺寸可能不一致（高分屏），需要调整截图大小以适应屏幕坐标
    screenshot = screenshot.resize(size or pyautogui.size())
    return encode_jpeg(screenshot)
