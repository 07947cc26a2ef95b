"""
统一消息文本定义
HTTP 接口返回给客户端的固定文本
"""

MSG_UNAUTHORIZED = "❌ Unauthorized"
MSG_NEED_QUERY = "user_query is required"
MSG_SCREENSHOT_FAILED = "❌ Failed to get screenshot"


def format_invalid_request(error: str) -> str:
    return f"Invalid request: {error}"


def format_exec_error(error: str) -> str:
    return f"❌ Execution error: {error}"
