"""
异常定义

- TransportError: 模型接口调用失败（致命，不重试）
- ProtocolError: 模型返回格式错误（致命）
- ActionError: 动作执行失败（可恢复，转换为 is_error 的工具结果）
"""

from typing import Optional


class AgentError(Exception):
    """Agent 相关异常的基类"""
    pass


class TransportError(AgentError):
    """模型接口返回非成功状态或网络失败"""

    def __init__(self, status_code: Optional[int], body: str):
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"API Error: {body}"
        else:
            message = f"API Error: {status_code} - {body}"
        super().__init__(message)


class ProtocolError(AgentError):
    """模型返回内容无法解析"""
    pass


class ActionError(AgentError):
    """动作参数非法或执行失败"""
    pass
