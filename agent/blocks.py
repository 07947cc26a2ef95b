"""
对话内容块 (Content Blocks)

模型返回的 content 数组在接口适配层解码一次，得到封闭的带标签联合类型，
循环控制器只处理这些类型，不直接处理原始字典。

- TextBlock: 模型的文字说明
- ThinkingBlock / RedactedThinkingBlock: 推理过程
- ToolUseBlock: 工具调用请求（只由模型产生）
- ToolResultBlock: 工具执行结果（只由 ToolDispatcher 产生）
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import ProtocolError


class _Block(BaseModel):
    # 保留未知字段，保证回放给模型时内容不变
    model_config = ConfigDict(extra="allow", frozen=True)


class TextBlock(_Block):
    type: Literal["text"] = "text"
    text: str


class ThinkingBlock(_Block):
    type: Literal["thinking"] = "thinking"
    thinking: str
    signature: Optional[str] = None


class RedactedThinkingBlock(_Block):
    type: Literal["redacted_thinking"] = "redacted_thinking"
    data: str


class ToolUseBlock(_Block):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)

    @property
    def action(self) -> str:
        return str(self.input.get("action", ""))

    @property
    def parameters(self) -> Dict[str, Any]:
        """除 action 以外的调用参数"""
        return {k: v for k, v in self.input.items() if k != "action"}


class ImageSource(_Block):
    type: Literal["base64"] = "base64"
    media_type: str = "image/jpeg"
    data: str


class ImageBlock(_Block):
    type: Literal["image"] = "image"
    source: ImageSource


class ToolResultBlock(_Block):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: Union[str, List[ImageBlock]]
    is_error: bool = False

    @property
    def is_image(self) -> bool:
        return not isinstance(self.content, str)


ContentBlock = Annotated[
    Union[TextBlock, ThinkingBlock, RedactedThinkingBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]

_content_adapter = TypeAdapter(List[ContentBlock])


class Turn(BaseModel):
    """一轮对话，追加到 TranscriptStore 之后不再修改"""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: Union[str, List[ContentBlock]]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ModelReply(BaseModel):
    """模型接口的一次返回"""
    model_config = ConfigDict(frozen=True)

    content: List[ContentBlock]
    stop_reason: Optional[str] = None

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    @property
    def is_end_turn(self) -> bool:
        return self.stop_reason == "end_turn"


def parse_content(raw: Any) -> List[ContentBlock]:
    """将原始 content 数组解码为内容块列表"""
    try:
        return _content_adapter.validate_python(raw)
    except ValidationError as e:
        raise ProtocolError(f"Malformed content blocks: {e}") from e


def parse_reply(data: Any) -> ModelReply:
    """
    解析模型接口返回的 JSON

    Args:
        data: response.json() 的结果

    Returns:
        ModelReply

    Raises:
        ProtocolError: 返回不是对象，或缺少 content 数组，或内容块不合法
    """
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")
    if not isinstance(data.get("content"), list):
        raise ProtocolError("Response is missing the 'content' array")

    stop_reason = data.get("stop_reason")
    if stop_reason is not None and not isinstance(stop_reason, str):
        raise ProtocolError(f"Invalid stop_reason: {stop_reason!r}")

    return ModelReply(content=parse_content(data["content"]), stop_reason=stop_reason)
