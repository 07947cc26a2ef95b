import os
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from agent.agent import AgentConfig

# 加载 .env 文件
load_dotenv()

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


@dataclass
class ModelConfig:
    """模型配置"""
    api_key: str
    model: str = DEFAULT_MODEL
    base_url: Optional[str] = None
    max_tokens: int = 4096

    def is_complete(self) -> bool:
        """检查配置是否完整"""
        return bool(self.model and self.api_key)


@dataclass
class ComputerConfig:
    """电脑操控配置"""
    max_iterations: int = 10  # Agent 最大迭代次数
    display_width: int = 0  # 0 表示使用实际屏幕尺寸
    display_height: int = 0
    display_number: int = 1
    system_prompt: str = ""

    def is_complete(self) -> bool:
        """检查配置是否完整"""
        return self.max_iterations >= 1 and self.display_width >= 0 and self.display_height >= 0


@dataclass
class ServerConfig:
    """服务器配置（HTTP API 服务）"""
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    access_token: str = ""

    def is_complete(self) -> bool:
        """检查配置是否完整"""
        return bool(self.host and self.port and self.access_token)


class Config:
    """统一配置管理器"""

    def __init__(self):
        # 服务器配置（HTTP API 服务）
        self.server = ServerConfig(
            host=os.getenv("SERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("SERVER_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            # 未配置时生成 64 字符的随机 Access Token
            access_token=os.getenv("ACCESS_TOKEN", "") or secrets.token_hex(32),
        )

        # 模型配置
        self.model = ModelConfig(
            api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            model=os.getenv("ANTHROPIC_MODEL", DEFAULT_MODEL),
            base_url=os.getenv("ANTHROPIC_BASE_URL") or None,
            max_tokens=int(os.getenv("MAX_TOKENS", "4096")),
        )

        # 电脑操控配置
        self.computer = ComputerConfig(
            max_iterations=int(os.getenv("MAX_ITERATIONS", "10")),
            display_width=int(os.getenv("DISPLAY_WIDTH", "0")),
            display_height=int(os.getenv("DISPLAY_HEIGHT", "0")),
            display_number=int(os.getenv("DISPLAY_NUMBER", "1")),
            system_prompt=os.getenv("SYSTEM_PROMPT", ""),
        )

    def validate(self) -> Dict[str, bool]:
        """验证配置，返回各部分的验证结果"""
        results = {}

        if self.server.is_complete():
            print("✅ 服务器配置正常")
            results["server"] = True
        else:
            print("❌ 服务器配置不完整")
            results["server"] = False

        if self.model.is_complete():
            print(f"✅ 模型配置正常: {self.model.model}")
            results["model"] = True
        else:
            print("❌ 模型配置不完整（缺少 ANTHROPIC_API_KEY 或 ANTHROPIC_MODEL）")
            results["model"] = False

        if self.computer.is_complete():
            print(f"✅ 电脑操控配置正常，最大迭代次数: {self.computer.max_iterations}")
            results["computer"] = True
        else:
            print("❌ 电脑操控配置不正确")
            results["computer"] = False

        return results

    def get_agent_config(self, override: Optional[Dict[str, Any]] = None) -> AgentConfig:
        """获取 Agent 配置，支持请求覆盖（请求值 > 环境变量 > 默认值）

        Args:
            override: 可选的覆盖配置，键为 AgentConfig 的字段名
        """
        config_dict: Dict[str, Any] = {
            "api_key": self.model.api_key,
            "model": self.model.model,
            "base_url": self.model.base_url,
            "max_tokens": self.model.max_tokens,
            "max_iterations": self.computer.max_iterations,
            "display_width": self.computer.display_width,
            "display_height": self.computer.display_height,
            "display_number": self.computer.display_number,
            "system_prompt": self.computer.system_prompt,
        }

        if override:
            for key, value in override.items():
                if value is not None and value != "" and key in config_dict:
                    config_dict[key] = value

        return AgentConfig(**config_dict)


# 全局配置实例
config = Config()
