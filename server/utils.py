"""
Server Utilities
Helper functions for SSE encoding and network discovery.
"""

import json
import logging
import socket

logger = logging.getLogger(__name__)


def encode_sse(data: dict) -> str:
    """
    Encode data as Server-Sent Event (SSE) format.

    Format: data: {json}\n\n
    """
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def get_local_ip() -> str:
    """Best-effort LAN address used when printing the endpoint banner."""
    try:
        # UDP connect 不会真正发包，只用于确定出口网卡地址
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError as e:
        logger.warning(f"⚠️  无法获取本机 IP: {e}")
        return "127.0.0.1"
