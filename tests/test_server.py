"""
HTTP 接口与任务处理器测试
"""

import json
import logging

import pytest
from fastapi.testclient import TestClient

from agent.events import CompletedEvent, ErrorEvent, IterationEvent, TextEvent
from config import Config
from server import handlers
from server.handlers import StreamMessage, TaskHandler, build_request_config
from server.logging_config import setup_logging
from server.server import create_app
from conftest import FakeExecutor

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


class FakeHandler(TaskHandler):
    def __init__(self, messages=None, screenshot_error=None):
        super().__init__(executor_factory=FakeExecutor)
        self.messages = messages or []
        self.screenshot_error = screenshot_error
        self.calls = []

    async def execute_task(self, query, request_config=None):
        self.calls.append((query, request_config))
        for message in self.messages:
            yield message

    async def capture_screenshot(self):
        if self.screenshot_error:
            raise self.screenshot_error
        return await super().capture_screenshot()


def sse_payloads(body: str):
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


@pytest.fixture
def handler():
    return FakeHandler(messages=[
        StreamMessage.from_event(IterationEvent(current=1, max=10)),
        StreamMessage.from_event(TextEvent(content="Opening the browser")),
        StreamMessage.from_event(CompletedEvent()),
    ])


@pytest.fixture
def client(handler):
    return TestClient(create_app(access_token=TOKEN, handler=handler))


def test_chat_requires_bearer_token(client, handler):
    assert client.post("/chat", json={"user_query": "hi"}).status_code == 401
    assert client.post("/chat", json={"user_query": "hi"}, headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert handler.calls == []


def test_chat_requires_query(client, handler):
    response = client.post("/chat", json={"user_query": "   "}, headers=AUTH)

    assert response.status_code == 400
    assert sse_payloads(response.text) == [{"type": "error", "message": "user_query is required"}]
    assert handler.calls == []


def test_chat_rejects_invalid_json(client):
    response = client.post("/chat", content=b"{not json", headers={**AUTH, "Content-Type": "application/json"})

    assert response.status_code == 400


def test_chat_streams_progress_events(client, handler):
    response = client.post(
        "/chat",
        json={"user_query": "open the browser", "model": "claude-x", "max_iterations": 4, "unknown": 1},
        headers=AUTH,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert sse_payloads(response.text) == [
        {
            "type": "message",
            "role": "iteration",
            "output": {"type": "iteration", "current": 1, "max": 10},
            "is_complete": False,
            "is_error": False,
        },
        {
            "type": "message",
            "role": "text",
            "output": {"type": "text", "content": "Opening the browser"},
            "is_complete": False,
            "is_error": False,
        },
        {
            "type": "message",
            "role": "complete",
            "output": {"type": "complete", "content": "Task completed successfully"},
            "is_complete": True,
            "is_error": False,
        },
    ]
    assert handler.calls == [("open the browser", {"model": "claude-x", "max_iterations": 4})]


def test_screenshot_returns_jpeg(client):
    response = client.post("/screenshot", headers=AUTH)

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.content == b"\xff\xd8fake-jpeg"


def test_screenshot_requires_token(client):
    assert client.post("/screenshot").status_code == 401


def test_screenshot_failure_returns_500():
    app = create_app(access_token=TOKEN, handler=FakeHandler(screenshot_error=OSError("no display")))

    response = TestClient(app).post("/screenshot", headers=AUTH)

    assert response.status_code == 500
    assert "no display" in response.text


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_error_event_message():
    message = StreamMessage.from_event(ErrorEvent(content="API Error: 500 - boom"))

    assert message.is_error
    assert not message.is_complete
    assert message.error_message == "API Error: 500 - boom"
    assert message.to_dict()["output"] == {"type": "error", "content": "API Error: 500 - boom"}


def test_build_request_config_ignores_missing_and_unknown():
    assert build_request_config({"user_query": "x", "api_key": "k", "model": None, "foo": 1}) == {"api_key": "k"}


@pytest.mark.asyncio
async def test_task_handler_reports_invalid_config(monkeypatch):
    monkeypatch.setattr(handlers, "config", Config())
    handler = TaskHandler(executor_factory=FakeExecutor)

    messages = [m async for m in handler.execute_task("hello", {"max_iterations": 0})]

    assert len(messages) == 1
    assert messages[0].is_error
    assert "max_iterations" in messages[0].error_message


@pytest.mark.asyncio
async def test_task_handler_converts_agent_events(monkeypatch):
    created = []

    class StubAgent:
        def __init__(self, agent_config, executor):
            self.config = agent_config
            self.executor = executor
            self.result = None
            created.append(self)

        async def stream(self, query):
            yield IterationEvent(current=1, max=self.config.max_iterations)
            yield CompletedEvent()

    monkeypatch.setattr(handlers, "Agent", StubAgent)
    handler = TaskHandler(executor_factory=FakeExecutor)

    messages = [m async for m in handler.execute_task("hello", {"max_iterations": 2})]

    assert [m.role for m in messages] == ["iteration", "complete"]
    assert messages[0].output == {"type": "iteration", "current": 1, "max": 2}
    assert messages[-1].is_complete
    assert isinstance(created[0].executor, FakeExecutor)


@pytest.mark.asyncio
async def test_task_handler_converts_unexpected_errors(monkeypatch):
    class ExplodingAgent:
        def __init__(self, agent_config, executor):
            self.result = None

        async def stream(self, query):
            raise RuntimeError("executor crashed")
            yield  # pragma: no cover

    monkeypatch.setattr(handlers, "Agent", ExplodingAgent)
    handler = TaskHandler(executor_factory=FakeExecutor)

    messages = [m async for m in handler.execute_task("hello")]

    assert len(messages) == 1
    assert messages[0].is_error
    assert messages[0].error_message == "executor crashed"


def test_config_precedence(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
    monkeypatch.setenv("MAX_ITERATIONS", "7")
    monkeypatch.setenv("DISPLAY_WIDTH", "1280")
    monkeypatch.delenv("ANTHROPIC_MODEL", raising=False)

    agent_config = Config().get_agent_config({"max_iterations": 3, "api_key": "", "model": None, "other": 1})

    assert agent_config.max_iterations == 3
    assert agent_config.api_key == "env-key"
    assert agent_config.model == "claude-sonnet-4-5-20250929"
    assert agent_config.display_width == 1280


def test_config_generates_access_token(monkeypatch):
    monkeypatch.delenv("ACCESS_TOKEN", raising=False)

    token = Config().server.access_token

    assert len(token) == 64


def test_setup_logging_writes_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("DEBUG", log_file="test.log", log_dir=str(tmp_path))
        logging.getLogger("agent.test").info("hello log")
        for h in root.handlers:
            h.flush()

        content = (tmp_path / "test.log").read_text(encoding="utf-8")
        assert "hello log" in content
        assert "agent.test" in content
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for h in root.handlers:
            h.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_chat_rejects_token_with_matching_prefix(client, handler):
    headers = {"Authorization": f"Bearer {TOKEN}-extra"}

    assert client.post("/chat", json={"user_query": "hi"}, headers=headers).status_code == 401
    assert client.post("/screenshot", headers={"Authorization": f"Bearer {TOKEN[:-1]}"}).status_code == 401
    assert handler.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [2.5, "3", True])
async def test_task_handler_rejects_non_integer_iterations(monkeypatch, value):
    monkeypatch.setattr(handlers, "config", Config())
    handler = TaskHandler(executor_factory=FakeExecutor)

    messages = [m async for m in handler.execute_task("hello", {"max_iterations": value})]

    assert len(messages) == 1
    assert messages[0].is_error
    assert messages[0].error_message.startswith("max_iterations must be an integer")
