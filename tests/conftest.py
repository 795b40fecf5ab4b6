"""
测试公共组件 - 脚本化的LLM、临时仓库、探针工具
"""
import asyncio
from typing import Any, Dict, List, Optional

import pytest

from secretary.config_loader import AgentSettings
from secretary.core.agent_loop import Agent
from secretary.core.types import AgentEvent, Turn
from secretary.storage import LocalVault
from secretary.tools.base import ToolBuilder, ToolInvocation, ToolKind


class FakeLLM:
    """按顺序返回预设回复的LLM；回复可以是异常"""

    def __init__(self, replies: Optional[List[Any]] = None, default: str = "Still thinking."):
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[List[Turn]] = []
        self.models: List[str] = []
        self.api_key = "test-key"
        self.model = "test/model"
        self.block = False
        # 为 True 时每次回复前让出一次事件循环
        self.pause = False
        self.base_url = "https://openrouter.ai/api/v1"
        self.closed = 0
        self._started: Optional[asyncio.Event] = None

    @property
    def started(self) -> asyncio.Event:
        if self._started is None:
            self._started = asyncio.Event()
        return self._started

    async def complete(self, turns: List[Turn]) -> str:
        self.calls.append(list(turns))
        self.started.set()
        if self.block:
            await asyncio.Event().wait()
        if self.pause:
            await asyncio.sleep(0)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    def with_model(self, model: str) -> "FakeLLM":
        self.models.append(model)
        return self

    def update_settings(self, api_key: Optional[str], model: str, base_url: Optional[str] = None) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url or self.base_url

    async def close(self) -> None:
        self.closed += 1

    async def transcribe(self, audio: bytes, fmt: str, model: str) -> str:
        self.models.append(model)
        return f"{len(audio)} bytes of {fmt}"


class SpyInvocation(ToolInvocation):
    async def run(self, cancellation_event: asyncio.Event) -> Any:
        self.tool.calls.append(dict(self.params))
        if isinstance(self.tool.result, Exception):
            raise self.tool.result
        return self.tool.result


class SpyTool(ToolBuilder):
    """记录调用参数的探针工具"""
    invocation_class = SpyInvocation

    def __init__(self, name: str, kind: ToolKind = ToolKind.READ, result: Any = "ok"):
        super().__init__(name=name, description=f"spy for {name}", kind=kind)
        self.calls: List[Dict[str, Any]] = []
        self.result = result


class EventRecorder:
    """收集事件总线上的事件"""

    def __init__(self):
        self.events: List[AgentEvent] = []

    def __call__(self, event: AgentEvent) -> None:
        self.events.append(event)

    def of(self, event_type: str) -> List[Any]:
        return [event.data for event in self.events if event.type == event_type]


@pytest.fixture
def vault(tmp_path):
    return LocalVault(tmp_path)


@pytest.fixture
def llm():
    return FakeLLM()


def make_agent(llm, vault, mode: str = "high", approval_handler=None, **overrides) -> Agent:
    settings = AgentSettings(api_key="test-key", mode=mode, **overrides)
    return Agent(llm_client=llm, vault=vault, settings=settings, approval_handler=approval_handler)


def record_events(agent: Agent, *event_types: str) -> EventRecorder:
    recorder = EventRecorder()
    for event_type in event_types:
        agent.event_bus.on(event_type, recorder)
    return recorder
