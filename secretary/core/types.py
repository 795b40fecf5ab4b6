"""
核心类型定义 - 对话轮次、工具调用、事件
"""
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Union
from dataclasses import dataclass, field
from datetime import datetime
import json

from pydantic import BaseModel, Field, StrictStr


class LoopState(Enum):
    """Agent Loop 状态机"""
    IDLE = "idle"
    AWAITING_COMPLETION = "awaiting_completion"
    TOOL_GATE = "tool_gate"
    WAITING_APPROVAL = "waiting_approval"
    EXECUTING_TOOL = "executing_tool"


class PolicyDecision(Enum):
    """策略引擎决策结果"""
    ALLOW = "allow"
    DENY = "deny"
    ASK_USER = "ask_user"


ROLES = ("system", "user", "assistant")


def to_json(value: Any) -> str:
    """紧凑JSON序列化（与模型看到的观察格式一致），无法编码的值转为字符串"""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


@dataclass
class Turn:
    """对话轮次"""
    role: str  # "system", "user", "assistant"
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid role: {self.role}")

    @classmethod
    def system(cls, content: str) -> "Turn":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "Turn":
        return cls(role="assistant", content=content)

    @classmethod
    def observation(cls, value: Any) -> "Turn":
        """把工具结果包装成回传给模型的观察轮次"""
        return cls(role="user", content=f"Observation: {to_json(value)}")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Turn":
        return cls(role=data["role"], content=data.get("content") or "")


class ToolCall(BaseModel):
    """从模型回复中解析出的工具调用"""
    tool: StrictStr
    args: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class ToolSchema:
    """工具JSON Schema定义"""
    name: str
    description: str
    parameters: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters
            }
        }


@dataclass
class AgentEvent:
    """Agent事件"""
    type: str
    data: Any
    timestamp: datetime = field(default_factory=datetime.now)


# 事件处理器类型，同步或异步均可
EventHandler = Callable[[AgentEvent], Union[None, Awaitable[None]]]

# 审批回调: (tool_name, args) -> bool
ApprovalHandler = Callable[[str, Dict[str, Any]], Union[bool, Awaitable[bool]]]


class EventType:
    """事件类型常量"""
    TOOL_STARTED = "tool_started"
    TOOL_FINISHED = "tool_finished"
    MESSAGE = "message"
    PLAN_UPDATED = "plan_updated"
    MODE_CHANGED = "mode_changed"
    NOTICE = "notice"


def turns_to_dicts(turns: List[Turn]) -> List[Dict[str, str]]:
    return [turn.to_dict() for turn in turns]
