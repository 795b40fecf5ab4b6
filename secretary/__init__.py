"""
Secretary - 运行在笔记仓库中的对话式自动化Agent

包含功能:
- Agent Loop核心循环（可取消）
- 工具调用系统与回复解析
- 自治模式（plan / low / high）与人工审批
- 有步数上限的子Agent与任务委派
- 会话存储与历史压缩
- 长期记忆与例程
"""

__version__ = "0.1.0"

from secretary.core.types import (
    LoopState, PolicyDecision, Turn, ToolCall, AgentEvent, EventType
)
from secretary.core.llm_client import LLMClient, ConversationCompactor
from secretary.core.agent_loop import Agent, EventBus
from secretary.core.policy import PolicyEngine, AutonomyMode, ConfirmationManager
from secretary.core.session import Conversation, SessionStore
from secretary.tools.base import ToolRegistry, ToolBuilder, ToolInvocation, ToolKind
from secretary.tools.builtin import register_builtin_tools
from secretary.agents import SubAgent, SubAgentRegistry, ExploreAgent, ResearchAgent, WriterAgent
from secretary.memory import MemoryManager, RoutineManager
from secretary.storage import LocalVault, Vault
from secretary.config_loader import AgentSettings, load_config

__all__ = [
    # Core types
    "LoopState", "PolicyDecision", "Turn", "ToolCall", "AgentEvent", "EventType",
    # Core components
    "LLMClient", "ConversationCompactor",
    "Agent", "EventBus",
    "PolicyEngine", "AutonomyMode", "ConfirmationManager",
    "Conversation", "SessionStore",
    # Tools
    "ToolRegistry", "ToolBuilder", "ToolInvocation", "ToolKind",
    "register_builtin_tools",
    # Sub-agents
    "SubAgent", "SubAgentRegistry", "ExploreAgent", "ResearchAgent", "WriterAgent",
    # Memory
    "MemoryManager", "RoutineManager",
    # Storage / config
    "LocalVault", "Vault",
    "AgentSettings", "load_config",
]
