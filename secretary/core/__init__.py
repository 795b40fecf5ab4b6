"""Core components"""
from .types import *
from .errors import (
    AgentError, ConfigurationError, TransportError,
    ToolExecutionError, ParseError, RequestCancelled
)
from .parser import parse_tool_call, extract_brace_span
from .policy import (
    AutonomyMode, PolicyEngine, ConfirmationManager,
    PLAN_MODE_REJECTION, USER_DENIED_MESSAGE
)
from .llm_client import LLMClient, ConversationCompactor
from .session import Conversation, SessionStore
from .agent_loop import Agent, EventBus
