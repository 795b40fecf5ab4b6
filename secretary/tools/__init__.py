"""Tool system module"""

from .base import (
    MUTATOR_KINDS,
    ToolKind,
    ToolRegistry,
    ToolInvocation,
    ToolResult,
    ToolBuilder,
)
from .builtin import register_builtin_tools
from .agent_tools import DelegateTaskTool, UpdatePlanTool

__all__ = [
    'MUTATOR_KINDS',
    'ToolKind',
    'ToolRegistry',
    'ToolInvocation',
    'ToolResult',
    'ToolBuilder',
    'register_builtin_tools',
    'DelegateTaskTool',
    'UpdatePlanTool',
]
