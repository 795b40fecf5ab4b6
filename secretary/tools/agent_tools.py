"""
Agent自身的工具 - 计划更新与子Agent委派
"""
import asyncio
import logging

from secretary.core.errors import ToolExecutionError

from .base import ToolBuilder, ToolInvocation, ToolKind

logger = logging.getLogger(__name__)


class UpdatePlanInvocation(ToolInvocation):
    """更新计划文档"""

    async def run(self, cancellation_event: asyncio.Event) -> str:
        content = self.params.get("content")
        if not content:
            raise ToolExecutionError("Content is required.")
        await self.tool.agent.set_plan(str(content))
        return "Plan updated successfully."


class UpdatePlanTool(ToolBuilder):
    """计划工具 - 计划文档唯一的写入者"""
    invocation_class = UpdatePlanInvocation

    def __init__(self, agent):
        super().__init__(
            name="update_plan",
            display_name="Update Plan",
            description=(
                "Update the current plan or todo list. Use this to keep track of your "
                "progress on complex tasks. The content should be a markdown list."
            ),
            kind=ToolKind.THINK,
            parameter_schema={
                "type": "object",
                "properties": {
                    "content": {
                        "type": "string",
                        "description": "The plan content as a markdown list."
                    }
                },
                "required": ["content"]
            }
        )
        self.agent = agent


class DelegateTaskInvocation(ToolInvocation):
    """把任务交给指定的子Agent，同步等待其总结"""

    async def run(self, cancellation_event: asyncio.Event) -> str:
        name = self.params.get("subAgentName")
        task = self.params.get("task")
        if not name or not task:
            return "Error: Missing subAgentName or task."

        registry = self.tool.subagents
        sub_agent = registry.get(name)
        if sub_agent is None:
            available = ", ".join(registry.names())
            return f"Error: Subagent '{name}' not found. Available subagents: {available}"

        try:
            return await sub_agent.run(str(task), cancellation_event)
        except Exception as e:
            logger.error("Subagent %s failed: %s", name, e)
            return f"Error running subagent '{name}': {e}"


class DelegateTaskTool(ToolBuilder):
    """委派工具"""
    invocation_class = DelegateTaskInvocation

    def __init__(self, subagents):
        super().__init__(
            name="delegate_task",
            display_name="Delegate Task",
            description=(
                "Delegate a complex task to a specialized subagent. Returns the subagent's "
                "output. Usage: { \"subAgentName\": \"ExploreAgent\", \"task\": \"Explore the vault...\" }"
            ),
            kind=ToolKind.DELEGATE,
            parameter_schema={
                "type": "object",
                "properties": {
                    "subAgentName": {
                        "type": "string",
                        "description": "The name of the subagent to delegate to (e.g., 'ExploreAgent')."
                    },
                    "task": {
                        "type": "string",
                        "description": "The task description for the subagent."
                    }
                },
                "required": ["subAgentName", "task"]
            }
        )
        self.subagents = subagents
