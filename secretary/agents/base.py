"""
子Agent - 有步数上限的独立 ReAct 循环

每次 run() 使用全新的上下文，只能调用自己固定的 2~3 个工具，
回复以 "DONE:" 开头时结束并返回总结。
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from secretary.core.llm_client import LLMClient
from secretary.core.parser import extract_brace_span
from secretary.core.prompts import REQUEST_CANCELLED
from secretary.core.types import Turn, to_json
from secretary.tools.base import ToolBuilder, ToolResult

logger = logging.getLogger(__name__)

MAX_STEPS = 15
DONE_MARKER = "DONE:"
MAX_OBSERVATION_CHARS = 2000
TRUNCATION_MARKER = "... (truncated)"

NO_TOOL_MESSAGE = "Please use a tool or say DONE."
PARSE_ERROR_MESSAGE = "Error parsing tool call. Please use valid JSON."


def truncate(text: str, limit: int = MAX_OBSERVATION_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def format_observation(result: ToolResult) -> str:
    """文本结果截断，其它结果编码为JSON"""
    if not result.success:
        return truncate(f"Error: {result.error}")
    if isinstance(result.content, str):
        return truncate(result.content)
    return to_json(result.content)


class SubAgent:
    """子Agent基类"""

    name = "SubAgent"
    task_instruction = ""
    timeout_message = "Task timed out."
    max_steps = MAX_STEPS

    def __init__(self, llm: LLMClient, tools: List[ToolBuilder]):
        self.llm = llm
        self.tools = tools

    @property
    def tool_names(self) -> List[str]:
        return [tool.name for tool in self.tools]

    def system_prompt(self) -> str:
        raise NotImplementedError

    async def prepare(self) -> None:
        """每次运行前的准备（子类可加载额外上下文）"""

    def llm_for_step(self) -> LLMClient:
        return self.llm

    def find_tool(self, name: Any) -> Optional[ToolBuilder]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    async def run(self, task: str, cancellation_event: Optional[asyncio.Event] = None) -> str:
        """
        执行任务

        Returns:
            "DONE:" 之后的总结，或超时消息
        """
        cancellation_event = cancellation_event or asyncio.Event()
        await self.prepare()

        system = Turn.system(self.system_prompt())
        context: List[Turn] = [Turn.user(f"Task: {task}\n{self.task_instruction}")]

        for step in range(self.max_steps):
            if cancellation_event.is_set():
                return REQUEST_CANCELLED

            llm = self.llm_for_step()
            try:
                reply = await llm.complete([system, *context])
            finally:
                # 每步单独创建的客户端用完即关
                if llm is not self.llm:
                    await llm.close()
            context.append(Turn.assistant(reply))

            text = reply.strip()
            if text.startswith(DONE_MARKER):
                return text[len(DONE_MARKER):].strip()

            feedback = await self._handle_reply(reply, f"{self.name}_{step + 1}", cancellation_event)
            context.append(Turn.user(feedback))

        logger.info("%s stopped after %d steps", self.name, self.max_steps)
        return self.timeout_message

    async def _handle_reply(
        self,
        reply: str,
        call_id: str,
        cancellation_event: asyncio.Event
    ) -> str:
        """处理一次回复，返回下一条用户轮次的内容"""
        candidate = extract_brace_span(reply)
        if not candidate:
            return NO_TOOL_MESSAGE

        try:
            call = json.loads(candidate)
        except json.JSONDecodeError:
            return PARSE_ERROR_MESSAGE
        if not isinstance(call, dict):
            return PARSE_ERROR_MESSAGE

        tool = self.find_tool(call.get("tool"))
        if tool is None:
            return f"Invalid tool. Available tools: {', '.join(self.tool_names)}."

        args = call.get("args") or {}
        if not isinstance(args, dict):
            return PARSE_ERROR_MESSAGE

        logger.debug("%s running %s with %s", self.name, tool.name, args)
        result = await tool.build(call_id, args).execute(cancellation_event)
        return f"Observation: {format_observation(result)}"


class SubAgentRegistry:
    """子Agent注册表 - 启动时填充，之后只读"""

    def __init__(self):
        self._agents: Dict[str, SubAgent] = {}

    def register(self, name: str, agent: SubAgent) -> None:
        self._agents[name] = agent

    def get(self, name: str) -> Optional[SubAgent]:
        return self._agents.get(name)

    def names(self) -> List[str]:
        return list(self._agents.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)
