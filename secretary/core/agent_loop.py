"""
Agent Loop - 核心循环架构

核心流程（每个周期）:
1. 追加用户输入
2. 构建系统提示词（工具目录、模式、输出风格、长期记忆、当前文档）
3. 调用LLM，可被 stop() 取消
4. 解析回复: 没有工具调用即为最终答案
5. 策略检查 -> 执行工具 -> 追加观察结果
6. 以固定的续写消息进入下一个周期
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from secretary.agents import ExploreAgent, ResearchAgent, SubAgentRegistry, WriterAgent
from secretary.config_loader import AgentSettings
from secretary.memory import MemoryManager, RoutineManager
from secretary.storage import Vault, normalize_path
from secretary.tools import DelegateTaskTool, ToolRegistry, UpdatePlanTool, register_builtin_tools

from .errors import AgentError, ConfigurationError, RequestCancelled, TransportError
from .llm_client import ConversationCompactor, LLMClient
from .parser import parse_tool_call
from .policy import (
    PLAN_MODE_REJECTION,
    USER_DENIED_MESSAGE,
    AutonomyMode,
    ConfirmationManager,
    PolicyEngine,
)
from .prompts import (
    ACKNOWLEDGED,
    ASK_FOR_ALTERNATIVE,
    CONTEXT_SUMMARY_PREFIX,
    INIT_ROUTINE_PROMPT,
    PROCEED_WITH_OBSERVATION,
    REQUEST_CANCELLED,
    build_system_prompt,
    format_routine_message,
    format_subagent_output,
    format_subagent_request,
)
from .session import Conversation, SessionStore
from .types import (
    AgentEvent,
    ApprovalHandler,
    EventHandler,
    EventType,
    LoopState,
    PolicyDecision,
    Turn,
)

logger = logging.getLogger(__name__)


class EventBus:
    """事件总线 - 解耦组件通信"""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def on(self, event_type: str, handler: EventHandler) -> None:
        """订阅事件"""
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        """取消订阅"""
        if event_type in self._handlers and handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    async def emit(self, event: AgentEvent) -> None:
        """发布事件，处理器出错只记录日志"""
        for handler in list(self._handlers.get(event.type, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in event handler for %s", event.type)


class Agent:
    """
    Agent主循环

    chat() 是显式的迭代循环: 每个周期一个新的取消作用域，
    stop() 只作用于当前周期。
    """

    def __init__(
        self,
        llm_client: LLMClient,
        vault: Vault,
        settings: Optional[AgentSettings] = None,
        policy_engine: Optional[PolicyEngine] = None,
        approval_handler: Optional[ApprovalHandler] = None
    ):
        self.llm = llm_client
        self.vault = vault
        self.settings = settings or AgentSettings()
        self.policy = policy_engine or PolicyEngine(self.settings.mode)

        # 组件
        self.event_bus = EventBus()
        self.tool_registry = ToolRegistry()
        self.subagents = SubAgentRegistry()
        self.confirmation_manager = ConfirmationManager(approval_handler)
        self.compactor = ConversationCompactor(llm_client)
        self.memory = MemoryManager(vault, self.settings.context_file)
        self.routines = RoutineManager(vault, self.settings.routines_folder)
        self.sessions = SessionStore(vault, self.settings.history_folder, self.event_bus)

        # 状态
        self.state = LoopState.IDLE
        self.conversation = Conversation()
        self.plan = ""
        self.active_document: Optional[str] = None
        self.selection: Optional[str] = None
        self._cancel_event: Optional[asyncio.Event] = None

        # 注册工具和子Agent（之后只读）
        register_builtin_tools(self.tool_registry, vault)
        self.tool_registry.register(UpdatePlanTool(self))
        self.tool_registry.register(DelegateTaskTool(self.subagents))

        self.subagents.register("ExploreAgent", ExploreAgent(llm_client, vault))
        self.subagents.register(
            "ResearchAgent", ResearchAgent(llm_client, vault, self.settings.research_model)
        )
        self.subagents.register("WriterAgent", WriterAgent(llm_client, vault))

    @property
    def mode(self) -> AutonomyMode:
        return self.policy.mode

    @property
    def history(self) -> List[Turn]:
        return self.conversation.turns

    def get_history(self) -> List[Turn]:
        """获取对话历史"""
        return list(self.conversation.turns)

    async def _notice(self, message: str) -> None:
        await self.event_bus.emit(AgentEvent(type=EventType.NOTICE, data={"message": message}))

    # ------------------------------------------------------------------
    # 配置
    # ------------------------------------------------------------------

    def update_settings(self, settings: AgentSettings) -> None:
        """配置的唯一入口；模式只能通过 set_mode() 修改"""
        self.settings = settings.model_copy(update={"mode": self.policy.mode})
        self.llm.update_settings(settings.api_key, settings.model, settings.base_url)

        research = self.subagents.get("ResearchAgent")
        if isinstance(research, ResearchAgent):
            research.update_model(settings.research_model)

        self.memory.set_context_file(settings.context_file)
        self.sessions.folder = normalize_path(settings.history_folder)
        self.routines.folder = normalize_path(settings.routines_folder)

    async def set_mode(self, mode: AutonomyMode) -> None:
        """切换自治模式"""
        mode = AutonomyMode(mode)
        self.policy.set_mode(mode)
        self.settings = self.settings.model_copy(update={"mode": mode})
        await self.event_bus.emit(AgentEvent(type=EventType.MODE_CHANGED, data={"mode": mode.value}))

    def match_model(self, fragment: str) -> Optional[str]:
        """按完整ID或最后一段做子串匹配"""
        needle = fragment.strip().lower()
        if not needle:
            return None
        for model in self.settings.available_models:
            lowered = model.lower()
            if needle in lowered or needle in lowered.rsplit("/", 1)[-1]:
                return model
        return None

    def set_model(self, model: str) -> None:
        self.update_settings(self.settings.model_copy(update={"model": model}))

    def set_active_document(self, path: Optional[str], selection: Optional[str] = None) -> None:
        """设置当前打开的文档和选中文本"""
        self.active_document = normalize_path(path) if path else None
        self.selection = selection if self.active_document else None

    async def set_plan(self, plan: str) -> None:
        self.plan = plan
        await self.event_bus.emit(AgentEvent(type=EventType.PLAN_UPDATED, data={"plan": plan}))

    # ------------------------------------------------------------------
    # 主循环
    # ------------------------------------------------------------------

    async def _build_system_turn(self) -> Turn:
        await self.memory.refresh()
        return Turn.system(build_system_prompt(
            tools=self.tool_registry.get_all(),
            mode=self.policy.mode.value,
            output_style=self.settings.output_style,
            context_file=self.memory.context_file,
            memory=self.memory.format_for_system_prompt(),
            active_document=self.active_document,
            selection=self.selection
        ))

    def _open_scope(self) -> asyncio.Event:
        """新的取消作用域，stop() 作用于它"""
        scope = asyncio.Event()
        self._cancel_event = scope
        return scope

    async def _race(self, awaitable: Awaitable[Any], scope: asyncio.Event) -> Any:
        """与取消信号竞争，取消时抛出 RequestCancelled"""
        completion = asyncio.ensure_future(awaitable)
        if scope.is_set():
            completion.cancel()
            raise RequestCancelled()

        stopper = asyncio.ensure_future(scope.wait())
        try:
            await asyncio.wait({completion, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not completion.done():
                completion.cancel()

        if scope.is_set() or completion.cancelled():
            raise RequestCancelled()
        return completion.result()

    async def _observe(self, tool_name: str, result: Any) -> None:
        await self.event_bus.emit(AgentEvent(
            type=EventType.TOOL_FINISHED,
            data={"tool": tool_name, "result": result}
        ))
        self.conversation.append(Turn.observation(result))

    async def _cycle(self, message: str, scope: asyncio.Event) -> Tuple[Optional[str], Optional[str]]:
        """
        执行一个周期

        Returns:
            (最终答案, None) 或 (None, 下一周期的续写消息)
        """
        self.conversation.append(Turn.user(message))

        self.state = LoopState.AWAITING_COMPLETION
        system = await self._build_system_turn()
        reply = await self._race(self.llm.complete([system, *self.conversation.turns]), scope)

        self.conversation.append(Turn.assistant(reply))
        await self.event_bus.emit(AgentEvent(
            type=EventType.MESSAGE,
            data={"role": "assistant", "content": reply}
        ))

        call = parse_tool_call(reply)
        if call is None:
            return reply, None

        tool = self.tool_registry.get(call.tool)
        if tool is None:
            logger.warning("Tool '%s' not found in registered tools", call.tool)
            return reply, None

        self.state = LoopState.TOOL_GATE
        decision = self.policy.check(tool.name, tool.destructive)
        if decision == PolicyDecision.DENY:
            await self._observe(tool.name, PLAN_MODE_REJECTION)
            return None, ACKNOWLEDGED

        if decision == PolicyDecision.ASK_USER:
            self.state = LoopState.WAITING_APPROVAL
            approved = await self.confirmation_manager.request(tool.name, call.args)
            if not approved:
                await self._observe(tool.name, USER_DENIED_MESSAGE)
                return None, ASK_FOR_ALTERNATIVE

        self.state = LoopState.EXECUTING_TOOL
        await self.event_bus.emit(AgentEvent(
            type=EventType.TOOL_STARTED,
            data={"tool": tool.name, "args": call.args}
        ))
        invocation = tool.build(self.tool_registry.next_call_id(), call.args)
        result = await invocation.execute(scope)
        if result.success:
            output = result.content
        else:
            output = f"Error executing tool {tool.name}: {result.error}"
        await self._observe(tool.name, output)
        return None, PROCEED_WITH_OBSERVATION

    async def chat(self, message: str) -> str:
        """
        处理一条用户消息

        Returns:
            最终答案；取消时为 "Request cancelled."，出错时为 "Error: ..."
        """
        if self.state != LoopState.IDLE:
            return "Error: Agent is already running."

        max_turns = self.settings.max_turns
        steps = 0
        pending = message
        try:
            while True:
                if max_turns and steps >= max_turns:
                    logger.warning("Stopped after %d steps without a final answer", steps)
                    return f"Stopped after {steps} steps without a final answer."
                steps += 1

                scope = self._open_scope()
                final, pending = await self._cycle(pending, scope)
                if final is not None:
                    return final
                if scope.is_set():
                    raise RequestCancelled()

        except RequestCancelled:
            logger.info("Request cancelled")
            return REQUEST_CANCELLED
        except (ConfigurationError, TransportError) as e:
            await self._notice(f"Error communicating with Agent: {e}")
            return f"Error: {e}"
        finally:
            self._cancel_event = None
            self.state = LoopState.IDLE

    def stop(self) -> bool:
        """取消当前周期（以及待决的审批）"""
        scope = self._cancel_event
        if scope is None:
            return False
        scope.set()
        self.confirmation_manager.cancel()
        return True

    def respond_to_approval(self, approved: bool) -> bool:
        """响应待决的审批请求"""
        return self.confirmation_manager.respond(approved)

    # ------------------------------------------------------------------
    # 会话
    # ------------------------------------------------------------------

    async def save_session(self) -> Optional[str]:
        return await self.sessions.save(self.conversation)

    async def load_session(self, path: str) -> bool:
        return await self.sessions.load(self.conversation, path)

    async def list_sessions(self) -> List[str]:
        return await self.sessions.list_sessions()

    async def clear_history(self) -> None:
        """保存后清空历史，开始新会话"""
        await self.save_session()
        self.conversation.clear()
        await self.set_plan("")

    async def compact(self) -> Optional[str]:
        """把历史压缩成一条摘要"""
        if not self.conversation.turns:
            return None
        scope = self._open_scope()
        try:
            summary = await self._race(self.compactor.summarize(self.conversation.turns), scope)
        except RequestCancelled:
            logger.info("Compaction cancelled")
            raise
        except AgentError as e:
            await self._notice(f"Failed to compact memory: {e}")
            raise
        finally:
            self._cancel_event = None

        self.conversation.replace(
            [Turn.assistant(CONTEXT_SUMMARY_PREFIX + summary)],
            self.conversation.path
        )
        await self.set_plan("")
        return summary

    # ------------------------------------------------------------------
    # 子Agent、例程、语音
    # ------------------------------------------------------------------

    async def run_subagent(self, name: str, task: str) -> str:
        """用户直接调用子Agent，结果记入历史"""
        sub_agent = self.subagents.get(name)
        if sub_agent is None:
            available = ", ".join(self.subagents.names())
            return f"Error: Subagent '{name}' not found. Available subagents: {available}"

        scope = self._open_scope()
        try:
            output = await sub_agent.run(task, scope)
        except AgentError as e:
            logger.error("Subagent %s failed: %s", name, e)
            return f"Error running subagent '{name}': {e}"
        finally:
            self._cancel_event = None

        if scope.is_set():
            return REQUEST_CANCELLED

        self.conversation.append(Turn.user(format_subagent_request(name, task)))
        self.conversation.append(Turn.assistant(format_subagent_output(name, output)))
        return output

    async def run_routine(self, name: str, message: str = "") -> str:
        content = await self.routines.get_routine_content(name)
        if content is None:
            return f"Error: Routine '{name}' not found."
        return await self.chat(format_routine_message(name, content, message))

    async def run_init_routine(self) -> str:
        return await self.chat(INIT_ROUTINE_PROMPT.format(context_file=self.memory.context_file))

    async def remember(self, text: str) -> str:
        """/memory: 让Agent把内容写进长期记忆文件"""
        return await self.chat(MemoryManager.remember(text))

    async def transcribe_audio(self, audio: bytes, fmt: str) -> str:
        return await self.llm.transcribe(audio, fmt, self.settings.transcription_model)
