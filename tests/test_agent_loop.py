"""
测试用例 - Agent主循环
"""
import asyncio
import datetime
import json

import pytest

from secretary.core.errors import ConfigurationError, ToolExecutionError, TransportError
from secretary.core.policy import PLAN_MODE_REJECTION, USER_DENIED_MESSAGE, AutonomyMode
from secretary.core.prompts import (
    ACKNOWLEDGED,
    ASK_FOR_ALTERNATIVE,
    PROCEED_WITH_OBSERVATION,
    REQUEST_CANCELLED,
)
from secretary.core.types import EventType, LoopState, Turn
from secretary.agents import MAX_STEPS
from secretary.tools.base import ToolBuilder, ToolInvocation, ToolKind

from conftest import FakeLLM, SpyTool, make_agent, record_events

DESTRUCTIVE_TOOLS = ["write_file", "edit_file", "append_file", "delete_file", "move_file", "create_dir"]


def tool_call(name, **args):
    return json.dumps({"tool": name, "args": args})


class WaitForStopInvocation(ToolInvocation):
    async def run(self, cancellation_event: asyncio.Event) -> str:
        self.tool.started.set()
        await cancellation_event.wait()
        return "interrupted"


class WaitForStopTool(ToolBuilder):
    """一直运行到收到取消信号的工具"""
    invocation_class = WaitForStopInvocation

    def __init__(self):
        super().__init__(name="wait_for_stop", description="blocks until stopped", kind=ToolKind.READ)
        self.started = asyncio.Event()


class TestFinalAnswers:
    """测试没有工具调用的回复"""

    @pytest.mark.asyncio
    async def test_plain_reply(self, vault):
        llm = FakeLLM(["Hello there."])
        agent = make_agent(llm, vault)

        assert await agent.chat("hi") == "Hello there."
        assert agent.history == [Turn.user("hi"), Turn.assistant("Hello there.")]
        assert agent.state == LoopState.IDLE

    @pytest.mark.asyncio
    async def test_system_turn_is_first_and_not_stored(self, vault):
        llm = FakeLLM(["ok"])
        agent = make_agent(llm, vault)
        await agent.chat("hi")

        sent = llm.calls[0]
        assert sent[0].role == "system"
        assert "- list_dir:" in sent[0].content
        assert "MODE: HIGH AUTONOMY" in sent[0].content
        assert sent[1:] == [Turn.user("hi")]
        assert all(turn.role != "system" for turn in agent.history)

    @pytest.mark.asyncio
    async def test_system_turn_carries_memory_and_active_document(self, vault):
        await vault.write("AGENTS.md", "The user prefers short notes.")
        llm = FakeLLM(["ok"])
        agent = make_agent(llm, vault, output_style="concise")
        agent.set_active_document("daily/today.md", "buy milk")

        await agent.chat("hi")
        system = llm.calls[0][0].content
        assert "CONTEXT FROM VAULT (AGENTS.md):\nThe user prefers short notes." in system
        assert "CURRENTLY OPEN FILE: daily/today.md" in system
        assert "SELECTED TEXT:\n```\nbuy milk\n```" in system
        assert "OUTPUT STYLE: CONCISE" in system

    @pytest.mark.asyncio
    async def test_unknown_tool_returns_raw_reply(self, vault):
        reply = tool_call("launch_rockets", count=3)
        llm = FakeLLM([reply])
        agent = make_agent(llm, vault)

        assert await agent.chat("go") == reply
        assert len(llm.calls) == 1
        assert agent.history == [Turn.user("go"), Turn.assistant(reply)]

    @pytest.mark.asyncio
    async def test_unparseable_call_is_final(self, vault):
        reply = "Let me try {this: broken"
        agent = make_agent(FakeLLM([reply + "}"]), vault)
        assert await agent.chat("go") == reply + "}"

    @pytest.mark.asyncio
    async def test_message_event(self, vault):
        agent = make_agent(FakeLLM(["Hello."]), vault)
        recorder = record_events(agent, EventType.MESSAGE)
        await agent.chat("hi")
        assert recorder.of(EventType.MESSAGE) == [{"role": "assistant", "content": "Hello."}]


class TestToolDispatch:
    """测试工具执行与观察结果"""

    @pytest.mark.asyncio
    async def test_list_dir_scenario(self, vault):
        """high 模式下 list_dir 的完整周期"""
        spy = SpyTool("list_dir", result=["a.md", "b.md"])
        llm = FakeLLM(['{"tool":"list_dir","args":{"path":"/"}}', "The vault has two notes."])
        agent = make_agent(llm, vault)
        agent.tool_registry.register(spy)
        recorder = record_events(agent, EventType.TOOL_STARTED, EventType.TOOL_FINISHED)

        assert await agent.chat("what is here?") == "The vault has two notes."
        assert spy.calls == [{"path": "/"}]
        assert agent.history == [
            Turn.user("what is here?"),
            Turn.assistant('{"tool":"list_dir","args":{"path":"/"}}'),
            Turn.user('Observation: ["a.md","b.md"]'),
            Turn.user(PROCEED_WITH_OBSERVATION),
            Turn.assistant("The vault has two notes."),
        ]
        assert recorder.of(EventType.TOOL_STARTED) == [{"tool": "list_dir", "args": {"path": "/"}}]
        assert recorder.of(EventType.TOOL_FINISHED) == [{"tool": "list_dir", "result": ["a.md", "b.md"]}]

    @pytest.mark.asyncio
    async def test_real_list_dir(self, vault):
        await vault.write("a.md", "A")
        await vault.write("b.md", "B")
        llm = FakeLLM([tool_call("list_dir", path="/"), "done"])
        agent = make_agent(llm, vault)

        await agent.chat("list")
        assert Turn.user('Observation: ["a.md","b.md"]') in agent.history
        # 第二次调用看到了观察结果和续写消息
        assert llm.calls[1][-2:] == [Turn.user('Observation: ["a.md","b.md"]'), Turn.user(PROCEED_WITH_OBSERVATION)]

    @pytest.mark.asyncio
    async def test_tool_error_becomes_observation(self, vault):
        spy = SpyTool("read_file", result=ToolExecutionError("boom"))
        agent = make_agent(FakeLLM([tool_call("read_file", path="x.md"), "sorry"]), vault)
        agent.tool_registry.register(spy)

        assert await agent.chat("read") == "sorry"
        assert Turn.observation("Error executing tool read_file: boom") in agent.history

    @pytest.mark.asyncio
    async def test_missing_file_error(self, vault):
        agent = make_agent(FakeLLM([tool_call("read_file", path="nope.md"), "not there"]), vault)
        await agent.chat("read")
        assert Turn.observation("Error executing tool read_file: File not found: nope.md") in agent.history

    @pytest.mark.asyncio
    async def test_update_plan(self, vault):
        agent = make_agent(FakeLLM([tool_call("update_plan", content="- [ ] step one"), "planned"]), vault)
        recorder = record_events(agent, EventType.PLAN_UPDATED)

        await agent.chat("plan it")
        assert agent.plan == "- [ ] step one"
        assert recorder.of(EventType.PLAN_UPDATED) == [{"plan": "- [ ] step one"}]
        assert Turn.observation("Plan updated successfully.") in agent.history

    @pytest.mark.asyncio
    async def test_update_plan_without_content(self, vault):
        agent = make_agent(FakeLLM([tool_call("update_plan"), "ok"]), vault)
        await agent.chat("plan it")
        assert agent.plan == ""
        assert Turn.observation("Error executing tool update_plan: Content is required.") in agent.history

    @pytest.mark.asyncio
    async def test_delegation_round_trip(self, vault):
        llm = FakeLLM([
            tool_call("delegate_task", subAgentName="ExploreAgent", task="find the inbox"),
            "DONE: the inbox is in Inbox/",
            "Your inbox is in Inbox/.",
        ])
        agent = make_agent(llm, vault)

        assert await agent.chat("where is my inbox?") == "Your inbox is in Inbox/."
        assert Turn.observation("the inbox is in Inbox/") in agent.history
        # 子Agent的上下文不进入主历史
        assert Turn.assistant("DONE: the inbox is in Inbox/") not in agent.history

    @pytest.mark.asyncio
    async def test_turn_cap(self, vault):
        llm = FakeLLM(default=tool_call("list_dir", path="/"))
        agent = make_agent(llm, vault, max_turns=3)

        assert await agent.chat("loop") == "Stopped after 3 steps without a final answer."
        assert len(llm.calls) == 3
        assert agent.state == LoopState.IDLE


class TestPermissionGate:
    """测试自治模式对破坏性工具的拦截"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", DESTRUCTIVE_TOOLS)
    async def test_plan_mode_never_invokes(self, vault, name):
        spy = SpyTool(name, kind=ToolKind.EDIT)
        llm = FakeLLM([tool_call(name, path="x.md"), "Understood."])
        agent = make_agent(llm, vault, mode="plan")
        agent.tool_registry.register(spy)
        recorder = record_events(agent, EventType.TOOL_FINISHED, EventType.TOOL_STARTED)

        assert await agent.chat("do it") == "Understood."
        assert spy.calls == []
        assert recorder.of(EventType.TOOL_STARTED) == []
        assert recorder.of(EventType.TOOL_FINISHED) == [{"tool": name, "result": PLAN_MODE_REJECTION}]
        assert agent.history[2:4] == [Turn.observation(PLAN_MODE_REJECTION), Turn.user(ACKNOWLEDGED)]

    @pytest.mark.asyncio
    async def test_plan_mode_blocks_real_write(self, vault):
        agent = make_agent(FakeLLM([tool_call("write_file", path="x.md", content="hi"), "ok"]), vault, mode="plan")
        await agent.chat("write")
        assert not await vault.exists("x.md")

    @pytest.mark.asyncio
    async def test_plan_mode_allows_reads(self, vault):
        spy = SpyTool("read_file", result="text")
        agent = make_agent(FakeLLM([tool_call("read_file", path="a.md"), "ok"]), vault, mode="plan")
        agent.tool_registry.register(spy)
        await agent.chat("read")
        assert spy.calls == [{"path": "a.md"}]

    @pytest.mark.asyncio
    async def test_low_mode_denied(self, vault):
        asked = []

        def deny(tool_name, args):
            asked.append((tool_name, args))
            return False

        spy = SpyTool("delete_file", kind=ToolKind.DELETE)
        agent = make_agent(FakeLLM([tool_call("delete_file", path="a.md"), "Okay, what instead?"]),
                           vault, mode="low", approval_handler=deny)
        agent.tool_registry.register(spy)

        assert await agent.chat("delete a") == "Okay, what instead?"
        assert asked == [("delete_file", {"path": "a.md"})]
        assert spy.calls == []
        assert agent.history[2:4] == [Turn.observation(USER_DENIED_MESSAGE), Turn.user(ASK_FOR_ALTERNATIVE)]

    @pytest.mark.asyncio
    async def test_low_mode_approved(self, vault):
        spy = SpyTool("write_file", kind=ToolKind.EDIT, result="Created file: a.md")
        agent = make_agent(FakeLLM([tool_call("write_file", path="a.md", content="x"), "done"]),
                           vault, mode="low", approval_handler=lambda name, args: True)
        agent.tool_registry.register(spy)

        await agent.chat("write a")
        assert len(spy.calls) == 1

    @pytest.mark.asyncio
    async def test_low_mode_reads_are_not_gated(self, vault):
        asked = []
        agent = make_agent(FakeLLM([tool_call("list_dir", path="/"), "done"]), vault, mode="low",
                           approval_handler=lambda name, args: asked.append(name) or True)
        await agent.chat("list")
        assert asked == []

    @pytest.mark.asyncio
    async def test_external_approval(self, vault):
        spy = SpyTool("write_file", kind=ToolKind.EDIT)
        agent = make_agent(FakeLLM([tool_call("write_file", path="a.md"), "done"]), vault, mode="low")
        agent.tool_registry.register(spy)

        task = asyncio.create_task(agent.chat("write"))
        while agent.state != LoopState.WAITING_APPROVAL:
            await asyncio.sleep(0)
        assert agent.respond_to_approval(True) is True
        assert await task == "done"
        assert len(spy.calls) == 1

    @pytest.mark.asyncio
    async def test_set_mode(self, vault):
        agent = make_agent(FakeLLM(), vault)
        recorder = record_events(agent, EventType.MODE_CHANGED)

        await agent.set_mode(AutonomyMode.PLAN)
        assert agent.mode == AutonomyMode.PLAN
        assert agent.settings.mode == AutonomyMode.PLAN
        assert recorder.of(EventType.MODE_CHANGED) == [{"mode": "plan"}]


class TestCancellationAndErrors:
    """测试取消和错误处理"""

    @pytest.mark.asyncio
    async def test_stop_before_completion_returns(self, vault):
        llm = FakeLLM()
        llm.block = True
        agent = make_agent(llm, vault)

        task = asyncio.create_task(agent.chat("slow question"))
        await llm.started.wait()
        assert agent.stop() is True
        assert await task == REQUEST_CANCELLED
        assert agent.state == LoopState.IDLE

    def test_stop_when_idle(self, vault):
        assert make_agent(FakeLLM(), vault).stop() is False

    @pytest.mark.asyncio
    async def test_stop_during_approval(self, vault):
        spy = SpyTool("write_file", kind=ToolKind.EDIT)
        llm = FakeLLM([tool_call("write_file", path="a.md")])
        agent = make_agent(llm, vault, mode="low")
        agent.tool_registry.register(spy)

        task = asyncio.create_task(agent.chat("write"))
        while agent.state != LoopState.WAITING_APPROVAL:
            await asyncio.sleep(0)
        agent.stop()

        assert await task == REQUEST_CANCELLED
        assert spy.calls == []
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_configuration_error(self, vault):
        agent = make_agent(FakeLLM([ConfigurationError("OpenRouter API key is not set.")]), vault)
        recorder = record_events(agent, EventType.NOTICE)

        assert await agent.chat("hi") == "Error: OpenRouter API key is not set."
        assert recorder.of(EventType.NOTICE) == [
            {"message": "Error communicating with Agent: OpenRouter API key is not set."}
        ]
        assert agent.state == LoopState.IDLE

    @pytest.mark.asyncio
    async def test_transport_error(self, vault):
        agent = make_agent(FakeLLM([TransportError("No response from OpenRouter.")]), vault)
        assert await agent.chat("hi") == "Error: No response from OpenRouter."

    @pytest.mark.asyncio
    async def test_event_handler_errors_are_swallowed(self, vault):
        agent = make_agent(FakeLLM(["fine"]), vault)

        def broken(event):
            raise RuntimeError("handler bug")

        agent.event_bus.on(EventType.MESSAGE, broken)
        assert await agent.chat("hi") == "fine"

    @pytest.mark.asyncio
    async def test_stop_while_tool_runs(self, vault):
        """运行中的工具收到取消信号，之后不再调用LLM"""
        tool = WaitForStopTool()
        llm = FakeLLM([tool_call("wait_for_stop"), "never used"])
        agent = make_agent(llm, vault)
        agent.tool_registry.register(tool)

        task = asyncio.create_task(agent.chat("wait"))
        await tool.started.wait()
        assert agent.stop() is True

        assert await task == REQUEST_CANCELLED
        assert len(llm.calls) == 1
        assert agent.history[-1] == Turn.observation("interrupted")
        assert agent.state == LoopState.IDLE

    @pytest.mark.asyncio
    async def test_stop_while_delegated_subagent_runs(self, vault):
        llm = FakeLLM([tool_call("delegate_task", subAgentName="ExploreAgent", task="look around")])
        llm.pause = True
        agent = make_agent(llm, vault)

        task = asyncio.create_task(agent.chat("explore"))
        while len(llm.calls) < 2:
            await asyncio.sleep(0)
        assert agent.stop() is True

        assert await task == REQUEST_CANCELLED
        assert agent.history[-1] == Turn.observation(REQUEST_CANCELLED)
        assert len(llm.calls) < 1 + MAX_STEPS
        # 最后一次调用来自子Agent，主循环没有再请求补全
        assert "Explore Agent" in llm.calls[-1][0].content

    @pytest.mark.asyncio
    async def test_failing_approval_handler_counts_as_denial(self, vault):
        def crashed(tool_name, args):
            raise RuntimeError("approval UI crashed")

        spy = SpyTool("write_file", kind=ToolKind.EDIT)
        llm = FakeLLM([tool_call("write_file", path="a.md"), "Okay, I will leave it."])
        agent = make_agent(llm, vault, mode="low", approval_handler=crashed)
        agent.tool_registry.register(spy)

        assert await agent.chat("write") == "Okay, I will leave it."
        assert spy.calls == []
        assert agent.history[2] == Turn.observation(USER_DENIED_MESSAGE)
        assert agent.state == LoopState.IDLE

    @pytest.mark.asyncio
    async def test_result_that_is_not_json(self, vault):
        spy = SpyTool("today", result=datetime.date(2025, 1, 1))
        llm = FakeLLM([tool_call("today"), "It is New Year's Day."])
        agent = make_agent(llm, vault)
        agent.tool_registry.register(spy)

        assert await agent.chat("what day is it") == "It is New Year's Day."
        assert agent.history[2] == Turn.user('Observation: "2025-01-01"')
