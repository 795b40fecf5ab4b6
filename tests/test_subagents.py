"""
测试用例 - 子Agent与委派工具
"""
import asyncio
import json

import pytest

from secretary.agents import (
    MAX_STEPS,
    ExploreAgent,
    ResearchAgent,
    SubAgent,
    SubAgentRegistry,
    WriterAgent,
)
from secretary.agents.base import NO_TOOL_MESSAGE, PARSE_ERROR_MESSAGE, TRUNCATION_MARKER
from secretary.core.prompts import REQUEST_CANCELLED
from secretary.core.types import Turn
from secretary.tools.agent_tools import DelegateTaskTool

from conftest import FakeLLM, make_agent


def tool_call(name, **args):
    return json.dumps({"tool": name, "args": args})


class TestBoundedLoop:
    """测试步数上限与终止标记"""

    @pytest.mark.asyncio
    async def test_times_out_after_exactly_fifteen_calls(self, vault):
        llm = FakeLLM(default="I am still looking around.")
        agent = ExploreAgent(llm, vault)

        assert await agent.run("find nothing") == "Exploration timed out."
        assert MAX_STEPS == 15
        assert len(llm.calls) == 15

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cls,message", [
        (ExploreAgent, "Exploration timed out."),
        (WriterAgent, "Writing timed out."),
    ])
    async def test_timeout_messages(self, vault, cls, message):
        assert await cls(FakeLLM(), vault).run("task") == message

    @pytest.mark.asyncio
    async def test_research_timeout(self, vault):
        llm = FakeLLM()
        assert await ResearchAgent(llm, vault, "research/model").run("task") == "Research timed out."
        assert len(llm.calls) == 15

    @pytest.mark.asyncio
    async def test_done_marker_is_trimmed(self, vault):
        llm = FakeLLM(["   DONE:   the notes live in Projects/  \n"])
        assert await ExploreAgent(llm, vault).run("where") == "the notes live in Projects/"
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_context_is_seeded_with_task(self, vault):
        llm = FakeLLM(["DONE: ok"])
        await ExploreAgent(llm, vault).run("map the vault")

        system, seed = llm.calls[0]
        assert system.role == "system"
        assert "list_dir" in system.content and "read_file" in system.content
        assert seed == Turn.user("Task: map the vault\nExplore the vault to gather information.")

    @pytest.mark.asyncio
    async def test_each_run_starts_fresh(self, vault):
        llm = FakeLLM(["no json here", "DONE: first", "DONE: second"])
        agent = ExploreAgent(llm, vault)

        await agent.run("one")
        await agent.run("two")
        assert len(llm.calls[2]) == 2


class TestCorrectiveTurns:
    """测试纠正提示"""

    @pytest.mark.asyncio
    async def test_no_tool_call(self, vault):
        llm = FakeLLM(["hmm", "DONE: ok"])
        await ExploreAgent(llm, vault).run("task")
        assert llm.calls[1][-1] == Turn.user(NO_TOOL_MESSAGE)

    @pytest.mark.asyncio
    async def test_bad_json(self, vault):
        llm = FakeLLM(["{tool: list_dir}", "DONE: ok"])
        await ExploreAgent(llm, vault).run("task")
        assert llm.calls[1][-1] == Turn.user(PARSE_ERROR_MESSAGE)

    @pytest.mark.asyncio
    async def test_tool_outside_subset(self, vault):
        llm = FakeLLM([tool_call("write_file", path="a.md", content="x"), "DONE: ok"])
        await ExploreAgent(llm, vault).run("task")

        assert llm.calls[1][-1] == Turn.user("Invalid tool. Available tools: list_dir, read_file.")
        assert not await vault.exists("a.md")


class TestObservations:
    """测试观察结果格式"""

    @pytest.mark.asyncio
    async def test_long_text_is_truncated(self, vault):
        await vault.write("long.md", "x" * 3000)
        llm = FakeLLM([tool_call("read_file", path="long.md"), "DONE: read"])
        await ExploreAgent(llm, vault).run("task")

        observation = llm.calls[1][-1].content
        assert observation == "Observation: " + "x" * 2000 + TRUNCATION_MARKER

    @pytest.mark.asyncio
    async def test_short_text_is_kept(self, vault):
        await vault.write("short.md", "hello")
        llm = FakeLLM([tool_call("read_file", path="short.md"), "DONE: read"])
        await ExploreAgent(llm, vault).run("task")
        assert llm.calls[1][-1] == Turn.user("Observation: hello")

    @pytest.mark.asyncio
    async def test_list_results_are_json(self, vault):
        await vault.write("a.md", "A")
        await vault.mkdir("Inbox")
        llm = FakeLLM([tool_call("list_dir", path="/"), "DONE: listed"])
        await ExploreAgent(llm, vault).run("task")
        assert llm.calls[1][-1] == Turn.user('Observation: ["Inbox","a.md"]')

    @pytest.mark.asyncio
    async def test_tool_errors_are_reported(self, vault):
        llm = FakeLLM([tool_call("read_file", path="missing.md"), "DONE: gone"])
        await ExploreAgent(llm, vault).run("task")
        assert llm.calls[1][-1] == Turn.user("Observation: Error: File not found: missing.md")


class TestHelpers:
    """测试各个子Agent"""

    @pytest.mark.asyncio
    async def test_research_uses_its_own_model_each_step(self, vault):
        await vault.write("notes/tax.md", "Tax deadline is April 15")
        llm = FakeLLM([tool_call("search_files", query="deadline"), "DONE: April 15"])
        agent = ResearchAgent(llm, vault, "perplexity/sonar")

        assert await agent.run("when is the tax deadline") == "April 15"
        assert llm.models == ["perplexity/sonar", "perplexity/sonar"]
        assert llm.calls[1][-1] == Turn.user('Observation: ["notes/tax.md"]')

    @pytest.mark.asyncio
    async def test_research_model_update(self, vault):
        llm = FakeLLM(["DONE: ok"])
        agent = ResearchAgent(llm, vault, "old/model")
        agent.update_model("new/model")
        await agent.run("task")
        assert llm.models == ["new/model"]

    @pytest.mark.asyncio
    async def test_writer_reads_style_guide(self, vault):
        await vault.write("style_guide.md", "Write in second person.")
        llm = FakeLLM(["DONE: drafted"])
        await WriterAgent(llm, vault).run("draft a welcome note")
        assert "Write in second person." in llm.calls[0][0].content

    @pytest.mark.asyncio
    async def test_writer_without_style_guide(self, vault):
        llm = FakeLLM(["DONE: drafted"])
        await WriterAgent(llm, vault).run("draft")
        assert "No style guide defined yet." in llm.calls[0][0].content

    @pytest.mark.asyncio
    async def test_writer_can_write(self, vault):
        llm = FakeLLM([tool_call("write_file", path="drafts/hello.md", content="# Hello"), "DONE: wrote it"])
        assert await WriterAgent(llm, vault).run("write hello") == "wrote it"
        assert await vault.read("drafts/hello.md") == "# Hello"


class BrokenAgent(SubAgent):
    name = "BrokenAgent"

    def __init__(self):
        super().__init__(FakeLLM(), [])

    async def run(self, task, cancellation_event=None):
        raise RuntimeError("model exploded")


class TestDelegation:
    """测试委派工具"""

    def setup_method(self):
        self.registry = SubAgentRegistry()
        self.registry.register("BrokenAgent", BrokenAgent())
        self.tool = DelegateTaskTool(self.registry)

    async def _run(self, **params):
        result = await self.tool.build("call_1", params).execute()
        assert result.success
        return result.content

    @pytest.mark.asyncio
    async def test_missing_arguments(self):
        assert await self._run(subAgentName="BrokenAgent") == "Error: Missing subAgentName or task."
        assert await self._run(task="x") == "Error: Missing subAgentName or task."

    @pytest.mark.asyncio
    async def test_unknown_subagent(self):
        assert await self._run(subAgentName="Nobody", task="x") == (
            "Error: Subagent 'Nobody' not found. Available subagents: BrokenAgent"
        )

    @pytest.mark.asyncio
    async def test_subagent_failure(self):
        assert await self._run(subAgentName="BrokenAgent", task="x") == (
            "Error running subagent 'BrokenAgent': model exploded"
        )

    def test_not_destructive(self):
        assert self.tool.destructive is False

    def test_agent_registers_helpers(self, vault):
        agent = make_agent(FakeLLM(), vault)
        assert agent.subagents.names() == ["ExploreAgent", "ResearchAgent", "WriterAgent"]
        assert "delegate_task" in agent.tool_registry
        assert "update_plan" in agent.tool_registry

    @pytest.mark.asyncio
    async def test_run_subagent_records_turns(self, vault):
        agent = make_agent(FakeLLM(["DONE: three notes"]), vault)

        assert await agent.run_subagent("ExploreAgent", "count notes") == "three notes"
        assert agent.history == [
            Turn.user("[User ran subagent 'ExploreAgent' with task: \"count notes\"]"),
            Turn.assistant("Subagent 'ExploreAgent' output: three notes"),
        ]

    @pytest.mark.asyncio
    async def test_run_unknown_subagent(self, vault):
        agent = make_agent(FakeLLM(), vault)
        result = await agent.run_subagent("Nobody", "x")
        assert result.startswith("Error: Subagent 'Nobody' not found.")
        assert agent.history == []

    @pytest.mark.asyncio
    async def test_research_model_follows_settings(self, vault):
        llm = FakeLLM(["DONE: ok"])
        agent = make_agent(llm, vault)
        agent.update_settings(agent.settings.model_copy(update={"research_model": "other/model"}))

        await agent.run_subagent("ResearchAgent", "look")
        assert llm.models == ["other/model"]

    @pytest.mark.asyncio
    async def test_stop_direct_subagent_run(self, vault):
        llm = FakeLLM()
        llm.pause = True
        agent = make_agent(llm, vault)

        task = asyncio.create_task(agent.run_subagent("ExploreAgent", "look"))
        await llm.started.wait()
        assert agent.stop() is True

        assert await task == REQUEST_CANCELLED
        assert len(llm.calls) < MAX_STEPS
        assert agent.history == []
        assert agent.stop() is False

    @pytest.mark.asyncio
    async def test_subagent_receives_cancellation(self, vault):
        llm = FakeLLM()
        event = asyncio.Event()
        event.set()

        assert await ExploreAgent(llm, vault).run("look", event) == REQUEST_CANCELLED
        assert llm.calls == []
