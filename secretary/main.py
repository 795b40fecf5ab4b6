"""
Secretary 主入口 - 交互式命令行
"""
import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import List, Optional

import yaml
from prompt_toolkit import PromptSession
from prompt_toolkit.styles import Style
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from secretary.config_loader import AgentSettings, load_config, save_config
from secretary.core.agent_loop import Agent
from secretary.core.errors import AgentError, RequestCancelled
from secretary.core.llm_client import LLMClient
from secretary.core.policy import AutonomyMode
from secretary.core.prompts import REQUEST_CANCELLED
from secretary.core.types import EventType
from secretary.storage import LocalVault

console = Console()

# 自定义样式
style = Style.from_dict({
    'prompt': '#00aa00 bold',
    'hint': '#666666',
})

AUDIO_FORMATS = ("wav", "mp3", "ogg", "webm")

HELP_TEXT = """
# Available Commands

- `/help` - Show this help message
- `/new` - Save the current session and start a new one
- `/mode [plan|low|high]` - Show or change the autonomy mode
- `/model [name]` - Show or change the model
- `/history` - List saved sessions
- `/load <number|path>` - Load a saved session
- `/init` - Explore the vault and write the context file
- `/memory <text>` - Ask the agent to remember something
- `/routine [list|add|delete|<name>]` - Manage and run routines
- `/subagent <name> <task>` - Run a subagent directly
- `/compact` - Summarize and compact the conversation
- `/transcribe <audio file>` - Transcribe speech into a message
- `/exit`, `/quit` - Exit the application

Press Ctrl-C while the assistant is working to stop the current request.
"""


def setup_logging(level: str) -> None:
    """日志输出到 rich 控制台"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)]
    )


class SecretaryApp:
    """Secretary 应用程序"""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = config_path
        self.config = load_config(config_path)
        self.settings = AgentSettings.from_config(self.config)
        self.session = PromptSession(style=style)
        self.agent: Optional[Agent] = None
        self._sessions: List[str] = []
        self._draft = ""
        self._file_api_key = self._read_file_api_key()

    def _read_file_api_key(self) -> Optional[str]:
        """配置文件中显式写入的密钥（不含环境变量）"""
        if not Path(self.config_path).exists():
            return None
        with open(self.config_path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
        return (raw.get('llm') or {}).get('api_key')

    def print_banner(self):
        """打印欢迎信息"""
        banner = f"""
╭────────────────────────────────────────────────────────────╮
│   Secretary - conversational vault agent                   │
│   Model: {self.settings.model:50}│
│   Mode:  {self.settings.mode.value:50}│
╰────────────────────────────────────────────────────────────╯
        """
        console.print(banner, style="cyan")

    def setup(self) -> bool:
        """初始化设置"""
        setup_logging(self.settings.log_level)

        if not self.settings.api_key:
            console.print("[red]Error: API key not found![/red]")
            console.print("\nPlease set one of the following:")
            console.print("  1. Environment variable: OPENROUTER_API_KEY")
            console.print("  2. Add llm.api_key to config.yaml")
            return False

        llm_client = LLMClient(
            api_key=self.settings.api_key,
            model=self.settings.model,
            base_url=self.settings.base_url
        )
        vault = LocalVault(self.settings.vault_root)

        self.agent = Agent(
            llm_client=llm_client,
            vault=vault,
            settings=self.settings,
            approval_handler=self._ask_approval
        )

        # 监听事件
        self.agent.event_bus.on(EventType.TOOL_STARTED, self._on_tool_started)
        self.agent.event_bus.on(EventType.TOOL_FINISHED, self._on_tool_finished)
        self.agent.event_bus.on(EventType.PLAN_UPDATED, self._on_plan_updated)
        self.agent.event_bus.on(EventType.MODE_CHANGED, self._on_mode_changed)
        self.agent.event_bus.on(EventType.NOTICE, self._on_notice)
        return True

    async def _on_tool_started(self, event):
        console.print(f"[dim]🔧 {event.data['tool']} {escape(str(event.data.get('args') or ''))}[/dim]")

    async def _on_tool_finished(self, event):
        result = event.data.get("result")
        if isinstance(result, str) and result.startswith("Error"):
            console.print(f"[red]{escape(result)}[/red]")

    async def _on_plan_updated(self, event):
        plan = event.data.get("plan")
        if plan:
            console.print(Panel(Markdown(plan), title="Plan", border_style="blue"))

    async def _on_mode_changed(self, event):
        console.print(f"[green]Mode changed to: {event.data['mode']}[/green]")

    async def _on_notice(self, event):
        console.print(f"[yellow]{event.data['message']}[/yellow]")

    async def _ask_approval(self, tool_name: str, args: dict) -> bool:
        """低自治模式下的审批面板"""
        tool = self.agent.tool_registry.get(tool_name)
        locations = tool.build("", args).get_affected_locations() if tool else []
        prompt = self.agent.policy.generate_confirmation_prompt(tool_name, args, locations)
        console.print(Panel(Markdown(prompt), title=f"Confirm tool: {tool_name}", border_style="yellow"))
        response = await self.session.prompt_async("Proceed? [y/N]: ")
        return response.strip().lower() in ('y', 'yes')

    async def _run(self, coro, cancellable: bool = True) -> Optional[str]:
        """运行一个请求；可取消的请求期间 Ctrl-C 调用 agent.stop()"""
        loop = asyncio.get_running_loop()
        installed = False
        if cancellable:
            try:
                loop.add_signal_handler(signal.SIGINT, self.agent.stop)
                installed = True
            except (NotImplementedError, RuntimeError):
                pass

        console.print("\n[dim]Assistant thinking...[/dim]\n")
        try:
            return await coro
        except RequestCancelled:
            console.print(f"[dim]{REQUEST_CANCELLED}[/dim]")
            return None
        except AgentError as e:
            console.print(f"[red]Error: {e}[/red]")
            return None
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)

    async def _send(self, message: str) -> None:
        await self._show(self.agent.chat(message))

    async def _show(self, coro) -> None:
        response = await self._run(coro)
        if response:
            console.print(Markdown(response))
        console.print()

    async def run_interactive(self):
        """运行交互式会话"""
        self.print_banner()

        if not self.setup():
            return

        console.print("\n[dim]Type /help for commands, /exit to quit[/dim]\n")

        while True:
            try:
                user_input = await self.session.prompt_async(
                    "You: ", style="class:prompt", default=self._draft
                )
                self._draft = ""
                user_input = user_input.strip()

                if not user_input:
                    continue

                if user_input.startswith('/'):
                    if await self._handle_command(user_input):
                        break
                    continue

                await self._send(user_input)

            except KeyboardInterrupt:
                continue
            except EOFError:
                break

        await self.agent.save_session()
        console.print("[green]Goodbye! 👋[/green]")

    async def _handle_command(self, command: str) -> bool:
        """处理命令，返回 True 表示退出"""
        parts = command.split()
        cmd = parts[0].lower()
        args = parts[1:]
        rest = command[len(parts[0]):].strip()

        if cmd in ('/exit', '/quit'):
            return True

        elif cmd == '/help':
            console.print(Markdown(HELP_TEXT))

        elif cmd == '/new':
            await self.agent.clear_history()
            console.print("[green]Started a new session[/green]")

        elif cmd == '/mode':
            if not args:
                console.print(f"Current mode: [bold]{self.agent.mode.value}[/bold]")
            else:
                try:
                    await self.agent.set_mode(AutonomyMode(args[0].lower()))
                except ValueError:
                    console.print("[red]Usage: /mode <plan|low|high>[/red]")

        elif cmd == '/model':
            self._handle_model(rest)

        elif cmd == '/history':
            await self._show_history()

        elif cmd == '/load' and args:
            path = args[0]
            if path.isdigit() and 0 < int(path) <= len(self._sessions):
                path = self._sessions[int(path) - 1]
            await self.agent.load_session(path)

        elif cmd == '/init':
            await self._show(self.agent.run_init_routine())

        elif cmd in ('/memory', '/mem'):
            if not rest:
                console.print("[red]Usage: /memory <text to remember>[/red]")
            else:
                await self._show(self.agent.remember(rest))

        elif cmd in ('/routine', '/r'):
            await self._handle_routine(args, rest)

        elif cmd in ('/subagent', '/agent'):
            await self._handle_subagent(args)

        elif cmd == '/compact':
            summary = await self._run(self.agent.compact())
            if summary:
                console.print(Panel(Markdown(summary), title="Context Summary", border_style="green"))
            else:
                console.print("[dim]Nothing to compact.[/dim]")

        elif cmd == '/transcribe' and args:
            await self._transcribe(Path(rest).expanduser())

        else:
            console.print(f"[red]Unknown command: {cmd}[/red]")

        return False

    def _handle_model(self, fragment: str) -> None:
        available = "\n".join(f"- {m}" for m in self.agent.settings.available_models)
        if not fragment:
            console.print(Markdown(
                f"Current model: **{self.agent.settings.model}**\n\nAvailable models:\n{available}"
            ))
            return

        model = self.agent.match_model(fragment)
        if model is None:
            console.print(Markdown(f'Model "{fragment}" not found.\n\nAvailable models:\n{available}'))
            return

        self.agent.set_model(model)
        # 密钥来自环境变量时不写入配置文件
        config = self.agent.settings.to_config()
        config['llm']['api_key'] = self._file_api_key
        save_config(config, self.config_path)
        console.print(Markdown(f"Model set to **{model}**."))

    async def _show_history(self) -> None:
        self._sessions = await self.agent.list_sessions()
        if not self._sessions:
            console.print("[yellow]No saved sessions found.[/yellow]")
            return

        table = Table(title="Saved Sessions")
        table.add_column("#", justify="right")
        table.add_column("Session")
        for index, path in enumerate(self._sessions, 1):
            table.add_row(str(index), path)
        console.print(table)
        console.print("[dim]Use /load <number> to restore a session[/dim]")

    async def _handle_routine(self, args: List[str], rest: str) -> None:
        if not args:
            console.print(Markdown(
                "Usage:\n- `/routine list`\n- `/routine add <name> <instructions>`\n"
                "- `/routine delete <name>`\n- `/routine <name> [context]`"
            ))
            return

        sub = args[0]
        if sub in ('list', 'manage'):
            routines = await self.agent.routines.list_routines()
            if not routines:
                console.print("[yellow]No routines found.[/yellow]")
            for name in routines:
                console.print(f"  • {name}")
        elif sub == 'add':
            if len(args) < 3:
                console.print("[red]Usage: /routine add <name> <instructions>[/red]")
                return
            instructions = rest.split(None, 2)[2]
            await self.agent.routines.create_routine(args[1], instructions)
            console.print(f"[green]Routine '{args[1]}' saved.[/green]")
        elif sub == 'delete':
            if len(args) < 2:
                console.print("[red]Please specify a routine name to delete.[/red]")
            elif await self.agent.routines.delete_routine(args[1]):
                console.print(f"[green]Routine '{args[1]}' deleted.[/green]")
            else:
                console.print(f"[red]Routine '{args[1]}' not found.[/red]")
        else:
            name = sub if sub.startswith('/') else '/' + sub
            context = rest[len(sub):].strip()
            await self._show(self.agent.run_routine(name, context))

    async def _handle_subagent(self, args: List[str]) -> None:
        if not args:
            available = ", ".join(self.agent.subagents.names())
            console.print(f"Usage: /subagent <name> <task>\nAvailable subagents: {available}")
            return
        if len(args) < 2:
            console.print("[red]Please provide a task for the subagent.[/red]")
            return

        name, task = args[0], " ".join(args[1:])
        console.print(f"[dim]Running subagent '{name}'...[/dim]")
        response = await self._run(self.agent.run_subagent(name, task))
        if response:
            console.print(Panel(Markdown(response), title=f"{name} Output"))

    async def _transcribe(self, path: Path) -> None:
        fmt = path.suffix.lstrip('.').lower()
        if fmt not in AUDIO_FORMATS:
            console.print(f"[red]Unsupported audio format: {fmt or path.name}[/red]")
            return
        if not path.is_file():
            console.print(f"[red]File not found: {path}[/red]")
            return

        transcript = await self._run(self.agent.transcribe_audio(path.read_bytes(), fmt), cancellable=False)
        if not transcript:
            return
        if self.agent.settings.voice_auto_send:
            console.print(f"[dim]You said: {transcript}[/dim]")
            await self._send(transcript)
        else:
            # 放进下一次输入框，由用户确认后发送
            self._draft = transcript


async def main():
    """主入口"""
    parser = argparse.ArgumentParser(description='Secretary - conversational vault agent')
    parser.add_argument('-c', '--config', default='config.yaml', help='Config file path')
    args = parser.parse_args()

    app = SecretaryApp(config_path=args.config)
    await app.run_interactive()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
