"""
WriterAgent - 按风格指南起草 markdown 内容
"""
import logging

from secretary.core.llm_client import LLMClient
from secretary.storage import Vault
from secretary.tools.builtin import AppendFileTool, ReadFileTool, WriteFileTool

from .base import SubAgent

logger = logging.getLogger(__name__)

STYLE_GUIDE_PATH = "style_guide.md"


class WriterAgent(SubAgent):
    name = "WriterAgent"
    task_instruction = "Draft content based on the request."
    timeout_message = "Writing timed out."

    def __init__(self, llm: LLMClient, vault: Vault, style_guide_path: str = STYLE_GUIDE_PATH):
        super().__init__(llm, [ReadFileTool(vault), WriteFileTool(vault), AppendFileTool(vault)])
        self.vault = vault
        self.style_guide_path = style_guide_path
        self.style_guide = ""

    async def prepare(self) -> None:
        """每次运行时重新读取风格指南"""
        self.style_guide = ""
        try:
            if await self.vault.is_file(self.style_guide_path):
                self.style_guide = await self.vault.read(self.style_guide_path)
        except (OSError, ValueError) as e:
            logger.warning("Failed to read style guide: %s", e)

    def system_prompt(self) -> str:
        style_guide = self.style_guide or "No style guide defined yet."
        return f"""You are a Writer Agent. Your goal is to draft content (markdown files) for the user.
You have access to:
- read_file: Read existing files for context.
- write_file: Write new content to a file.
- append_file: Append text to a file.

STYLE GUIDE:
{style_guide}

INSTRUCTIONS:
1. If the task is to "Learn style from [file]", read that file, analyze the writing style (tone, formatting, vocabulary), and append a summary of the style to '{self.style_guide_path}'.
2. If the task is to draft content, follow the Style Guide above.

Respond with JSON to use tools: {{ "tool": "name", "args": {{ ... }} }}
When you have finished, respond with "DONE: <summary>".
"""
