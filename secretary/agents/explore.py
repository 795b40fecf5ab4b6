"""
ExploreAgent - 浏览目录、读取文件来收集上下文
"""
from secretary.core.llm_client import LLMClient
from secretary.storage import Vault
from secretary.tools.builtin import ListDirTool, ReadFileTool

from .base import SubAgent


class ExploreAgent(SubAgent):
    name = "ExploreAgent"
    task_instruction = "Explore the vault to gather information."
    timeout_message = "Exploration timed out."

    def __init__(self, llm: LLMClient, vault: Vault):
        super().__init__(llm, [ListDirTool(vault), ReadFileTool(vault)])

    def system_prompt(self) -> str:
        return """You are an Explore Agent. Your goal is to navigate the file system and read files to gather context.
You have access to:
- list_dir: List files in a folder.
- read_file: Read file content.

Respond with JSON to use tools: { "tool": "name", "args": { ... } }
When you have enough information, respond with "DONE: <summary of findings>".
If you cannot find what you are looking for after a few steps, respond with "DONE: Could not find information."
"""
