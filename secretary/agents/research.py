"""
ResearchAgent - 按内容搜索仓库，可使用独立的模型
"""
from secretary.core.llm_client import LLMClient
from secretary.storage import Vault
from secretary.tools.builtin import ReadFileTool, SearchFilesTool

from .base import SubAgent


class ResearchAgent(SubAgent):
    name = "ResearchAgent"
    task_instruction = "Search the vault to find relevant information."
    timeout_message = "Research timed out."

    def __init__(self, llm: LLMClient, vault: Vault, model: str):
        super().__init__(llm, [SearchFilesTool(vault), ReadFileTool(vault)])
        self.model = model

    def update_model(self, model: str) -> None:
        self.model = model

    def llm_for_step(self) -> LLMClient:
        # 每步新建客户端: 复用共享凭据，只替换模型
        return self.llm.with_model(self.model)

    def system_prompt(self) -> str:
        return """You are a Research Agent. Your goal is to find specific information within the vault.
You have access to:
- search_files: Search for files by content.
- read_file: Read file content.

Respond with JSON to use tools: { "tool": "name", "args": { ... } }
When you have found the information, respond with "DONE: <summary of findings>".
If you cannot find the information, respond with "DONE: Could not find information."
"""
