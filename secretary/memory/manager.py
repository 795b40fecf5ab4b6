"""
记忆系统 - 仓库内的长期记忆文件
"""
import logging

from secretary.core.prompts import MEMORY_REQUEST_TEMPLATE
from secretary.storage import Vault, normalize_path

logger = logging.getLogger(__name__)


class MemoryManager:
    """记忆管理器 - 每个周期重新读取上下文文件"""

    def __init__(self, vault: Vault, context_file: str = "AGENTS.md"):
        self.vault = vault
        self.context_file = normalize_path(context_file)
        self._content: str = ""

    def set_context_file(self, context_file: str) -> None:
        self.context_file = normalize_path(context_file)
        self._content = ""

    async def refresh(self) -> str:
        """加载上下文文件，读取失败时视为空"""
        try:
            if await self.vault.is_file(self.context_file):
                self._content = await self.vault.read(self.context_file)
            else:
                self._content = ""
        except (OSError, ValueError) as e:
            logger.warning("Failed to read context file %s: %s", self.context_file, e)
            self._content = ""
        return self._content

    def get_memory(self) -> str:
        return self._content

    def format_for_system_prompt(self) -> str:
        """格式化为系统提示词片段"""
        if not self._content:
            return ""
        return f"CONTEXT FROM VAULT ({self.context_file}):\n{self._content}\n"

    @staticmethod
    def remember(text: str) -> str:
        """构造 /memory 命令发给Agent的消息"""
        return MEMORY_REQUEST_TEMPLATE.format(text=text.strip())
