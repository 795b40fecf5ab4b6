"""
例程 - 仓库中 "Agent Routines" 目录下的 markdown 指令文件
"""
import logging
from typing import List, Optional

from secretary.storage import Vault, join_path, normalize_path

logger = logging.getLogger(__name__)


class RoutineManager:
    """例程管理器，例程名带前导斜杠，如 "/Summarize" """

    def __init__(self, vault: Vault, folder: str = "Agent Routines"):
        self.vault = vault
        self.folder = normalize_path(folder)

    def _path(self, name: str) -> str:
        return join_path(self.folder, f"{name.lstrip('/')}.md")

    async def list_routines(self) -> List[str]:
        if not await self.vault.is_dir(self.folder):
            return []
        listing = await self.vault.list(self.folder)
        names = []
        for path in listing.files:
            filename = path.rsplit("/", 1)[-1]
            if filename.endswith(".md"):
                names.append("/" + filename[:-3])
        return names

    async def get_routine_content(self, name: str) -> Optional[str]:
        path = self._path(name)
        if not await self.vault.is_file(path):
            return None
        return await self.vault.read(path)

    async def create_routine(self, name: str, content: str) -> str:
        """创建或覆盖例程"""
        if not await self.vault.exists(self.folder):
            await self.vault.mkdir(self.folder)
        path = self._path(name)
        await self.vault.write(path, content)
        logger.info("Saved routine %s", path)
        return path

    async def delete_routine(self, name: str) -> bool:
        path = self._path(name)
        if not await self.vault.is_file(path):
            return False
        await self.vault.delete(path)
        return True
