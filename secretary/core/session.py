"""
会话存储 - 把对话历史保存到仓库中的 JSON 文件
"""
import json
import logging
from datetime import datetime
from typing import List, Optional

from secretary.storage import Vault, join_path, normalize_path

from .types import AgentEvent, EventType, Turn, turns_to_dicts

logger = logging.getLogger(__name__)

SESSION_FILENAME_FORMAT = "session_%Y-%m-%d_%H-%M-%S.json"


class Conversation:
    """有序的对话轮次 + 持久化位置"""

    def __init__(self, turns: Optional[List[Turn]] = None):
        self.turns: List[Turn] = list(turns or [])
        self.path: Optional[str] = None
        self.created_at = datetime.now()

    def append(self, turn: Turn) -> None:
        self.turns.append(turn)

    def replace(self, turns: List[Turn], path: Optional[str] = None) -> None:
        """整体替换（加载会话）"""
        self.turns = list(turns)
        self.path = path

    def clear(self) -> None:
        """清空并开始新会话"""
        self.turns = []
        self.path = None
        self.created_at = datetime.now()

    def __len__(self) -> int:
        return len(self.turns)

    def __iter__(self):
        return iter(self.turns)


class SessionStore:
    """
    会话存储

    文件名由会话创建时间生成，按名称倒序即为按时间倒序。
    保存/加载失败只记日志并发出通知，不向上抛出。
    """

    def __init__(self, vault: Vault, folder: str = "Agent History", events=None):
        self.vault = vault
        self.folder = normalize_path(folder)
        self.events = events

    async def _notice(self, message: str) -> None:
        if self.events is not None:
            await self.events.emit(AgentEvent(type=EventType.NOTICE, data={"message": message}))

    def path_for(self, conversation: Conversation) -> str:
        return join_path(self.folder, conversation.created_at.strftime(SESSION_FILENAME_FORMAT))

    async def save(self, conversation: Conversation) -> Optional[str]:
        """保存会话，首次保存时分配路径；空会话不保存"""
        if not conversation.turns:
            return None

        path = conversation.path or self.path_for(conversation)
        conversation.path = path
        try:
            if not await self.vault.exists(self.folder):
                await self.vault.mkdir(self.folder)
            payload = json.dumps(turns_to_dicts(conversation.turns), indent=2, ensure_ascii=False)
            await self.vault.write(path, payload)
        except (OSError, ValueError) as e:
            logger.error("Failed to save session: %s", e)
            await self._notice("Failed to save session.")
            return None
        logger.debug("Session saved to %s", path)
        return path

    async def load(self, conversation: Conversation, path: str) -> bool:
        """用文件内容整体替换当前会话"""
        path = normalize_path(path)
        try:
            if not await self.vault.is_file(path):
                await self._notice(f"Session file not found: {path}")
                return False
            data = json.loads(await self.vault.read(path))
            turns = [Turn.from_dict(item) for item in data]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error("Failed to load session %s: %s", path, e)
            await self._notice("Failed to load session.")
            return False

        conversation.replace(turns, path)
        await self._notice(f"Session loaded from {path}")
        return True

    async def list_sessions(self) -> List[str]:
        """列出已保存的会话，最新的在前"""
        try:
            if not await self.vault.is_dir(self.folder):
                return []
            listing = await self.vault.list(self.folder)
        except (OSError, ValueError) as e:
            logger.error("Failed to list sessions: %s", e)
            return []
        files = [path for path in listing.files if path.endswith(".json")]
        return sorted(files, reverse=True)
