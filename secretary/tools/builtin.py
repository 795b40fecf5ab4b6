"""
内置工具实现 - 仓库文件操作与搜索
"""
import asyncio
from typing import Any, Dict, List

from secretary.core.errors import ToolExecutionError
from secretary.storage import Vault, normalize_path

from .base import ToolBuilder, ToolInvocation, ToolKind


def _path_schema(**extra: Any) -> Dict[str, Any]:
    properties = {"path": {"type": "string", "description": "Vault-relative path"}}
    properties.update(extra)
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties.keys())
    }


class VaultTool(ToolBuilder):
    """操作仓库的工具基类"""

    def __init__(self, vault: Vault, **kwargs):
        super().__init__(**kwargs)
        self.vault = vault


class VaultInvocation(ToolInvocation):
    """取参数的小工具"""

    @property
    def vault(self) -> Vault:
        return self.tool.vault

    def require(self, key: str) -> Any:
        value = self.params.get(key)
        if value is None or value == "":
            raise ToolExecutionError(f"Missing required parameter: {key}")
        return value

    def get_affected_locations(self) -> List[str]:
        path = self.params.get("path")
        return [normalize_path(path)] if path else []


class ReadFileInvocation(VaultInvocation):
    """读取文件工具调用"""

    async def run(self, cancellation_event: asyncio.Event) -> str:
        path = normalize_path(self.require("path"))
        if not await self.vault.is_file(path):
            raise ToolExecutionError(f"File not found: {self.params['path']}")
        return await self.vault.read(path)


class ReadFileTool(VaultTool):
    """读取文件工具"""
    invocation_class = ReadFileInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="read_file",
            display_name="Read File",
            description="Reads the content of a file. Args: { path: string }",
            kind=ToolKind.READ,
            parameter_schema=_path_schema()
        )


class WriteFileInvocation(VaultInvocation):
    """写入文件工具调用"""

    async def run(self, cancellation_event: asyncio.Event) -> str:
        path = normalize_path(self.require("path"))
        content = self.params.get("content", "")

        if await self.vault.is_file(path):
            await self.vault.write(path, content)
            return f"Updated file: {path}"
        if await self.vault.exists(path):
            raise ToolExecutionError(f"Path exists but is not a file: {path}")

        # 确保父目录存在
        folder = path.rpartition("/")[0]
        if folder and not await self.vault.exists(folder):
            await self.vault.mkdir(folder)
        await self.vault.write(path, content)
        return f"Created file: {path}"


class WriteFileTool(VaultTool):
    """写入文件工具"""
    invocation_class = WriteFileInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="write_file",
            display_name="Write File",
            description="Creates or overwrites a file. Args: { path: string, content: string }",
            kind=ToolKind.EDIT,
            parameter_schema=_path_schema(content={"type": "string"})
        )


class EditFileInvocation(VaultInvocation):
    """替换文件中的文本"""

    async def run(self, cancellation_event: asyncio.Event) -> str:
        raw_path = self.require("path")
        path = normalize_path(raw_path)
        target = self.require("target")
        replacement = self.params.get("replacement", "")

        if not await self.vault.is_file(path):
            raise ToolExecutionError(f"File not found: {raw_path}")
        content = await self.vault.read(path)
        if target not in content:
            raise ToolExecutionError(f"Target text not found in file: {raw_path}")
        await self.vault.write(path, content.replace(target, replacement, 1))
        return f"Edited file: {raw_path}"


class EditFileTool(VaultTool):
    """编辑文件工具"""
    invocation_class = EditFileInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="edit_file",
            display_name="Edit File",
            description="Replaces text in a file. Args: { path: string, target: string, replacement: string }",
            kind=ToolKind.EDIT,
            parameter_schema=_path_schema(
                target={"type": "string"},
                replacement={"type": "string"}
            )
        )


class AppendFileInvocation(VaultInvocation):
    """追加文本"""

    async def run(self, cancellation_event: asyncio.Event) -> str:
        raw_path = self.require("path")
        path = normalize_path(raw_path)
        if not await self.vault.is_file(path):
            raise ToolExecutionError(f"File not found: {raw_path}")
        await self.vault.append(path, "\n" + self.params.get("content", ""))
        return f"Appended to file: {raw_path}"


class AppendFileTool(VaultTool):
    """追加文件工具"""
    invocation_class = AppendFileInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="append_file",
            display_name="Append File",
            description="Appends text to the end of a file. Args: { path: string, content: string }",
            kind=ToolKind.EDIT,
            parameter_schema=_path_schema(content={"type": "string"})
        )


class DeleteFileInvocation(VaultInvocation):
    """删除文件或目录"""

    async def run(self, cancellation_event: asyncio.Event) -> str:
        raw_path = self.require("path")
        path = normalize_path(raw_path)
        if not await self.vault.exists(path):
            raise ToolExecutionError(f"File not found: {raw_path}")
        await self.vault.delete(path)
        return f"Deleted: {raw_path}"


class DeleteFileTool(VaultTool):
    """删除工具"""
    invocation_class = DeleteFileInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="delete_file",
            display_name="Delete File",
            description="Deletes a file or directory. Args: { path: string }",
            kind=ToolKind.DELETE,
            parameter_schema=_path_schema()
        )


class MoveFileInvocation(VaultInvocation):
    """移动或重命名"""

    def get_affected_locations(self) -> List[str]:
        return [
            normalize_path(self.params.get(key, ""))
            for key in ("oldPath", "newPath")
            if self.params.get(key)
        ]

    async def run(self, cancellation_event: asyncio.Event) -> str:
        old_path = self.require("oldPath")
        new_path = self.require("newPath")
        if not await self.vault.exists(normalize_path(old_path)):
            raise ToolExecutionError(f"File not found: {old_path}")
        await self.vault.rename(normalize_path(old_path), normalize_path(new_path))
        return f"Moved {old_path} to {new_path}"


class MoveFileTool(VaultTool):
    """移动工具"""
    invocation_class = MoveFileInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="move_file",
            display_name="Move File",
            description="Moves or renames a file. Args: { oldPath: string, newPath: string }",
            kind=ToolKind.MOVE,
            parameter_schema={
                "type": "object",
                "properties": {
                    "oldPath": {"type": "string"},
                    "newPath": {"type": "string"}
                },
                "required": ["oldPath", "newPath"]
            }
        )


class ListDirInvocation(VaultInvocation):
    """列目录"""

    async def run(self, cancellation_event: asyncio.Event) -> List[str]:
        raw_path = self.params.get("path") or "/"
        path = normalize_path(raw_path)
        if not await self.vault.is_dir(path):
            raise ToolExecutionError(f"Folder not found: {raw_path}")
        listing = await self.vault.list(path)
        return sorted(listing.folders + listing.files)


class ListDirTool(VaultTool):
    """列目录工具"""
    invocation_class = ListDirInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="list_dir",
            display_name="List Directory",
            description="Lists contents of a directory. Args: { path: string }",
            kind=ToolKind.READ,
            parameter_schema=_path_schema()
        )


class CreateDirInvocation(VaultInvocation):
    """建目录"""

    async def run(self, cancellation_event: asyncio.Event) -> str:
        raw_path = self.require("path")
        await self.vault.mkdir(normalize_path(raw_path))
        return f"Created folder: {raw_path}"


class CreateDirTool(VaultTool):
    """建目录工具"""
    invocation_class = CreateDirInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="create_dir",
            display_name="Create Directory",
            description="Creates a directory. Args: { path: string }",
            kind=ToolKind.EDIT,
            parameter_schema=_path_schema()
        )


class SearchFilesInvocation(ToolInvocation):
    """按内容搜索文件"""

    async def run(self, cancellation_event: asyncio.Event) -> List[str]:
        query = str(self.params.get("query") or "").lower()
        if not query:
            raise ToolExecutionError("Missing required parameter: query")

        vault = self.tool.vault
        results = []
        for path in await vault.list_files():
            if cancellation_event.is_set():
                break
            try:
                content = await vault.read(path)
            except (OSError, UnicodeDecodeError):
                continue
            if query in content.lower():
                results.append(path)
        return results


class SearchFilesTool(VaultTool):
    """搜索工具"""
    invocation_class = SearchFilesInvocation

    def __init__(self, vault: Vault):
        super().__init__(
            vault,
            name="search_files",
            display_name="Search Files",
            description="Searches for files containing specific text. Args: { query: string }",
            kind=ToolKind.SEARCH,
            parameter_schema={
                "type": "object",
                "properties": {"query": {"type": "string"}},
                "required": ["query"]
            }
        )


def register_builtin_tools(registry, vault: Vault) -> None:
    """注册所有内置工具"""
    registry.register(ReadFileTool(vault))
    registry.register(WriteFileTool(vault))
    registry.register(DeleteFileTool(vault))
    registry.register(MoveFileTool(vault))
    registry.register(ListDirTool(vault))
    registry.register(CreateDirTool(vault))
    registry.register(EditFileTool(vault))
    registry.register(AppendFileTool(vault))
    registry.register(SearchFilesTool(vault))
