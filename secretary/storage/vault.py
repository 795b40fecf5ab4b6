"""
存储后端 - 以路径寻址的文件仓库（Vault）

会话存储、文件工具和子Agent都通过这个接口读写持久化内容。
"""
import os
import re
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

ROOT = "/"

_SLASHES_RE = re.compile(r"/+")


def normalize_path(path: str) -> str:
    """
    规范化仓库路径

    反斜杠转为 /，合并重复斜杠，去掉首尾斜杠；空路径表示根目录 "/"。
    """
    cleaned = (path or "").replace("\\", "/").replace("\u00a0", " ")
    cleaned = _SLASHES_RE.sub("/", cleaned).strip("/")
    return cleaned or ROOT


def join_path(*parts: str) -> str:
    return normalize_path("/".join(p for p in parts if p and p != ROOT))


@dataclass
class ListResult:
    """目录列举结果"""
    files: List[str] = field(default_factory=list)
    folders: List[str] = field(default_factory=list)


class Vault(ABC):
    """存储后端接口，所有路径在使用前都会被规范化"""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    async def is_file(self, path: str) -> bool:
        ...

    @abstractmethod
    async def is_dir(self, path: str) -> bool:
        ...

    @abstractmethod
    async def read(self, path: str) -> str:
        ...

    @abstractmethod
    async def write(self, path: str, content: str) -> None:
        """创建或覆盖"""

    @abstractmethod
    async def append(self, path: str, content: str) -> None:
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    @abstractmethod
    async def rename(self, old_path: str, new_path: str) -> None:
        ...

    @abstractmethod
    async def list(self, path: str) -> ListResult:
        """列出直接子项"""

    @abstractmethod
    async def mkdir(self, path: str) -> None:
        ...

    @abstractmethod
    async def list_files(self) -> List[str]:
        """递归列出仓库内所有文件"""


class LocalVault(Vault):
    """基于本地目录的仓库"""

    def __init__(self, root: Union[str, Path] = "."):
        self.root = Path(root).expanduser().resolve()

    def resolve(self, path: str) -> Path:
        """把仓库路径映射为本地路径，禁止越出仓库根目录"""
        normalized = normalize_path(path)
        if normalized == ROOT:
            return self.root
        target = (self.root / normalized).resolve()
        if target != self.root and self.root not in target.parents:
            raise ValueError(f"Path escapes the vault: {path}")
        return target

    def relative(self, target: Path) -> str:
        return normalize_path(target.relative_to(self.root).as_posix())

    async def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    async def is_file(self, path: str) -> bool:
        return self.resolve(path).is_file()

    async def is_dir(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    async def read(self, path: str) -> str:
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return target.read_text(encoding="utf-8")

    async def write(self, path: str, content: str) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    async def append(self, path: str, content: str) -> None:
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        with open(target, "a", encoding="utf-8") as f:
            f.write(content)

    async def delete(self, path: str) -> None:
        target = self.resolve(path)
        if target == self.root:
            raise ValueError("Refusing to delete the vault root")
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()
        else:
            raise FileNotFoundError(f"File not found: {path}")

    async def rename(self, old_path: str, new_path: str) -> None:
        source = self.resolve(old_path)
        if not source.exists():
            raise FileNotFoundError(f"File not found: {old_path}")
        target = self.resolve(new_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, target)

    async def list(self, path: str) -> ListResult:
        target = self.resolve(path)
        if not target.is_dir():
            raise FileNotFoundError(f"Folder not found: {path}")
        result = ListResult()
        for child in sorted(target.iterdir()):
            if child.is_dir():
                result.folders.append(self.relative(child))
            else:
                result.files.append(self.relative(child))
        return result

    async def mkdir(self, path: str) -> None:
        self.resolve(path).mkdir(parents=True, exist_ok=True)

    async def list_files(self) -> List[str]:
        files = []
        for current, dirs, names in os.walk(self.root):
            # 跳过隐藏目录
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for name in sorted(names):
                files.append(self.relative(Path(current) / name))
        return files
