"""
工具基类 - 所有工具的基类

ToolBuilder 描述工具（名称、说明、参数Schema、是否破坏性），
build() 产生一次性的 ToolInvocation，由 execute() 执行。
"""
import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from secretary.core.types import ToolSchema


class ToolKind(str, Enum):
    """工具类型枚举"""
    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    MOVE = "move"
    SEARCH = "search"
    THINK = "think"
    DELEGATE = "delegate"
    OTHER = "other"


# 有副作用的工具类型
MUTATOR_KINDS = {ToolKind.EDIT, ToolKind.DELETE, ToolKind.MOVE}


class ToolResult:
    """工具执行结果"""

    def __init__(
        self,
        call_id: str,
        success: bool,
        content: Any = "",
        error: Optional[str] = None,
    ):
        self.call_id = call_id
        self.success = success
        self.content = content
        self.error = error


class ToolInvocation:
    """工具调用实例"""

    def __init__(
        self,
        tool: "ToolBuilder",
        params: Optional[Dict[str, Any]] = None,
        call_id: Optional[str] = None
    ):
        self.tool = tool
        self.name = tool.name
        self.kind = tool.kind
        self.params = params or {}
        self.call_id = call_id or ""

    def get_affected_locations(self) -> List[str]:
        return []

    async def run(self, cancellation_event: asyncio.Event) -> Any:
        """工具主体（子类重写），失败时直接抛异常"""
        raise NotImplementedError

    async def execute(self, cancellation_event: Optional[asyncio.Event] = None) -> ToolResult:
        """执行工具调用，异常转换为失败结果"""
        cancellation_event = cancellation_event or asyncio.Event()
        try:
            content = await self.run(cancellation_event)
        except Exception as e:
            return ToolResult(
                call_id=self.call_id,
                success=False,
                error=str(e) or e.__class__.__name__
            )
        return ToolResult(call_id=self.call_id, success=True, content=content)


class ToolBuilder:
    """工具构建器基类"""

    invocation_class: Type[ToolInvocation] = ToolInvocation

    def __init__(
        self,
        name: str,
        display_name: Optional[str] = None,
        description: str = "",
        kind: ToolKind = ToolKind.OTHER,
        parameter_schema: Optional[Dict] = None,
    ):
        self.name = name
        self.display_name = display_name or name
        self.description = description
        self.kind = kind
        self.parameter_schema = parameter_schema or {"type": "object", "properties": {}}

    @property
    def destructive(self) -> bool:
        """创建、写入、编辑、追加、删除、移动、建目录都算破坏性"""
        return self.kind in MUTATOR_KINDS

    def build(self, call_id: str, params: Dict[str, Any]) -> ToolInvocation:
        """构建工具调用实例"""
        return self.invocation_class(tool=self, params=params, call_id=call_id)

    def to_schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description=self.description,
            parameters=self.parameter_schema
        )


class ToolRegistry:
    """工具注册表 - 启动时填充，处理请求期间只读"""

    def __init__(self):
        self._tools: Dict[str, ToolBuilder] = {}
        self._call_id_counter = 0

    def register(self, tool: ToolBuilder) -> None:
        """注册工具"""
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        """注销工具"""
        self._tools.pop(name, None)

    def get(self, name: str) -> Optional[ToolBuilder]:
        """获取工具"""
        return self._tools.get(name)

    def get_all(self) -> List[ToolBuilder]:
        """获取所有工具"""
        return list(self._tools.values())

    def get_all_schemas(self) -> List[ToolSchema]:
        """获取所有工具的Schema"""
        return [tool.to_schema() for tool in self._tools.values()]

    def next_call_id(self) -> str:
        self._call_id_counter += 1
        return f"call_{self._call_id_counter}"

    def build_tool(self, name: str, params: Optional[Dict[str, Any]] = None) -> Optional[ToolInvocation]:
        """构建工具调用"""
        tool = self._tools.get(name)
        if not tool:
            return None
        return tool.build(self.next_call_id(), params or {})

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
