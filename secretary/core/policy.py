"""
策略引擎 - 按自治模式拦截破坏性工具
HumanInTheLoop 的核心
"""
import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

from .types import ApprovalHandler, PolicyDecision

logger = logging.getLogger(__name__)


class AutonomyMode(str, Enum):
    """自治模式"""
    PLAN = "plan"   # Plan模式：禁止破坏性操作
    LOW = "low"     # 低自治：破坏性操作需要用户批准
    HIGH = "high"   # 高自治：全部允许


PLAN_MODE_REJECTION = (
    "Error: You are in PLAN mode. Destructive actions are not allowed. "
    "Switch to HIGH or LOW mode to execute."
)
USER_DENIED_MESSAGE = "User denied this action."


def decide(mode: AutonomyMode, destructive: bool) -> PolicyDecision:
    """纯决策函数: (模式, 是否破坏性) -> 决策"""
    if not destructive:
        return PolicyDecision.ALLOW
    if mode == AutonomyMode.PLAN:
        return PolicyDecision.DENY
    if mode == AutonomyMode.LOW:
        return PolicyDecision.ASK_USER
    return PolicyDecision.ALLOW


class PolicyEngine:
    """策略引擎"""

    def __init__(self, mode: AutonomyMode = AutonomyMode.HIGH):
        self.mode = AutonomyMode(mode)

    def set_mode(self, mode: AutonomyMode) -> None:
        """设置自治模式"""
        self.mode = AutonomyMode(mode)

    def check(self, tool_name: str, destructive: bool) -> PolicyDecision:
        """
        检查工具调用是否符合策略

        Returns:
            PolicyDecision: ALLOW, DENY, 或 ASK_USER
        """
        return decide(self.mode, destructive)

    def generate_confirmation_prompt(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        affected_locations: Optional[List[str]] = None
    ) -> str:
        """生成确认提示"""
        lines = [
            "**Tool Execution Request**",
            "",
            f"**Tool:** `{tool_name}`",
            "**Arguments:**"
        ]

        for key, value in arguments.items():
            lines.append(f"  - {key}: `{value}`")

        if affected_locations:
            lines.extend(["", "**Affected Locations:**"])
            for loc in affected_locations:
                lines.append(f"  - {loc}")

        lines.extend(["", "Do you want to proceed?"])
        return "\n".join(lines)


@dataclass
class ApprovalRequest:
    """待决的审批请求，只能被解决一次"""
    tool_name: str
    args: Dict[str, Any]
    future: asyncio.Future

    def resolve(self, approved: bool) -> bool:
        if self.future.done():
            return False
        self.future.set_result(bool(approved))
        return True


class ConfirmationManager:
    """确认管理器 - 同一时间最多一个待决请求"""

    def __init__(self, handler: Optional[ApprovalHandler] = None):
        self.handler = handler
        self._pending: Optional[ApprovalRequest] = None

    @property
    def pending(self) -> Optional[ApprovalRequest]:
        return self._pending

    async def request(self, tool_name: str, args: Dict[str, Any]) -> bool:
        """
        请求批准并挂起，直到外部给出结果

        有 handler 时由 handler 决定；否则等待 respond() 调用。
        """
        if self._pending is not None:
            raise RuntimeError("An approval request is already pending")

        loop = asyncio.get_running_loop()
        pending = ApprovalRequest(tool_name=tool_name, args=args, future=loop.create_future())
        self._pending = pending
        try:
            if self.handler is not None:
                waiter = asyncio.ensure_future(self._ask_handler(tool_name, args))
                done, _ = await asyncio.wait(
                    {waiter, pending.future}, return_when=asyncio.FIRST_COMPLETED
                )
                if waiter in done:
                    pending.resolve(self._handler_outcome(waiter))
                else:
                    waiter.cancel()
            return await pending.future
        finally:
            self._pending = None

    @staticmethod
    def _handler_outcome(waiter: asyncio.Future) -> bool:
        """审批界面出错视为拒绝"""
        try:
            return waiter.result()
        except Exception:
            logger.exception("Approval handler failed")
            return False

    async def _ask_handler(self, tool_name: str, args: Dict[str, Any]) -> bool:
        result = self.handler(tool_name, args)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    def respond(self, approved: bool) -> bool:
        """响应待决的审批请求"""
        if self._pending is None:
            return False
        return self._pending.resolve(approved)

    def cancel(self) -> None:
        """取消待决请求（视为拒绝）"""
        if self._pending is not None:
            self._pending.resolve(False)
