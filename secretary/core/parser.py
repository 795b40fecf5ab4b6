"""
回复解析器 - 从自由文本中提取单个工具调用

提取顺序（先命中者优先）:
1. 第一个代码块（可带 json 标签）中的 {...}（非贪婪）
2. 全文中第一个 { 到最后一个 }（贪婪）
3. <function_calls> 包装标签内的 {...}，找不到则使用标签内原文
4. 否则没有工具调用，回复即最终答案
"""
import json
import logging
import re
from typing import Optional

from pydantic import ValidationError

from .errors import ParseError
from .types import ToolCall

logger = logging.getLogger(__name__)

FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
BRACE_SPAN_RE = re.compile(r"\{[\s\S]*\}")
FUNCTION_CALLS_RE = re.compile(r"<function_calls>\s*([\s\S]*?)\s*</function_calls>")


def extract_brace_span(text: str) -> Optional[str]:
    """第一个 { 到最后一个 }，不做括号配平"""
    match = BRACE_SPAN_RE.search(text)
    return match.group(0) if match else None


def extract_tool_call_text(text: str) -> Optional[str]:
    """按优先级提取候选的工具调用字符串"""
    fenced = FENCED_BLOCK_RE.search(text)
    if fenced:
        return fenced.group(1)

    span = extract_brace_span(text)
    if span:
        return span

    wrapped = FUNCTION_CALLS_RE.search(text)
    if wrapped:
        inner = wrapped.group(1).strip()
        return extract_brace_span(inner) or inner

    return None


def _load_object(candidate: str) -> object:
    cleaned = candidate.strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        # 贪婪匹配可能吞进后面的文字，从第一个 { 开始只解码一个对象
        start = cleaned.find("{")
        if start < 0:
            raise ParseError(f"Invalid tool call JSON: {e}") from e
        try:
            obj, _ = json.JSONDecoder().raw_decode(cleaned, start)
        except json.JSONDecodeError as inner:
            raise ParseError(f"Invalid tool call JSON: {inner}") from inner
        return obj


def decode_tool_call(candidate: str) -> ToolCall:
    """把候选字符串解码为 ToolCall，失败抛出 ParseError"""
    obj = _load_object(candidate)
    if not isinstance(obj, dict):
        raise ParseError("Tool call must be a JSON object")
    if "tool" not in obj:
        raise ParseError("Tool call is missing the 'tool' field")
    if obj.get("args") is None:
        obj = {**obj, "args": {}}
    try:
        return ToolCall.model_validate(obj)
    except ValidationError as e:
        raise ParseError(f"Invalid tool call: {e}") from e


def parse_tool_call(text: str) -> Optional[ToolCall]:
    """
    解析一条助手回复

    Returns:
        ToolCall，或 None 表示回复是最终答案
    """
    candidate = extract_tool_call_text(text)
    if not candidate:
        return None

    try:
        return decode_tool_call(candidate)
    except ParseError as e:
        logger.warning("Failed to parse tool call: %s", e)
        return None
