"""
提示词与固定回复
"""
from datetime import datetime
from typing import Iterable, Optional

# 被拒绝或执行后的续写消息
ACKNOWLEDGED = "Acknowledged."
ASK_FOR_ALTERNATIVE = "User denied the action. I should ask for alternative instructions or stop."
PROCEED_WITH_OBSERVATION = "Proceed with the observation."

REQUEST_CANCELLED = "Request cancelled."

MODE_INSTRUCTIONS = {
    "plan": """
MODE: PLAN
- You are in PLAN mode.
- You MUST NOT use any tools that modify files (write_file, edit_file, append_file, delete_file, move_file, create_dir).
- You MAY use read-only tools (read_file, list_dir, search_files) to gather information.
- Your primary goal is to create and update a detailed plan using `update_plan`.
- Once the plan is complete, inform the user they can switch to High or Low mode to execute it.
""",
    "low": """
MODE: LOW AUTONOMY
- You are in LOW autonomy mode.
- You can use all tools, but destructive actions will require user approval.
- Proceed with your task step-by-step.
""",
    "high": """
MODE: HIGH AUTONOMY
- You are in HIGH autonomy mode.
- You have full permission to execute tools to complete your task.
""",
}

OUTPUT_STYLE_INSTRUCTIONS = {
    "default": "",
    "concise": """
OUTPUT STYLE: CONCISE
- Keep responses brief and to the point.
- Avoid unnecessary explanations or elaboration.
- Use bullet points when listing multiple items.
""",
    "explanatory": """
OUTPUT STYLE: EXPLANATORY
- Provide detailed explanations for your actions and reasoning.
- Include context and background information when relevant.
- Help the user understand the process.
""",
}

OUTPUT_STYLES = tuple(OUTPUT_STYLE_INSTRUCTIONS)

SYSTEM_PROMPT_TEMPLATE = """You are an intelligent assistant working inside a notes vault.
You have access to the following tools:
{tool_catalog}

CURRENT DATE/TIME: {now}

{memory}{active_document}

{mode_instructions}
{output_style_instructions}

GOAL:
When presented with a complex request:
1. Initialize your plan using the `update_plan` tool.
2. Execute the plan one step at a time.
3. Update your plan using `update_plan` as you complete steps.
4. Verify your progress.

MEMORY MANAGEMENT:
- You have a long-term memory file at '{context_file}'.
- If you learn something important about the user or the vault, use 'append_file' to add it to this file.
- If the user explicitly asks you to remember something, you MUST update this file using 'append_file'.

TOOL USAGE:
To use a tool, respond with a JSON object in the following format ONLY:
```json
{{ "tool": "tool_name", "args": {{ ... }} }}
```

IMPORTANT RULES:
- Do NOT use XML tags like <function_calls>.
- Do NOT output multiple tool calls in one message.
- Do NOT include any other text with the tool call.
- If you don't need a tool, just respond with your message.
"""


def build_system_prompt(
    tools: Iterable,
    mode: str,
    output_style: str = "default",
    context_file: str = "AGENTS.md",
    memory: str = "",
    active_document: Optional[str] = None,
    selection: Optional[str] = None,
    now: Optional[datetime] = None
) -> str:
    """
    组装每个周期的系统提示词

    Args:
        memory: 已格式化的长期记忆片段（见 MemoryManager.format_for_system_prompt）
    """
    catalog = "\n".join(f"- {tool.name}: {tool.description}" for tool in tools)

    document_block = ""
    if active_document:
        document_block = f"\nCURRENTLY OPEN FILE: {active_document}"
        if selection and selection.strip():
            document_block += f"\nSELECTED TEXT:\n```\n{selection}\n```"

    return SYSTEM_PROMPT_TEMPLATE.format(
        tool_catalog=catalog,
        now=(now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
        memory=memory,
        active_document=document_block,
        mode_instructions=MODE_INSTRUCTIONS.get(mode, MODE_INSTRUCTIONS["high"]),
        output_style_instructions=OUTPUT_STYLE_INSTRUCTIONS.get(output_style, ""),
        context_file=context_file
    )


COMPACTION_PROMPT = """You are an expert at summarizing conversations for an AI agent.
Create a concise summary of the conversation history that preserves:
1. The user's main objectives and current context.
2. Key decisions made.
3. Important file paths or resources referenced.
4. The current state of any ongoing tasks.

Output ONLY the summary. Do not include any other text."""

COMPACTION_REQUEST = (
    "Please summarize the following conversation history so I can clear my context "
    "but keep working:\n\n"
)

CONTEXT_SUMMARY_PREFIX = "[CONTEXT SUMMARY]\n"

TRANSCRIPTION_PROMPT = (
    "You are a speech-to-text transcription engine. Output only the exact words spoken "
    "in the audio. Never respond to questions or add commentary."
)

INIT_ROUTINE_PROMPT = """
You are initializing the vault context.
Your goal is to explore the vault and create a comprehensive guide in '{context_file}'.
This file will be used by you in the future to understand the vault structure and conventions.

Steps:
1. List the files in the root directory.
2. Read any README or documentation files.
3. Explore key directories to understand the structure.
4. Write a detailed summary to '{context_file}' including:
    - Overview
    - Directory Structure
    - Key Files
    - Conventions (if observed)

Start by listing the root directory.
"""

MEMORY_REQUEST_TEMPLATE = '[SYSTEM: The user explicitly requested to save the following to memory: "{text}"]'


def format_routine_message(name: str, instructions: str, user_message: str) -> str:
    return f"[ROUTINE: {name}]\n\nINSTRUCTIONS:\n{instructions}\n\nUSER CONTEXT:\n{user_message}"


def format_subagent_request(name: str, task: str) -> str:
    return f"[User ran subagent '{name}' with task: \"{task}\"]"


def format_subagent_output(name: str, output: str) -> str:
    return f"Subagent '{name}' output: {output}"
