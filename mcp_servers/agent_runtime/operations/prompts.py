from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

DEFAULT_ANALYSIS_SYSTEM_PROMPT = (
    "You are an assistant that analyzes web page data. Provide concise, actionable analysis."
)

TRANSLATION_SYSTEM_PROMPT = (
    "You are a professional translator. Return ONLY the translated text in the exact format requested."
)


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def operations_system_prompt(allowed: Sequence[str]) -> str:
    whitelist = "\n".join(f"- {name}" for name in allowed)
    return f"""You are a browser automation assistant. You analyze page state and return structured operations to achieve user goals.

IMPORTANT: You can ONLY return operations from this whitelist:
{whitelist}

Return ONLY a JSON array of operations. Each operation MUST have this exact structure:
{{
  "operation": "<operation_name>",
  "parameters": {{
    "selector": "<CSS selector>",
    ... other parameters as needed
  }},
  "reason": "<why this operation is needed>",
  "priority": <number, lower = execute first>
}}

CRITICAL: The "parameters" field must be an object containing the operation's parameters.
- browser_remove_element requires: {{ "selector": "...", "all": true/false }}
- browser_modify_style requires: {{ "selector": "...", "styles": {{ "property": "value" }} }}
- browser_restore_scroll requires: {{}} (empty object)

Example response:
[
  {{
    "operation": "browser_remove_element",
    "parameters": {{ "selector": ".modal-overlay", "all": true }},
    "reason": "Remove modal overlay blocking content",
    "priority": 1
  }}
]

Do NOT return JavaScript code. Only return the JSON array.
If no operations are needed, return: []"""


def operations_user_prompt(goal: str, page_state: Any) -> str:
    return f"""Goal: {goal}

Page State:
{_dump(page_state)}

Return the operations needed to achieve the goal as a JSON array."""


def analysis_prompt(prompt: str, context_data: Any) -> str:
    return f"{prompt}\n\nContext data:\n{_dump(context_data)}"


def translation_prompt(target_language: str, lines: Sequence[str]) -> str:
    body = "\n".join(lines)
    return f"""Translate the following text nodes to {target_language}.
Preserve the ID|||text format exactly. Only translate the text after |||, keep IDs unchanged.

{body}

Return only the translated lines in the same format (ID|||translated_text)."""
