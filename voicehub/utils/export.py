"""
Conversation export in JSON, Markdown and plain text.

All three renderers are pure functions of (conversation, messages,
export time) so output is deterministic for a fixed ``exported_at``.
"""

import json
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from ..core.models import Conversation, Message, format_timestamp, utcnow

SEPARATOR_WIDTH = 80

_EXTENSIONS = {"json": "json", "markdown": "md", "text": "txt"}
_MEDIA_TYPES = {"json": "application/json", "markdown": "text/markdown", "text": "text/plain"}


def _display_time(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def _role_label(role: str) -> str:
    if role == "user":
        return "User"
    if role == "system":
        return "System"
    return "Assistant"


def export_json(conversation: Conversation, messages: Iterable[Message], exported_at: Optional[datetime] = None) -> str:
    exported_at = exported_at or utcnow()
    data = {
        "conversation": {
            "id": conversation.id,
            "title": conversation.title,
            "createdAt": format_timestamp(conversation.created_at),
            "updatedAt": format_timestamp(conversation.updated_at),
            "llmProvider": conversation.llm_provider,
            "llmModel": conversation.llm_model,
            "temperature": conversation.temperature,
            "systemPrompt": conversation.system_prompt,
        },
        "messages": [
            {
                "role": m.role,
                "content": m.content,
                "createdAt": format_timestamp(m.created_at),
                "provider": m.provider,
                "model": m.model,
                "tokenCount": m.token_count,
            }
            for m in messages
        ],
        "exportedAt": format_timestamp(exported_at),
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


def export_markdown(conversation: Conversation, messages: Iterable[Message], exported_at: Optional[datetime] = None) -> str:
    exported_at = exported_at or utcnow()
    lines: List[str] = [
        f"# {conversation.title or 'Conversation'}",
        "",
        f"**Created:** {_display_time(conversation.created_at)}",
        f"**Model:** {conversation.llm_model or 'N/A'}",
        f"**Provider:** {conversation.llm_provider or 'N/A'}",
        "",
        "---",
        "",
    ]
    for message in messages:
        lines.append(f"### {_role_label(message.role)}")
        lines.append(f"*{_display_time(message.created_at)}*")
        lines.append("")
        lines.append(message.content)
        lines.append("")
        if message.token_count:
            lines.append(f"*Tokens: {message.token_count}*")
            lines.append("")
        lines.append("---")
        lines.append("")
    lines.append("")
    lines.append(f"*Exported: {_display_time(exported_at)}*")
    return "\n".join(lines) + "\n"


def export_text(conversation: Conversation, messages: Iterable[Message], exported_at: Optional[datetime] = None) -> str:
    exported_at = exported_at or utcnow()
    title = conversation.title or "Conversation"
    rule = "-" * SEPARATOR_WIDTH
    parts: List[str] = [
        f"{title}\n",
        f"{'=' * len(title)}\n\n",
        f"Created: {_display_time(conversation.created_at)}\n",
        f"Model: {conversation.llm_model or 'N/A'}\n",
        f"Provider: {conversation.llm_provider or 'N/A'}\n\n",
        f"{rule}\n\n",
    ]
    messages = list(messages)
    for index, message in enumerate(messages):
        parts.append(f"[{_display_time(message.created_at)}] {_role_label(message.role).upper()}:\n")
        parts.append(f"{message.content}\n")
        if message.token_count:
            parts.append(f"(Tokens: {message.token_count})\n")
        if index < len(messages) - 1:
            parts.append(f"\n{rule}\n\n")
    parts.append(f"\n\nExported: {_display_time(exported_at)}\n")
    return "".join(parts)


EXPORTERS: Dict[str, Callable[..., str]] = {
    "json": export_json,
    "markdown": export_markdown,
    "text": export_text,
}


def export_conversation(fmt: str, conversation: Conversation, messages: Iterable[Message], exported_at: Optional[datetime] = None) -> str:
    try:
        exporter = EXPORTERS[fmt]
    except KeyError:
        raise ValueError(f"Unsupported export format: {fmt}")
    return exporter(conversation, messages, exported_at)


def export_filename(conversation_id: int, fmt: str, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"conversation-{conversation_id}-{int(now.timestamp() * 1000)}.{_EXTENSIONS[fmt]}"


def media_type(fmt: str) -> str:
    return _MEDIA_TYPES[fmt]
