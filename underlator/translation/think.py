"""
Handling of <think>...</think> sections emitted by reasoning models.

Reasoning models stream their deliberation before the answer. It has to be
removed before a contextual response is split, and it should never end up in a
final translation.
"""

import re
from typing import List, Tuple

THINK_BLOCK = re.compile(r"<think>([\s\S]*?)</think>")


def close_think_tags(content: str) -> str:
    """Append a closing tag when the last <think> is still open (stream cut mid-thought)."""
    if not content:
        return content

    last_open = content.rfind("<think>")
    if last_open != -1 and content.find("</think>", last_open) == -1:
        return content + "</think>"
    return content


def split_thinking(content: str) -> Tuple[List[str], List[str]]:
    """
    Split model output into (thinking parts, answer parts).

    Example:
        >>> split_thinking("<think>hmm</think> Hello")
        (['hmm'], ['Hello'])
    """
    content = close_think_tags(content)
    thinking_parts: List[str] = []
    main_parts: List[str] = []
    last_index = 0

    for match in THINK_BLOCK.finditer(content or ""):
        before = content[last_index:match.start()].strip()
        if before:
            main_parts.append(before)
        thinking_parts.append(match.group(1).strip())
        last_index = match.end()

    after = (content or "")[last_index:].strip()
    if after:
        main_parts.append(after)

    return thinking_parts, main_parts


def strip_think(content: str) -> str:
    """Remove every thinking section and return the answer text."""
    if not content or "<think>" not in content:
        return content
    _, main_parts = split_thinking(content)
    return "\n".join(main_parts)
