"""Prompt construction for the remote (LLM) provider."""

from underlator.config import get_prompt
from underlator import language_codes as lc


def build_translation_prompt(text: str, source_language: str, target_language: str) -> str:
    """Prompt translating a single fragment."""
    template = get_prompt("translation_prompt")["prompt"]
    return template.format(
        source_language_name=lc.display_name(source_language),
        target_language_name=lc.display_name(target_language),
        text=text,
    )


def build_instruction_prompt(text: str, instruction: str) -> str:
    """Prompt applying a free-form instruction to a fragment."""
    template = get_prompt("instruction_prompt")["prompt"]
    return template.format(instruction=instruction.strip(), text=text)


def build_contextual_prompt(
    combined_text: str,
    source_language: str,
    target_language: str,
    chunk_delimiter: str,
    chunk_count: int,
) -> str:
    """Prompt translating delimiter-joined fragments in one pass, delimiters preserved."""
    template = get_prompt("contextual_translation_prompt")["prompt"]
    return template.format(
        source_language_name=lc.display_name(source_language),
        source_language_code=source_language,
        target_language_name=lc.display_name(target_language),
        target_language_code=target_language,
        chunk_delimiter=chunk_delimiter,
        chunk_count=chunk_count,
        combined_text=combined_text,
    )


def build_fragment_prompt(request, text: str) -> str:
    """Prompt for one independently translated fragment of a request."""
    if request.instruction:
        return build_instruction_prompt(text, request.instruction)
    return build_translation_prompt(text, request.source_language, request.target_language)
