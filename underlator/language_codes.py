"""
Language code mappings and utilities.

Standards:
- ISO 639-1: 2-letter language codes (en, ru, de)
- BCP 47: Language + Region codes (en-US, pt-BR)

Translation directions are written as "<source>-<target>" pairs of ISO 639-1
codes (e.g. 'en-ru'), the same shape local model directories use
('opus-mt-en-ru').
"""

from typing import Dict, Optional, Tuple

# ISO 639-1 language codes (2-letter)
ISO_639_1 = {
    'ar': 'Arabic',
    'bg': 'Bulgarian',
    'cs': 'Czech',
    'da': 'Danish',
    'de': 'German',
    'el': 'Greek',
    'en': 'English',
    'es': 'Spanish',
    'et': 'Estonian',
    'fi': 'Finnish',
    'fr': 'French',
    'he': 'Hebrew',
    'hi': 'Hindi',
    'hu': 'Hungarian',
    'id': 'Indonesian',
    'it': 'Italian',
    'ja': 'Japanese',
    'kk': 'Kazakh',
    'ko': 'Korean',
    'lt': 'Lithuanian',
    'lv': 'Latvian',
    'nl': 'Dutch',
    'no': 'Norwegian',
    'pl': 'Polish',
    'pt': 'Portuguese',
    'ro': 'Romanian',
    'ru': 'Russian',
    'sk': 'Slovak',
    'sv': 'Swedish',
    'th': 'Thai',
    'tr': 'Turkish',
    'uk': 'Ukrainian',
    'vi': 'Vietnamese',
    'zh': 'Chinese',
}

# Common BCP 47 variants
BCP_47_VARIANTS = {
    'en-US': 'English (United States)',
    'en-GB': 'English (United Kingdom)',
    'pt-BR': 'Portuguese (Brazil)',
    'pt-PT': 'Portuguese (Portugal)',
    'zh-CN': 'Chinese (Simplified, China)',
    'zh-TW': 'Chinese (Traditional, Taiwan)',
}

ALL_LANGUAGE_CODES = {**ISO_639_1, **BCP_47_VARIANTS}


def is_valid_language_code(code: str) -> bool:
    """
    Check if a language code is known.

    Examples:
        >>> is_valid_language_code('en')
        True
        >>> is_valid_language_code('invalid')
        False
    """
    return code in ALL_LANGUAGE_CODES


def get_language_name(code: str) -> Optional[str]:
    """
    Get the full language name from code.

    Examples:
        >>> get_language_name('ru')
        'Russian'
    """
    return ALL_LANGUAGE_CODES.get(code)


def extract_base_language(code: str) -> str:
    """
    Extract base language from code (remove region).

    Examples:
        >>> extract_base_language('zh-CN')
        'zh'
        >>> extract_base_language('fr')
        'fr'
    """
    return code.split('-')[0]


def display_name(code: str) -> str:
    """Language name for prompts, falling back to the raw code."""
    return get_language_name(code) or get_language_name(extract_base_language(code)) or code


def parse_direction(direction: str) -> Tuple[str, str]:
    """
    Split a translation direction into (source, target).

    Examples:
        >>> parse_direction('en-ru')
        ('en', 'ru')
    """
    parts = [part.strip() for part in (direction or "").split('-')]
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid translation direction: {direction!r}")
    return parts[0], parts[1]


def format_direction(source: str, target: str) -> str:
    """Join base source/target codes into a direction string ('en', 'ru' -> 'en-ru')."""
    return f"{extract_base_language(source)}-{extract_base_language(target)}"


def get_all_language_codes() -> Dict[str, str]:
    """Get all supported language codes."""
    return ALL_LANGUAGE_CODES.copy()
