
import copy
import json
from pathlib import Path
from typing import Dict, Any

# Translation configuration constants
DEFAULT_CHUNK_DELIMITER = "🔴"  # Reserved separator for contextual/block packaging
DEFAULT_MAX_CONTEXTUAL_CHUNKS = 50
DEFAULT_MODE = "simple"

# Provider configuration constants
BUILTIN_PROVIDERS = ["local", "remote"]

DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"
DEFAULT_REMOTE_MODEL = "qwen3:4b"

# Get base directory (project root)
BASE_DIR = Path(__file__).parent.parent
CONFIG_DIR = BASE_DIR / "config"
CONFIG_FILE = CONFIG_DIR / "config.json"
MODELS_DIR = BASE_DIR / "models"

# Default prompts
DEFAULT_PROMPTS = {
    "translation_prompt": {
        "version": "1.0",
        "description": "Single fragment translation prompt",
        "prompt": (
            "Translate from {source_language_name} to {target_language_name} the text after the colon, "
            "and return only the translated text: \"{text}\""
        ),
    },
    "instruction_prompt": {
        "version": "1.0",
        "description": "Free-form instruction applied to a fragment",
        "prompt": "{instruction}: {text}",
    },
    "contextual_translation_prompt": {
        "version": "1.0",
        "description": "Combined fragments translated in one request, delimiters preserved",
        "prompt": """[ROLE]
You are a professional document translation engine.
Your task is to translate technical/academic content while preserving ALL special markers.

[RULES]
1. STRICTLY preserve every occurrence of "{chunk_delimiter}" unchanged
2. NEVER translate, modify, move, add or delete delimiter symbols
3. Treat delimiters as INVIOLABLE technical markers, not linguistic elements
4. Maintain original spacing around delimiters exactly
5. Translate text segments BETWEEN delimiters independently
6. For incomplete sentences at segment boundaries:
  - Keep grammatical consistency with adjacent chunks
  - Preserve technical terms and proper names unchanged
7. Output ONLY the translated text with preserved markers

[CONTEXT]
- Source language: {source_language_name} ({source_language_code})
- Target language: {target_language_name} ({target_language_code})
- Segments: {chunk_count}

[EXAMPLE]
Input: "Important{chunk_delimiter}safety{chunk_delimiter}information"
Output: "Важная{chunk_delimiter}информация{chunk_delimiter}по безопасности"

[INPUT TEXT]
{combined_text}

[TRANSLATION]
""",
    },
}

# Default configuration templates
DEFAULT_CONFIG = {
    "provider": "remote",
    "translation": {
        "chunk_delimiter": DEFAULT_CHUNK_DELIMITER,
        "default_mode": DEFAULT_MODE,
        "max_contextual_chunks": DEFAULT_MAX_CONTEXTUAL_CHUNKS,
        "strip_think_tags": True,
    },
    "remote": {
        "base_url": DEFAULT_OLLAMA_URL,
        "model": DEFAULT_REMOTE_MODEL,
        "timeout": 120,
        "max_concurrency": 8,
        "options": {
            "temperature": 0.7,
        },
    },
    "local": {
        "models_dir": str(MODELS_DIR),
        "engine": "underlator.worker.engines:transformers_engine",
        "ready_timeout": 300,
        "poll_interval": 0.1,
        "cancel_grace": 10,
        "stream_partials": True,
    },
    "log_mode": "off",
}


def _merge_defaults(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay a (possibly partial) config on top of the defaults, one level of nesting deep."""
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def ensure_config_directory():
    """Ensure the config directory exists."""
    CONFIG_DIR.mkdir(exist_ok=True)


def create_default_config():
    """Create the default config.json file."""
    ensure_config_directory()
    with open(CONFIG_FILE, 'w', encoding='utf-8') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4, ensure_ascii=False)


def load_config() -> Dict[str, Any]:
    """Load the configuration from config.json, falling back to defaults."""
    if not CONFIG_FILE.exists():
        try:
            create_default_config()
        except OSError:
            # Read-only installs still work with the in-memory defaults
            pass
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(CONFIG_FILE, 'r', encoding='utf-8') as f:
            stored = json.load(f)
    except (json.JSONDecodeError, OSError):
        return copy.deepcopy(DEFAULT_CONFIG)

    if not isinstance(stored, dict):
        return copy.deepcopy(DEFAULT_CONFIG)
    return _merge_defaults(DEFAULT_CONFIG, stored)


def save_config(config: Dict[str, Any]):
    """Save the configuration to config.json."""
    ensure_config_directory()
    with open(CONFIG_FILE, 'w', encoding='utf-8') as f:
        json.dump(config, f, indent=4, ensure_ascii=False)

    from underlator.logger import _clear_log_mode_cache
    _clear_log_mode_cache()


def load_prompts() -> Dict[str, Any]:
    """Load the prompts from default configuration.

    Note: Prompts are hardcoded in the codebase and are not persisted.
    """
    return copy.deepcopy(DEFAULT_PROMPTS)


def get_prompt(prompt_name: str = "translation_prompt") -> Dict[str, Any]:
    """Get a specific prompt by name."""
    prompts = load_prompts()
    return prompts.get(prompt_name, DEFAULT_PROMPTS["translation_prompt"])
