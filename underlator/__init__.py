"""
Underlator - translation pipeline for local translation models and
Ollama-compatible LLM servers.
"""

__version__ = "1.0.0"
