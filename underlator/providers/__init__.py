"""
Providers Module

Backends that turn translation requests into text:
- local: the worker process running a downloaded translation model
- remote: an Ollama-compatible HTTP inference server
"""

from typing import Any, Dict, Optional

from underlator.config import load_config, BUILTIN_PROVIDERS
from underlator.exceptions import InvalidRequest
from underlator.providers.base import GenerateOptions, Provider
from underlator.providers.remote import RemoteProvider


def get_provider(name: str, config: Optional[Dict[str, Any]] = None) -> Provider:
    """
    Build a provider by name.

    A local provider built from an explicit config owns a worker manager
    configured from that config's "local" section; without one it shares the
    application-wide manager.

    Raises:
        InvalidRequest: If the provider name is unknown
    """
    if name == "local":
        # Imported here so remote-only setups never touch multiprocessing
        from underlator.providers.local import LocalProvider
        if config is None:
            return LocalProvider()
        return LocalProvider.from_config(config.get("local", {}))

    config = config if config is not None else load_config()

    if name == "remote":
        strip_reasoning = config.get("translation", {}).get("strip_think_tags", True)
        return RemoteProvider(config=config.get("remote", {}), strip_reasoning=strip_reasoning)

    raise InvalidRequest(
        f"Unknown provider '{name}'",
        details={"provider": name, "allowed": list(BUILTIN_PROVIDERS)},
    )


__all__ = ['GenerateOptions', 'Provider', 'RemoteProvider', 'get_provider']
