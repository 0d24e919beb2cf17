"""
Provider contract shared by the local worker and the remote HTTP backend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from underlator.config import DEFAULT_CHUNK_DELIMITER, DEFAULT_MAX_CONTEXTUAL_CHUNKS
from underlator.translation.events import StatusEvent
from underlator.translation.request import CancellationToken

Emit = Callable[[StatusEvent], None]


@dataclass
class GenerateOptions:
    """
    What a provider is asked to produce.

    ``texts`` is already packaged by the coordinator: independent fragments
    for simple/block mode, a single delimiter-joined text for contextual mode.
    """
    texts: List[str]
    source_language: str = ""
    target_language: str = ""
    instruction: Optional[str] = None
    model: Optional[str] = None
    delimiter: str = DEFAULT_CHUNK_DELIMITER
    block_mode: bool = False
    contextual: bool = False
    chunk_count: int = 0
    request_id: str = ""
    cancel_token: CancellationToken = field(default_factory=CancellationToken)


class Provider(ABC):
    """A backend able to turn GenerateOptions into an index -> text map."""

    name: str = ""
    supports_block_mode: bool = False
    max_contextual_chunks: int = DEFAULT_MAX_CONTEXTUAL_CHUNKS

    @abstractmethod
    def generate(self, options: GenerateOptions, emit: Emit) -> Dict[int, str]:
        """
        Run one request.

        Non-terminal events (progress, chunk, block-chunk) go to ``emit`` as
        they happen. The terminal outcome is the return value, or a raised
        TranslationError subclass.
        """

    def close(self) -> None:
        """Release provider resources."""
