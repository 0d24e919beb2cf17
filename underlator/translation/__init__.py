"""
Translation module - Core translation types and utilities

This module provides:
- TranslationRequest / TranslationResult and cancellation
- Status events and the per-request progress bus
- Chunk codec for contextual and block packaging
- Stream decoder for NDJSON responses

The coordinator lives in underlator.translation.coordinator.
"""

from underlator.translation.codec import (
    combine,
    split,
    reconcile,
    process_contextual_response,
)
from underlator.translation.events import (
    EventKind,
    ProgressEvent,
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    ProgressBus,
    event_from_message,
    is_terminal,
)
from underlator.translation.request import (
    CancellationToken,
    TranslationMode,
    TranslationRequest,
    TranslationResult,
)
from underlator.translation.stream import StreamDecoder, parse_json_line

__all__ = [
    'combine',
    'split',
    'reconcile',
    'process_contextual_response',
    'EventKind',
    'ProgressEvent',
    'ChunkEvent',
    'CompleteEvent',
    'ErrorEvent',
    'ProgressBus',
    'event_from_message',
    'is_terminal',
    'CancellationToken',
    'TranslationMode',
    'TranslationRequest',
    'TranslationResult',
    'StreamDecoder',
    'parse_json_line',
]
