"""
Incremental decoder for newline-delimited JSON streams.

Ollama streams one JSON record per line:

    {"model": "qwen3:4b", "response": "Hel", "done": false}
    {"model": "qwen3:4b", "response": "lo", "done": false}
    {"model": "qwen3:4b", "response": "", "done": true, ...}

Network chunks do not respect line boundaries, so the decoder keeps the
trailing partial line buffered until the rest of it arrives. A malformed line
is reported and dropped; decoding carries on with the next line.
"""

import codecs
import json
from typing import Any, Callable, Dict, Optional, Union

from underlator.exceptions import DecodeError
from underlator.logger import get_logger

logger = get_logger(__name__)


def parse_json_line(line: str) -> Any:
    """
    Parse one complete stream line.

    Raises:
        DecodeError: If the line is empty or not valid JSON
    """
    trimmed = line.strip()
    if not trimmed:
        raise DecodeError("Empty line", line=line)

    try:
        return json.loads(trimmed)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Failed to parse JSON chunk: {e}", line=line)


def ollama_response_field(record: Any) -> str:
    """Extract the incremental text of an Ollama /api/generate record."""
    if isinstance(record, dict):
        response = record.get("response")
        if isinstance(response, str):
            return response
    return ""


def _log_decode_error(error: DecodeError) -> None:
    logger.warning(f"Skipping malformed stream line {error.line[:200]!r}: {error}")


class StreamDecoder:
    """
    Decoder for one logical stream.

    Instantiate one per request body; instances are never shared.
    """

    def __init__(
        self,
        on_token: Callable[[str], None],
        on_error: Optional[Callable[[DecodeError], None]] = None,
        extract: Callable[[Any], str] = ollama_response_field,
        on_record: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.on_token = on_token
        self.on_error = on_error or _log_decode_error
        self.extract = extract
        self.on_record = on_record
        self.buffer = ""
        self.done = False
        self.records = 0
        self._bytes_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, raw_chunk: Union[str, bytes]) -> None:
        """Append a raw chunk and emit tokens for every complete line it finishes."""
        if isinstance(raw_chunk, (bytes, bytearray)):
            raw_chunk = self._bytes_decoder.decode(bytes(raw_chunk))
        if not raw_chunk:
            return

        self.buffer += raw_chunk
        lines = self.buffer.split("\n")
        # Last segment may be incomplete, keep it for the next chunk
        self.buffer = lines.pop()

        for line in lines:
            self._process_line(line)

    def flush(self) -> None:
        """Process whatever is left in the buffer once the stream has ended."""
        tail = self._bytes_decoder.decode(b"", final=True)
        if tail:
            self.buffer += tail
        remaining, self.buffer = self.buffer, ""
        if remaining.strip():
            self._process_line(remaining)

    def _process_line(self, line: str) -> None:
        if not line.strip():
            return

        try:
            record = parse_json_line(line)
        except DecodeError as e:
            self.on_error(e)
            return

        self.records += 1
        if isinstance(record, dict):
            if record.get("done") is True:
                self.done = True
            if self.on_record:
                self.on_record(record)

        token = self.extract(record)
        if token:
            self.on_token(token)
