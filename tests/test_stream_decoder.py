"""
Unit tests for the NDJSON stream decoder
"""

import json

import pytest

from underlator.exceptions import DecodeError
from underlator.translation.stream import StreamDecoder, parse_json_line


def _line(response, done=False):
    return json.dumps({"model": "qwen3:4b", "response": response, "done": done}, ensure_ascii=False) + "\n"


class TestStreamDecoder:
    """Tests for StreamDecoder"""

    def setup_method(self):
        self.tokens = []
        self.errors = []
        self.decoder = StreamDecoder(on_token=self.tokens.append, on_error=self.errors.append)

    def test_line_split_across_chunks(self):
        first = _line("Hel")
        second = _line("lo")
        data = first + second
        cut = len(first) + 5

        self.decoder.feed(data[:cut])
        assert self.tokens == ["Hel"]
        assert self.decoder.buffer == second[:5]

        self.decoder.feed(data[cut:])
        assert self.tokens == ["Hel", "lo"]
        assert self.decoder.buffer == ""

    def test_malformed_line_is_reported_and_skipped(self):
        self.decoder.feed('{"response": "a"}\n{not json}\n{"response": "b"}\n')

        assert self.tokens == ["a", "b"]
        assert len(self.errors) == 1
        assert isinstance(self.errors[0], DecodeError)
        assert self.errors[0].line == "{not json}"

    def test_done_record_and_empty_response(self):
        self.decoder.feed(_line("x") + _line("", done=True))

        assert self.tokens == ["x"]
        assert self.decoder.done is True
        assert self.decoder.records == 2

    def test_flush_processes_unterminated_tail(self):
        self.decoder.feed('{"response": "tail"}')
        assert self.tokens == []

        self.decoder.flush()
        assert self.tokens == ["tail"]

    def test_bytes_split_inside_multibyte_character(self):
        data = _line("Привет").encode("utf-8")
        index = data.index("П".encode("utf-8")) + 1

        self.decoder.feed(data[:index])
        self.decoder.feed(data[index:])

        assert self.tokens == ["Привет"]
        assert self.errors == []

    def test_blank_lines_are_ignored(self):
        self.decoder.feed("\n\n" + _line("a") + "   \n")
        assert self.tokens == ["a"]
        assert self.errors == []

    def test_records_are_passed_to_on_record(self):
        records = []
        decoder = StreamDecoder(on_token=self.tokens.append, on_record=records.append)
        decoder.feed('{"error": "model not found"}\n')

        assert records == [{"error": "model not found"}]
        assert self.tokens == []


class TestParseJsonLine:
    """Tests for parse_json_line"""

    def test_parses_record(self):
        assert parse_json_line(' {"response": "a"} ') == {"response": "a"}

    @pytest.mark.parametrize("line", ["", "   ", "{", "nope"])
    def test_rejects_invalid_lines(self, line):
        with pytest.raises(DecodeError):
            parse_json_line(line)
