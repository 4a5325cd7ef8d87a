"""
Tests for streaming JSON string field extraction
"""

import json

import pytest

from ecc_core.errors import ExtractionError, ExtractionErrorKind
from ecc_core.json_extract import (
    FieldScanner,
    ScanState,
    extract_json_string_field,
)


def _write(path, text, encoding="utf-8"):
    path.write_bytes(text.encode(encoding))
    return path


def _extract_text(tmp_path, document, field="patch", **kwargs):
    src = _write(tmp_path / "doc.json", document)
    out = tmp_path / "out.txt"
    extract_json_string_field(src, field, out, **kwargs)
    return out.read_bytes().decode("utf-8", "surrogatepass")


def _scan(document, field="patch"):
    scanner = FieldScanner(field)
    return "".join(scanner.consume(ch) for ch in document), scanner


class TestExtractBasics:
    """Tests for successful extraction."""

    def test_patch_text(self, tmp_path):
        patch = "diff --git a/x b/x\n--- a/x\n+++ b/x\n@@ -1 +1 @@\n-old\n+new"
        document = json.dumps({"ok": True, "patch": patch, "stats": {"files": 1}})

        assert _extract_text(tmp_path, document) == patch + "\n"

    def test_result_metadata(self, tmp_path):
        src = _write(tmp_path / "doc.json", '{"patch": "abc"}')
        out = tmp_path / "out.txt"
        result = extract_json_string_field(src, "patch", out)

        assert result.destination == out
        assert result.field_name == "patch"
        assert result.chars_written == 4
        assert result.bytes_read == src.stat().st_size

    def test_existing_trailing_newline_not_doubled(self, tmp_path):
        assert _extract_text(tmp_path, '{"patch": "line\\n"}') == "line\n"

    def test_empty_string_gives_single_newline(self, tmp_path):
        assert _extract_text(tmp_path, '{"patch": ""}') == "\n"

    def test_carriage_returns_preserved(self, tmp_path):
        """Output newlines are written untranslated."""
        src = _write(tmp_path / "doc.json", '{"patch": "a\\r\\nb"}')
        out = tmp_path / "out.txt"
        extract_json_string_field(src, "patch", out)
        assert out.read_bytes() == b"a\r\nb\n"

    def test_whitespace_around_colon(self, tmp_path):
        assert _extract_text(tmp_path, '{ "patch"  :\n\t "v" }') == "v\n"

    def test_field_after_other_values(self, tmp_path):
        document = '{"a": [1, {"patch": "no"}, "x\\"y"], "b": null, "patch": "yes"}'
        assert _extract_text(tmp_path, document) == "yes\n"

    def test_first_occurrence_wins(self, tmp_path):
        assert _extract_text(tmp_path, '{"patch": "one", "patch": "two"}') == "one\n"

    def test_stops_reading_after_value(self, tmp_path):
        """Trailing garbage after the value is never inspected."""
        assert _extract_text(tmp_path, '{"patch": "ok", "rest": "\\q') == "ok\n"

    def test_utf8_bom_is_ignored(self, tmp_path):
        assert _extract_text(tmp_path, '\ufeff{"patch": "bom"}') == "bom\n"

    def test_non_ascii_passthrough(self, tmp_path):
        assert _extract_text(tmp_path, '{"patch": "café ☺ 😀"}') == "café ☺ 😀\n"

    def test_escaped_key_matches(self, tmp_path):
        assert _extract_text(tmp_path, '{"pa\\u0074ch": "k"}') == "k\n"

    def test_idempotent(self, tmp_path):
        document = json.dumps({"patch": "x" * 5000 + "☺\U0001f600"})
        src = _write(tmp_path / "doc.json", document)
        first, second = tmp_path / "a.txt", tmp_path / "b.txt"

        extract_json_string_field(src, "patch", first)
        extract_json_string_field(src, "patch", second)

        assert first.read_bytes() == second.read_bytes()

    def test_overwrites_existing_destination(self, tmp_path):
        src = _write(tmp_path / "doc.json", '{"patch": "new"}')
        out = tmp_path / "out.txt"
        out.write_text("old content that is longer\n")
        extract_json_string_field(src, "patch", out)
        assert out.read_text() == "new\n"


class TestEscapes:
    """Tests for JSON string escape decoding."""

    def test_simple_escapes(self, tmp_path):
        document = r'{"patch": "q\" b\\ s\/ \b\f\n\r\t"}'
        assert _extract_text(tmp_path, document) == 'q" b\\ s/ \b\f\n\r\t\n'

    def test_bmp_unicode_escape(self, tmp_path):
        assert _extract_text(tmp_path, r'{"patch": "\u263A"}') == "☺\n"

    def test_surrogate_pair_combines(self, tmp_path):
        text = _extract_text(tmp_path, r'{"patch": "\uD83D\uDE00"}')
        assert text == "\U0001f600\n"
        assert len(text) == 2

    def test_surrogate_pair_output_is_utf8(self, tmp_path):
        src = _write(tmp_path / "doc.json", r'{"patch": "\uD83D\uDE00"}')
        out = tmp_path / "out.txt"
        extract_json_string_field(src, "patch", out)
        assert out.read_bytes() == "\U0001f600\n".encode("utf-8")

    def test_unpaired_high_surrogate_kept(self, tmp_path):
        """A lone high surrogate is written verbatim, followed by the next character."""
        assert _extract_text(tmp_path, r'{"patch": "\uD800X"}') == "\ud800X\n"

    def test_unpaired_high_surrogate_at_end(self, tmp_path):
        assert _extract_text(tmp_path, r'{"patch": "a\uD800"}') == "a\ud800\n"

    def test_high_surrogate_followed_by_escape(self, tmp_path):
        assert _extract_text(tmp_path, r'{"patch": "\uD800\n"}') == "\ud800\n"

    def test_two_high_surrogates(self, tmp_path):
        assert _extract_text(tmp_path, r'{"patch": "\uD800\uD83D\uDE00"}') == "\ud800\U0001f600\n"

    def test_lone_low_surrogate(self, tmp_path):
        assert _extract_text(tmp_path, r'{"patch": "\uDE00z"}') == "\ude00z\n"

    def test_invalid_hex_digit(self, tmp_path):
        src = _write(tmp_path / "doc.json", r'{"patch": "ok \u12G4"}')
        out = tmp_path / "out.txt"

        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", out)

        assert exc_info.value.kind == ExtractionErrorKind.INVALID_UNICODE_ESCAPE
        assert not out.exists()

    def test_invalid_escape(self, tmp_path):
        src = _write(tmp_path / "doc.json", r'{"patch": "bad \q"}')
        out = tmp_path / "out.txt"

        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", out)

        assert exc_info.value.kind == ExtractionErrorKind.MALFORMED_ESCAPE
        assert not out.exists()

    def test_invalid_escape_after_flush_removes_partial_file(self, tmp_path):
        """A failure after the output was opened leaves no file behind."""
        document = '{"patch": "' + "a" * 200 + r'\q"}'
        src = _write(tmp_path / "doc.json", document)
        out = tmp_path / "out.txt"

        with pytest.raises(ExtractionError):
            extract_json_string_field(src, "patch", out, chunk_size=16, flush_threshold=8)

        assert not out.exists()

    def test_unknown_escape_in_skipped_string_is_tolerated(self, tmp_path):
        assert _extract_text(tmp_path, r'{"other": "\q", "patch": "p"}') == "p\n"


class TestFailures:
    """Tests for extraction failures."""

    def test_field_not_found(self, tmp_path):
        src = _write(tmp_path / "doc.json", '{"diff": "x"}')
        out = tmp_path / "out.txt"

        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", out)

        err = exc_info.value
        assert err.kind == ExtractionErrorKind.FIELD_NOT_FOUND
        assert err.field_name == "patch"
        assert err.path == str(src)
        assert not out.exists()

    def test_nested_key_is_not_matched(self, tmp_path):
        src = _write(tmp_path / "doc.json", '{"meta": {"patch": "deep"}}')
        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", tmp_path / "out.txt")
        assert exc_info.value.kind == ExtractionErrorKind.FIELD_NOT_FOUND

    def test_depth_scoping(self, tmp_path):
        assert _extract_text(tmp_path, '{"nested": {"patch": "B"}, "patch": "A"}') == "A\n"
        assert _extract_text(tmp_path, '{"patch":"A","nested":{"patch":"B"}}') == "A\n"

    def test_value_is_not_a_string(self, tmp_path):
        for value in ("123", "null", "{\"a\": \"b\"}", "[\"x\"]", "true"):
            src = _write(tmp_path / "doc.json", '{"patch": ' + value + '}')
            out = tmp_path / "out.txt"

            with pytest.raises(ExtractionError) as exc_info:
                extract_json_string_field(src, "patch", out)

            assert exc_info.value.kind == ExtractionErrorKind.NOT_A_STRING, value
            assert not out.exists()

    def test_string_value_is_not_a_key(self, tmp_path):
        """A string equal to the field name in value position is ignored."""
        src = _write(tmp_path / "doc.json", '{"a": "patch", "b": ["patch"]}')
        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", tmp_path / "out.txt")
        assert exc_info.value.kind == ExtractionErrorKind.FIELD_NOT_FOUND

    def test_top_level_array_is_not_searched(self, tmp_path):
        src = _write(tmp_path / "doc.json", '["patch", {"patch": "x"}]')
        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", tmp_path / "out.txt")
        assert exc_info.value.kind == ExtractionErrorKind.FIELD_NOT_FOUND

    def test_unterminated_value_reports_not_found(self, tmp_path):
        src = _write(tmp_path / "doc.json", '{"patch": "never closed')
        out = tmp_path / "out.txt"

        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", out, flush_threshold=4)

        assert exc_info.value.kind == ExtractionErrorKind.FIELD_NOT_FOUND
        assert not out.exists()

    def test_missing_colon(self, tmp_path):
        src = _write(tmp_path / "doc.json", '{"patch" "x"}')
        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", tmp_path / "out.txt")
        assert exc_info.value.kind == ExtractionErrorKind.MALFORMED_DOCUMENT

    def test_invalid_utf8(self, tmp_path):
        src = tmp_path / "doc.json"
        src.write_bytes(b'{"patch": "\xff\xfe"}')
        out = tmp_path / "out.txt"

        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", out)

        assert exc_info.value.kind == ExtractionErrorKind.MALFORMED_DOCUMENT
        assert not out.exists()

    @pytest.mark.parametrize("chunk_size", [1, 4, 65536])
    @pytest.mark.parametrize("prefix", [b"", b"\xef\xbb\xbf"])
    def test_invalid_utf8_after_value_is_never_reached(self, tmp_path, chunk_size, prefix):
        """Bytes after a completed value do not affect the result, whatever the chunk size."""
        src = tmp_path / "doc.json"
        src.write_bytes(prefix + b'{"patch": "ok \xc3\xa9", "other": "\xff\xfe"}')
        out = tmp_path / "out.txt"

        extract_json_string_field(src, "patch", out, chunk_size=chunk_size)

        assert out.read_text(encoding="utf-8") == "ok é\n"

    def test_missing_source(self, tmp_path):
        out = tmp_path / "out.txt"
        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(tmp_path / "missing.json", "patch", out)
        assert exc_info.value.kind == ExtractionErrorKind.IO_ERROR
        assert not out.exists()

    def test_unwritable_destination(self, tmp_path):
        src = _write(tmp_path / "doc.json", '{"patch": "x"}')
        with pytest.raises(ExtractionError) as exc_info:
            extract_json_string_field(src, "patch", tmp_path / "no-dir" / "out.txt")
        assert exc_info.value.kind == ExtractionErrorKind.IO_ERROR

    def test_invalid_sizes(self, tmp_path):
        src = _write(tmp_path / "doc.json", '{"patch": "x"}')
        with pytest.raises(ValueError):
            extract_json_string_field(src, "patch", tmp_path / "o", chunk_size=0)
        with pytest.raises(ValueError):
            extract_json_string_field(src, "patch", tmp_path / "o", flush_threshold=-1)


class TestChunking:
    """Output does not depend on how the input is chunked."""

    DOCUMENT = json.dumps(
        {
            "before": {"patch": "nested", "list": ["a", "b\\\"c"]},
            "patch": "héllo ☺ \U0001f600 é́ tab\there\n" * 40 + "end\\",
            "after": "ignored",
        },
        ensure_ascii=False,
    )

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 5, 7, 64, 65536])
    def test_chunk_size_independence(self, tmp_path, chunk_size):
        expected = json.loads(self.DOCUMENT)["patch"] + "\n"
        text = _extract_text(tmp_path, self.DOCUMENT, chunk_size=chunk_size, flush_threshold=10)
        assert text == expected

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 65536])
    def test_chunk_size_independence_with_escapes(self, tmp_path, chunk_size):
        document = json.dumps({"x": 1, "patch": "\U0001f600☺\"\\/\n" * 30}, ensure_ascii=True)
        expected = json.loads(document)["patch"] + "\n"
        assert _extract_text(tmp_path, document, chunk_size=chunk_size) == expected

    def test_large_value_is_flushed_incrementally(self, tmp_path):
        value = "0123456789" * 20000
        text = _extract_text(tmp_path, json.dumps({"patch": value}), chunk_size=4096, flush_threshold=1024)
        assert text == value + "\n"


class TestFieldScanner:
    """Tests for the character-level state machine."""

    def test_state_progression(self):
        scanner = FieldScanner("k")
        states = []
        for ch in '{"k": "v"}':
            scanner.consume(ch)
            states.append(scanner.state)

        assert states[1] is ScanState.READ_KEY
        assert states[3] is ScanState.AFTER_KEY
        assert states[4] is ScanState.SEEK_VALUE
        assert states[6] is ScanState.READ_VALUE
        assert states[8] is ScanState.DONE
        assert scanner.done

    def test_consume_emits_decoded_value(self):
        output, scanner = _scan('{"patch": "a\\u0062c"}')
        assert output == "abc\n"
        assert scanner.done

    def test_surrogates_held_until_next_character(self):
        scanner = FieldScanner("p")
        emitted = [scanner.consume(ch) for ch in '{"p": "\\uD83D']
        assert "".join(emitted) == ""
        assert "".join(scanner.consume(ch) for ch in "\\uDE00") == "\U0001f600"

    def test_depth_never_negative(self):
        scanner = FieldScanner("p")
        for ch in "]]}}":
            scanner.consume(ch)
        assert scanner.depth == 0
        output = "".join(scanner.consume(ch) for ch in '{"p": "x"}')
        assert output == "x\n"

    def test_done_ignores_further_input(self):
        output, scanner = _scan('{"patch": "v"} {"patch": "w"}')
        assert output == "v\n"
        assert scanner.done

    def test_last_key_is_decoded(self):
        _, scanner = _scan('{"\\uD83D\\uDE00": 1')
        assert scanner.last_key == "\U0001f600"

    def test_feed_matches_consume(self):
        document = '{"a": "skip\\"me", "patch": "x\\ty\\u00e9\\uD83D\\uDE00z", "b": 2}'
        expected, _ = _scan(document)

        scanner = FieldScanner("patch")
        parts = []
        scanner.feed(document, parts.append)
        assert "".join(parts) == expected

    def test_feed_stops_after_done(self):
        scanner = FieldScanner("p")
        document = '{"p": "v", "q": "rest"}'
        consumed = scanner.feed(document, lambda text: None)
        assert consumed == document.index('"v"') + 3
