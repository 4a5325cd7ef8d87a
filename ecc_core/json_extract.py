"""
Streaming JSON field extraction - bounded-memory copy of one string field.

Kernel responses can carry multi-megabyte string payloads (patch text). This
module streams one top-level string field from a JSON document on disk to a
file, without parsing the document or holding the whole value in memory.

Only keys that are direct children of the outermost object are matched, so a
nested key with the same name is never picked up.

Usage:
    from ecc_core.json_extract import extract_json_string_field

    extract_json_string_field("out.json", "patch", "patch.diff")
"""

import codecs
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from ecc_core.errors import ExtractionError, ExtractionErrorKind

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_FLUSH_THRESHOLD = 16 * 1024

_SIMPLE_ESCAPES = {
    '"': '"',
    '\\': '\\',
    '/': '/',
    'b': '\b',
    'f': '\f',
    'n': '\n',
    'r': '\r',
    't': '\t',
}
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")

# Run of characters that need no escape processing inside a string
_PLAIN_RUN = re.compile(r'[^"\\]+')


def _is_high_surrogate(ch: str) -> bool:
    return "\ud800" <= ch <= "\udbff"


def _is_low_surrogate(ch: str) -> bool:
    return "\udc00" <= ch <= "\udfff"


def _combine_surrogates(high: str, low: str) -> str:
    return chr(0x10000 + ((ord(high) - 0xD800) << 10) + (ord(low) - 0xDC00))


def _join_surrogates(text: str) -> str:
    """Recombine escaped surrogate pairs; lone surrogates are kept as-is."""
    if not any("\ud800" <= c <= "\udfff" for c in text):
        return text
    return text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "surrogatepass")


class ScanState(str, Enum):
    """States of the field scanner."""
    IDLE = "idle"  # between tokens
    SKIP_STRING = "skip_string"  # inside a string we do not care about
    READ_KEY = "read_key"  # inside a top-level key
    AFTER_KEY = "after_key"  # waiting for ':'
    SEEK_VALUE = "seek_value"  # waiting for the target value
    READ_VALUE = "read_value"  # streaming the target value
    DONE = "done"


class FieldScanner:
    """
    Character-level state machine locating and decoding one top-level string field.

    ``consume(ch)`` is the single transition: it takes one decoded character,
    updates the state and returns the text to emit (usually empty). Errors are
    raised as ExtractionError.

    Tracked state:
        depth: structural nesting ({ and [), never negative
        escape / unicode digits: pending backslash and \\uXXXX accumulation
        pending high surrogate: held until the next decoded character
    """

    def __init__(self, field_name: str):
        self.field_name = field_name
        self.state = ScanState.IDLE
        self.depth = 0
        self.last_key: Optional[str] = None
        self.ended_with_newline = False

        self._expecting_key = False
        self._top_is_object = False
        self._key_parts: List[str] = []
        self._escape = False
        self._unicode_digits: Optional[str] = None
        self._pending_high: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.state is ScanState.DONE

    def _error(self, kind: ExtractionErrorKind, message: str) -> ExtractionError:
        return ExtractionError(kind, message, field_name=self.field_name)

    # ------------------------ String decoding ------------------------

    def _reset_string(self) -> None:
        self._escape = False
        self._unicode_digits = None

    def _decode(self, ch: str, role: str, strict: bool) -> Tuple[Optional[str], bool]:
        """
        Decode one character inside a string.

        Returns:
            (decoded character or None, whether the string just closed)
        """
        if self._unicode_digits is not None:
            if ch not in _HEX_DIGITS:
                raise self._error(
                    ExtractionErrorKind.INVALID_UNICODE_ESCAPE,
                    f"invalid unicode escape in {role} string",
                )
            digits = self._unicode_digits + ch
            if len(digits) < 4:
                self._unicode_digits = digits
                return None, False
            self._unicode_digits = None
            return chr(int(digits, 16)), False

        if self._escape:
            self._escape = False
            if ch == "u":
                self._unicode_digits = ""
                return None, False
            decoded = _SIMPLE_ESCAPES.get(ch)
            if decoded is None and strict:
                raise self._error(
                    ExtractionErrorKind.MALFORMED_ESCAPE,
                    f"invalid escape '\\{ch}' in {role} string",
                )
            return decoded, False

        if ch == "\\":
            self._escape = True
            return None, False
        if ch == '"':
            return None, True
        return ch, False

    def _track(self, text: str) -> str:
        if text:
            self.ended_with_newline = text.endswith("\n")
        return text

    def _emit(self, decoded: str) -> str:
        """Apply surrogate pairing to a decoded value character."""
        out = ""
        if self._pending_high is not None:
            high = self._pending_high
            self._pending_high = None
            if _is_low_surrogate(decoded):
                return self._track(_combine_surrogates(high, decoded))
            out = high

        if _is_high_surrogate(decoded):
            self._pending_high = decoded
            return self._track(out)

        return self._track(out + decoded)

    def _finish_value(self) -> str:
        out = ""
        if self._pending_high is not None:
            out = self._track(self._pending_high)
            self._pending_high = None
        if not self.ended_with_newline:
            out += self._track("\n")
        self.state = ScanState.DONE
        return out

    # ------------------------ Transition ------------------------

    def consume(self, ch: str) -> str:
        """
        Consume one decoded character.

        Returns:
            Text to append to the output (empty unless streaming the value)

        Raises:
            ExtractionError: NOT_A_STRING, MALFORMED_ESCAPE,
                INVALID_UNICODE_ESCAPE or MALFORMED_DOCUMENT
        """
        state = self.state

        if state is ScanState.READ_VALUE:
            decoded, closed = self._decode(ch, "value", strict=True)
            if closed:
                return self._finish_value()
            if decoded is None:
                return ""
            return self._emit(decoded)

        if state is ScanState.READ_KEY:
            decoded, closed = self._decode(ch, "key", strict=True)
            if closed:
                self.last_key = _join_surrogates("".join(self._key_parts))
                self._key_parts = []
                self.state = ScanState.AFTER_KEY
            elif decoded is not None:
                self._key_parts.append(decoded)
            return ""

        if state is ScanState.SKIP_STRING:
            _, closed = self._decode(ch, "skipped", strict=False)
            if closed:
                self.state = ScanState.IDLE
            return ""

        if state is ScanState.AFTER_KEY:
            if ch.isspace():
                return ""
            if ch != ":":
                raise self._error(
                    ExtractionErrorKind.MALFORMED_DOCUMENT,
                    'malformed JSON: expected ":" after key',
                )
            if self.depth == 1 and self.last_key == self.field_name:
                self.state = ScanState.SEEK_VALUE
            else:
                self.state = ScanState.IDLE
            return ""

        if state is ScanState.SEEK_VALUE:
            if ch.isspace():
                return ""
            if ch != '"':
                raise self._error(
                    ExtractionErrorKind.NOT_A_STRING,
                    f'field "{self.field_name}" is not a JSON string',
                )
            self._reset_string()
            self._pending_high = None
            self.ended_with_newline = False
            self.state = ScanState.READ_VALUE
            return ""

        if state is ScanState.DONE:
            return ""

        # IDLE
        if ch == '"':
            self._reset_string()
            if self.depth == 1 and self._expecting_key:
                self._expecting_key = False
                self.state = ScanState.READ_KEY
            else:
                self.state = ScanState.SKIP_STRING
        elif ch == "{" or ch == "[":
            self.depth += 1
            if self.depth == 1:
                self._top_is_object = ch == "{"
                self._expecting_key = self._top_is_object
        elif ch == "}" or ch == "]":
            self.depth = max(0, self.depth - 1)
        elif ch == "," and self.depth == 1 and self._top_is_object:
            self._expecting_key = True
        return ""

    def feed(self, text: str, emit: Callable[[str], None]) -> int:
        """
        Consume a decoded chunk, stopping once the value is complete.

        Plain runs inside strings are handled in bulk; the result is the same
        as calling ``consume`` for every character.

        Args:
            text: Decoded text chunk
            emit: Receives output text

        Returns:
            Number of characters consumed
        """
        i = 0
        n = len(text)
        while i < n and self.state is not ScanState.DONE:
            state = self.state
            plain = not self._escape and self._unicode_digits is None

            if plain and state is ScanState.READ_VALUE:
                match = _PLAIN_RUN.match(text, i)
                if match:
                    if self._pending_high is not None:
                        emit(self._track(self._pending_high))
                        self._pending_high = None
                    emit(self._track(match.group()))
                    i = match.end()
                    continue
            elif plain and state is ScanState.SKIP_STRING:
                match = _PLAIN_RUN.match(text, i)
                if match:
                    i = match.end()
                    continue

            out = self.consume(text[i])
            i += 1
            if out:
                emit(out)
        return i


class _LazyWriter:
    """Buffered output file, created on the first flush."""

    def __init__(self, path: Path, flush_threshold: int):
        self.path = path
        self.flush_threshold = flush_threshold
        self.chars_written = 0
        self._fh = None
        self._parts: List[str] = []
        self._buffered = 0

    def write(self, text: str) -> None:
        if not text:
            return
        self._parts.append(text)
        self._buffered += len(text)
        self.chars_written += len(text)
        if self._buffered >= self.flush_threshold:
            self.flush()

    def flush(self) -> None:
        if not self._parts:
            return
        if self._fh is None:
            # lone surrogates are written as their raw code units
            self._fh = open(self.path, "w", encoding="utf-8", errors="surrogatepass", newline="")
        self._fh.write("".join(self._parts))
        self._parts = []
        self._buffered = 0

    def close(self) -> None:
        self.flush()
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def discard(self) -> None:
        """Drop buffered output and remove a partially written file."""
        self._parts = []
        if self._fh is None:
            return
        try:
            self._fh.close()
        finally:
            self._fh = None
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass


@dataclass
class ExtractionResult:
    """Result of a successful extraction."""
    destination: Path
    field_name: str
    chars_written: int
    bytes_read: int


def extract_json_string_field(
    source: Union[str, Path],
    field_name: str,
    destination: Union[str, Path],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    flush_threshold: int = DEFAULT_FLUSH_THRESHOLD,
) -> ExtractionResult:
    """
    Stream a top-level string field of a JSON document to a file.

    The destination receives the decoded value followed by exactly one
    trailing newline (none added if the value already ends with one). On
    failure no destination file is left behind.

    Args:
        source: JSON document path
        field_name: Top-level key to extract
        destination: Output file path
        chunk_size: Bytes read per input chunk
        flush_threshold: Characters buffered before writing

    Returns:
        ExtractionResult

    Raises:
        ExtractionError: FIELD_NOT_FOUND (also for an unterminated value),
            NOT_A_STRING, MALFORMED_ESCAPE, INVALID_UNICODE_ESCAPE,
            MALFORMED_DOCUMENT or IO_ERROR
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if flush_threshold <= 0:
        raise ValueError(f"flush_threshold must be positive, got {flush_threshold}")

    source = Path(source)
    destination = Path(destination)
    scanner = FieldScanner(field_name)
    writer = _LazyWriter(destination, flush_threshold)
    decoder = codecs.getincrementaldecoder("utf-8-sig")()
    bytes_read = 0
    completed = False

    try:
        with open(source, "rb") as src:
            while not scanner.done:
                chunk = src.read(chunk_size)
                final = not chunk
                bytes_read += len(chunk)
                try:
                    text = decoder.decode(chunk, final=final)
                except UnicodeDecodeError as e:
                    # bytes before the bad sequence may still complete the value
                    valid = e.object[:e.start].decode("utf-8")
                    if valid:
                        scanner.feed(valid, writer.write)
                    if scanner.done:
                        break
                    raise ExtractionError(
                        ExtractionErrorKind.MALFORMED_DOCUMENT,
                        f"invalid UTF-8 in {source}: {e}",
                        field_name=field_name,
                        path=str(source),
                    ) from e
                if text:
                    scanner.feed(text, writer.write)
                if final:
                    break

        if not scanner.done:
            # an unterminated value is reported the same way as a missing field
            raise ExtractionError(
                ExtractionErrorKind.FIELD_NOT_FOUND,
                f'field "{field_name}" not found',
                field_name=field_name,
                path=str(source),
            )

        writer.close()
        completed = True
    except ExtractionError as e:
        if e.path is None:
            e.path = str(source)
        raise
    except OSError as e:
        raise ExtractionError(
            ExtractionErrorKind.IO_ERROR,
            f"I/O error extracting \"{field_name}\": {e}",
            field_name=field_name,
            path=str(source),
        ) from e
    finally:
        if not completed:
            writer.discard()

    logger.debug(f"Extracted {writer.chars_written} chars of '{field_name}' from {source} to {destination}")
    return ExtractionResult(
        destination=destination,
        field_name=field_name,
        chars_written=writer.chars_written,
        bytes_read=bytes_read,
    )
