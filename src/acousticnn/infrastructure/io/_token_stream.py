"""
Kaldi-style token streams for layer persistence.

This module provides `TokenWriter` and `TokenReader`, symmetric framing
primitives over a *binary* file object. Both support two on-wire modes:

- binary: compact, exact; basic types carry a one-byte size prefix and
  matrices/vectors are raw little-endian float32 data.
- text: human-readable ASCII; floats are written with the shortest
  representation that round-trips float32 exactly.

Wire format
-----------
- Stream header: binary streams start with the two bytes ``\\0B``; text
  streams have no header (`open_output` / `open_input` handle this).
- Token: ``<Tag>`` followed by a single space, in both modes.
- int32: binary ``0xFC`` (signed size 4) + ``<i4``; text ``"42 "``.
- float32: binary ``0x04`` + ``<f4``; text ``"0.5 "``.
- matrix: binary ``FM`` token, int32 rows, int32 cols, row-major data;
  text ``" [\\n  1 2 3 \\n  4 5 6 ]\\n"`` (``" [ ]\\n"`` if empty).
- vector: binary ``FV`` token, int32 dim, data; text ``" [ 1 2 3 ]\\n"``.

Double-precision ``DM`` / ``DV`` objects are accepted on read and converted to
float32.

Any malformed input (unexpected token, truncated data, bad number) raises
`CorruptStateError`.
"""

from __future__ import annotations

import struct
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, List, Union

import numpy as np

from ...domain._errors import CorruptStateError

BINARY_HEADER = b"\0B"

_INT32_SIZE_BYTE = struct.pack("b", -4)
_FLOAT32_SIZE_BYTE = struct.pack("b", 4)
_WHITESPACE = b" \t\n\r\f\v"


def format_float(value: float) -> str:
    """
    Format a float for text streams so that it parses back to the same float32.
    """
    return str(np.float32(value))


class TokenWriter:
    """
    Write tokens, basic types, matrices and vectors to a binary file object.

    Parameters
    ----------
    stream : BinaryIO
        Destination opened in binary mode. Text-mode output is ASCII-encoded.
    binary : bool
        Select binary (True) or text (False) wire format.
    """

    def __init__(self, stream: BinaryIO, binary: bool) -> None:
        self._stream = stream
        self.binary = bool(binary)

    @classmethod
    def with_header(cls, stream: BinaryIO, binary: bool) -> "TokenWriter":
        """
        Create a writer, emitting the binary header first when `binary`.
        """
        if binary:
            stream.write(BINARY_HEADER)
        return cls(stream, binary)

    def _write_text(self, text: str) -> None:
        self._stream.write(text.encode("ascii"))

    def write_token(self, token: str) -> None:
        """
        Write a single token (e.g., ``"<MaxGrad>"``) followed by a space.

        Raises
        ------
        ValueError
            If the token is empty or contains whitespace.
        """
        if not token or any(c.isspace() for c in token):
            raise ValueError(f"Invalid token: {token!r}")
        self._write_text(token + " ")

    def write_int(self, value: int) -> None:
        """Write an int32 basic type."""
        if self.binary:
            self._stream.write(_INT32_SIZE_BYTE + struct.pack("<i", int(value)))
        else:
            self._write_text(f"{int(value)} ")

    def write_float(self, value: float) -> None:
        """Write a float32 basic type."""
        if self.binary:
            self._stream.write(_FLOAT32_SIZE_BYTE + struct.pack("<f", float(value)))
        else:
            self._write_text(f"{format_float(value)} ")

    def write_newline(self) -> None:
        """Write a line break in text mode; no-op in binary mode."""
        if not self.binary:
            self._write_text("\n")

    def write_matrix(self, mat: np.ndarray) -> None:
        """
        Write a 2-D float matrix.

        Raises
        ------
        ValueError
            If `mat` is not 2-D.
        """
        m = np.asarray(mat, dtype=np.float32)
        if m.ndim != 2:
            raise ValueError(f"write_matrix expects a 2-D array, got shape {m.shape}")

        if self.binary:
            self.write_token("FM")
            self.write_int(m.shape[0])
            self.write_int(m.shape[1])
            self._stream.write(np.ascontiguousarray(m, dtype="<f4").tobytes(order="C"))
            return

        if m.size == 0:
            self._write_text(" [ ]\n")
            return
        parts = [" ["]
        for row in m:
            parts.append("\n  " + "".join(f"{format_float(v)} " for v in row))
        parts.append("]\n")
        self._write_text("".join(parts))

    def write_vector(self, vec: np.ndarray) -> None:
        """
        Write a 1-D float vector.

        Raises
        ------
        ValueError
            If `vec` is not 1-D.
        """
        v = np.asarray(vec, dtype=np.float32)
        if v.ndim != 1:
            raise ValueError(f"write_vector expects a 1-D array, got shape {v.shape}")

        if self.binary:
            self.write_token("FV")
            self.write_int(v.shape[0])
            self._stream.write(np.ascontiguousarray(v, dtype="<f4").tobytes(order="C"))
            return

        self._write_text(" [ " + "".join(f"{format_float(x)} " for x in v) + "]\n")


class TokenReader:
    """
    Read tokens, basic types, matrices and vectors from a binary file object.

    The reader reads ahead in chunks of `read_size` bytes and serves tokens
    from that buffer, so `peek` works on any readable stream (including
    non-seekable ones) without a system call per byte. The underlying stream
    is therefore positioned past the data consumed so far; keep reading
    through the same reader.

    Parameters
    ----------
    stream : BinaryIO
        Source opened in binary mode.
    binary : bool
        Select binary (True) or text (False) wire format.
    """

    read_size = 1 << 16

    def __init__(self, stream: BinaryIO, binary: bool) -> None:
        self._stream = stream
        self.binary = bool(binary)
        self._buf = b""
        self._pos = 0

    @classmethod
    def from_stream(cls, stream: BinaryIO) -> "TokenReader":
        """
        Create a reader, detecting the mode from the optional binary header.

        Raises
        ------
        CorruptStateError
            If the stream starts with ``\\0`` but not with the full header.
        """
        reader = cls(stream, binary=False)
        if reader._peek_raw() == BINARY_HEADER[:1]:
            header = reader._read_exact(len(BINARY_HEADER), "binary header")
            if header != BINARY_HEADER:
                raise CorruptStateError(f"Bad binary stream header: {header!r}")
            reader.binary = True
        return reader

    # ------------------------------------------------------------------
    # raw byte access
    # ------------------------------------------------------------------
    def _fill(self) -> bool:
        """Refill an exhausted buffer; return False at end of stream."""
        if self._pos < len(self._buf):
            return True
        self._buf = self._stream.read(self.read_size) or b""
        self._pos = 0
        return bool(self._buf)

    def _read_raw(self, n: int) -> bytes:
        if n <= 0:
            return b""
        parts = []
        remaining = n
        while remaining > 0 and self._fill():
            chunk = self._buf[self._pos : self._pos + remaining]
            self._pos += len(chunk)
            remaining -= len(chunk)
            parts.append(chunk)
        return b"".join(parts)

    def _peek_raw(self) -> bytes:
        if not self._fill():
            return b""
        return self._buf[self._pos : self._pos + 1]

    def _read_until(self, delim: bytes, what: str) -> bytes:
        """Consume up to and including `delim`; return the bytes before it."""
        parts = []
        while True:
            if not self._fill():
                raise CorruptStateError(f"Unexpected end of stream inside {what}.")
            idx = self._buf.find(delim, self._pos)
            if idx >= 0:
                parts.append(self._buf[self._pos : idx])
                self._pos = idx + len(delim)
                return b"".join(parts)
            parts.append(self._buf[self._pos :])
            self._pos = len(self._buf)

    def _read_exact(self, n: int, what: str) -> bytes:
        data = self._read_raw(n)
        if len(data) != n:
            raise CorruptStateError(
                f"Unexpected end of stream while reading {what} "
                f"(wanted {n} bytes, got {len(data)})."
            )
        return data

    def _skip_whitespace(self) -> None:
        while True:
            b = self._peek_raw()
            if not b or b not in _WHITESPACE:
                return
            self._read_raw(1)

    def _read_word(self, what: str) -> str:
        self._skip_whitespace()
        chars = bytearray()
        while True:
            b = self._peek_raw()
            if not b:
                break
            if b in _WHITESPACE:
                self._read_raw(1)
                break
            chars += self._read_raw(1)
        if not chars:
            raise CorruptStateError(f"Unexpected end of stream while reading {what}.")
        return chars.decode("ascii", errors="replace")

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def peek(self) -> str:
        """
        Return the next character without consuming it ("" at end of stream).

        In text mode leading whitespace is skipped first.
        """
        if not self.binary:
            self._skip_whitespace()
        return self._peek_raw().decode("latin-1")

    def at_eof(self) -> bool:
        """Return True if no further (non-whitespace, in text mode) data remains."""
        return self.peek() == ""

    def read_token(self) -> str:
        """
        Read a single token.

        In binary mode tokens are terminated by exactly one space; in text mode
        leading whitespace is skipped and any whitespace terminates the token.
        """
        if not self.binary:
            return self._read_word("token")

        chars = bytearray()
        while True:
            b = self._read_raw(1)
            if not b:
                raise CorruptStateError("Unexpected end of stream while reading token.")
            if b == b" ":
                break
            chars += b
        if not chars:
            raise CorruptStateError("Empty token in binary stream.")
        return chars.decode("ascii", errors="replace")

    def expect_token(self, token: str) -> None:
        """
        Read a token and require it to equal `token`.

        Raises
        ------
        CorruptStateError
            If a different token is found.
        """
        got = self.read_token()
        if got != token:
            raise CorruptStateError(f"Expected token {token!r}, got {got!r}.")

    def read_int(self) -> int:
        """Read an int32 basic type."""
        if self.binary:
            size = self._read_exact(1, "int32 size byte")
            if size != _INT32_SIZE_BYTE:
                raise CorruptStateError(
                    f"Expected int32 size byte {_INT32_SIZE_BYTE!r}, got {size!r}."
                )
            return struct.unpack("<i", self._read_exact(4, "int32"))[0]

        word = self._read_word("int32")
        try:
            return int(word)
        except ValueError as e:
            raise CorruptStateError(f"Malformed integer in stream: {word!r}") from e

    def read_float(self) -> float:
        """Read a float32 basic type (returned as a Python float)."""
        if self.binary:
            size = self._read_exact(1, "float32 size byte")
            if size != _FLOAT32_SIZE_BYTE:
                raise CorruptStateError(
                    f"Expected float32 size byte {_FLOAT32_SIZE_BYTE!r}, got {size!r}."
                )
            return struct.unpack("<f", self._read_exact(4, "float32"))[0]

        word = self._read_word("float32")
        try:
            return float(np.float32(float(word)))
        except ValueError as e:
            raise CorruptStateError(f"Malformed float in stream: {word!r}") from e

    def _read_binary_values(self, count: int, dtype: str, what: str) -> np.ndarray:
        itemsize = np.dtype(dtype).itemsize
        raw = self._read_exact(count * itemsize, what)
        return np.frombuffer(raw, dtype=dtype).astype(np.float32)

    def _read_bracketed(self, what: str) -> str:
        self._skip_whitespace()
        opening = self._read_raw(1)
        if opening != b"[":
            raise CorruptStateError(f"Expected '[' at start of {what}, got {opening!r}.")
        return self._read_until(b"]", what).decode("ascii", errors="replace")

    @staticmethod
    def _parse_floats(words: List[str], what: str) -> List[float]:
        try:
            return [float(w) for w in words]
        except ValueError as e:
            raise CorruptStateError(f"Malformed number in {what}: {e}") from e

    def read_matrix(self) -> np.ndarray:
        """
        Read a 2-D float matrix, returned as a new float32 array.
        """
        if self.binary:
            tag = self.read_token()
            match tag:
                case "FM":
                    dtype = "<f4"
                case "DM":
                    dtype = "<f8"
                case _:
                    raise CorruptStateError(f"Expected matrix token FM or DM, got {tag!r}.")
            rows = self.read_int()
            cols = self.read_int()
            if rows < 0 or cols < 0:
                raise CorruptStateError(f"Negative matrix dimensions {rows}x{cols}.")
            return self._read_binary_values(rows * cols, dtype, "matrix data").reshape(
                rows, cols
            )

        body = self._read_bracketed("matrix")
        rows_data = [
            self._parse_floats(line.split(), "matrix")
            for line in body.splitlines()
            if line.strip()
        ]
        if not rows_data:
            return np.zeros((0, 0), dtype=np.float32)
        width = len(rows_data[0])
        if any(len(r) != width for r in rows_data):
            raise CorruptStateError("Text matrix has rows of unequal length.")
        return np.array(rows_data, dtype=np.float32)

    def read_vector(self) -> np.ndarray:
        """
        Read a 1-D float vector, returned as a new float32 array.
        """
        if self.binary:
            tag = self.read_token()
            match tag:
                case "FV":
                    dtype = "<f4"
                case "DV":
                    dtype = "<f8"
                case _:
                    raise CorruptStateError(f"Expected vector token FV or DV, got {tag!r}.")
            dim = self.read_int()
            if dim < 0:
                raise CorruptStateError(f"Negative vector dimension {dim}.")
            return self._read_binary_values(dim, dtype, "vector data")

        body = self._read_bracketed("vector")
        return np.array(self._parse_floats(body.split(), "vector"), dtype=np.float32)


@contextmanager
def open_output(path: Union[str, Path], binary: bool = True) -> Iterator[TokenWriter]:
    """
    Open `path` for writing and yield a `TokenWriter` (header included).
    """
    with open(path, "wb") as f:
        yield TokenWriter.with_header(f, binary)


@contextmanager
def open_input(path: Union[str, Path]) -> Iterator[TokenReader]:
    """
    Open `path` for reading and yield a `TokenReader` with the detected mode.
    """
    with open(path, "rb") as f:
        yield TokenReader.from_stream(f)


__all__ = [
    "BINARY_HEADER",
    format_float.__name__,
    TokenWriter.__name__,
    TokenReader.__name__,
    open_output.__name__,
    open_input.__name__,
]
