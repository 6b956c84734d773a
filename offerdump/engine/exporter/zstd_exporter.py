"""Zstandard-compressed stream of self-delimited JSON records."""

from __future__ import annotations

import struct
from pathlib import Path
from threading import Lock
from typing import BinaryIO, Iterator, Literal

import orjson
import zstandard as zstd

from ..parser import RawValue
from .base import BaseExporter

RecordFormat = Literal["jsonl", "framed"]

_FRAME_HEADER = struct.Struct(">I")
_READ_SIZE = 64 * 1024


def encode_record(record: dict, fmt: RecordFormat = "jsonl") -> bytes:
    """Serialise one record; ``jsonl`` is newline-terminated, ``framed`` length-prefixed.

    :class:`RawValue` members are written back exactly as they were received.
    """

    data = orjson.dumps(
        {
            name: orjson.Fragment(value.text) if isinstance(value, RawValue) else value
            for name, value in record.items()
        }
    )
    if fmt == "jsonl":
        return data + b"\n"
    if fmt == "framed":
        return _FRAME_HEADER.pack(len(data)) + data
    raise ValueError(f"Unsupported record format: {fmt}")


class ZstdStreamExporter(BaseExporter):
    """Append records to a single zstd stream, one whole record per locked write.

    ``close`` ends the zstd frame and flushes, but only closes the underlying
    stream when the exporter opened it itself (stdout stays open).
    """

    def __init__(
        self,
        stream: BinaryIO,
        fmt: RecordFormat = "jsonl",
        level: int = 3,
        *,
        close_stream: bool = False,
    ) -> None:
        if fmt not in ("jsonl", "framed"):
            raise ValueError(f"Unsupported record format: {fmt}")
        self.stream = stream
        self.format = fmt
        self._close_stream = close_stream
        self._writer = zstd.ZstdCompressor(level=level).stream_writer(stream, closefd=False)
        self._lock = Lock()
        self._count = 0
        self._closed = False

    @classmethod
    def open(cls, path: Path, fmt: RecordFormat = "jsonl", level: int = 3) -> "ZstdStreamExporter":
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(path.open("wb"), fmt, level, close_stream=True)

    @property
    def count(self) -> int:
        return self._count

    def export(self, record: dict) -> None:
        payload = encode_record(record, self.format)
        with self._lock:
            if self._closed:
                raise RuntimeError("Exporter is closed")
            self._writer.write(payload)
            self._count += 1

    def flush(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._writer.flush(zstd.FLUSH_BLOCK)
            self.stream.flush()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._writer.close()
            self.stream.flush()
            if self._close_stream:
                self.stream.close()


def iter_records(stream: BinaryIO, fmt: RecordFormat = "jsonl") -> Iterator[dict]:
    """Decode every record of an export produced by :class:`ZstdStreamExporter`."""

    reader = zstd.ZstdDecompressor().stream_reader(
        stream, read_across_frames=True, closefd=False
    )
    buffer = bytearray()
    while True:
        chunk = reader.read(_READ_SIZE)
        if chunk:
            buffer.extend(chunk)
        if fmt == "jsonl":
            *lines, rest = bytes(buffer).split(b"\n")
            buffer = bytearray(rest)
            for line in lines:
                if line:
                    yield orjson.loads(line)
        elif fmt == "framed":
            while len(buffer) >= _FRAME_HEADER.size:
                (size,) = _FRAME_HEADER.unpack_from(buffer)
                end = _FRAME_HEADER.size + size
                if len(buffer) < end:
                    break
                yield orjson.loads(bytes(buffer[_FRAME_HEADER.size : end]))
                del buffer[:end]
        else:
            raise ValueError(f"Unsupported record format: {fmt}")
        if not chunk:
            break
    leftover = buffer.strip() if fmt == "jsonl" else buffer
    if leftover:
        raise ValueError("Export ends with a truncated record")


__all__ = ["RecordFormat", "ZstdStreamExporter", "encode_record", "iter_records"]
