"""Wire messages exchanged between server and clients.

A frame is a big-endian u32 payload length followed by the payload. The
payload starts with a big-endian u32 variant index; strings and byte
strings are a big-endian u64 length followed by their bytes, and the file
map of a sync message is a u64 entry count followed by its entries.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from dataclasses import dataclass, field
from typing import Protocol, Union

log = logging.getLogger(__name__)

_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")
_MAX_FRAME = 0xFFFFFFFF


class MessageError(Exception):
    """A message could not be read, parsed or written."""

    def __init__(self, msg: str, is_disconnected: bool = False) -> None:
        super().__init__(msg)
        self.msg = msg
        self.is_disconnected = is_disconnected

    @classmethod
    def parse_error(cls, msg: str) -> "MessageError":
        return cls(msg, is_disconnected=False)

    @classmethod
    def disconnect_error(cls, msg: str) -> "MessageError":
        return cls(msg, is_disconnected=True)

    def __repr__(self) -> str:
        return f"MessageError(msg={self.msg!r}, is_disconnected={self.is_disconnected})"


@dataclass(frozen=True)
class Sync:
    """Full contents of the shared directory, keyed by relative path."""

    files: dict[str, bytes] = field(default_factory=dict)


@dataclass(frozen=True)
class CreateEvent:
    path: str
    contents: bytes


@dataclass(frozen=True)
class ModifyEvent:
    path: str
    contents: bytes


@dataclass(frozen=True)
class DeleteEvent:
    path: str


@dataclass(frozen=True)
class MoveEvent:
    old_path: str
    new_path: str


Message = Union[Sync, CreateEvent, ModifyEvent, DeleteEvent, MoveEvent]

_SYNC, _CREATE, _MODIFY, _DELETE, _MOVE = range(5)


def _bytes_field(value: bytes) -> bytes:
    return _U64.pack(len(value)) + bytes(value)


def _str_field(value: str) -> bytes:
    return _bytes_field(value.encode("utf-8"))


def _encode(message: Message) -> bytes:
    match message:
        case Sync(files=files):
            parts = [_U32.pack(_SYNC), _U64.pack(len(files))]
            for path, contents in files.items():
                parts.append(_str_field(path))
                parts.append(_bytes_field(contents))
            return b"".join(parts)
        case CreateEvent(path=path, contents=contents):
            return _U32.pack(_CREATE) + _str_field(path) + _bytes_field(contents)
        case ModifyEvent(path=path, contents=contents):
            return _U32.pack(_MODIFY) + _str_field(path) + _bytes_field(contents)
        case DeleteEvent(path=path):
            return _U32.pack(_DELETE) + _str_field(path)
        case MoveEvent(old_path=old_path, new_path=new_path):
            return _U32.pack(_MOVE) + _str_field(old_path) + _str_field(new_path)
    raise MessageError.parse_error(f"Failed to serialize message: {message!r}")


class _Decoder:
    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._pos = 0

    def _take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise MessageError.parse_error("Unexpected end of message")
        chunk = self._data[self._pos:end].tobytes()
        self._pos = end
        return chunk

    def u32(self) -> int:
        return _U32.unpack(self._take(_U32.size))[0]

    def u64(self) -> int:
        return _U64.unpack(self._take(_U64.size))[0]

    def raw(self) -> bytes:
        return self._take(self.u64())

    def text(self) -> str:
        try:
            return self.raw().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MessageError.parse_error(f"Invalid UTF-8 in message: {exc}") from exc


def compose_data_message(message: Message) -> bytes:
    """Serialize a message into a length-prefixed frame."""
    payload = _encode(message)
    if len(payload) > _MAX_FRAME:
        raise MessageError.parse_error("Message is too large to send")
    return _U32.pack(len(payload)) + payload


def parse_msg(data: bytes) -> Message:
    """Deserialize a frame payload (without its length prefix)."""
    decoder = _Decoder(data)
    variant = decoder.u32()
    if variant == _SYNC:
        files: dict[str, bytes] = {}
        for _ in range(decoder.u64()):
            path = decoder.text()
            files[path] = decoder.raw()
        return Sync(files=files)
    if variant == _CREATE:
        return CreateEvent(path=decoder.text(), contents=decoder.raw())
    if variant == _MODIFY:
        return ModifyEvent(path=decoder.text(), contents=decoder.raw())
    if variant == _DELETE:
        return DeleteEvent(path=decoder.text())
    if variant == _MOVE:
        return MoveEvent(old_path=decoder.text(), new_path=decoder.text())
    raise MessageError.parse_error(f"Unknown message variant {variant}")


class _Writer(Protocol):
    def write(self, data: bytes) -> object: ...

    async def drain(self) -> None: ...


async def read_msg(reader: asyncio.StreamReader) -> Message:
    """Read and parse one frame; raises MessageError."""
    try:
        header = await reader.readexactly(_U32.size)
    except asyncio.IncompleteReadError as exc:
        if not exc.partial:
            raise MessageError.disconnect_error("Disconnected") from exc
        raise MessageError.parse_error("Failed to read length") from exc
    except (ConnectionError, OSError) as exc:
        raise MessageError.parse_error("Failed to read length") from exc

    (length,) = _U32.unpack(header)
    try:
        payload = await reader.readexactly(length)
    except (asyncio.IncompleteReadError, ConnectionError, OSError) as exc:
        raise MessageError.parse_error("Failed to read message") from exc

    try:
        message = parse_msg(payload)
    except MessageError as exc:
        log.error("Failed to parse message: %s", exc.msg)
        raise MessageError.parse_error("Failed to parse message") from exc

    log.info("Received event (%d bytes)", len(payload) + _U32.size)
    return message


async def write_msg(writer: _Writer, message: Message) -> None:
    """Serialize and send one message; raises MessageError."""
    data = compose_data_message(message)
    try:
        writer.write(data)
        await writer.drain()
    except (ConnectionError, OSError) as exc:
        raise MessageError.disconnect_error("Failed to write message") from exc
    log.info("Sent event (%d bytes)", len(data))