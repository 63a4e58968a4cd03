"""Client side: mirror a server's directory and send local changes back."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os

from remotefs.config import DEFAULT_PORT
from remotefs.file_watcher import FileWatcher
from remotefs.messages import MessageError, read_msg

log = logging.getLogger(__name__)

_IDLE_DELAY = 0.01


async def _forward_events(watcher: FileWatcher, writer: asyncio.StreamWriter) -> None:
    """Pass every accepted local change on to the server."""
    log.info("File watcher started watching '%s'", watcher.root)
    while True:
        event = await asyncio.to_thread(watcher.try_get_event)
        if event is None:
            await asyncio.sleep(_IDLE_DELAY)
            continue
        try:
            data = watcher.make_msg_data(event)
        except MessageError as exc:
            log.error("Failed to serialize %s event: %s", event, exc.msg)
            continue
        if data is None:
            continue
        try:
            writer.write(data)
            await writer.drain()
        except (ConnectionError, OSError):
            log.error("Failed to send %s event", event)


async def _apply_updates(
    watcher: FileWatcher, reader: asyncio.StreamReader, target: str
) -> None:
    """Apply the server's messages until it disconnects."""
    while True:
        try:
            message = await read_msg(reader)
        except MessageError as exc:
            log.error("Failed to read message from %s: %r", target, exc)
            if exc.is_disconnected or reader.at_eof():
                break
            continue
        watcher.handle_message(message, False)


async def run(addr: str, root: str, port: int = DEFAULT_PORT) -> None:
    """Connect to a server and keep root in sync with it until it disconnects.

    Raises ConnectionError when the server cannot be reached.
    """
    os.makedirs(root, exist_ok=True)

    target = f"{addr}:{port}"
    try:
        reader, writer = await asyncio.open_connection(addr, port)
    except OSError as exc:
        raise ConnectionError(f"Failed to connect to {target}: {exc}") from exc

    try:
        watcher = FileWatcher(root)
    except BaseException:
        writer.close()
        raise

    forward = asyncio.create_task(_forward_events(watcher, writer))
    try:
        await _apply_updates(watcher, reader, target)
    finally:
        forward.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await forward
        await asyncio.to_thread(watcher.close)
        writer.close()
        with contextlib.suppress(ConnectionError, OSError):
            await writer.wait_closed()
    log.info("Reader closed")