"""Server side: share a directory with every connected client."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from remotefs.config import DEFAULT_PORT
from remotefs.file_watcher import FileWatcher
from remotefs.messages import MessageError, Sync, read_msg, write_msg

log = logging.getLogger(__name__)

_IDLE_DELAY = 0.01
_BIND_HOST = "0.0.0.0"


class SyncServer:
    """Serves one directory: initial sync, change broadcast and client updates."""

    def __init__(self, port: int, root: str) -> None:
        self.port = port
        self.watcher = FileWatcher(root)
        self.root = self.watcher.root
        self.ready = asyncio.Event()
        self._clients: dict[str, asyncio.Queue[Optional[bytes]]] = {}
        self._writers: set[asyncio.StreamWriter] = set()

    async def serve(self) -> None:
        """Accept clients until cancelled; the watcher is closed afterwards."""
        try:
            server = await asyncio.start_server(self.handle_client, _BIND_HOST, self.port)
            self.port = server.sockets[0].getsockname()[1]
            log.info("Server listening on port %d", self.port)
            broadcast = asyncio.create_task(self._broadcast())
            self.ready.set()
            try:
                await server.serve_forever()
            finally:
                broadcast.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await broadcast
                server.close()
                for writer in list(self._writers):
                    writer.close()
        finally:
            await asyncio.to_thread(self.watcher.close)

    async def handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Send the initial sync, then relay changes both ways until disconnect."""
        peer = writer.get_extra_info("peername")
        addr = f"{peer[0]}:{peer[1]}" if peer else "unknown"
        log.info("Client connected: %s", addr)
        self._writers.add(writer)
        try:
            files = await asyncio.to_thread(self.watcher.get_relative_files)
            try:
                await write_msg(writer, Sync(files=files))
            except MessageError as exc:
                log.error("Failed to send sync to %s: %s", addr, exc.msg)
                return

            outbox: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
            self._clients[addr] = outbox
            sender = asyncio.create_task(self._send_loop(addr, writer, outbox))
            try:
                await self._receive_loop(addr, reader)
            finally:
                outbox.put_nowait(None)
                with contextlib.suppress(asyncio.CancelledError):
                    await sender
        finally:
            self._writers.discard(writer)
            writer.close()

    async def _send_loop(
        self,
        addr: str,
        writer: asyncio.StreamWriter,
        outbox: asyncio.Queue[Optional[bytes]],
    ) -> None:
        log.info("Client writer waiting for commands: %s", addr)
        try:
            while (data := await outbox.get()) is not None:
                log.info("Client writer received data, %d bytes", len(data))
                try:
                    writer.write(data)
                    await writer.drain()
                except (ConnectionError, OSError):
                    log.error("Failed to write to client %s", addr)
                    break
        finally:
            log.info("Client writer closed: %s", addr)
            if self._clients.get(addr) is outbox:
                del self._clients[addr]

    async def _receive_loop(self, addr: str, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                message = await read_msg(reader)
            except MessageError as exc:
                log.error("Failed to read message from %s: %r", addr, exc)
                if exc.is_disconnected or reader.at_eof():
                    break
                continue
            self.watcher.handle_message(message, True)
        log.info("Client reader closed: %s", addr)

    async def _broadcast(self) -> None:
        log.info("File watcher started watching %s", self.root)
        while True:
            event = await asyncio.to_thread(self.watcher.try_get_event)
            if event is None:
                await asyncio.sleep(_IDLE_DELAY)
                continue
            log.info("Transmitting event to %d clients..", len(self._clients))
            try:
                data = self.watcher.make_msg_data(event)
            except MessageError:
                data = None
            if data is None:
                log.error("Failed to serialize event")
                continue
            for outbox in list(self._clients.values()):
                outbox.put_nowait(data)


async def run(port: int = DEFAULT_PORT, root: str = ".") -> None:
    """Serve root on the given port until cancelled."""
    await SyncServer(port, root).serve()