from __future__ import annotations

import asyncio
import logging
import signal
import threading
from asyncio import FIRST_COMPLETED
from typing import Callable, Optional, Set

from pydantic import ValidationError

from compctl.core.messages import ShutdownWatchResponse
from compctl.runtime.notifier import ShutdownSubscription
from compctl.runtime.service import LifecycleControlService
from compctl.runtime.wire import (
    MAX_FRAME_BYTES,
    RpcMethod,
    RpcRequest,
    RpcResponse,
    build_error,
    build_result,
    decode_request,
    encode_frame,
)

logger = logging.getLogger(__name__)

_TERMINATING_SIGNALS = [
    signal.SIGTERM,
    signal.SIGINT,
]


class ControlServer:
    """Serves the lifecycle control service over newline-delimited JSON frames.

    Each connection carries exactly one call and runs as its own task, so a
    pending shutdown watch never holds up any other call.
    """

    def __init__(
        self,
        service: LifecycleControlService,
        host: str = "127.0.0.1",
        port: int = 0,
        shutdown_grace_seconds: float = 1.0,
    ) -> None:
        self.service = service
        self.host = host
        self._requested_port = port
        self.shutdown_grace_seconds = shutdown_grace_seconds

        self._server: Optional[asyncio.AbstractServer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._connections: Set[asyncio.Task] = set()
        self._bound_port: Optional[int] = None

    @property
    def port(self) -> int:
        if self._bound_port is None:
            raise RuntimeError("ControlServer is not listening yet.")
        return self._bound_port

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._server = await asyncio.start_server(
            self._handle_connection,
            host=self.host,
            port=self._requested_port,
            limit=MAX_FRAME_BYTES,
        )
        self._bound_port = self._server.sockets[0].getsockname()[1]
        logger.info("Control server listening on %s:%d", self.host, self._bound_port)

    async def serve(
        self,
        ready: Optional[threading.Event] = None,
        on_listening: Optional[Callable[[], None]] = None,
        install_signal_handlers: bool = False,
    ) -> None:
        await self.start()
        if install_signal_handlers:
            for sig in _TERMINATING_SIGNALS:
                self._loop.add_signal_handler(sig, self._stop_event.set)
        if on_listening is not None:
            on_listening()
        if ready is not None:
            ready.set()

        try:
            await self._stop_event.wait()
        finally:
            await self._close()

    def serve_forever(
        self,
        ready: Optional[threading.Event] = None,
        on_listening: Optional[Callable[[], None]] = None,
        install_signal_handlers: bool = False,
    ) -> None:
        asyncio.run(
            self.serve(ready=ready, on_listening=on_listening, install_signal_handlers=install_signal_handlers)
        )

    def start_in_thread(self, timeout_seconds: float = 5.0) -> threading.Thread:
        """Run the server on a background thread and return once it is listening."""
        ready = threading.Event()
        thread = threading.Thread(target=self.serve_forever, kwargs={"ready": ready}, daemon=True)
        thread.start()
        if not ready.wait(timeout_seconds):
            raise RuntimeError("ControlServer did not start listening in time.")
        return thread

    def shutdown(self) -> None:
        """Stop serving; safe to call from any thread, more than once."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._stop_event.set)
        except RuntimeError:
            # loop closed after the check; the server has already stopped
            return

    async def _close(self) -> None:
        logger.info("Control server shutting down")
        self.service.notify_shutdown()
        self._server.close()

        if self._connections:
            _, still_open = await asyncio.wait(set(self._connections), timeout=self.shutdown_grace_seconds)
            for task in still_open:
                task.cancel()
            if still_open:
                await asyncio.gather(*still_open, return_exceptions=True)

        await self._server.wait_closed()

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        self._connections.add(task)
        try:
            await self._serve_call(reader, writer)
        except (ConnectionError, asyncio.IncompleteReadError) as exc:
            logger.debug("Connection dropped: %s", exc)
        finally:
            self._connections.discard(task)
            writer.close()

    async def _serve_call(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            line = await reader.readline()
        except ValueError as exc:
            await self._write(writer, build_error(0, f"Frame too large: {exc}"))
            return
        if not line:
            return

        try:
            request = decode_request(line)
        except ValidationError as exc:
            logger.warning("Rejected malformed request frame: %s", exc.errors(include_url=False))
            await self._write(writer, build_error(0, f"Malformed request: {exc}"))
            return

        if request.method == RpcMethod.SHUTDOWN_WATCH:
            await self._serve_shutdown_watch(request, reader, writer)
            return

        await self._write(writer, self._call_unary(request))

    def _call_unary(self, request: RpcRequest) -> RpcResponse:
        message = request.message()
        if request.method == RpcMethod.QUIT:
            result = self.service.quit(message)
        elif request.method == RpcMethod.RELOAD_CONFIG:
            result = self.service.reload_config(message)
        elif request.method == RpcMethod.PING:
            result = self.service.ping(message)
        else:
            raise ValueError(f"Not a unary method: {request.method}")
        return build_result(request.id, result)

    async def _serve_shutdown_watch(
        self,
        request: RpcRequest,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        subscription = self.service.shutdown_watch(request.message())
        resolved = self._resolution_future(subscription)
        disconnected = asyncio.ensure_future(self._wait_for_eof(reader))

        try:
            await asyncio.wait({resolved, disconnected}, return_when=FIRST_COMPLETED)
            if resolved.done() and subscription.notified:
                await self._write(writer, build_result(request.id, ShutdownWatchResponse()))
            elif self.service.cancel_watch(subscription):
                logger.debug("Shutdown watcher disconnected before shutdown")
            elif subscription.notified:
                await self._write(writer, build_result(request.id, ShutdownWatchResponse()))
        finally:
            disconnected.cancel()
            self.service.cancel_watch(subscription)

    def _resolution_future(self, subscription: ShutdownSubscription) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        resolved = loop.create_future()

        def _on_done(sub: ShutdownSubscription) -> None:
            if loop.is_closed():
                return
            try:
                loop.call_soon_threadsafe(_settle, resolved, sub)
            except RuntimeError:
                logger.debug("Loop closed before %r could be delivered", sub)

        subscription.add_done_callback(_on_done)
        return resolved

    @staticmethod
    async def _wait_for_eof(reader: asyncio.StreamReader) -> None:
        try:
            while await reader.read(4096):
                pass
        except ConnectionError as exc:
            logger.debug("Shutdown watcher connection reset: %s", exc)

    @staticmethod
    async def _write(writer: asyncio.StreamWriter, response: RpcResponse) -> None:
        writer.write(encode_frame(response))
        await writer.drain()


def _settle(future: asyncio.Future, subscription: ShutdownSubscription) -> None:
    if not future.done():
        future.set_result(subscription.state)
