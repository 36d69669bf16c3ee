from __future__ import annotations

import logging
import secrets
import socket
from typing import Iterator, Optional

from pydantic import BaseModel, ValidationError

from compctl.core.messages import (
    PingRequest,
    PingResponse,
    QuitRequest,
    ReloadConfigRequest,
    ShutdownWatchRequest,
    ShutdownWatchResponse,
)
from compctl.runtime.wire import (
    MAX_FRAME_BYTES,
    RpcMethod,
    RpcResponse,
    build_request,
    decode_response,
    encode_frame,
)
from compctl.utils.errors import ControlError, PingMismatchError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_PING_TIMEOUT_SECONDS = 10.0
DEFAULT_PING_PAYLOAD_SIZE = 8


class LifecycleClient:
    """Blocking client for the lifecycle control service.

    Every call opens its own connection. Deadlines are the caller's policy:
    a call that does not complete in time raises TransportError.
    """

    def __init__(self, host: str, port: int, timeout_seconds: float = 5.0) -> None:
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds

    def quit(self) -> None:
        """Ask the compositor to shut down; returns once the request is acknowledged."""
        self._unary(RpcMethod.QUIT, QuitRequest())

    def reload_config(self) -> None:
        """Ask the compositor to reload its config; does not wait for the reload itself."""
        self._unary(RpcMethod.RELOAD_CONFIG, ReloadConfigRequest())

    def ping(self, payload: Optional[bytes] = None, timeout_seconds: Optional[float] = None) -> PingResponse:
        return self._unary(RpcMethod.PING, PingRequest(payload=payload), timeout_seconds)

    def check_alive(
        self,
        timeout_seconds: float = DEFAULT_PING_TIMEOUT_SECONDS,
        payload_size: int = DEFAULT_PING_PAYLOAD_SIZE,
    ) -> bool:
        """Ping with a random payload and verify the echo.

        Returns False, after logging why, when the process is not responsive.
        """
        payload = secrets.token_bytes(payload_size)
        try:
            response = self.ping(payload, timeout_seconds=timeout_seconds)
            if response.payload != payload:
                raise PingMismatchError(payload, response.payload)
        except ControlError as exc:
            logger.warning("Liveness check against %s:%d failed: %s", self.host, self.port, exc)
            return False
        return True

    def shutdown_watch(self, timeout_seconds: Optional[float] = None) -> Iterator[ShutdownWatchResponse]:
        """Yield the shutdown notification, if any, then stop at end-of-stream.

        Blocks until the server notifies or closes the stream. Closing the
        generator early closes the connection, which cancels the subscription.
        """
        request = build_request(RpcMethod.SHUTDOWN_WATCH, ShutdownWatchRequest())
        method = RpcMethod.SHUTDOWN_WATCH.value
        sock = self._connect(method)
        try:
            sock.settimeout(timeout_seconds)
            self._send(sock, encode_frame(request), method)
            with sock.makefile("rb") as sock_file:
                while True:
                    line = self._readline(sock_file, method)
                    if not line:
                        return
                    yield self._parse(line, RpcMethod.SHUTDOWN_WATCH)
        finally:
            sock.close()

    def _unary(
        self,
        method: RpcMethod,
        message: BaseModel,
        timeout_seconds: Optional[float] = None,
    ) -> BaseModel:
        request = build_request(method, message)
        sock = self._connect(method.value)
        try:
            if timeout_seconds is not None:
                sock.settimeout(timeout_seconds)
            self._send(sock, encode_frame(request), method.value)
            with sock.makefile("rb") as sock_file:
                line = self._readline(sock_file, method.value)
        finally:
            sock.close()

        if not line:
            raise TransportError("Connection closed without a response.", method=method.value)
        return self._parse(line, method)

    def _connect(self, method: str) -> socket.socket:
        try:
            return socket.create_connection((self.host, self.port), timeout=self.timeout_seconds)
        except OSError as exc:
            raise TransportError(f"Could not connect to {self.host}:{self.port}: {exc}", method=method) from exc

    @staticmethod
    def _send(sock: socket.socket, frame: bytes, method: str) -> None:
        try:
            sock.sendall(frame)
        except OSError as exc:
            raise TransportError(f"Send failed: {exc}", method=method) from exc

    @staticmethod
    def _readline(sock_file, method: str) -> bytes:
        try:
            return sock_file.readline(MAX_FRAME_BYTES)
        except socket.timeout as exc:
            raise TransportError("Deadline exceeded.", method=method) from exc
        except OSError as exc:
            raise TransportError(f"Receive failed: {exc}", method=method) from exc

    @staticmethod
    def _parse(line: bytes, method: RpcMethod) -> BaseModel:
        try:
            response: RpcResponse = decode_response(line)
        except ValidationError as exc:
            raise TransportError(f"Invalid server response: {exc}", method=method.value) from exc

        if not response.ok:
            raise TransportError(response.error or "Server rejected the call.", method=method.value)

        try:
            return response.message(method)
        except ValidationError as exc:
            raise TransportError(f"Invalid {method.value} result: {exc}", method=method.value) from exc
