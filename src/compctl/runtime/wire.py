from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Type

from pydantic import BaseModel, Field

from compctl.core.messages import (
    Empty,
    PingRequest,
    PingResponse,
    QuitRequest,
    ReloadConfigRequest,
    ShutdownWatchRequest,
    ShutdownWatchResponse,
)

FRAME_DELIMITER = b"\n"
MAX_FRAME_BYTES = 1024 * 1024


class RpcMethod(str, Enum):
    QUIT = "quit"
    RELOAD_CONFIG = "reload_config"
    PING = "ping"
    SHUTDOWN_WATCH = "shutdown_watch"


STREAMING_METHODS = frozenset({RpcMethod.SHUTDOWN_WATCH})

REQUEST_TYPES: Dict[RpcMethod, Type[BaseModel]] = {
    RpcMethod.QUIT: QuitRequest,
    RpcMethod.RELOAD_CONFIG: ReloadConfigRequest,
    RpcMethod.PING: PingRequest,
    RpcMethod.SHUTDOWN_WATCH: ShutdownWatchRequest,
}

RESPONSE_TYPES: Dict[RpcMethod, Type[BaseModel]] = {
    RpcMethod.QUIT: Empty,
    RpcMethod.RELOAD_CONFIG: Empty,
    RpcMethod.PING: PingResponse,
    RpcMethod.SHUTDOWN_WATCH: ShutdownWatchResponse,
}


class RpcRequest(BaseModel):
    id: int = 0
    method: RpcMethod
    params: Dict[str, Any] = Field(default_factory=dict)

    def message(self) -> BaseModel:
        """Validate `params` into the request message for this method."""
        return REQUEST_TYPES[self.method].model_validate(self.params)


class RpcResponse(BaseModel):
    id: int = 0
    ok: bool
    result: Dict[str, Any] | None = None
    error: str | None = None

    def message(self, method: RpcMethod) -> BaseModel:
        return RESPONSE_TYPES[method].model_validate(self.result or {})


def build_request(method: RpcMethod, message: BaseModel, request_id: int = 0) -> RpcRequest:
    return RpcRequest(id=request_id, method=method, params=message.model_dump(mode="json", exclude_none=True))


def build_result(request_id: int, message: BaseModel) -> RpcResponse:
    return RpcResponse(id=request_id, ok=True, result=message.model_dump(mode="json", exclude_none=True))


def build_error(request_id: int, error: str) -> RpcResponse:
    return RpcResponse(id=request_id, ok=False, error=error)


def encode_frame(model: BaseModel) -> bytes:
    return model.model_dump_json(exclude_none=True).encode("utf-8") + FRAME_DELIMITER


def decode_request(line: bytes) -> RpcRequest:
    """Parse one request frame; raises pydantic.ValidationError on a malformed frame."""
    request = RpcRequest.model_validate_json(line)
    request.message()
    return request


def decode_response(line: bytes) -> RpcResponse:
    return RpcResponse.model_validate_json(line)
