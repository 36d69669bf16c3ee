import json

import pytest
from pydantic import ValidationError

from compctl.core.messages import Empty, PingRequest, PingResponse, ShutdownWatchRequest
from compctl.runtime.wire import (
    RpcMethod,
    build_error,
    build_request,
    build_result,
    decode_request,
    decode_response,
    encode_frame,
)


def test_encode_frame_is_one_newline_terminated_line():
    frame = encode_frame(build_request(RpcMethod.PING, PingRequest(payload=b"hi"), request_id=3))

    assert frame.endswith(b"\n")
    assert frame.count(b"\n") == 1
    assert json.loads(frame) == {"id": 3, "method": "ping", "params": {"payload": "aGk="}}


def test_absent_ping_payload_is_omitted_on_the_wire():
    frame = encode_frame(build_request(RpcMethod.PING, PingRequest()))

    assert json.loads(frame)["params"] == {}
    assert decode_request(frame).message() == PingRequest()


def test_decode_request_validates_params_for_the_method():
    request = decode_request(b'{"method": "shutdown_watch"}\n')

    assert request.id == 0
    assert request.method == RpcMethod.SHUTDOWN_WATCH
    assert request.message() == ShutdownWatchRequest()

    with pytest.raises(ValidationError):
        decode_request(b'{"method": "reload_config", "params": {"path": "/etc"}}')


def test_error_response_carries_no_result():
    response = decode_response(encode_frame(build_error(9, "Malformed request")))

    assert response.ok is False
    assert response.result is None
    assert response.error == "Malformed request"


def test_result_response_decodes_into_the_method_response_type():
    ack = decode_response(encode_frame(build_result(1, Empty())))
    echo = decode_response(encode_frame(build_result(2, PingResponse(payload=b"\x00"))))

    assert ack.message(RpcMethod.QUIT) == Empty()
    assert echo.message(RpcMethod.PING).payload == b"\x00"
