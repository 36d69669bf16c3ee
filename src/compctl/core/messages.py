from __future__ import annotations

import base64
import binascii
from enum import IntEnum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class SetOrToggle(IntEnum):
    """
    Imperative intent for a boolean-like setting.

    The integer values are a public wire contract: external bindings map on
    the raw discriminants, so they must never be renumbered.
    """

    UNSPECIFIED = 0
    SET = 1
    UNSET = 2
    TOGGLE = 3

    def resolve(self, current: bool) -> bool:
        """Return the new value of a setting currently at `current`."""
        if self is SetOrToggle.SET:
            return True
        if self is SetOrToggle.UNSET:
            return False
        if self is SetOrToggle.TOGGLE:
            return not current
        raise ValueError("unspecified set or toggle")


class _Marker(BaseModel):
    """A message that carries no fields and only names an operation."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class Empty(_Marker):
    """Acknowledgement for unary calls that return nothing."""


class QuitRequest(_Marker):
    pass


class ReloadConfigRequest(_Marker):
    pass


class ShutdownWatchRequest(_Marker):
    pass


class ShutdownWatchResponse(_Marker):
    """The single notification that the process is shutting down."""


class _OpaquePayload(BaseModel):
    """
    Carries one optional opaque byte payload.

    JSON form encodes the payload as base64 text. Raw bytes handed in from
    Python are kept as-is; only text is treated as base64.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    payload: Optional[bytes] = None

    @field_validator("payload", mode="before")
    @classmethod
    def _decode_payload(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return base64.b64decode(value.encode("ascii"), validate=True)
            except (binascii.Error, UnicodeEncodeError) as exc:
                raise ValueError(f"payload is not valid base64: {exc}") from exc
        if isinstance(value, (bytearray, memoryview)):
            return bytes(value)
        return value

    @field_serializer("payload", when_used="json")
    def _encode_payload(self, value: Optional[bytes]) -> Optional[str]:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")


class PingRequest(_OpaquePayload):
    pass


class PingResponse(_OpaquePayload):
    pass


class Geometry(BaseModel):
    """
    A rectangle whose fields may each be absent.

    Absent means "leave unchanged", never zero.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    x: Optional[int] = Field(default=None, ge=INT32_MIN, le=INT32_MAX)
    y: Optional[int] = Field(default=None, ge=INT32_MIN, le=INT32_MAX)
    width: Optional[int] = Field(default=None, ge=INT32_MIN, le=INT32_MAX)
    height: Optional[int] = Field(default=None, ge=INT32_MIN, le=INT32_MAX)

    def apply_to(self, x: int, y: int, width: int, height: int) -> Tuple[int, int, int, int]:
        """Overlay the present fields onto an existing rectangle."""
        return (
            x if self.x is None else self.x,
            y if self.y is None else self.y,
            width if self.width is None else self.width,
            height if self.height is None else self.height,
        )

    def is_empty(self) -> bool:
        return self.x is None and self.y is None and self.width is None and self.height is None
