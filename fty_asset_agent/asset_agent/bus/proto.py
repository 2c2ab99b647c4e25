# asset_agent/bus/proto.py
"""
fty-proto codec (zproto framing).

Every message is a single frame:

    signature (2 bytes, 0xAAA9) | message id (1 byte) | fields...

Numbers are big-endian. ``string`` fields are prefixed by a 1-byte length,
``longstr`` by a 4-byte length; a hash is a 4-byte count followed by
(string key, longstr value) pairs.
"""
import struct
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

SIGNATURE = 0xAAA9

METRIC = 1
ALERT = 2
ASSET = 3

_MESSAGE_NAMES = {METRIC: "METRIC", ALERT: "ALERT", ASSET: "ASSET"}


class ProtoError(ValueError):
    """Raised for frames that are not valid fty-proto messages."""


@dataclass
class FtyProto:
    id: int = ASSET
    aux: Dict[str, str] = field(default_factory=dict)
    ext: Dict[str, str] = field(default_factory=dict)
    # ASSET
    name: str = ""
    operation: str = ""
    # METRIC
    time: int = 0
    ttl: int = 0
    type: str = ""
    value: str = ""
    unit: str = ""

    @property
    def command(self) -> str:
        return _MESSAGE_NAMES.get(self.id, "UNKNOWN")

    def aux_string(self, key: str, default: str = "") -> str:
        return self.aux.get(key, default)

    def ext_string(self, key: str, default: str = "") -> str:
        return self.ext.get(key, default)

    def encode(self) -> bytes:
        writer = _Writer()
        writer.number(">H", SIGNATURE)
        writer.number(">B", self.id)
        if self.id == ASSET:
            writer.hash(self.aux)
            writer.string(self.name)
            writer.string(self.operation)
            writer.hash(self.ext)
        elif self.id == METRIC:
            writer.hash(self.aux)
            writer.number(">Q", self.time)
            writer.number(">I", self.ttl)
            writer.string(self.type)
            writer.string(self.name)
            writer.string(self.value)
            writer.string(self.unit)
        else:
            raise ProtoError(f"encoding of message id {self.id} is not supported")
        return writer.getvalue()

    @classmethod
    def decode(cls, frame: bytes) -> "FtyProto":
        reader = _Reader(frame)
        if reader.number(">H") != SIGNATURE:
            raise ProtoError("invalid signature")
        message = cls(id=reader.number(">B"))
        if message.id == ASSET:
            message.aux = reader.hash()
            message.name = reader.string()
            message.operation = reader.string()
            message.ext = reader.hash()
        elif message.id == METRIC:
            message.aux = reader.hash()
            message.time = reader.number(">Q")
            message.ttl = reader.number(">I")
            message.type = reader.string()
            message.name = reader.string()
            message.value = reader.string()
            message.unit = reader.string()
        else:
            raise ProtoError(f"unsupported message id {message.id}")
        return message


class _Writer:
    def __init__(self) -> None:
        self._parts = []

    def number(self, fmt: str, value: int) -> None:
        self._parts.append(struct.pack(fmt, value))

    def string(self, value: str) -> None:
        data = (value or "").encode("utf-8")
        if len(data) > 255:
            raise ProtoError(f"string field too long ({len(data)} bytes)")
        self._parts.append(struct.pack(">B", len(data)) + data)

    def longstr(self, value: str) -> None:
        data = (value or "").encode("utf-8")
        self._parts.append(struct.pack(">I", len(data)) + data)

    def hash(self, values: Dict[str, str]) -> None:
        self.number(">I", len(values))
        for key, value in values.items():
            self.string(key)
            self.longstr(value)

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    def _take(self, size: int) -> bytes:
        if self._offset + size > len(self._data):
            raise ProtoError("malformed message: frame too short")
        chunk = self._data[self._offset:self._offset + size]
        self._offset += size
        return chunk

    def number(self, fmt: str) -> int:
        return struct.unpack(fmt, self._take(struct.calcsize(fmt)))[0]

    def string(self) -> str:
        return self._take(self.number(">B")).decode("utf-8", errors="replace")

    def longstr(self) -> str:
        return self._take(self.number(">I")).decode("utf-8", errors="replace")

    def hash(self) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for _ in range(self.number(">I")):
            key = self.string()
            values[key] = self.longstr()
        return values


# -------------------------------------------------------
# Convenience helpers
# -------------------------------------------------------
def is_fty_proto(frame) -> bool:
    if not isinstance(frame, (bytes, bytearray)) or len(frame) < 3:
        return False
    return struct.unpack(">H", bytes(frame[:2]))[0] == SIGNATURE


def try_decode(frame) -> Optional[FtyProto]:
    if not is_fty_proto(frame):
        return None
    try:
        return FtyProto.decode(bytes(frame))
    except ProtoError:
        return None


def encode_asset(
    name: str,
    operation: str,
    aux: Optional[Dict[str, str]] = None,
    ext: Optional[Dict[str, str]] = None,
) -> bytes:
    return FtyProto(id=ASSET, name=name, operation=operation, aux=dict(aux or {}), ext=dict(ext or {})).encode()


def encode_metric(
    name: str,
    metric_type: str,
    value: str,
    unit: str = "",
    ttl: int = 0,
    aux: Optional[Dict[str, str]] = None,
) -> bytes:
    return FtyProto(
        id=METRIC,
        name=name,
        type=metric_type,
        value=value,
        unit=unit,
        ttl=ttl,
        time=int(time.time()),
        aux=dict(aux or {}),
    ).encode()


def metric_subject(message: FtyProto) -> str:
    return f"{message.type}@{message.name}"


def split_subject(subject: str) -> Tuple[str, str]:
    """'type.subtype@iname' -> ('type.subtype', 'iname')"""
    head, _, tail = subject.partition("@")
    return head, tail
