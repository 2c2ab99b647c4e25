import struct

import pytest

from asset_agent.bus import proto
from asset_agent.bus.proto import ASSET, METRIC, FtyProto, ProtoError
from asset_agent.helpers.asset_db import ExtAttrValue
from asset_agent.core.errors import BadParams
from asset_agent.helpers.asset_impl import AssetImpl, LinkSpec


def test_asset_frame_layout():
    frame = FtyProto(id=ASSET, name="ups-1", operation="update", aux={"type": "device"}, ext={}).encode()

    assert frame[:2] == b"\xaa\xa9"
    assert frame[2] == ASSET
    # aux hash: count, then key (string) and value (longstr)
    assert struct.unpack(">I", frame[3:7])[0] == 1
    assert frame[7] == len("type")
    assert frame[8:12] == b"type"
    assert struct.unpack(">I", frame[12:16])[0] == len("device")


def test_asset_encode_decode():
    message = FtyProto(
        id=ASSET,
        name="ups-1",
        operation="create",
        aux={"type": "device", "subtype": "ups", "priority": "1", "parent": "4", "status": "active"},
        ext={"name": "UPS 1", "serial_no": "ŽLUŤ-1"},
    )

    decoded = FtyProto.decode(message.encode())

    assert decoded == message
    assert decoded.command == "ASSET"


def test_metric_encode_decode():
    frame = proto.encode_metric("rackcontroller-0", "configurability.global", "0", ttl=60)

    decoded = FtyProto.decode(frame)

    assert decoded.id == METRIC
    assert decoded.name == "rackcontroller-0"
    assert decoded.type == "configurability.global"
    assert decoded.value == "0"
    assert decoded.ttl == 60
    assert decoded.time > 0
    assert proto.metric_subject(decoded) == "configurability.global@rackcontroller-0"


def test_decode_rejects_bad_frames():
    with pytest.raises(ProtoError):
        FtyProto.decode(b"\x00\x01\x03")
    with pytest.raises(ProtoError):
        FtyProto.decode(b"\xaa\xa9\x03\x00\x00")
    with pytest.raises(ProtoError):
        FtyProto.decode(b"\xaa\xa9\x09")


def test_try_decode():
    frame = proto.encode_asset("rack-1", "update", aux={"type": "rack"})

    assert proto.try_decode(frame).name == "rack-1"
    assert proto.try_decode(b"GET") is None
    assert proto.try_decode("not bytes") is None
    assert proto.try_decode(b"\xaa\xa9\x03") is None


def test_string_field_limit():
    with pytest.raises(ProtoError):
        FtyProto(id=ASSET, name="x" * 256).encode()


def test_split_subject():
    assert proto.split_subject("device.ups@ups-1") == ("device.ups", "ups-1")


def test_asset_impl_round_trip():
    message = FtyProto(
        id=ASSET,
        name="epdu-7",
        operation="update",
        aux={"type": "device", "subtype": "epdu", "status": "nonactive", "priority": "3", "parent": "12"},
        ext={"name": "ePDU 7", "u_size": "1"},
    )

    asset = AssetImpl.from_fty_proto(message, read_only=True)
    again = asset.to_fty_proto()

    assert asset.ext["u_size"] == ExtAttrValue("1", True)
    assert again.name == "epdu-7"
    assert again.operation == "update"
    assert again.aux["type"] == "device"
    assert again.aux["subtype"] == "epdu"
    assert again.aux["status"] == "nonactive"
    assert again.aux["priority"] == "3"
    assert again.aux["parent"] == "12"
    assert again.ext == message.ext


def test_asset_impl_parent_by_name():
    message = FtyProto(id=ASSET, name="", operation="create", aux={"type": "room", "parent": "datacenter"})

    asset = AssetImpl.from_fty_proto(message)

    assert asset.parent_iname == "datacenter"
    assert asset.parent_id == 0
    assert asset.to_fty_proto().aux["parent"] == "datacenter"


def test_asset_impl_decodes_power_links_and_groups():
    message = FtyProto(
        id=ASSET,
        name="server-7",
        operation="create",
        aux={"type": "device", "subtype": "server", "parent": "rack-1"},
        ext={"name": "Server 7", "power_link.epdu-1": "5/A", "power_link.ups-1": "", "group": "group-1/group-2"},
    )

    asset = AssetImpl.from_fty_proto(message)

    assert asset.links == [LinkSpec(source="epdu-1", src_out="5", dest_in="A"), LinkSpec(source="ups-1")]
    assert asset.groups == ["group-1", "group-2"]
    assert asset.carries_groups
    assert list(asset.ext) == ["name"]


def test_asset_impl_without_group_key():
    message = FtyProto(id=ASSET, name="ups-1", operation="update", aux={"type": "device"}, ext={"name": "UPS 1"})

    asset = AssetImpl.from_fty_proto(message)

    assert asset.groups == []
    assert not asset.carries_groups


def test_asset_impl_rejects_bad_priority():
    message = FtyProto(id=ASSET, name="ups-1", operation="update", aux={"type": "device", "priority": "high"})

    with pytest.raises(BadParams) as exc_info:
        AssetImpl.from_fty_proto(message)

    assert exc_info.value.message == "Priority 'high' is not valid, expected P1..P5"
