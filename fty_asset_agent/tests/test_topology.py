import json

import pytest

from asset_agent.helpers import topology
from asset_agent.helpers.topology import TopologyError

from conftest import add_asset, add_link


def ids(nodes):
    return [node["id"] for node in nodes]


# -------------------------------------------------------
# POWER / POWER_TO
# -------------------------------------------------------
def test_power_sources_of_device(db, seeded):
    assert topology.power_sources(db, "server-1") == ["epdu-1", "ups-1"]
    assert topology.power_sources(db, "ups-1") == []


def test_power_sources_of_container_skip_inner_devices(db, seeded):
    assert topology.power_sources(db, "rack-1") == []


def test_power_sources_skip_non_power_devices(db, seeded):
    feed = add_asset(db, "feed-1", "device", "feed", parent=seeded["room"], ext={"name": "Feed 1"})
    add_link(db, feed, seeded["ups"])

    assert topology.power_sources(db, "rack-1") == []
    assert topology.power_sources(db, "server-1") == ["epdu-1", "ups-1"]


def test_power_sources_unknown_asset(db, seeded):
    with pytest.raises(TopologyError) as exc_info:
        topology.power_sources(db, "nope")

    assert exc_info.value.message == "Asset not found"


def test_power_to(db, seeded):
    payload = topology.power_to(db, "ups-1")

    assert ids(payload["devices"]) == ["ups-1", "epdu-1"]
    assert payload["devices"][0] == {"name": "UPS 1", "id": "ups-1", "type": "device", "sub_type": "ups"}
    assert payload["powerchains"] == [{"src-id": "ups-1", "dst-id": "epdu-1", "src-socket": "1"}]


# -------------------------------------------------------
# POWERCHAINS
# -------------------------------------------------------
def test_powerchains_to(db, seeded):
    payload = topology.powerchains(db, "to", "server-1")

    assert ids(payload["devices"]) == ["server-1", "epdu-1", "ups-1"]
    assert payload["powerchains"] == [
        {"src-id": "ups-1", "dst-id": "epdu-1", "src-socket": "1"},
        {"src-id": "epdu-1", "dst-id": "server-1", "src-socket": "5", "dst-socket": "A"},
    ]


def test_powerchains_from(db, seeded):
    payload = topology.powerchains(db, "from", "epdu-1")

    assert ids(payload["devices"]) == ["epdu-1", "server-1"]
    assert len(payload["powerchains"]) == 1


def test_powerchains_filter_dc(db, seeded):
    payload = topology.powerchains(db, "filter_dc", "datacenter")

    assert "datacenter" not in ids(payload["devices"])
    assert {"ups-1", "epdu-1", "server-1"} <= set(ids(payload["devices"]))
    assert len(payload["powerchains"]) == 2


def test_powerchains_filter_group(db, seeded):
    payload = topology.powerchains(db, "filter_group", "group-1")

    assert ids(payload["devices"]) == ["ups-1", "epdu-1"]
    assert payload["powerchains"] == [{"src-id": "ups-1", "dst-id": "epdu-1", "src-socket": "1"}]


@pytest.mark.parametrize(
    "command, asset, message",
    [
        ("sideways", "ups-1", "Invalid command 'sideways'"),
        ("", "ups-1", "Invalid command ''"),
        ("filter_dc", "rack-1", "Asset 'rack-1' is not a datacenter"),
        ("filter_group", "rack-1", "Asset 'rack-1' is not a group"),
        ("to", "", "Missing argument"),
    ],
)
def test_powerchains_errors(db, seeded, command, asset, message):
    with pytest.raises(TopologyError) as exc_info:
        topology.powerchains(db, command, asset)

    assert exc_info.value.message == message


def test_input_powerchain(db, seeded):
    other_dc = add_asset(db, "datacenter-2", "datacenter", ext={"name": "DC 2"})
    feed = add_asset(db, "feed-9", "device", "feed", parent=other_dc, ext={"name": "Feed 9"})
    add_link(db, feed, seeded["ups"], src_out="2")

    payload = topology.input_powerchain(db, "datacenter")

    assert payload["powerchains"] == [{"src-id": "feed-9", "dst-id": "ups-1", "src-socket": "2"}]
    assert ids(payload["devices"]) == ["feed-9", "ups-1"]


def test_input_powerchain_requires_datacenter(db, seeded):
    with pytest.raises(TopologyError):
        topology.input_powerchain(db, "room-1")


# -------------------------------------------------------
# LOCATION
# -------------------------------------------------------
def test_location_to(db, seeded):
    payload = topology.location(db, "to", "server-1")

    assert ids(payload["to"]) == ["server-1", "rack-1", "room-1", "datacenter"]
    assert payload["to"][-1]["name"] == "Data Center"


def test_location_from_one_level(db, seeded):
    payload = topology.location(db, "from", "datacenter")

    root = payload["from"][0]
    assert root["id"] == "datacenter"
    assert ids(root["contains"]) == ["room-1"]
    assert root["contains"][0]["contains"] == []


def test_location_from_recursive(db, seeded):
    payload = topology.location(db, "from", "room-1", json.dumps({"recursive": True}))

    rack = payload["from"][0]["contains"][0]
    assert rack["id"] == "rack-1"
    assert ids(rack["contains"]) == ["ups-1", "epdu-1", "server-1"]


def test_location_from_containers_only(db, seeded):
    payload = topology.location(db, "from", "room-1", '{"recursive": true, "containers_only": true}')

    assert payload["from"][0]["contains"][0]["contains"] == []


def test_location_from_depth(db, seeded):
    payload = topology.location(db, "from", "datacenter", '{"recursive": true, "depth": 2}')

    rack = payload["from"][0]["contains"][0]["contains"][0]
    assert rack["id"] == "rack-1"
    assert rack["contains"] == []


def test_location_from_all(db, seeded):
    payload = topology.location(db, "from", "$all")

    assert ids(payload["from"]) == ["datacenter"]


@pytest.mark.parametrize(
    "options, message",
    [
        ("nope", "Invalid options 'nope'"),
        ('{"colour": true}', "Unknown option 'colour'"),
        ('{"depth": -1}', "Invalid value for option 'depth'"),
        ('{"recursive": "yes"}', "Invalid value for option 'recursive'"),
    ],
)
def test_location_bad_options(db, seeded, options, message):
    with pytest.raises(TopologyError) as exc_info:
        topology.location(db, "from", "datacenter", options)

    assert exc_info.value.message == message


def test_to_json_keeps_unicode():
    assert topology.to_json({"name": "Salle é"}) == '{"name": "Salle é"}'
