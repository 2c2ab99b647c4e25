import pytest

from asset_agent.core.errors import BadParams, ElementNotFound
from asset_agent.helpers import asset_db, asset_select
from asset_agent.helpers.asset_select import Filter, Order, OrderDir
from asset_agent.helpers.asset_types import SUBTYPE_SERVER, SUBTYPE_UPS, TYPE_DEVICE, TYPE_RACK

from conftest import add_asset, add_link


# -------------------------------------------------------
# Name / id conversions
# -------------------------------------------------------
def test_name_conversions(db, seeded):
    rack_id = seeded["rack"].id

    assert asset_db.name_to_asset_id(db, "rack-1") == rack_id
    assert asset_db.id_to_name_ext_name(db, rack_id) == ("rack-1", "Rack 1")
    assert asset_db.ext_name_to_asset_name(db, "Rack 1") == "rack-1"
    assert asset_db.ext_name_to_asset_id(db, "Rack 1") == rack_id
    assert asset_db.name_to_ext_name(db, "rack-1") == "Rack 1"


def test_name_conversions_not_found(db, seeded):
    with pytest.raises(ElementNotFound):
        asset_db.name_to_asset_id(db, "rack-99")
    with pytest.raises(ElementNotFound):
        asset_db.ext_name_to_asset_name(db, "Rack 99")
    with pytest.raises(BadParams):
        asset_db.name_to_asset_id(db, "")


def test_resolve_asset_name_falls_back_to_ext_name(db, seeded):
    assert asset_db.resolve_asset_name(db, "rack-1").id == seeded["rack"].id
    assert asset_db.resolve_asset_name(db, "data center").id == seeded["dc"].id
    with pytest.raises(ElementNotFound):
        asset_db.resolve_asset_name(db, "Nowhere")


# -------------------------------------------------------
# Statistics
# -------------------------------------------------------
def test_max_number_of_power_links(db, seeded):
    assert asset_db.max_number_of_power_links(db) == 1

    add_link(db, seeded["ups"], seeded["server"], src_out="2")

    assert asset_db.max_number_of_power_links(db) == 2


def test_max_number_of_asset_groups(db, seeded):
    assert asset_db.max_number_of_asset_groups(db) == 1


def test_count_keytag(db, seeded):
    assert asset_db.count_keytag(db, "u_size", "42") == 1
    assert asset_db.count_keytag(db, "u_size", "42", seeded["rack"].id) == 1
    assert asset_db.count_keytag(db, "u_size", "42", seeded["room"].id) == 0


def test_count_keytag_unknown_element_is_zero(db, seeded):
    assert asset_db.count_keytag(db, "u_size", "42", 999999) == 0


# -------------------------------------------------------
# Super parent / containers
# -------------------------------------------------------
def test_select_super_parent(db, seeded):
    result = asset_db.select_super_parent(db, seeded["server"].id)

    assert result.chain() == [seeded["rack"].id, seeded["room"].id, seeded["dc"].id]
    assert result.names[:4] == ["rack-1", "room-1", "datacenter", None]
    assert len(result.ids) == 10


def test_top_location_id(db, seeded):
    assert asset_db.top_location_id(db, seeded["server"].id) == seeded["dc"].id
    assert asset_db.top_location_id(db, seeded["dc"].id) == seeded["dc"].id
    assert asset_db.top_location_id(db, seeded["group"].id) is None


def test_container_member_ids(db, seeded):
    members = asset_db.container_member_ids(db, seeded["room"].id)

    assert set(members) == {
        seeded["rack"].id,
        seeded["ups"].id,
        seeded["epdu"].id,
        seeded["server"].id,
    }


def test_select_dc_upses_ordered_by_name(db, seeded):
    add_asset(db, "ups-0", "device", "ups", parent=seeded["rack"])
    add_asset(db, "ups-2", "device", "ups", parent=seeded["rack"], status="nonactive")

    assert asset_db.select_dc_upses(db, seeded["dc"].id) == ["ups-0", "ups-1"]


# -------------------------------------------------------
# Links
# -------------------------------------------------------
def test_upstream_and_downstream(db, seeded):
    assert asset_db.upstream_ids(db, [seeded["server"].id]) == [seeded["epdu"].id, seeded["ups"].id]
    assert asset_db.downstream_ids(db, [seeded["ups"].id]) == [seeded["epdu"].id, seeded["server"].id]


def test_insert_link_rejects_self_loop(db, seeded):
    with pytest.raises(BadParams) as exc_info:
        asset_db.insert_link(db, seeded["ups"].id, seeded["ups"].id)

    assert exc_info.value.message == "connection loop was detected"


def test_insert_link_rejects_cycle(db, seeded):
    with pytest.raises(BadParams) as exc_info:
        asset_db.insert_link(db, seeded["server"].id, seeded["ups"].id)

    assert exc_info.value.message == "connection loop was detected"


# -------------------------------------------------------
# Selects
# -------------------------------------------------------
def test_item_by_internal_and_external_name(db, seeded):
    assert asset_select.item(db, "rack-1").id == seeded["rack"].id
    assert asset_select.item(db, "Rack 1").id == seeded["rack"].id
    with pytest.raises(ElementNotFound):
        asset_select.item(db, "rack-1", ext_name_only=True)


def test_items_with_filter(db, seeded):
    result = asset_select.items(db, Filter(types=[TYPE_DEVICE], subtypes=[SUBTYPE_UPS]))

    assert [item.name for item in result] == ["ups-1"]
    assert result[0].ext_name == "UPS 1"
    assert result[0].parent_name == "rack-1"
    assert result[0].parent_type_id == TYPE_RACK
    assert result[0].type_name == "device"
    assert result[0].subtype_name == "ups"


def test_items_without_location(db, seeded):
    result = asset_select.items(db, Filter(without="location"))

    assert sorted(item.name for item in result) == ["datacenter", "group-1"]


def test_items_without_powerchain(db, seeded):
    result = asset_select.items(db, Filter(types=[TYPE_DEVICE], without="powerchain"))

    assert [item.name for item in result] == ["ups-1"]


def test_items_ordered_by_ext_attribute(db, seeded):
    result = asset_select.items(db, Filter(subtypes=[SUBTYPE_UPS, SUBTYPE_SERVER]), Order("name", OrderDir.DESC))

    assert [item.name for item in result] == ["ups-1", "server-1"]


def test_items_invalid_order(db, seeded):
    with pytest.raises(BadParams) as exc_info:
        asset_select.items(db, None, Order("colour"))

    assert exc_info.value.message.startswith("order field is invalid, possible orders are 'asset_order/create_ts")


def test_item_ext(db, seeded):
    by_name = asset_select.item_ext(db, "server-1")
    by_id = asset_select.item_ext(db, seeded["server"].id)

    assert by_name == by_id
    assert by_name.ext_name == "Server 1"


def test_items_by_container_and_without_container(db, seeded):
    in_rack = asset_select.items_by_container(db, seeded["rack"].id, Filter(subtypes=[SUBTYPE_UPS]))
    roots = asset_select.items_without_container(db)

    assert [item.name for item in in_rack] == ["ups-1"]
    assert [item.name for item in roots] == ["datacenter", "group-1"]


def test_device_links_to(db, seeded):
    links = asset_select.device_links_to(db, seeded["server"].id)

    assert len(links) == 1
    assert links[0].src_name == "epdu-1"
    assert links[0].src_socket == "5"
    assert links[0].dest_socket == "A"


def test_select_assets_by_container(db, seeded):
    assert asset_select.select_assets_by_container(db, "rack-1", []) == ["ups-1", "epdu-1", "server-1"]
    assert asset_select.select_assets_by_container(db, "datacenter", ["rack"]) == ["rack-1"]
    assert asset_select.select_assets_by_container(db, "", ["group"]) == ["group-1"]
    with pytest.raises(ElementNotFound):
        asset_select.select_assets_by_container(db, "nowhere", [])
