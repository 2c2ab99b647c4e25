import asyncio

import pytest

from asset_agent.actors.actor_base import TERM
from asset_agent.actors.inventory_server import InventoryServer
from asset_agent.bus.broker import Broker, MlmClient
from asset_agent.bus.proto import encode_asset
from asset_agent.core.errors import ElementNotFound
from asset_agent.helpers.asset_db import select_ext_attributes
from asset_agent.helpers.inventory_cache import InventoryCache, cache_key, process_insert_inventory


# -------------------------------------------------------
# Cache
# -------------------------------------------------------
def test_cache_set_and_get():
    cache = InventoryCache(max_entries=10)
    cache.set("ups-1:ip.1", "10.0.0.1")
    cache.set("ups-1:ip.1", "10.0.0.2")

    assert cache.get("ups-1:ip.1") == "10.0.0.2"
    assert cache.get("ups-1:ip.2") is None
    assert len(cache) == 1


def test_cache_drops_oldest_entry_when_full():
    cache = InventoryCache(max_entries=2)
    cache.set("a:1", "1")
    cache.set("b:1", "1")
    cache.set("c:1", "1")

    assert "a:1" not in cache
    assert "b:1" in cache
    assert "c:1" in cache


def test_cache_disabled_with_zero_entries():
    cache = InventoryCache(max_entries=0)
    cache.set("a:1", "1")

    assert len(cache) == 0


def test_vacuum_asset_only_touches_that_asset():
    cache = InventoryCache(max_entries=10)
    cache.set(cache_key("ups-1", "ip.1"), "10.0.0.1")
    cache.set(cache_key("ups-1", "mac.1"), "aa:bb")
    cache.set(cache_key("ups-10", "ip.1"), "10.0.0.10")

    assert cache.vacuum_asset("ups-1") == 2
    assert len(cache) == 1
    assert cache_key("ups-10", "ip.1") in cache


# -------------------------------------------------------
# Storing inventory
# -------------------------------------------------------
def test_process_insert_inventory(db, seeded):
    cache = InventoryCache(max_entries=10)

    first = process_insert_inventory(db, "ups-1", {"ip.1": "10.0.0.1", "hostname.1": "ups"}, cache=cache)
    second = process_insert_inventory(db, "ups-1", {"ip.1": "10.0.0.1", "hostname.1": "ups-a"}, cache=cache)

    attrs = select_ext_attributes(db, seeded["ups"].id)
    assert (first, second) == (2, 1)
    assert attrs["ip.1"].value == "10.0.0.1"
    assert attrs["ip.1"].read_only
    assert attrs["hostname.1"].value == "ups-a"


def test_process_insert_inventory_unknown_asset(db, seeded):
    with pytest.raises(ElementNotFound):
        process_insert_inventory(db, "ups-99", {"ip.1": "10.0.0.1"})


# -------------------------------------------------------
# Actor
# -------------------------------------------------------
def test_inventory_server_stores_and_vacuums(seeded, session_factory):
    async def scenario():
        broker = Broker()
        inventory = InventoryServer(broker, name="asset-inventory", session_factory=session_factory, cache=InventoryCache(10))
        inventory.start()
        task = asyncio.create_task(inventory.run())
        producer = MlmClient(broker, "asset-autoupdate").connect()
        producer.set_producer("ASSETS")
        try:
            producer.send("inventory@ups-1", [encode_asset("ups-1", "inventory", ext={"ip.1": "10.0.0.5"})])
            producer.send("inventory@ups-99", [encode_asset("ups-99", "inventory", ext={"ip.1": "10.0.0.9"})])
            for _ in range(200):
                if "ups-1:ip.1" in inventory.cache:
                    break
                await asyncio.sleep(0.01)
            stored = "ups-1:ip.1" in inventory.cache

            producer.send("device.ups@ups-1", [encode_asset("ups-1", "delete", aux={"type": "device"})])
            for _ in range(200):
                if not len(inventory.cache):
                    break
                await asyncio.sleep(0.01)
            return stored, len(inventory.cache)
        finally:
            inventory.send(TERM)
            await task

    stored, left = asyncio.run(scenario())

    with session_factory() as db:
        attrs = select_ext_attributes(db, seeded["ups"].id)
    assert stored
    assert left == 0
    assert attrs["ip.1"].value == "10.0.0.5"
